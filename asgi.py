"""
asgi.py -- Application assembly for Clubhouse.

The only module that builds the process-wide app from the environment. Tests
call api.main.create_app() with their own Settings instead.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
