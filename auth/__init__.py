"""auth/ -- Session, cookie, token and CSRF layer for Clubhouse.

Layer rule: auth/ imports only stdlib + third-party libraries, plus the
Settings type from core/ for factory methods. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
