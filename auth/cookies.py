"""
auth/cookies.py -- Single source of truth for cookie attributes.

Every Set-Cookie the auth layer emits goes through CookiePolicy. Per-call
options are built by CookiePolicy.options(), which takes named overrides with
a fixed precedence: base policy < per-call override. httponly is not a
parameter anywhere -- both auth cookies are httpOnly, always.

  development: secure=False, samesite="lax"
  production:  secure=True,  samesite="strict"

clear_all_paths() exists because a cookie set under /api is invisible to a
clear instruction scoped to /, and vice versa. It emits one clear per path
prefix the application has ever issued cookies under.

Layer rule: no imports from api/. Imports from core/ are limited to the
Settings type used by from_settings().
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from starlette.responses import Response

if TYPE_CHECKING:
    from core.config import Settings

AUTH_COOKIE = "authToken"
SESSION_COOKIE = "csrfSessionId"

_SAMESITE_VALUES = ("lax", "strict", "none")


@dataclass(frozen=True)
class CookieOptions:
    path: str
    secure: bool
    samesite: str
    domain: str | None = None
    max_age: int | None = None

    @property
    def httponly(self) -> bool:
        return True


@dataclass(frozen=True)
class CookiePolicy:
    secure: bool = False
    samesite: str = "lax"
    domain: str | None = None
    paths: tuple[str, ...] = ("/",)

    def __post_init__(self) -> None:
        if self.samesite not in _SAMESITE_VALUES:
            raise ValueError(f"samesite must be one of {_SAMESITE_VALUES}, got {self.samesite!r}")
        # Root first, duplicates removed, order otherwise preserved.
        ordered = tuple(dict.fromkeys(("/", *self.paths)))
        object.__setattr__(self, "paths", ordered)

    @classmethod
    def from_settings(cls, settings: Settings) -> CookiePolicy:
        prod = settings.is_production
        return cls(
            secure=prod,
            samesite="strict" if prod else "lax",
            domain=settings.cookie_domain or None,
            paths=tuple(settings.cookie_paths),
        )

    def options(
        self,
        *,
        max_age: int | None = None,
        path: str | None = None,
        secure: bool | None = None,
        samesite: str | None = None,
    ) -> CookieOptions:
        return CookieOptions(
            path=path if path is not None else "/",
            secure=self.secure if secure is None else secure,
            samesite=self.samesite if samesite is None else samesite,
            domain=self.domain,
            max_age=max_age,
        )

    def set(self, response: Response, name: str, value: str, *, max_age: int | None = None) -> None:
        opts = self.options(max_age=max_age)
        response.set_cookie(
            name,
            value=value,
            max_age=opts.max_age,
            path=opts.path,
            domain=opts.domain,
            secure=opts.secure,
            httponly=opts.httponly,
            samesite=opts.samesite,
        )

    def clear(self, response: Response, name: str, *, path: str = "/") -> None:
        opts = self.options(path=path)
        response.delete_cookie(
            name,
            path=opts.path,
            domain=opts.domain,
            secure=opts.secure,
            httponly=opts.httponly,
            samesite=opts.samesite,
        )

    def clear_all_paths(self, response: Response, name: str) -> None:
        for path in self.paths:
            self.clear(response, name, path=path)
