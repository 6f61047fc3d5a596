"""
auth/session.py -- Session cookie lifecycle.

The session is the signed token from auth/tokens.py carried in an httpOnly
cookie. There is no server-side session store, so "ending" a session means
telling the browser to drop its cookies.

Cookies managed here:
  session cookie  (SESSION_COOKIE_NAME)        -- the JWT. httpOnly, SameSite=Lax.
  XSRF cookie     (XSRF_COOKIE_NAME)           -- anti-forgery token, readable by JS
                                                  so the SPA can echo it in a header.
  legacy cookie   (LEGACY_SESSION_COOKIE_NAME) -- Starlette SessionMiddleware
                                                  cookie holding OAuth state.

Logout expires all three independently; no expiry depends on another.

Anti-forgery (double submit): an unsafe request authenticated by the session
cookie must send the XSRF cookie value back in XSRF_HEADER_NAME. A cross-site
form can make the browser send cookies but cannot read them to fill the header.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import hmac
import logging
import secrets

from auth.models import User
from auth.tokens import TokenCodec
from core.config import Settings
from core.errors import Forbidden

logger = logging.getLogger("bookshelf.auth.session")


class SessionManager:
    """Issue and expire the cookies that make up a browser session.

    Usage:
        sessions = SessionManager(codec, settings)
        sessions.start_session(response, user)   # after login
        sessions.end_session(response)           # on logout
    """

    def __init__(self, codec: TokenCodec, settings: Settings) -> None:
        self._codec = codec
        self._settings = settings

    @property
    def cookie_name(self) -> str:
        return self._settings.session_cookie_name

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def start_session(self, response, user: User) -> str:
        """Issue a token for the user and write the session and XSRF cookies.

        max_age matches the token expiry so cookie and token expire together.
        Returns the encoded token.
        """
        token = self._codec.issue(user)
        response.set_cookie(
            self._settings.session_cookie_name,
            value=token,
            httponly=True,
            samesite="lax",
            secure=self._settings.secure_cookies,
            max_age=self._codec.expire_seconds,
        )
        response.set_cookie(
            self._settings.xsrf_cookie_name,
            value=secrets.token_urlsafe(32),
            httponly=False,
            samesite="lax",
            secure=self._settings.secure_cookies,
            max_age=self._codec.expire_seconds,
        )
        return token

    # ------------------------------------------------------------------
    # Expire
    # ------------------------------------------------------------------

    def expire_session_cookie(self, response) -> None:
        response.delete_cookie(
            self._settings.session_cookie_name,
            httponly=True,
            samesite="lax",
            secure=self._settings.secure_cookies,
        )

    def expire_xsrf_cookie(self, response) -> None:
        response.delete_cookie(
            self._settings.xsrf_cookie_name,
            samesite="lax",
            secure=self._settings.secure_cookies,
        )

    def expire_legacy_session_cookie(self, response) -> None:
        # There shouldn't be one after the OAuth round trip completes, but kill any that exists.
        response.delete_cookie(self._settings.legacy_session_cookie_name, httponly=True)

    def end_session(self, response) -> None:
        """Expire every session-related cookie on the response."""
        self.expire_session_cookie(response)
        self.expire_xsrf_cookie(response)
        self.expire_legacy_session_cookie(response)

    # ------------------------------------------------------------------
    # Anti-forgery
    # ------------------------------------------------------------------

    def verify_xsrf(self, request) -> None:
        """Raise Forbidden unless the XSRF header echoes the XSRF cookie."""
        if not self._settings.xsrf_protection:
            return
        cookie_value = request.cookies.get(self._settings.xsrf_cookie_name, "")
        header_value = request.headers.get(self._settings.xsrf_header_name, "")
        if not cookie_value or not hmac.compare_digest(cookie_value.encode(), header_value.encode()):
            logger.warning("XSRF check failed on %s %s", request.method, request.url.path)
            raise Forbidden("Missing or invalid anti-forgery token.", code="xsrf_failed")
