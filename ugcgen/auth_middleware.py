"""
Session-token authentication and per-request credential resolution.

A request may authenticate with `Authorization: Bearer <token>`; the token
is resolved to an account and stored on request.state. Without a token the
service runs credential-less: provider keys come from the x-config-* headers
or the environment. Credentials and settings are resolved per request and
passed down explicitly, never stored in module state.
"""

import os
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from . import kie
from . import openai_client
from .accounts import Account, AccountService, effective_settings
from .errors import AuthError, UGCError
from .gateway import ProviderGateway
from .schemas import Credentials, EffectiveSettings, SettingsOverrides
from .store import JsonFileStore

logger = logging.getLogger(__name__)

USERS_FILE = os.environ.get("UGC_USERS_FILE", "users.json")

OPENAI_KEY_HEADER = "x-config-openai-key"
KIE_KEY_HEADER = "x-config-kie-key"


def get_account_service(app: FastAPI) -> AccountService:
    """Account service for this app, created on first use."""
    service = getattr(app.state, "accounts", None)
    if service is None:
        service = AccountService(JsonFileStore(USERS_FILE))
        app.state.accounts = service
    return service


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


class AccountAuthMiddleware(BaseHTTPMiddleware):
    """Resolve bearer tokens on /api/* and reject bad or missing ones."""

    # Paths that never look at the token
    PUBLIC_PATHS = {"/api/auth/register", "/api/auth/login"}

    # Paths that need a logged-in account
    PROTECTED_PATHS = {"/api/auth/verify", "/api/auth/logout", "/api/settings"}

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        request.state.account = None
        request.state.token = None

        if not path.startswith("/api/") or path in self.PUBLIC_PATHS:
            return await call_next(request)

        token = _bearer_token(request)
        if token:
            try:
                account = get_account_service(request.app).find_by_token(token)
            except UGCError as e:
                return _error_response(e.status_code, e.message)
            if account is None:
                logger.warning(f"Rejected invalid session token on {path}")
                return _error_response(401, "Invalid or expired session")
            request.state.account = account
            request.state.token = token
        elif path in self.PROTECTED_PATHS:
            return _error_response(401, "Authentication required")

        return await call_next(request)


# ── Request helpers ──────────────────────────────────────────────────────────

def require_account(request: Request) -> Account:
    account = getattr(request.state, "account", None)
    if account is None:
        raise AuthError("Authentication required")
    return account


def request_credentials(request: Request) -> Credentials:
    """Account key, then x-config-* header, then environment; first non-empty wins."""
    account: Optional[Account] = getattr(request.state, "account", None)
    stored = account.credentials() if account else Credentials()
    return Credentials(
        openai_key=(
            stored.openai_key
            or request.headers.get(OPENAI_KEY_HEADER, "").strip()
            or openai_client.OPENAI_API_KEY
        ),
        kie_key=(
            stored.kie_key
            or request.headers.get(KIE_KEY_HEADER, "").strip()
            or kie.KIE_API_KEY
        ),
    )


def request_settings(
    request: Request,
    overrides: Optional[SettingsOverrides] = None,
) -> EffectiveSettings:
    account: Optional[Account] = getattr(request.state, "account", None)
    if account is not None:
        settings = get_account_service(request.app).resolve_effective(account.email)
    else:
        settings = effective_settings()
    return overrides.apply(settings) if overrides is not None else settings


def request_gateway(
    request: Request,
    overrides: Optional[SettingsOverrides] = None,
) -> ProviderGateway:
    return ProviderGateway(
        request_credentials(request),
        request_settings(request, overrides),
        transport=getattr(request.app.state, "provider_transport", None),
    )
