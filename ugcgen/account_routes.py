"""
FastAPI routes for accounts and per-account settings.

Auth Endpoints:
  POST /api/auth/register  — Create account, returns a session token
  POST /api/auth/login     — Issue a fresh token (old one stops working)
  GET  /api/auth/verify    — Check the bearer token
  POST /api/auth/logout    — Invalidate the bearer token

Settings Endpoints:
  GET  /api/settings       — Masked keys + model/rule fields
  POST /api/settings       — Partial save (omitted fields are kept)

Handlers are plain functions: passcode hashing and store writes block, so
FastAPI runs them in its threadpool.
"""

import logging

from fastapi import APIRouter, Request

from .auth_middleware import get_account_service, require_account
from .schemas import LoginRequest, RegisterRequest, SettingsUpdate

logger = logging.getLogger(__name__)


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register")
def register(request: Request, body: RegisterRequest):
    account = get_account_service(request.app).register(
        body.email, body.passcode, body.openai_key, body.kie_key
    )
    return {"success": True, "data": {"email": account.email, "token": account.token}}


@auth_router.post("/login")
def login(request: Request, body: LoginRequest):
    account = get_account_service(request.app).login(body.email, body.passcode)
    return {"success": True, "data": {"email": account.email, "token": account.token}}


@auth_router.get("/verify")
def verify(request: Request):
    account = require_account(request)
    return {
        "success": True,
        "data": {
            "email": account.email,
            "hasOpenaiKey": bool(account.openai_key),
            "hasKieKey": bool(account.kie_key),
        },
    }


@auth_router.post("/logout")
def logout(request: Request):
    require_account(request)
    get_account_service(request.app).logout(request.state.token)
    return {"success": True, "data": {}}


settings_router = APIRouter(prefix="/api/settings", tags=["settings"])


@settings_router.get("")
def get_settings(request: Request):
    account = require_account(request)
    return {"success": True, "data": get_account_service(request.app).masked_settings(account.email)}


@settings_router.post("")
def save_settings(request: Request, body: SettingsUpdate):
    account = require_account(request)
    service = get_account_service(request.app)
    service.put(account.email, body)
    return {"success": True, "data": service.masked_settings(account.email)}
