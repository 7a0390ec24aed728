"""
Email/passcode accounts holding per-user provider keys and generation settings.

Records live in a JsonFileStore keyed by the lower-cased email. A session
token, when set, identifies exactly one account; logging in again replaces it.
"""

import re
import secrets
import hashlib
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from . import defaults
from .errors import AccountExistsError, AuthError, NotFoundError, ValidationError
from .schemas import Credentials, EffectiveSettings, SettingsUpdate
from .store import JsonFileStore

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSCODE_MIN_LENGTH = 4
PASSCODE_MAX_LENGTH = 20
PBKDF2_ITERATIONS = 100_000

SETTINGS_FIELDS = (
    "openai_key",
    "kie_key",
    "openai_model",
    "sora2_model",
    "script_rule",
    "video_prompt_rule",
)


class Account(BaseModel):
    email: str
    passcode_hash: str
    token: Optional[str] = None
    openai_key: str = ""
    kie_key: str = ""
    openai_model: str = ""
    sora2_model: str = ""
    script_rule: str = ""
    video_prompt_rule: str = ""
    created_at: str
    last_login: Optional[str] = None

    def credentials(self) -> Credentials:
        return Credentials(openai_key=self.openai_key, kie_key=self.kie_key)


class Settings(BaseModel):
    """Stored settings for one account, exactly as saved (no defaults applied)."""
    openai_key: str = ""
    kie_key: str = ""
    openai_model: str = ""
    sora2_model: str = ""
    script_rule: str = ""
    video_prompt_rule: str = ""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def hash_passcode(passcode: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", passcode.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS
    )
    return f"{salt}${digest.hex()}"


def check_passcode(passcode: str, stored: str) -> bool:
    salt, _, _ = stored.partition("$")
    return secrets.compare_digest(hash_passcode(passcode, salt), stored)


def mask_key(key: str) -> str:
    """Show the first 8 characters of a key; short keys are returned as-is."""
    if not key or len(key) < 12:
        return key
    return key[:8] + "********"


def effective_settings(settings: Optional[Settings] = None) -> EffectiveSettings:
    """Fill every empty field from the process defaults."""
    settings = settings or Settings()
    return EffectiveSettings(
        openai_model=settings.openai_model or defaults.DEFAULT_OPENAI_MODEL,
        sora2_model=settings.sora2_model or defaults.DEFAULT_SORA2_MODEL,
        script_rule=settings.script_rule or defaults.DEFAULT_SCRIPT_RULE,
        video_prompt_rule=settings.video_prompt_rule or defaults.DEFAULT_VIDEO_PROMPT_RULE,
    )


class AccountService:
    def __init__(self, store: JsonFileStore):
        self.store = store

    # ── Authentication ───────────────────────────────────────────────────

    def register(
        self,
        email: str,
        passcode: str,
        openai_key: str = "",
        kie_key: str = "",
    ) -> Account:
        key = normalize_email(email)
        problems = []
        if not EMAIL_RE.match(key):
            problems.append("email")
        if not PASSCODE_MIN_LENGTH <= len(passcode or "") <= PASSCODE_MAX_LENGTH:
            problems.append("passcode")
        if problems:
            raise ValidationError(
                f"Invalid email or passcode (passcode must be "
                f"{PASSCODE_MIN_LENGTH}-{PASSCODE_MAX_LENGTH} characters)",
                problems,
            )
        if key in self.store:
            raise AccountExistsError("Email is already registered", ["email"])

        now = _now_iso()
        account = Account(
            email=key,
            passcode_hash=hash_passcode(passcode),
            token=secrets.token_urlsafe(32),
            openai_key=(openai_key or "").strip(),
            kie_key=(kie_key or "").strip(),
            created_at=now,
            last_login=now,
        )
        self.store.put(key, account.model_dump())
        logger.info(f"Registered account {key}")
        return account

    def login(self, email: str, passcode: str) -> Account:
        key = normalize_email(email)
        record = self.store.get(key)
        if record is None or not check_passcode(passcode or "", record["passcode_hash"]):
            raise AuthError("Invalid email or passcode")

        token = secrets.token_urlsafe(32)

        def _issue(current: dict) -> dict:
            current["token"] = token
            current["last_login"] = _now_iso()
            return current

        updated = self.store.update(key, _issue)
        logger.info(f"Account {key} logged in")
        return Account(**updated)

    def find_by_token(self, token: Optional[str]) -> Optional[Account]:
        if not token:
            return None
        match = self.store.find(lambda r: r.get("token") == token)
        return Account(**match[1]) if match else None

    def verify(self, token: Optional[str]) -> Account:
        account = self.find_by_token(token)
        if account is None:
            raise AuthError("Invalid or expired session")
        return account

    def logout(self, token: Optional[str]):
        account = self.verify(token)

        def _clear(current: dict) -> dict:
            current["token"] = None
            return current

        self.store.update(account.email, _clear)
        logger.info(f"Account {account.email} logged out")

    # ── Settings ─────────────────────────────────────────────────────────

    def get(self, account_id: str) -> Settings:
        record = self.store.get(normalize_email(account_id))
        if record is None:
            raise NotFoundError(f"Account not found: {account_id}")
        return Settings(**{f: record.get(f) or "" for f in SETTINGS_FIELDS})

    def put(self, account_id: str, update: SettingsUpdate) -> Settings:
        """Merge the supplied fields into the stored record."""
        key = normalize_email(account_id)
        changes = {k: v.strip() for k, v in update.changes().items()}
        # A masked key echoed back by a settings form means "unchanged"
        for field in ("openai_key", "kie_key"):
            if "*" in changes.get(field, ""):
                del changes[field]

        def _merge(current: dict) -> dict:
            current.update(changes)
            return current

        try:
            self.store.update(key, _merge)
        except KeyError:
            raise NotFoundError(f"Account not found: {account_id}")
        logger.info(f"Saved settings for {key}: {sorted(changes)}")
        return self.get(key)

    def resolve_effective(self, account_id: Optional[str] = None) -> EffectiveSettings:
        if account_id is None:
            return effective_settings()
        return effective_settings(self.get(account_id))

    def masked_settings(self, account_id: str) -> dict:
        settings = self.get(account_id)
        return {
            "openaiKey": mask_key(settings.openai_key),
            "kieKey": mask_key(settings.kie_key),
            "hasOpenaiKey": bool(settings.openai_key),
            "hasKieKey": bool(settings.kie_key),
            "openaiModel": settings.openai_model,
            "sora2Model": settings.sora2_model,
            "scriptGenerationRule": settings.script_rule,
            "videoPromptRule": settings.video_prompt_rule,
        }
