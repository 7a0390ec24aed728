"""
Pydantic models shared by the gateway, the account store and the HTTP layer.
"""

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .defaults import FAILURE_STATES, SUCCESS_STATES


# ── Credentials & Settings ───────────────────────────────────────────────────

class Credentials(BaseModel):
    """Provider keys resolved for a single request. Empty string = not configured."""
    openai_key: str = ""
    kie_key: str = ""


class EffectiveSettings(BaseModel):
    """Account settings with every empty field replaced by the process default."""
    openai_model: str
    sora2_model: str
    script_rule: str
    video_prompt_rule: str


class SettingsUpdate(BaseModel):
    """Partial settings save. Unset fields are left untouched; "" clears a key."""
    model_config = ConfigDict(populate_by_name=True)

    openai_key: Optional[str] = Field(None, alias="openaiKey")
    kie_key: Optional[str] = Field(None, alias="kieKey")
    openai_model: Optional[str] = Field(None, alias="openaiModel")
    sora2_model: Optional[str] = Field(None, alias="sora2Model")
    script_rule: Optional[str] = Field(None, alias="scriptGenerationRule")
    video_prompt_rule: Optional[str] = Field(None, alias="videoPromptRule")

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class SettingsOverrides(BaseModel):
    """Per-request model/rule overrides sent by credential-less clients."""
    model_config = ConfigDict(populate_by_name=True)

    openai_model: str = Field("", alias="openaiModel")
    sora2_model: str = Field("", alias="sora2Model")
    script_rule: str = Field("", alias="scriptGenerationRule")
    video_prompt_rule: str = Field("", alias="videoPromptRule")

    def apply(self, settings: EffectiveSettings) -> EffectiveSettings:
        overrides = {k: v.strip() for k, v in self.model_dump().items() if v and v.strip()}
        return settings.model_copy(update=overrides)


# ── Script generation result ─────────────────────────────────────────────────

class StructuredScript(BaseModel):
    """The LLM answered with a JSON object carrying script and caption."""
    kind: Literal["structured"] = "structured"
    script: str
    caption: str = ""


class UnstructuredScript(BaseModel):
    """The LLM answered with free text; all of it is the script."""
    kind: Literal["unstructured"] = "unstructured"
    raw_text: str

    @property
    def script(self) -> str:
        return self.raw_text

    @property
    def caption(self) -> str:
        return ""


ScriptResult = Annotated[
    Union[StructuredScript, UnstructuredScript],
    Field(discriminator="kind"),
]


# ── Provider exchange ────────────────────────────────────────────────────────

class ProviderExchange(BaseModel):
    """Outbound body and decoded reply of one provider call. Headers are never kept."""
    request: dict
    response: Any = None


# ── Video task snapshot ──────────────────────────────────────────────────────

def _parse_result_json(value) -> dict:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def extract_result_url(record: dict) -> Optional[str]:
    """
    Pull the video URL out of a provider task record.

    Order: resultJson.resultUrls[0], resultJson.video_url, output.video_url,
    videoUrl. First non-empty value wins.
    """
    result = _parse_result_json(record.get("resultJson"))
    urls = result.get("resultUrls")
    output = record.get("output")
    candidates = [
        urls[0] if isinstance(urls, list) and urls else None,
        result.get("video_url"),
        output.get("video_url") if isinstance(output, dict) else None,
        record.get("videoUrl"),
    ]
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


class TaskSnapshot(BaseModel):
    """One read of a provider-owned video task."""
    task_id: str
    state: str = "unknown"
    result_url: Optional[str] = None
    failure_reason: Optional[str] = None
    raw: dict = Field(default_factory=dict)

    @classmethod
    def from_provider(cls, task_id: str, record: dict) -> "TaskSnapshot":
        state = str(record.get("state") or "unknown")
        snapshot = cls(task_id=task_id, state=state, raw=record)
        if snapshot.is_success:
            snapshot.result_url = extract_result_url(record)
        elif snapshot.is_failure:
            snapshot.failure_reason = record.get("failMsg") or record.get("message") or None
        return snapshot

    @property
    def is_success(self) -> bool:
        return self.state.lower() in SUCCESS_STATES

    @property
    def is_failure(self) -> bool:
        return self.state.lower() in FAILURE_STATES

    @property
    def is_terminal(self) -> bool:
        return self.is_success or self.is_failure


# ── API Request Models ───────────────────────────────────────────────────────

class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    passcode: str
    openai_key: str = Field("", alias="openaiKey")
    kie_key: str = Field("", alias="kieKey")


class LoginRequest(BaseModel):
    email: str
    passcode: str


class GenerateScriptRequest(SettingsOverrides):
    product_name: str = Field("", alias="productName")
    product_details: str = Field("", alias="productDetails")
    review_style: str = Field("", alias="reviewStyle")
    review_objective: str = Field("", alias="reviewObjective")


class GenerateVideoPromptRequest(SettingsOverrides):
    product_name: str = Field("", alias="productName")
    product_details: str = Field("", alias="productDetails")
    review_style: str = Field("", alias="reviewStyle")
    script: str = ""


class CreateVideoRequest(SettingsOverrides):
    image_url: str = Field("", alias="imageUrl")
    video_prompt: str = Field("", alias="videoPrompt")
