"""
Pydantic models and enums for the generation pipeline.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


# ── Pipeline Stage ───────────────────────────────────────────────────────────

class PipelineStage(str, Enum):
    IDLE = "Idle"
    IMAGE_UPLOADED = "ImageUploaded"
    SCRIPT_READY = "ScriptReady"
    PROMPT_READY = "PromptReady"
    TASK_SUBMITTED = "TaskSubmitted"
    TASK_SUCCEEDED = "TaskSucceeded"
    TASK_FAILED = "TaskFailed"


# Stages from which only reset_session() moves on
LOCKED_STAGES = (
    PipelineStage.TASK_SUBMITTED,
    PipelineStage.TASK_SUCCEEDED,
    PipelineStage.TASK_FAILED,
)


# ── Inputs ───────────────────────────────────────────────────────────────────

class ProductForm(BaseModel):
    product_name: str = ""
    product_details: str = ""
    review_style: str = ""
    review_objective: str = ""

    def stripped(self) -> "ProductForm":
        return ProductForm(**{k: v.strip() for k, v in self.model_dump().items()})

    def missing_fields(self) -> list[str]:
        """Names of every empty field, in form order."""
        labels = {
            "product_name": "productName",
            "product_details": "productDetails",
            "review_style": "reviewStyle",
            "review_objective": "reviewObjective",
        }
        return [label for name, label in labels.items() if not getattr(self, name).strip()]


class SelectedImage(BaseModel):
    """An image picked by the user but not necessarily uploaded yet."""
    filename: str
    content_type: str
    content: bytes = Field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)


# ── Activity Log ─────────────────────────────────────────────────────────────

class LogEntry(BaseModel):
    timestamp: datetime
    step: str
    message: str
    level: str = "info"  # info, success, error, warning, loading


# ── Session ──────────────────────────────────────────────────────────────────

class GenerationSession(BaseModel):
    """
    Client-held state for one run of the pipeline. Fields fill in pipeline
    order (image -> script -> prompt -> task); reset() empties all of them.
    """
    stage: PipelineStage = PipelineStage.IDLE
    image: Optional[SelectedImage] = None
    image_url: Optional[str] = None
    form: ProductForm = Field(default_factory=ProductForm)
    script: str = ""
    caption: str = ""
    video_prompt: str = ""
    task_id: Optional[str] = None
    task_state: Optional[str] = None
    result_url: Optional[str] = None
    failure_reason: Optional[str] = None
    progress: float = 0.0
    elapsed_seconds: int = 0
    busy: bool = False

    def reset(self):
        fresh = GenerationSession()
        for name in GenerationSession.model_fields:
            setattr(self, name, getattr(fresh, name))
