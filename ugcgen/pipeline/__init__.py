"""
Generation Pipeline

Upload -> Script -> Video Prompt -> Video Task, with the task followed by
an asyncio poller until the provider reports success or failure.
"""

from .activity import ActivityLog
from .models import GenerationSession, PipelineStage, ProductForm
from .orchestrator import GenerationPipeline
from .poller import TaskPoller

__all__ = [
    "ActivityLog",
    "GenerationPipeline",
    "GenerationSession",
    "PipelineStage",
    "ProductForm",
    "TaskPoller",
]
