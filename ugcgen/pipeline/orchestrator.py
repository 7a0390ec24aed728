"""
GenerationPipeline: drives one GenerationSession through the stages

  Idle -> ImageUploaded -> ScriptReady -> PromptReady -> TaskSubmitted
       -> TaskSucceeded | TaskFailed

Every operation is triggered explicitly and checks its own prerequisites.
A failed operation leaves the session exactly as it was; the session is
only written once all of an operation's provider calls have succeeded.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Optional

from ..errors import UGCError, ValidationError
from ..kie import validate_image
from ..schemas import ScriptResult
from .activity import ActivityLog
from .models import (
    LOCKED_STAGES,
    GenerationSession,
    PipelineStage,
    ProductForm,
    SelectedImage,
)
from .poller import TaskPoller

logger = logging.getLogger(__name__)


class GenerationPipeline:
    """
    Usage:
        pipeline = GenerationPipeline(gateway)
        pipeline.select_image("serum.jpg", data, "image/jpeg")
        await pipeline.upload_and_generate_script(form)
        await pipeline.generate_video_prompt()
        await pipeline.submit_video_task()   # starts polling
        await pipeline.wait_for_task()
    """

    def __init__(
        self,
        gateway,
        session: Optional[GenerationSession] = None,
        activity: Optional[ActivityLog] = None,
        poller_factory: Callable[..., TaskPoller] = TaskPoller,
        **poller_options,
    ):
        self.gateway = gateway
        self.session = session or GenerationSession()
        self.activity = activity or ActivityLog()
        self._poller_factory = poller_factory
        self._poller_options = poller_options
        self.poller: Optional[TaskPoller] = None
        # Bumped by reset_session(); results from an older generation are dropped
        self._generation = 0

    # ── Guards ───────────────────────────────────────────────────────────

    def _reject(self, step: str, error: UGCError):
        self.activity.failure(step, error.message)
        raise error

    def _ensure_open(self, step: str):
        if self.session.stage in LOCKED_STAGES:
            self._reject(step, ValidationError(
                "A video task was already submitted; reset the session to start over"
            ))

    @contextmanager
    def _busy(self, step: str):
        if self.session.busy:
            self._reject(step, ValidationError(f"{step} is already in progress"))
        self.session.busy = True
        try:
            yield self._generation
        except UGCError as e:
            self.activity.failure(step, e.message)
            raise
        finally:
            self.session.busy = False

    def _superseded(self, step: str, generation: int) -> bool:
        """True if the session was reset while the step's provider calls ran."""
        if generation == self._generation:
            return False
        self.activity.log(step, "Session was reset; result discarded", "warning")
        return True

    # ── Image selection ──────────────────────────────────────────────────

    def select_image(self, filename: str, content: bytes, content_type: str) -> SelectedImage:
        try:
            validate_image(content_type, len(content))
        except ValidationError as e:
            self._reject("Image", e)
        self.session.image = SelectedImage(
            filename=filename, content_type=content_type, content=content
        )
        self.activity.log("Image", f"Selected {filename} ({len(content) / 1024:.1f} KB)", "success")
        return self.session.image

    def remove_image(self):
        self.session.image = None
        self.session.image_url = None
        self.activity.log("Image", "Image removed")

    async def _upload(self) -> str:
        image = self.session.image
        self.activity.log("Upload", "Uploading image to Kie.ai...", "loading")
        uploaded = await self.gateway.upload_image(image.content, image.filename, image.content_type)
        self.activity.log("Upload", f"Uploaded: {uploaded['url']}", "success")
        return uploaded["url"]

    # ── Stage 1: Upload + Script ─────────────────────────────────────────

    async def upload_and_generate_script(self, form: ProductForm) -> ScriptResult:
        """
        Upload the selected image, then generate script and caption.
        The script is never requested if the upload fails.
        """
        step = "Script"
        self._ensure_open(step)

        form = form.stripped()
        missing = form.missing_fields()
        if self.session.image is None:
            missing.append("image")
        if missing:
            self._reject(step, ValidationError.missing(missing))

        with self._busy(step) as generation:
            image_url = await self._upload()
            self.activity.log(step, "Generating script with OpenAI...", "loading")
            result = await self.gateway.generate_script(
                form.product_name,
                form.product_details,
                form.review_style,
                form.review_objective,
            )
        if self._superseded(step, generation):
            return result

        session = self.session
        session.form = form
        session.image_url = image_url
        session.script = result.script
        session.caption = result.caption
        session.video_prompt = ""
        session.stage = PipelineStage.SCRIPT_READY
        self.activity.log(step, "Script generated", "success")
        return result

    async def upload_for_manual_prompt(self) -> str:
        """Upload the image only; the user writes the video prompt by hand."""
        step = "Upload"
        self._ensure_open(step)
        if self.session.image is None:
            self._reject(step, ValidationError.missing(["image"]))

        with self._busy(step) as generation:
            image_url = await self._upload()
        if self._superseded(step, generation):
            return image_url

        session = self.session
        session.image_url = image_url
        session.script = ""
        session.caption = ""
        session.video_prompt = ""
        session.stage = PipelineStage.IMAGE_UPLOADED
        self.activity.log("System", "Manual prompt mode")
        return image_url

    # ── Stage 2: Video Prompt ────────────────────────────────────────────

    async def generate_video_prompt(
        self,
        script: Optional[str] = None,
        caption: Optional[str] = None,
    ) -> str:
        """Build the video prompt from the current (or user-edited) script."""
        step = "Video Prompt"
        self._ensure_open(step)

        script = (self.session.script if script is None else script).strip()
        if not script:
            self._reject(step, ValidationError.missing(["script"]))

        form = self.session.form
        with self._busy(step) as generation:
            self.activity.log(step, "Generating video prompt...", "loading")
            video_prompt = await self.gateway.generate_video_prompt(
                form.product_name,
                form.product_details,
                form.review_style,
                script,
            )
        if self._superseded(step, generation):
            return video_prompt

        session = self.session
        session.script = script
        if caption is not None:
            session.caption = caption.strip()
        session.video_prompt = video_prompt
        session.stage = PipelineStage.PROMPT_READY
        self.activity.log(step, "Video prompt generated", "success")
        return video_prompt

    # ── Stage 3: Video Task ──────────────────────────────────────────────

    async def submit_video_task(self, video_prompt: Optional[str] = None) -> str:
        """Submit prompt + uploaded image and start polling the new task."""
        step = "Video"
        self._ensure_open(step)

        video_prompt = (self.session.video_prompt if video_prompt is None else video_prompt).strip()
        if not video_prompt:
            self._reject(step, ValidationError("Video prompt is required", ["videoPrompt"]))
        if not self.session.image_url:
            self._reject(step, ValidationError(
                "No uploaded image URL; upload the image again from the first step",
                ["imageUrl"],
            ))

        with self._busy(step) as generation:
            self.activity.log(step, "Submitting video task to Kie.ai...", "loading")
            task_id = await self.gateway.submit_video_task(self.session.image_url, video_prompt)
        if self._superseded(step, generation):
            return task_id

        session = self.session
        session.video_prompt = video_prompt
        session.task_id = task_id
        session.task_state = None
        session.result_url = None
        session.failure_reason = None
        session.progress = 0.0
        session.elapsed_seconds = 0
        session.stage = PipelineStage.TASK_SUBMITTED
        self.activity.log(step, f"Task ID: {task_id}", "success")

        self.poller = self._poller_factory(
            session, self.gateway, self.activity, **self._poller_options
        )
        self.poller.start()
        return task_id

    async def wait_for_task(self) -> GenerationSession:
        """Block until the active poll ends (terminal state or reset)."""
        if self.poller is not None:
            await self.poller.wait()
        return self.session

    # ── Reset ────────────────────────────────────────────────────────────

    def reset_session(self):
        """
        Empty the session and stop polling. An operation still awaiting a
        provider keeps the busy flag until it returns, and its result is
        then discarded.
        """
        self._generation += 1
        if self.poller is not None:
            self.poller.cancel()
            self.poller = None
        busy = self.session.busy
        self.session.reset()
        self.session.busy = busy
        self.activity.log("System", "Session reset")
