"""
TaskPoller: follows a submitted video task until the provider reports a
terminal state.

Runs as an asyncio task beside user interaction:
  - every POLL_INTERVAL seconds: fetch the task status
  - every TICK seconds: advance elapsed time and simulated progress
  - past WARN_AFTER seconds: an advisory every WARN_EVERY seconds

A failed status fetch is logged and skipped; the next poll runs on
schedule. There is no attempt limit and the advisories never cancel
anything. Only a terminal state or cancel() stops the loop.
"""

import time
import random
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..defaults import UNKNOWN_FAILURE_REASON, state_label
from ..errors import UpstreamError
from ..schemas import TaskSnapshot
from .activity import ActivityLog
from .models import GenerationSession, PipelineStage

logger = logging.getLogger(__name__)

POLL_INTERVAL = 5.0  # seconds
TICK = 1.0  # seconds
WARN_AFTER = 240  # 4 minutes
WARN_EVERY = 30  # seconds
PROGRESS_CEILING = 90.0
PROGRESS_STEP_MAX = 3.0


class TaskPoller:
    def __init__(
        self,
        session: GenerationSession,
        gateway,
        activity: ActivityLog,
        *,
        poll_interval: float = POLL_INTERVAL,
        tick: float = TICK,
        warn_after: float = WARN_AFTER,
        warn_every: float = WARN_EVERY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[float, float], float] = random.uniform,
    ):
        self.session = session
        self.gateway = gateway
        self.activity = activity
        self.task_id = session.task_id
        self.poll_interval = poll_interval
        self.tick = tick
        self.warn_after = warn_after
        self.warn_every = warn_every
        self._sleep = sleep
        self._clock = clock
        self._rng = rng
        self._next_advisory = warn_after
        self._task: Optional[asyncio.Task] = None
        self.polls = 0

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run())
        return self._task

    def cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info(f"Polling cancelled for task {self.task_id}")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def wait(self):
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def run(self):
        try:
            await self._loop()
        except Exception as e:
            logger.exception(f"Polling for task {self.task_id} crashed")
            self.activity.failure("Video", f"Status polling stopped: {e}")
            raise

    async def _loop(self):
        started = self._clock()
        next_poll = started + self.poll_interval
        logger.info(f"Polling task {self.task_id} every {self.poll_interval}s")

        while True:
            await self._sleep(self.tick)
            now = self._clock()
            self.observe_elapsed(now - started)
            if now >= next_poll:
                while next_poll <= now:
                    next_poll += self.poll_interval
                if await self.poll_once():
                    return

    # ── Per-tick behaviour ───────────────────────────────────────────────

    def observe_elapsed(self, elapsed: float):
        """Update elapsed time and simulated progress; emit due advisories."""
        self.session.elapsed_seconds = int(elapsed)
        if self.session.progress < PROGRESS_CEILING:
            self.session.progress = min(
                self.session.progress + self._rng(0, PROGRESS_STEP_MAX),
                PROGRESS_CEILING,
            )

        if elapsed >= self._next_advisory:
            message = f"Still waiting after 4 minutes ({int(elapsed)} s)"
            self.activity.log("Video", message, "warning")
            self.activity.notify(message)
            while self._next_advisory <= elapsed:
                self._next_advisory += self.warn_every

    async def poll_once(self) -> bool:
        """One status check. Returns True when polling should stop."""
        if self.session.task_id != self.task_id:
            return True

        self.polls += 1
        try:
            snapshot = await self.gateway.fetch_task_status(self.task_id)
        except UpstreamError as e:
            logger.warning(f"Status check #{self.polls} for {self.task_id} failed: {e.message}")
            return False

        if self.session.task_id != self.task_id:
            return True
        return self.apply(snapshot)

    def apply(self, snapshot: TaskSnapshot) -> bool:
        session = self.session
        session.task_state = snapshot.state
        logger.info(f"Task {self.task_id} poll #{self.polls}: {state_label(snapshot.state)}")

        if snapshot.is_success:
            session.stage = PipelineStage.TASK_SUCCEEDED
            session.result_url = snapshot.result_url
            session.progress = 100.0
            self.activity.log("Video", "Video generated", "success")
            if snapshot.result_url:
                self.activity.log("Result", f"Video URL: {snapshot.result_url}", "success")
            self.activity.notify("Video generated")
            return True

        if snapshot.is_failure:
            reason = snapshot.failure_reason or UNKNOWN_FAILURE_REASON
            session.stage = PipelineStage.TASK_FAILED
            session.failure_reason = reason
            self.activity.failure("Video", f"Video generation failed: {reason}")
            return True

        return False
