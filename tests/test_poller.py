"""Tests for the video task polling loop."""

import asyncio

import pytest

from ugcgen.errors import UpstreamError
from ugcgen.pipeline.activity import ActivityLog
from ugcgen.pipeline.models import GenerationSession, PipelineStage
from ugcgen.pipeline.poller import TaskPoller
from ugcgen.schemas import TaskSnapshot


def _submitted_session() -> GenerationSession:
    return GenerationSession(stage=PipelineStage.TASK_SUBMITTED, task_id="task-123")


def _poller(session, gateway, clock, activity=None):
    return TaskPoller(
        session,
        gateway,
        activity or ActivityLog(),
        sleep=clock.sleep,
        clock=clock.time,
        rng=lambda low, high: high,
    )


def _snapshot(record: dict) -> TaskSnapshot:
    return TaskSnapshot.from_provider("task-123", record)


class TestTerminalStates:
    """Tests for success/failure detection."""

    def test_success_state_completes_session(self, fake_gateway, fake_clock):
        """state=success ends polling with the extracted result URL."""
        session = _submitted_session()
        fake_gateway.statuses = [
            _snapshot({"state": "processing"}),
            _snapshot({"state": "success", "resultJson": '{"resultUrls": ["https://cdn/v.mp4"]}'}),
        ]

        asyncio.run(_poller(session, fake_gateway, fake_clock).run())

        assert session.stage == PipelineStage.TASK_SUCCEEDED
        assert session.result_url == "https://cdn/v.mp4"
        assert session.progress == 100.0
        assert fake_clock.now == 10.0

    def test_completed_state_counts_as_success(self, fake_gateway, fake_clock):
        session = _submitted_session()
        fake_gateway.statuses = [_snapshot({"state": "completed", "videoUrl": "https://cdn/x.mp4"})]

        asyncio.run(_poller(session, fake_gateway, fake_clock).run())

        assert session.stage == PipelineStage.TASK_SUCCEEDED
        assert session.result_url == "https://cdn/x.mp4"

    def test_failed_state_keeps_provider_reason(self, fake_gateway, fake_clock):
        """failMsg is carried through verbatim."""
        session = _submitted_session()
        activity = ActivityLog()
        fake_gateway.statuses = [_snapshot({"state": "failed", "failMsg": "content policy violation"})]

        asyncio.run(_poller(session, fake_gateway, fake_clock, activity).run())

        assert session.stage == PipelineStage.TASK_FAILED
        assert session.failure_reason == "content policy violation"
        assert activity.entries[0].level == "error"
        assert activity.drain_notifications()

    def test_error_state_without_reason_uses_placeholder(self, fake_gateway, fake_clock):
        session = _submitted_session()
        fake_gateway.statuses = [_snapshot({"state": "error"})]

        asyncio.run(_poller(session, fake_gateway, fake_clock).run())

        assert session.stage == PipelineStage.TASK_FAILED
        assert session.failure_reason == "Unknown error"

    def test_unrecognized_state_keeps_polling(self, fake_gateway, fake_clock):
        session = _submitted_session()
        fake_gateway.statuses = [
            _snapshot({"state": "queued-somewhere"}),
            _snapshot({"state": "generating"}),
            _snapshot({"state": "success", "videoUrl": "https://cdn/v.mp4"}),
        ]

        poller = _poller(session, fake_gateway, fake_clock)
        asyncio.run(poller.run())

        assert poller.polls == 3
        assert session.stage == PipelineStage.TASK_SUCCEEDED


class TestResilience:
    """A failed status check never stops the loop."""

    def test_transport_error_is_skipped(self, fake_gateway, fake_clock):
        session = _submitted_session()
        fake_gateway.statuses = [
            UpstreamError("Status check failed"),
            _snapshot({"state": "success", "videoUrl": "https://cdn/v.mp4"}),
        ]

        poller = _poller(session, fake_gateway, fake_clock)
        asyncio.run(poller.run())

        assert poller.polls == 2
        # Second check still ran on the 5 s schedule
        assert fake_clock.now == 10.0
        assert session.stage == PipelineStage.TASK_SUCCEEDED

    def test_stops_when_session_moves_to_another_task(self, fake_gateway, fake_clock):
        session = _submitted_session()
        poller = _poller(session, fake_gateway, fake_clock)
        session.task_id = None

        assert asyncio.run(poller.poll_once()) is True
        assert fake_gateway.calls == []

    def test_unexpected_error_is_logged_before_the_poll_ends(self, fake_gateway, fake_clock):
        """Only UpstreamError is skipped; anything else stops the loop with a trace."""
        session = _submitted_session()
        activity = ActivityLog()
        fake_gateway.statuses = [RuntimeError("decoder exploded")]
        poller = _poller(session, fake_gateway, fake_clock, activity)

        with pytest.raises(RuntimeError):
            asyncio.run(poller.run())

        assert activity.entries[0].level == "error"
        assert activity.entries[0].message == "Status polling stopped: decoder exploded"
        assert activity.drain_notifications() == ["Status polling stopped: decoder exploded"]
        assert session.stage == PipelineStage.TASK_SUBMITTED


class TestElapsedTime:
    """Tests for progress simulation and long-wait advisories."""

    def test_progress_is_capped_until_success(self, fake_gateway, fake_clock):
        session = _submitted_session()
        poller = _poller(session, fake_gateway, fake_clock)

        for second in range(1, 60):
            poller.observe_elapsed(second)

        assert session.progress == 90.0
        assert session.elapsed_seconds == 59

    def test_advisory_every_30_seconds_after_four_minutes(self, fake_gateway, fake_clock):
        session = _submitted_session()
        activity = ActivityLog()
        fake_gateway.statuses = [_snapshot({"state": "processing"}) for _ in range(60)]
        fake_gateway.statuses.append(_snapshot({"state": "success", "videoUrl": "https://cdn/v.mp4"}))

        asyncio.run(_poller(session, fake_gateway, fake_clock, activity).run())

        warnings = [e for e in activity.entries if e.level == "warning"]
        # Advisories at 240, 270 and 300 s; success arrives at 305 s
        assert len(warnings) == 3
        assert fake_clock.now == 305.0
        assert session.stage == PipelineStage.TASK_SUCCEEDED

    def test_no_advisory_before_threshold(self, fake_gateway, fake_clock):
        session = _submitted_session()
        activity = ActivityLog()
        poller = _poller(session, fake_gateway, fake_clock, activity)

        for second in range(1, 240):
            poller.observe_elapsed(second)

        assert not [e for e in activity.entries if e.level == "warning"]
        assert activity.drain_notifications() == []
