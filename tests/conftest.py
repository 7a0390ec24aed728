"""Shared fixtures: a scripted provider gateway, a fake clock, a temp account store."""

import asyncio

import pytest

from ugcgen.accounts import AccountService
from ugcgen.pipeline.models import ProductForm
from ugcgen.schemas import StructuredScript, TaskSnapshot
from ugcgen.store import JsonFileStore


class FakeClock:
    """Monotonic clock that only moves when the poller sleeps."""

    def __init__(self):
        self.now = 0.0

    def time(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.now += seconds
        await asyncio.sleep(0)


class FakeGateway:
    """
    Stand-in for ProviderGateway. Records calls; each status poll pops the
    next item from `statuses` (a TaskSnapshot or an exception to raise).
    """

    def __init__(self):
        self.calls = []
        self.upload_error = None
        self.script_error = None
        self.prompt_error = None
        self.submit_error = None
        self.script_result = StructuredScript(
            script="สวัสดีค่ะ วันนี้มาแนะนำเซรั่มวิตามินซี",
            caption="เซรั่มวิตามินซี #skincare",
        )
        self.video_prompt = "A Thai presenter holds the serum and says: สวัสดีค่ะ"
        self.task_id = "task-123"
        self.statuses = []
        # When set, generate_script waits on it before answering
        self.script_gate = None

    async def upload_image(self, content, filename, content_type):
        self.calls.append("upload_image")
        if self.upload_error:
            raise self.upload_error
        return {"url": f"https://files.example.com/{filename}", "filename": filename}

    async def generate_script(self, product_name, product_details, review_style, review_objective):
        self.calls.append("generate_script")
        if self.script_gate is not None:
            await self.script_gate.wait()
        if self.script_error:
            raise self.script_error
        return self.script_result

    async def generate_video_prompt(self, product_name, product_details, review_style, script):
        self.calls.append("generate_video_prompt")
        if self.prompt_error:
            raise self.prompt_error
        return self.video_prompt

    async def submit_video_task(self, image_url, video_prompt):
        self.calls.append("submit_video_task")
        if self.submit_error:
            raise self.submit_error
        return self.task_id

    async def fetch_task_status(self, task_id):
        self.calls.append("fetch_task_status")
        item = self.statuses.pop(0) if self.statuses else TaskSnapshot(task_id=task_id, state="processing")
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def account_service(tmp_path):
    return AccountService(JsonFileStore(str(tmp_path / "users.json")))


@pytest.fixture
def serum_form():
    return ProductForm(
        product_name="Vitamin C Serum",
        product_details="brightening serum",
        review_style="ป้ายยา",
        review_objective="increase awareness",
    )


JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 2048


@pytest.fixture
def jpeg_bytes():
    return JPEG_BYTES
