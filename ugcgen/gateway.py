"""
ProviderGateway: the five external calls, bound to one request's credentials
and effective settings.

A gateway is built per request (or per pipeline session) so nothing about
credentials or settings is ever kept in shared process state.
"""

import logging
from typing import Optional

import httpx

from . import kie
from . import metrics
from . import openai_client
from .errors import MissingCredentialError, UGCError
from .schemas import Credentials, EffectiveSettings, ProviderExchange, ScriptResult, TaskSnapshot

logger = logging.getLogger(__name__)


class ProviderGateway:
    def __init__(
        self,
        credentials: Credentials,
        settings: EffectiveSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.settings = settings
        self.transport = transport
        # Request/response of the most recent script, prompt or submit call
        self.last_exchange: Optional[ProviderExchange] = None

    def _openai_key(self) -> str:
        if not self.credentials.openai_key:
            raise MissingCredentialError("OpenAI")
        return self.credentials.openai_key

    def _kie_key(self) -> str:
        if not self.credentials.kie_key:
            raise MissingCredentialError("Kie.ai")
        return self.credentials.kie_key

    async def _call(self, name: str, coro):
        with metrics.timed(name):
            try:
                return await coro
            except UGCError as e:
                metrics.record_error(name, type(e).__name__, e.message)
                raise

    async def upload_image(self, content: bytes, filename: str, content_type: str) -> dict:
        kie.validate_image(content_type, len(content))
        api_key = self._kie_key()
        return await self._call(
            "upload_image",
            kie.upload_image(content, filename, content_type, api_key, transport=self.transport),
        )

    async def generate_script(
        self,
        product_name: str,
        product_details: str,
        review_style: str,
        review_objective: str,
    ) -> ScriptResult:
        api_key = self._openai_key()
        result, self.last_exchange = await self._call(
            "generate_script",
            openai_client.generate_script(
                product_name,
                product_details,
                review_style,
                review_objective,
                rule_text=self.settings.script_rule,
                model=self.settings.openai_model,
                api_key=api_key,
                transport=self.transport,
            ),
        )
        return result

    async def generate_video_prompt(
        self,
        product_name: str,
        product_details: str,
        review_style: str,
        script: str,
    ) -> str:
        api_key = self._openai_key()
        video_prompt, self.last_exchange = await self._call(
            "generate_video_prompt",
            openai_client.generate_video_prompt(
                product_name,
                product_details,
                review_style,
                script,
                rule_text=self.settings.video_prompt_rule,
                model=self.settings.openai_model,
                api_key=api_key,
                transport=self.transport,
            ),
        )
        return video_prompt

    async def submit_video_task(self, image_url: str, video_prompt: str) -> str:
        api_key = self._kie_key()
        task_id, self.last_exchange = await self._call(
            "submit_video_task",
            kie.submit_video_task(
                image_url, video_prompt, self.settings.sora2_model, api_key,
                transport=self.transport,
            ),
        )
        return task_id

    async def fetch_task_status(self, task_id: str) -> TaskSnapshot:
        api_key = self._kie_key()
        record = await self._call(
            "fetch_task_status",
            kie.fetch_task_status(task_id, api_key, transport=self.transport),
        )
        return TaskSnapshot.from_provider(task_id, record)
