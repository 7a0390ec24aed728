"""Tests for the OpenAI chat-completions client."""

import asyncio
import json
import logging

import httpx
import pytest

from ugcgen import openai_client
from ugcgen.errors import UpstreamError


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestGenerateScript:
    def test_request_shape_and_result(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=_completion('{"script": "สวัสดี", "caption": "#ad"}'))

        result, exchange = asyncio.run(openai_client.generate_script(
            "Vitamin C Serum", "brightening", "ป้ายยา", "awareness",
            rule_text="RULES", model="gpt-4o-mini", api_key="sk-test",
            transport=httpx.MockTransport(handler),
        ))

        assert result.kind == "structured"
        assert result.script == "สวัสดี"
        body = json.loads(seen[0].content)
        assert seen[0].url.path.endswith("/chat/completions")
        assert seen[0].headers["Authorization"] == "Bearer sk-test"
        assert body["model"] == "gpt-4o-mini"
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0] == {"role": "system", "content": "RULES"}
        assert "Vitamin C Serum" in body["messages"][1]["content"]
        assert exchange.request == body
        assert exchange.response["choices"][0]["message"]["content"].startswith("{")
        assert "sk-test" not in json.dumps(exchange.model_dump())

    def test_free_text_answer(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json=_completion("แค่ข้อความ")))
        result, _ = asyncio.run(openai_client.generate_script(
            "p", "d", "s", "o", rule_text="r", model="m", api_key="k", transport=transport
        ))
        assert result.kind == "unstructured"
        assert result.script == "แค่ข้อความ"

    @pytest.mark.parametrize("response, message", [
        (httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}}),
         "Incorrect API key provided"),
        (httpx.Response(429, text="slow down"), "OpenAI API error 429"),
        (httpx.Response(200, json={"choices": []}), "OpenAI returned a malformed response"),
    ])
    def test_errors(self, response, message):
        transport = httpx.MockTransport(lambda r: response)
        with pytest.raises(UpstreamError) as exc:
            asyncio.run(openai_client.generate_script(
                "p", "d", "s", "o", rule_text="r", model="m", api_key="k", transport=transport
            ))
        assert exc.value.message == message


class TestGenerateVideoPrompt:
    def test_rule_goes_into_system_prompt(self):
        seen = []
        script = "สวัสดีค่ะ"

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=_completion(f"  A presenter says: {script}  "))

        prompt, exchange = asyncio.run(openai_client.generate_video_prompt(
            "Serum", "details", "style", script,
            rule_text="NO LOGOS", model="gpt-4o", api_key="k",
            transport=httpx.MockTransport(handler),
        ))

        assert prompt == f"A presenter says: {script}"
        assert "NO LOGOS" in seen[0]["messages"][0]["content"]
        assert script in seen[0]["messages"][1]["content"]
        assert "response_format" not in seen[0]
        assert exchange.request == seen[0]

    def test_missing_script_is_only_a_warning(self, caplog):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json=_completion("No dialogue here")))

        with caplog.at_level(logging.WARNING, logger="ugcgen.openai_client"):
            prompt, _ = asyncio.run(openai_client.generate_video_prompt(
                "Serum", "d", "s", "สวัสดีค่ะ", rule_text="r", model="m", api_key="k", transport=transport
            ))

        assert prompt == "No dialogue here"
        assert "does not contain the script" in caplog.text


class TestScriptIsEmbedded:
    @pytest.mark.parametrize("script, prompt, expected", [
        ("hello  world", "He says: hello world.", True),
        ("hello world", "He says hi", False),
        ("   ", "anything", False),
    ])
    def test_embedded(self, script, prompt, expected):
        assert openai_client.script_is_embedded(script, prompt) is expected
