"""Tests for task snapshots and script response parsing."""

import pytest

from ugcgen.defaults import STATE_LABELS, state_label
from ugcgen.openai_client import parse_script_response
from ugcgen.schemas import EffectiveSettings, SettingsOverrides, TaskSnapshot, extract_result_url


class TestExtractResultUrl:
    @pytest.mark.parametrize("record, expected", [
        (
            {"resultJson": '{"resultUrls": ["https://a/1.mp4"], "video_url": "https://a/2.mp4"}',
             "videoUrl": "https://a/4.mp4"},
            "https://a/1.mp4",
        ),
        ({"resultJson": {"video_url": "https://a/2.mp4"}, "output": {"video_url": "https://a/3.mp4"}},
         "https://a/2.mp4"),
        ({"resultJson": '{"resultUrls": []}', "output": {"video_url": "https://a/3.mp4"}}, "https://a/3.mp4"),
        ({"videoUrl": "https://a/4.mp4"}, "https://a/4.mp4"),
        ({"resultJson": "not json {", "videoUrl": "https://a/4.mp4"}, "https://a/4.mp4"),
        ({}, None),
    ])
    def test_fallback_order(self, record, expected):
        assert extract_result_url(record) == expected


class TestTaskSnapshot:
    @pytest.mark.parametrize("state", ["success", "SUCCESS", "completed"])
    def test_success_states(self, state):
        snapshot = TaskSnapshot.from_provider("t1", {"state": state, "videoUrl": "https://a/v.mp4"})
        assert snapshot.is_success and snapshot.is_terminal
        assert snapshot.result_url == "https://a/v.mp4"

    @pytest.mark.parametrize("record, reason", [
        ({"state": "failed", "failMsg": "nsfw"}, "nsfw"),
        ({"state": "error", "message": "timeout"}, "timeout"),
        ({"state": "Failed"}, None),
    ])
    def test_failure_states(self, record, reason):
        snapshot = TaskSnapshot.from_provider("t1", record)
        assert snapshot.is_failure
        assert snapshot.failure_reason == reason
        assert snapshot.result_url is None

    def test_missing_state_is_not_terminal(self):
        snapshot = TaskSnapshot.from_provider("t1", {"progress": 40})
        assert snapshot.state == "unknown"
        assert not snapshot.is_terminal
        assert snapshot.raw == {"progress": 40}


class TestParseScriptResponse:
    def test_json_object(self):
        result = parse_script_response('{"script": " สวัสดีค่ะ ", "caption": "#skincare"}')
        assert result.kind == "structured"
        assert result.script == "สวัสดีค่ะ"
        assert result.caption == "#skincare"

    def test_code_fenced_json(self):
        text = 'Here you go:\n```json\n{"script": "hello", "caption": "cap"}\n```'
        result = parse_script_response(text)
        assert result.kind == "structured"
        assert result.script == "hello"

    def test_missing_caption_is_empty(self):
        result = parse_script_response('{"script": "hello"}')
        assert result.kind == "structured"
        assert result.caption == ""

    @pytest.mark.parametrize("text", [
        "สวัสดีค่ะ วันนี้มาแนะนำเซรั่ม",
        '{"caption": "no script"}',
        '["script", "caption"]',
    ])
    def test_free_text_is_kept_whole(self, text):
        result = parse_script_response(text)
        assert result.kind == "unstructured"
        assert result.script == text
        assert result.caption == ""


class TestSettingsOverrides:
    def test_blank_overrides_keep_settings(self):
        settings = EffectiveSettings(
            openai_model="gpt-4o-mini", sora2_model="sora", script_rule="r1", video_prompt_rule="r2"
        )
        applied = SettingsOverrides(openaiModel="  ", videoPromptRule="custom").apply(settings)
        assert applied.openai_model == "gpt-4o-mini"
        assert applied.video_prompt_rule == "custom"


class TestStateLabel:
    @pytest.mark.parametrize("state", ["success", "SUCCESS", "Success"])
    def test_label_ignores_case(self, state):
        assert state_label(state) == STATE_LABELS["success"]

    def test_unknown_state_passes_through(self):
        assert state_label("Queued-Elsewhere") == "Queued-Elsewhere"
