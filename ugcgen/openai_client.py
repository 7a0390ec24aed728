"""
OpenAI chat-completions integration for script and video-prompt generation.

- Script: Thai review script + social caption, requested as a JSON object
- Video prompt: English scene description that carries the Thai script as dialogue
"""

import os
import json
import logging
from typing import Optional

import httpx

from .errors import UpstreamError
from .kie import upstream_message
from .schemas import ProviderExchange, ScriptResult, StructuredScript, UnstructuredScript

logger = logging.getLogger(__name__)

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
OPENAI_API_BASE = os.environ.get("OPENAI_API_BASE", "https://api.openai.com/v1")

REQUEST_TIMEOUT = 120  # seconds


async def _chat_completion(
    model: str,
    messages: list,
    api_key: str,
    response_format: Optional[dict] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[str, ProviderExchange]:
    """Call the chat-completions endpoint; return the first choice's content and the exchange."""
    body: dict = {"model": model, "messages": messages}
    if response_format:
        body["response_format"] = response_format

    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=transport) as client:
            resp = await client.post(
                f"{OPENAI_API_BASE}/chat/completions",
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
            )
    except httpx.HTTPError as e:
        logger.error(f"OpenAI transport error: {e}")
        raise UpstreamError("OpenAI request failed")

    try:
        data = resp.json()
    except ValueError:
        data = None

    if resp.status_code != 200:
        message = upstream_message(data, f"OpenAI API error {resp.status_code}")
        logger.error(f"OpenAI {resp.status_code}: {message}")
        raise UpstreamError(message)

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise UpstreamError("OpenAI returned a malformed response")
    return content or "", ProviderExchange(request=body, response=data)


def _strip_code_fence(text: str) -> str:
    if "```" not in text:
        return text
    block = text.split("```")[1]
    if block.startswith("json"):
        block = block[4:]
    return block.strip()


def parse_script_response(text: str) -> ScriptResult:
    """
    Decide explicitly between a structured {script, caption} answer and
    free text. Never raises: anything that is not a JSON object with a
    string `script` field is kept whole as unstructured text.
    """
    text = (text or "").strip()
    for candidate in (text, _strip_code_fence(text)):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict) and isinstance(parsed.get("script"), str):
            caption = parsed.get("caption")
            return StructuredScript(
                script=parsed["script"].strip(),
                caption=caption.strip() if isinstance(caption, str) else "",
            )
        break
    return UnstructuredScript(raw_text=text)


# =========================================================================
# 1. Script + Caption
# =========================================================================

SCRIPT_USER_PROMPT = """สินค้า: {product_name}
รายละเอียด: {product_details}
สไตล์การรีวิว: {review_style}
วัตถุประสงค์: {review_objective}

ขอ 2 ส่วน:
1. Script (บทพูดภาษาไทย) ความยาว 45-60 วินาที
2. Caption (ภาษาไทย) สำหรับโพสต์ลง Social Media พร้อม Hashtags

ตอบกลับเป็น JSON เท่านั้น ในรูปแบบ: {{"script": "...", "caption": "..."}}"""


async def generate_script(
    product_name: str,
    product_details: str,
    review_style: str,
    review_objective: str,
    rule_text: str,
    model: str,
    api_key: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[ScriptResult, ProviderExchange]:
    """
    Generate a Thai review script and caption.
    The safety rule text is the system instruction. Returns the parsed
    result together with the raw provider exchange.
    """
    messages = [
        {"role": "system", "content": rule_text},
        {"role": "user", "content": SCRIPT_USER_PROMPT.format(
            product_name=product_name,
            product_details=product_details,
            review_style=review_style,
            review_objective=review_objective,
        )},
    ]

    logger.info(f"OpenAI script request: model={model}, product={product_name}")
    content, exchange = await _chat_completion(
        model, messages, api_key,
        response_format={"type": "json_object"},
        transport=transport,
    )
    result = parse_script_response(content)
    if result.kind == "unstructured":
        logger.warning("Script response was not JSON; using the whole text as the script")
    return result, exchange


# =========================================================================
# 2. Video Prompt
# =========================================================================

VIDEO_PROMPT_SYSTEM = """You are an expert at creating video prompts for Sora AI video generation.
Your task is to create a detailed video prompt that describes the visual scene, motion, AND includes the Thai dialogue.
The video will be a UGC-style product review.
IMPORTANT: The final prompt MUST include the Thai script as the spoken dialogue.

GUIDELINES:
{rule_text}
"""

VIDEO_PROMPT_USER = """Product: {product_name}
Details: {product_details}
Style: {review_style}
Script (Thai): "{script}"

Create a definitive video generation prompt that includes the visual description and the spoken script."""


def script_is_embedded(script: str, video_prompt: str) -> bool:
    """True if the script text appears verbatim (whitespace-insensitive) in the prompt."""
    def squash(s: str) -> str:
        return " ".join(s.split())

    return bool(script.strip()) and squash(script) in squash(video_prompt)


async def generate_video_prompt(
    product_name: str,
    product_details: str,
    review_style: str,
    script: str,
    rule_text: str,
    model: str,
    api_key: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[str, ProviderExchange]:
    """
    Turn a script into a text-to-video prompt. The model is told to embed
    the script as dialogue; compliance is only logged, not enforced.
    """
    messages = [
        {"role": "system", "content": VIDEO_PROMPT_SYSTEM.format(rule_text=rule_text)},
        {"role": "user", "content": VIDEO_PROMPT_USER.format(
            product_name=product_name,
            product_details=product_details,
            review_style=review_style,
            script=script,
        )},
    ]

    logger.info(f"OpenAI video prompt request: model={model}, script_chars={len(script)}")
    video_prompt, exchange = await _chat_completion(model, messages, api_key, transport=transport)
    video_prompt = video_prompt.strip()
    if not script_is_embedded(script, video_prompt):
        logger.warning("Video prompt does not contain the script verbatim")
    return video_prompt, exchange
