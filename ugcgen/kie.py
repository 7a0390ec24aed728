import os
import logging
from typing import Optional

import httpx

from .defaults import (
    ALLOWED_IMAGE_TYPES,
    MAX_IMAGE_BYTES,
    VIDEO_ASPECT_RATIO,
    VIDEO_DURATION_SECONDS,
)
from .errors import UpstreamError, ValidationError
from .schemas import ProviderExchange

logger = logging.getLogger(__name__)

KIE_API_KEY = os.environ.get("KIE_API_KEY", "")
KIE_API_BASE = os.environ.get("KIE_API_BASE", "https://api.kie.ai")

UPLOAD_PATH = "/files"
GENERATIONS_PATH = "/video/sora/generations"

REQUEST_TIMEOUT = 60  # seconds


def _client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=KIE_API_BASE, timeout=REQUEST_TIMEOUT, transport=transport)


def _headers(api_key: str) -> dict:
    return {"Authorization": f"Bearer {api_key}"}


def upstream_message(body, fallback: str) -> str:
    """Best message a provider error body offers: message, msg, error.message, error."""
    if isinstance(body, dict):
        error = body.get("error")
        for candidate in (
            body.get("message"),
            body.get("msg"),
            error.get("message") if isinstance(error, dict) else None,
            error if isinstance(error, str) else None,
        ):
            if isinstance(candidate, str) and candidate:
                return candidate
    return fallback


def _json_or_raise(resp: httpx.Response, fallback: str) -> dict:
    """
    Decode a Kie.ai response, raising UpstreamError for non-2xx statuses,
    non-JSON bodies and `{code: !200}` envelopes.
    """
    try:
        body = resp.json()
    except ValueError:
        body = None

    if resp.status_code >= 400:
        message = upstream_message(body, fallback)
        logger.error(f"Kie.ai {resp.status_code} on {resp.request.url}: {message}")
        raise UpstreamError(message)
    if not isinstance(body, dict):
        raise UpstreamError(fallback)
    code = body.get("code")
    if code is not None and code != 200:
        message = upstream_message(body, fallback)
        logger.error(f"Kie.ai code={code} on {resp.request.url}: {message}")
        raise UpstreamError(message)
    return body


def _unwrap(body: dict) -> dict:
    data = body.get("data")
    return data if isinstance(data, dict) else body


def validate_image(content_type: str, size: int):
    """Reject unsupported types and oversize payloads before anything is sent."""
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            f"Unsupported image type: {content_type or 'unknown'} (JPEG, PNG or WEBP only)",
            ["image"],
        )
    if size > MAX_IMAGE_BYTES:
        raise ValidationError(
            f"Image too large: {size / 1024 / 1024:.2f} MB (max 10 MB)",
            ["image"],
        )


async def upload_image(
    content: bytes,
    filename: str,
    content_type: str,
    api_key: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """
    Uploads a product image to Kie.ai file hosting.
    Returns {url, filename}.
    """
    validate_image(content_type, len(content))

    files = {"file": (filename, content, content_type)}
    try:
        async with _client(transport) as client:
            resp = await client.post(UPLOAD_PATH, headers=_headers(api_key), files=files)
    except httpx.HTTPError as e:
        logger.error(f"Kie.ai upload transport error: {e}")
        raise UpstreamError("Upload failed")

    record = _unwrap(_json_or_raise(resp, "Upload failed"))
    url = record.get("url") or record.get("downloadUrl") or record.get("fileUrl")
    if not url:
        raise UpstreamError("Upload failed: no URL in response")

    logger.info(f"Kie.ai upload ok: {filename} ({len(content) / 1024:.1f} KB) -> {url}")
    return {"url": url, "filename": record.get("filename") or record.get("fileName") or filename}


async def submit_video_task(
    image_url: str,
    prompt: str,
    model: str,
    api_key: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[str, ProviderExchange]:
    """
    Starts an image-to-video generation task on Kie.ai.
    Aspect ratio and duration are fixed. Returns the provider task id
    and the request/response exchange.
    """
    payload = {
        "model": model,
        "prompt": prompt,
        "image_urls": [image_url],
        "aspect_ratio": VIDEO_ASPECT_RATIO,
        "duration_seconds": VIDEO_DURATION_SECONDS,
    }

    logger.info(f"Kie.ai video request: model={model}, image={image_url}")
    try:
        async with _client(transport) as client:
            resp = await client.post(GENERATIONS_PATH, headers=_headers(api_key), json=payload)
    except httpx.HTTPError as e:
        logger.error(f"Kie.ai submit transport error: {e}")
        raise UpstreamError("Video creation failed")

    body = _json_or_raise(resp, "Video creation failed")
    data = _unwrap(body)
    task_id = data.get("taskId") or data.get("task_id") or data.get("id")
    if not task_id:
        task_id = body.get("taskId") or body.get("task_id") or body.get("id")
    if not task_id:
        raise UpstreamError(upstream_message(body, "Video creation failed: no task id"))

    logger.info(f"Kie.ai task started: {task_id}")
    return str(task_id), ProviderExchange(request=payload, response=body)


async def fetch_task_status(
    task_id: str,
    api_key: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """Reads the provider's current record for a task. No side effects."""
    try:
        async with _client(transport) as client:
            resp = await client.get(f"{GENERATIONS_PATH}/{task_id}", headers=_headers(api_key))
    except httpx.HTTPError as e:
        logger.warning(f"Kie.ai status transport error for {task_id}: {e}")
        raise UpstreamError("Status check failed")

    return _unwrap(_json_or_raise(resp, "Status check failed"))
