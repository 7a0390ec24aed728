"""
FastAPI routes for the generation steps.

  POST /api/upload-image             — Upload product image to Kie.ai
  POST /api/generate-script          — Thai script + caption via OpenAI
  POST /api/generate-video-prompt    — Video prompt from the script
  POST /api/create-video             — Submit image + prompt to Kie.ai
  GET  /api/video-status/{task_id}   — Provider task snapshot

Every endpoint accepts either a bearer session token or the x-config-*
key headers (see auth_middleware). Script, prompt and create-video
responses also carry apiRequest/apiResponse: the body sent to the
provider and its decoded reply, without headers.
"""

import logging
from typing import Optional

from fastapi import APIRouter, File, Request, UploadFile

from . import metrics
from .auth_middleware import request_gateway
from .defaults import state_label
from .errors import ValidationError
from .pipeline.models import ProductForm
from .schemas import (
    CreateVideoRequest,
    GenerateScriptRequest,
    GenerateVideoPromptRequest,
)

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api", tags=["generation"])


def _exchange(gateway) -> dict:
    """Provider request/response of the call just made, for the step inspector."""
    exchange = gateway.last_exchange
    if exchange is None:
        return {"apiRequest": None, "apiResponse": None}
    return {"apiRequest": exchange.request, "apiResponse": exchange.response}


@api_router.post("/upload-image")
async def upload_image(request: Request, image: Optional[UploadFile] = File(None)):
    metrics.inc_counter("requests.upload_image")
    if image is None:
        raise ValidationError("No image file uploaded", ["image"])

    content = await image.read()
    gateway = request_gateway(request)
    uploaded = await gateway.upload_image(
        content, image.filename or "image", image.content_type or ""
    )
    return {"success": True, "data": uploaded}


@api_router.post("/generate-script")
async def generate_script(request: Request, body: GenerateScriptRequest):
    metrics.inc_counter("requests.generate_script")
    form = ProductForm(
        product_name=body.product_name,
        product_details=body.product_details,
        review_style=body.review_style,
        review_objective=body.review_objective,
    ).stripped()
    missing = form.missing_fields()
    if missing:
        raise ValidationError.missing(missing)

    gateway = request_gateway(request, body)
    result = await gateway.generate_script(
        form.product_name,
        form.product_details,
        form.review_style,
        form.review_objective,
    )
    return {
        "success": True,
        "data": {
            "script": result.script,
            "caption": result.caption,
            "format": result.kind,
            **_exchange(gateway),
        },
    }


@api_router.post("/generate-video-prompt")
async def generate_video_prompt(request: Request, body: GenerateVideoPromptRequest):
    metrics.inc_counter("requests.generate_video_prompt")
    script = body.script.strip()
    if not script:
        raise ValidationError.missing(["script"])

    gateway = request_gateway(request, body)
    video_prompt = await gateway.generate_video_prompt(
        body.product_name.strip(),
        body.product_details.strip(),
        body.review_style.strip(),
        script,
    )
    return {"success": True, "data": {"videoPrompt": video_prompt, **_exchange(gateway)}}


@api_router.post("/create-video")
async def create_video(request: Request, body: CreateVideoRequest):
    metrics.inc_counter("requests.create_video")
    video_prompt = body.video_prompt.strip()
    if not video_prompt:
        raise ValidationError("Video prompt is required", ["videoPrompt"])
    if not body.image_url.strip():
        raise ValidationError("Image URL is required", ["imageUrl"])

    gateway = request_gateway(request, body)
    task_id = await gateway.submit_video_task(body.image_url.strip(), video_prompt)
    return {"success": True, "data": {"taskId": task_id, **_exchange(gateway)}}


@api_router.get("/video-status/{task_id}")
async def video_status(request: Request, task_id: str):
    metrics.inc_counter("requests.video_status")
    snapshot = await request_gateway(request).fetch_task_status(task_id)
    return {
        "success": True,
        "data": {
            "taskId": snapshot.task_id,
            "state": snapshot.state,
            "stateLabel": state_label(snapshot.state),
            "videoUrl": snapshot.result_url,
            "failMsg": snapshot.failure_reason,
            "record": snapshot.raw,
        },
    }
