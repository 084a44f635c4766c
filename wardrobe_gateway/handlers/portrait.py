"""Headshot and body shot generation."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from .. import prompts
from ..errors import InvalidInput
from ..gemini_client import RESPONSE_IMAGE
from ..model_resolution import resolve_model
from .base import HandlerContext, require

logger = logging.getLogger(__name__)


def headshot_prompt(input: Mapping[str, Any]) -> str:
    style_notes = input.get("style_notes")
    if isinstance(style_notes, str) and style_notes.strip():
        return prompts.headshot_preset(style_notes)
    return prompts.headshot(
        input.get("hair_style") or "Keep original hair",
        input.get("makeup_style") or "Natural look",
    )


async def handle_headshot_generate(
    ctx: HandlerContext, input: Mapping[str, Any]
) -> Dict[str, Any]:
    require(input, "headshot_generate", "selfie_image_id")
    with ctx.timer.stage("download"):
        selfie = await ctx.pipeline.download(ctx.owner_id, input["selfie_image_id"])

    with ctx.timer.stage("generate_image"):
        headshot = await ctx.pipeline.generate(
            headshot_prompt(input), [selfie], ctx.models.standard_model, RESPONSE_IMAGE
        )
    with ctx.timer.stage("upload"):
        ref = await ctx.pipeline.finalize(ctx.owner_id, headshot, "headshots", ctx.job_id)

    await ctx.repo.update_user_settings({"headshot_image_id": ref.image_id})
    return {"image_id": ref.image_id, "storage_key": ref.storage_key}


async def handle_body_shot_generate(
    ctx: HandlerContext, input: Mapping[str, Any]
) -> Dict[str, Any]:
    """
    Blend a head reference onto a body reference.

    Either ``selfie_image_id`` + ``mirror_selfie_image_id`` or
    ``body_photo_image_id`` with an optional ``headshot_image_id``; without a
    head reference the stored headshot is used.
    """
    selfie_pair = bool(input.get("selfie_image_id") and input.get("mirror_selfie_image_id"))
    body_id = input.get("mirror_selfie_image_id") if selfie_pair else input.get("body_photo_image_id")
    if not body_id:
        raise InvalidInput("body_shot_generate requires body_photo_image_id")

    settings = await ctx.repo.user_settings()
    if selfie_pair:
        head_id = input["selfie_image_id"]
    else:
        head_id = input.get("headshot_image_id") or settings.get("headshot_image_id")
    if not head_id:
        raise InvalidInput("Missing head reference image")

    with ctx.timer.stage("download"):
        head, body = await ctx.pipeline.download_many(ctx.owner_id, [head_id, body_id])

    model = resolve_model(settings, "ai_model_body_shot_generate", ctx.models.body_shot_model)
    prompt = prompts.BODY_FROM_SELFIES if selfie_pair else prompts.BODY_COMPOSITE
    logger.info(f"Job {ctx.job_id}: body shot with {model} (selfie_pair={selfie_pair})")
    with ctx.timer.stage("generate_image"):
        body_shot = await ctx.pipeline.generate(prompt, [head, body], model, RESPONSE_IMAGE)
    with ctx.timer.stage("upload"):
        ref = await ctx.pipeline.finalize(ctx.owner_id, body_shot, "body_shots", ctx.job_id)

    await ctx.repo.update_user_settings({"body_shot_image_id": ref.image_id})
    return {"image_id": ref.image_id, "storage_key": ref.storage_key, "model": model}
