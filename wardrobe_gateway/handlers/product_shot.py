"""Product shots: ``product_shot``, ``wardrobe_item_render`` and ``wardrobe_item_generate``."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from .. import prompts
from ..concurrency import run_all
from ..gemini_client import RESPONSE_IMAGE
from ..images import ImageData
from .base import HandlerContext, require
from .tagging import tag_item

logger = logging.getLogger(__name__)

PRODUCT_SHOTS = "product_shots"


async def render_product_shot(
    ctx: HandlerContext, source: ImageData, item_id: Any, disambiguator: str
) -> Dict[str, Any]:
    """Generate, optimize, upload and attach a product shot as the item's first image."""
    with ctx.timer.stage("generate_image"):
        shot = await ctx.pipeline.generate(
            prompts.PRODUCT_SHOT, [source], ctx.models.standard_model, RESPONSE_IMAGE
        )
    with ctx.timer.stage("optimize"):
        optimized = await ctx.pipeline.optimize(shot)
    with ctx.timer.stage("upload"):
        ref = await ctx.pipeline.upload(ctx.owner_id, optimized, PRODUCT_SHOTS, disambiguator)
    await ctx.repo.attach_product_shot(item_id, ref.image_id)
    return {
        "image_id": ref.image_id,
        "storage_key": ref.storage_key,
        "base64_result": optimized.to_base64(),
        "mime_type": ref.mime_type,
    }


async def download_for_item(ctx: HandlerContext, item_id: Any, image_id: Any) -> ImageData:
    """Download ``image_id`` while checking that ``item_id`` belongs to the job's owner."""
    _, source = await run_all(
        ctx.repo.get_item(item_id), ctx.pipeline.download(ctx.owner_id, image_id)
    )
    return source


async def handle_product_shot(ctx: HandlerContext, input: Mapping[str, Any]) -> Dict[str, Any]:
    require(input, "product_shot", "image_id", "wardrobe_item_id")
    with ctx.timer.stage("download"):
        source = await download_for_item(ctx, input["wardrobe_item_id"], input["image_id"])
    return await render_product_shot(ctx, source, input["wardrobe_item_id"], ctx.job_id)


async def handle_wardrobe_item_render(
    ctx: HandlerContext, input: Mapping[str, Any]
) -> Dict[str, Any]:
    require(input, "wardrobe_item_render", "item_id", "source_image_id")
    item_id = input["item_id"]
    with ctx.timer.stage("download"):
        source = await download_for_item(ctx, item_id, input["source_image_id"])
    shot = await render_product_shot(ctx, source, item_id, f"product-{item_id}-{ctx.job_id}")
    return {"item_id": item_id, **shot}


async def handle_wardrobe_item_generate(
    ctx: HandlerContext, input: Mapping[str, Any]
) -> Dict[str, Any]:
    """
    Product shot and tagging from one download, run as two concurrent branches.

    The image branch publishes a partial result as soon as its upload is
    attached. The job still fails as a whole if the text branch fails.
    """
    require(input, "wardrobe_item_generate", "item_id", "source_image_id")
    item_id = input["item_id"]
    source_image_id = input["source_image_id"]

    with ctx.timer.stage("download"):
        source = await download_for_item(ctx, item_id, source_image_id)

    async def image_branch() -> Dict[str, Any]:
        shot = await render_product_shot(ctx, source, item_id, f"product-{item_id}-{ctx.job_id}")
        await ctx.publisher.publish(dict(shot))
        return shot

    async def text_branch() -> Dict[str, Any]:
        return await tag_item(ctx, item_id, image=source)

    logger.info(f"Job {ctx.job_id}: starting image and text branches for item {item_id}")
    shot, tags = await run_all(image_branch(), text_branch())

    return {
        "item_id": item_id,
        "image_id": shot["image_id"],
        "storage_key": shot["storage_key"],
        "base64_result": shot["base64_result"],
        "mime_type": shot["mime_type"],
        "suggested_title": tags.get("suggested_title"),
        "suggested_notes": tags.get("suggested_notes"),
        "attributes": tags.get("attributes"),
        "updates_applied": tags.get("updates_applied"),
        "source_image_id": source_image_id,
    }
