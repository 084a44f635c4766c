"""Outfit jobs: ``outfit_mannequin``, ``outfit_render`` and ``reference_match``."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence

from .. import prompts
from ..concurrency import run_all
from ..errors import InvalidInput
from ..gemini_client import RESPONSE_IMAGE
from ..images import ImageData
from ..model_resolution import (
    STRATEGY_REUSE_MANNEQUIN,
    STRATEGY_STAGED,
    plan_outfit_render,
)
from .base import HandlerContext, require, require_list, selected_item_ids

logger = logging.getLogger(__name__)

STRATEGY_STACKED = "stacked"


def _outfit_purpose(outfit_id: Any, *parts: str) -> str:
    return "/".join(["outfits", str(outfit_id), *parts])


async def _item_images(ctx: HandlerContext, selected: Sequence[Any]) -> List[ImageData]:
    image_ids = await ctx.repo.best_item_images(selected_item_ids(selected))
    if not image_ids:
        raise InvalidInput("No valid images found for outfit items")
    with ctx.timer.stage("download"):
        return await ctx.pipeline.download_many(ctx.owner_id, image_ids)


async def build_mannequin(
    ctx: HandlerContext, items: Sequence[ImageData], model: str, details: str
) -> ImageData:
    """Ghost mannequin from ``items``; gridded first when ``model`` cannot take them all."""
    inputs = list(items)
    from_grid = len(inputs) > ctx.models.item_limit(model)
    if from_grid:
        with ctx.timer.stage("composite"):
            inputs = [await ctx.pipeline.composite_grid(inputs)]
    prompt = prompts.outfit_mannequin(len(items), details, from_grid=from_grid)
    with ctx.timer.stage("generate_mannequin"):
        return await ctx.pipeline.generate(prompt, inputs, model, RESPONSE_IMAGE)


async def handle_outfit_mannequin(
    ctx: HandlerContext, input: Mapping[str, Any]
) -> Dict[str, Any]:
    require(input, "outfit_mannequin", "outfit_id")
    selected = require_list(input, "outfit_mannequin", "selected")
    outfit_id = input["outfit_id"]

    _, settings, items = await run_all(
        ctx.repo.get_outfit(outfit_id), ctx.repo.user_settings(), _item_images(ctx, selected)
    )
    model = ctx.models.preferred_model(settings)
    mannequin = await build_mannequin(ctx, items, model, input.get("prompt") or "")

    with ctx.timer.stage("upload"):
        ref = await ctx.pipeline.finalize(
            ctx.owner_id, mannequin, _outfit_purpose(outfit_id, "mannequin"), ctx.job_id
        )
    return {
        "mannequin_image_id": ref.image_id,
        "storage_key": ref.storage_key,
        "items_count": len(items),
        "model": model,
        "settings": dict(input.get("settings") or {}),
    }


async def handle_outfit_render(ctx: HandlerContext, input: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Dress the user's body shot in an outfit.

    Paths, in order of precedence: a supplied ``mannequin_image_id`` is
    composited directly; a client-built ``stacked_image_id`` grid goes in one
    call; otherwise ``selected`` items follow the staged or direct plan.
    """
    require(input, "outfit_render", "outfit_id")
    outfit_id = input["outfit_id"]
    stacked_path = input.get("stacked_image_id")
    selected = input.get("selected") or []
    mannequin_id = input.get("mannequin_image_id")
    if not stacked_path and not selected and not mannequin_id:
        raise InvalidInput("Missing stacked_image_id or selected items")

    _, settings = await run_all(ctx.repo.get_outfit(outfit_id), ctx.repo.user_settings())
    body_id = settings.get("body_shot_image_id")
    head_id = input.get("headshot_image_id") or settings.get("headshot_image_id")
    if not body_id or not head_id:
        raise InvalidInput("Missing body shot or headshot")

    preferred = ctx.models.preferred_model(settings)
    details = input.get("prompt") or ""
    render_settings = dict(input.get("settings") or {})
    mannequin_ref = None

    if mannequin_id:
        plan = plan_outfit_render(len(selected), preferred, mannequin_id, ctx.models)
        with ctx.timer.stage("download"):
            body, head, mannequin = await ctx.pipeline.download_many(
                ctx.owner_id, [body_id, head_id, mannequin_id]
            )
        item_count = render_settings.get("items_count") or len(selected)
        strategy = STRATEGY_REUSE_MANNEQUIN
        with ctx.timer.stage("generate_image"):
            final = await ctx.pipeline.generate(
                prompts.OUTFIT_APPLY_MANNEQUIN, [body, mannequin, head], plan.model, RESPONSE_IMAGE
            )
    elif stacked_path:
        with ctx.timer.stage("download"):
            body, head, grid = await run_all(
                ctx.pipeline.download(ctx.owner_id, body_id),
                ctx.pipeline.download(ctx.owner_id, head_id),
                ctx.pipeline.download_storage_path(ctx.owner_id, stacked_path),
            )
        item_count = render_settings.get("items_count") or len(selected)
        strategy = STRATEGY_STACKED
        with ctx.timer.stage("generate_image"):
            final = await ctx.pipeline.generate(
                prompts.outfit_final_stacked(details, item_count),
                [body, head, grid],
                preferred,
                RESPONSE_IMAGE,
            )
    else:
        (body, head), items = await run_all(
            ctx.pipeline.download_many(ctx.owner_id, [body_id, head_id]),
            _item_images(ctx, selected),
        )
        item_count = len(items)
        plan = plan_outfit_render(item_count, preferred, None, ctx.models)
        strategy = plan.strategy
        logger.info(
            f"Job {ctx.job_id}: {item_count} item(s), limit {plan.limit} for {preferred}, "
            f"strategy={plan.strategy}"
        )
        if plan.strategy == STRATEGY_STAGED:
            mannequin = await build_mannequin(ctx, items, plan.model, details)
            mannequin_ref = await ctx.pipeline.upload(
                ctx.owner_id, mannequin, _outfit_purpose(outfit_id, "mannequin"), ctx.job_id
            )
            with ctx.timer.stage("generate_image"):
                final = await ctx.pipeline.generate(
                    prompts.OUTFIT_APPLY_MANNEQUIN,
                    [body, mannequin, head],
                    plan.composite_model,
                    RESPONSE_IMAGE,
                )
        else:
            with ctx.timer.stage("generate_image"):
                final = await ctx.pipeline.generate(
                    prompts.outfit_final(details, item_count),
                    [body, head, *items],
                    plan.model,
                    RESPONSE_IMAGE,
                )

    with ctx.timer.stage("upload"):
        ref = await ctx.pipeline.finalize(
            ctx.owner_id, final, _outfit_purpose(outfit_id), ctx.job_id
        )
    render_settings.update(
        {
            "items_count": item_count,
            "strategy": strategy,
            "used_stacked_image": strategy == STRATEGY_STACKED,
        }
    )
    await ctx.repo.record_outfit_render(outfit_id, ref.image_id, details, render_settings)

    result = {
        "renders": [{"image_id": ref.image_id, "storage_key": ref.storage_key}],
        "items_count": item_count,
        "strategy": strategy,
        "used_stacked_image": strategy == STRATEGY_STACKED,
    }
    if mannequin_ref is not None:
        result["mannequin_image_id"] = mannequin_ref.image_id
    return result


async def handle_reference_match(
    ctx: HandlerContext, input: Mapping[str, Any]
) -> Dict[str, Any]:
    """Try on the outfit from a reference photo using the user's body shot."""
    require(input, "reference_match", "reference_image_id")
    settings = await ctx.repo.user_settings()
    body_id = settings.get("body_shot_image_id")
    if not body_id:
        raise InvalidInput("Missing body shot")

    with ctx.timer.stage("download"):
        body, reference = await ctx.pipeline.download_many(
            ctx.owner_id, [body_id, input["reference_image_id"]]
        )

    model = ctx.models.preferred_model(settings)
    details = input.get("prompt") or "Match the outfit exactly"
    with ctx.timer.stage("generate_image"):
        final = await ctx.pipeline.generate(
            prompts.outfit_reference(details), [body, reference], model, RESPONSE_IMAGE
        )
    with ctx.timer.stage("upload"):
        ref = await ctx.pipeline.finalize(ctx.owner_id, final, "reference_matches", ctx.job_id)
    return {
        "image_id": ref.image_id,
        "storage_key": ref.storage_key,
        "reference_image_id": input["reference_image_id"],
        "model": model,
    }
