"""Outfit suggestions from the owner's active wardrobe."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from .. import prompts
from ..concurrency import run_all
from ..errors import InvalidInput
from ..gemini_client import RESPONSE_TEXT
from ..repositories import Taxonomy
from .base import HandlerContext
from .tagging import parse_model_json

logger = logging.getLogger(__name__)


def annotate_items(items: List[Dict[str, Any]], taxonomy: Taxonomy) -> List[Dict[str, Any]]:
    return [
        {
            **item,
            "category_name": taxonomy.category_name(item.get("category_id")),
            "color": item.get("color_primary"),
        }
        for item in items
    ]


def filter_suggestions(
    suggested: Any, items: List[Mapping[str, Any]]
) -> List[Dict[str, Any]]:
    """Keep owned item ids only, at most one per category, in model order."""
    owned = {str(item["id"]): item for item in items}
    seen_categories = set()
    kept = []
    for entry in suggested if isinstance(suggested, list) else []:
        if not isinstance(entry, Mapping):
            continue
        item = owned.get(str(entry.get("id")))
        if item is None:
            logger.warning(f"Dropping suggested item not in wardrobe: {entry.get('id')}")
            continue
        category = item.get("category_id")
        if category is not None and category in seen_categories:
            continue
        seen_categories.add(category)
        kept.append(
            {
                "wardrobe_item_id": item["id"],
                "title": item.get("title"),
                "category": item.get("category_name"),
                "reason": entry.get("reason"),
            }
        )
    return kept


async def handle_outfit_suggest(
    ctx: HandlerContext, input: Mapping[str, Any]
) -> Dict[str, Any]:
    with ctx.timer.stage("load"):
        items, taxonomy = await run_all(ctx.repo.list_active_items(), ctx.repo.load_taxonomy())
    if not items:
        raise InvalidInput("No wardrobe items available")

    catalogue = annotate_items(items, taxonomy)
    constraints = input.get("constraints")
    prompt = prompts.outfit_suggest(
        catalogue,
        request=str(input.get("prompt") or ""),
        constraints=constraints if isinstance(constraints, Mapping) else None,
    )
    with ctx.timer.stage("generate_text"):
        text = await ctx.pipeline.generate(prompt, [], ctx.models.text_model, RESPONSE_TEXT)
    parsed = parse_model_json(text)

    suggestions = filter_suggestions(parsed.get("items"), catalogue)
    logger.info(f"Job {ctx.job_id}: suggested {len(suggestions)} of {len(items)} item(s)")
    return {"items": suggestions, "summary": parsed.get("summary")}
