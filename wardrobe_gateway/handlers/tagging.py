"""Attribute extraction: ``auto_tag`` and ``wardrobe_item_tag``."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from .. import prompts
from ..concurrency import run_all
from ..errors import ParseError
from ..gemini_client import RESPONSE_TEXT
from ..images import ImageData
from ..repositories import Taxonomy
from .base import HandlerContext, require, require_list

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*")


def parse_model_json(text: str) -> Dict[str, Any]:
    """Parse a JSON object from model output, ignoring markdown code fences."""
    cleaned = _FENCE.sub("", str(text)).strip()
    try:
        parsed = json.loads(cleaned)
    except ValueError as e:
        raise ParseError("Failed to parse AI JSON response") from e
    if not isinstance(parsed, dict):
        raise ParseError("Failed to parse AI JSON response")
    return parsed


def item_updates(result: Mapping[str, Any], taxonomy: Taxonomy) -> Dict[str, Any]:
    """Wardrobe item column updates derived from a parsed tagging result."""
    updates: Dict[str, Any] = {}
    if result.get("suggested_title"):
        updates["title"] = result["suggested_title"]
    if result.get("suggested_notes"):
        updates["description"] = result["suggested_notes"]

    for attribute in result.get("attributes") or []:
        if attribute.get("key") == "color":
            values = attribute.get("values") or []
            if values and values[0].get("value"):
                updates["color_primary"] = values[0]["value"]
            break

    category = taxonomy.match_category(result.get("recognized_category"))
    if category is not None:
        updates["category_id"] = category["id"]
        subcategory = taxonomy.match_subcategory(
            result.get("recognized_subcategory"), category["id"]
        )
        updates["subcategory_id"] = subcategory["id"] if subcategory else None
    return updates


async def persist_tags(
    ctx: HandlerContext, item_id: Any, result: Mapping[str, Any], taxonomy: Taxonomy
) -> Dict[str, Any]:
    definitions = taxonomy.definition_ids()
    rows: List[Dict[str, Any]] = []
    for attribute in result.get("attributes") or []:
        definition_id = definitions.get(attribute.get("key"))
        if definition_id is None:
            continue
        for entry in attribute.get("values") or []:
            value = str(entry.get("value") or "").strip()
            if not value:
                continue
            value_id = await ctx.repo.attribute_value_id(definition_id, value)
            if value_id is None:
                continue
            rows.append(
                {
                    "entity_type": "wardrobe_item",
                    "entity_id": item_id,
                    "definition_id": definition_id,
                    "value_id": value_id,
                    "raw_value": value,
                    "confidence": entry.get("confidence"),
                    "source": "ai",
                }
            )
    await ctx.repo.insert_entity_attributes(rows)

    updates = item_updates(result, taxonomy)
    await ctx.repo.update_item(item_id, updates)
    logger.info(f"Tagged item {item_id}: {len(rows)} attribute(s), updates={sorted(updates)}")
    return updates


async def tag_item(
    ctx: HandlerContext,
    item_id: Any,
    image: Optional[ImageData] = None,
    image_id: Optional[Any] = None,
    taxonomy: Optional[Taxonomy] = None,
) -> Dict[str, Any]:
    """
    Tag ``item_id`` from ``image``.

    When no image is given it is downloaded from ``image_id`` while the item's
    ownership is checked; callers passing ``image`` have checked it already.
    """
    if image is None:
        with ctx.timer.stage("download"):
            _, image, taxonomy = await run_all(
                ctx.repo.get_item(item_id),
                ctx.pipeline.download(ctx.owner_id, image_id),
                ctx.repo.load_taxonomy(),
            )
    elif taxonomy is None:
        taxonomy = await ctx.repo.load_taxonomy()

    prompt = prompts.auto_tag(taxonomy.category_names, taxonomy.subcategory_names)
    with ctx.timer.stage("generate_text"):
        text = await ctx.pipeline.generate(prompt, [image], ctx.models.text_model, RESPONSE_TEXT)
    result = parse_model_json(text)
    updates = await persist_tags(ctx, item_id, result, taxonomy)
    return {**result, "updates_applied": updates}


async def handle_auto_tag(ctx: HandlerContext, input: Mapping[str, Any]) -> Dict[str, Any]:
    require(input, "auto_tag", "wardrobe_item_id")
    image_ids = require_list(input, "auto_tag", "image_ids")
    return await tag_item(ctx, input["wardrobe_item_id"], image_id=image_ids[0])


async def handle_wardrobe_item_tag(
    ctx: HandlerContext, input: Mapping[str, Any]
) -> Dict[str, Any]:
    require(input, "wardrobe_item_tag", "item_id")
    image_ids = require_list(input, "wardrobe_item_tag", "image_ids")
    return await tag_item(ctx, input["item_id"], image_id=image_ids[0])
