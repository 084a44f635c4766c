"""Owner-scoped reads and writes on the wardrobe tables used by job handlers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import InvalidInput
from .supabase_rest import SupabaseRestClient, eq, ilike, in_list, is_null

logger = logging.getLogger(__name__)

PRODUCT_SHOT_TYPE = "product_shot"
_UNSORTED = 999


@dataclass
class Taxonomy:
    categories: List[Dict[str, Any]] = field(default_factory=list)
    subcategories: List[Dict[str, Any]] = field(default_factory=list)
    definitions: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def category_names(self) -> List[str]:
        return [c["name"] for c in self.categories]

    @property
    def subcategory_names(self) -> List[str]:
        return [s["name"] for s in self.subcategories]

    def definition_ids(self) -> Dict[str, Any]:
        return {d["key"]: d["id"] for d in self.definitions}

    def match_category(self, name: Optional[str]) -> Optional[Dict[str, Any]]:
        if not name:
            return None
        wanted = str(name).lower()
        return next((c for c in self.categories if c["name"].lower() == wanted), None)

    def match_subcategory(self, name: Optional[str], category_id: Any) -> Optional[Dict[str, Any]]:
        if not name:
            return None
        wanted = str(name).lower()
        return next(
            (
                s
                for s in self.subcategories
                if s.get("category_id") == category_id and s["name"].lower() == wanted
            ),
            None,
        )

    def category_name(self, category_id: Any) -> Optional[str]:
        return next((c["name"] for c in self.categories if c["id"] == category_id), None)


def _image_rank(link: Mapping[str, Any]):
    is_shot = 0 if link.get("type") == PRODUCT_SHOT_TYPE else 1
    order = link.get("sort_order")
    return (is_shot, order if order is not None else _UNSORTED)


def best_image_per_item(
    item_ids: Sequence[Any], links: Sequence[Mapping[str, Any]]
) -> List[Any]:
    """One image id per item, in ``item_ids`` order: product shots first, then ``sort_order``."""
    by_item: Dict[str, List[Mapping[str, Any]]] = {}
    for link in links:
        by_item.setdefault(str(link.get("wardrobe_item_id")), []).append(link)

    chosen = []
    for item_id in item_ids:
        candidates = [
            link for link in by_item.get(str(item_id), []) if link.get("image_id") is not None
        ]
        if not candidates:
            logger.warning(f"No image links found for wardrobe item {item_id}")
            continue
        chosen.append(min(candidates, key=_image_rank)["image_id"])
    return chosen


class WardrobeRepository:
    def __init__(self, rest: SupabaseRestClient, owner_id: str):
        self.rest = rest
        self.owner_id = owner_id

    async def user_settings(self) -> Dict[str, Any]:
        row = await self.rest.select_one("user_settings", {"user_id": eq(self.owner_id)})
        return row or {}

    async def update_user_settings(self, values: Mapping[str, Any]) -> None:
        await self.rest.update("user_settings", values, {"user_id": eq(self.owner_id)})

    async def load_taxonomy(self) -> Taxonomy:
        categories, subcategories, definitions = await asyncio.gather(
            self.rest.select("wardrobe_categories", columns="id,name", order="sort_order"),
            self.rest.select(
                "wardrobe_subcategories", columns="id,name,category_id", order="sort_order"
            ),
            self.rest.select("attribute_definitions", columns="id,key,name"),
        )
        return Taxonomy(categories, subcategories, definitions)

    async def get_item(self, item_id: Any) -> Dict[str, Any]:
        row = await self.rest.select_one(
            "wardrobe_items", {"id": eq(item_id), "owner_user_id": eq(self.owner_id)}
        )
        if row is None:
            raise InvalidInput(f"Wardrobe item not found: {item_id}")
        return row

    async def get_outfit(self, outfit_id: Any) -> Dict[str, Any]:
        row = await self.rest.select_one(
            "outfits", {"id": eq(outfit_id), "owner_user_id": eq(self.owner_id)}, columns="id"
        )
        if row is None:
            raise InvalidInput(f"Outfit not found: {outfit_id}")
        return row

    async def owned_item_ids(self, item_ids: Sequence[Any]) -> List[Any]:
        """The subset of ``item_ids`` owned by this user, in the given order."""
        if not item_ids:
            return []
        rows = await self.rest.select(
            "wardrobe_items",
            {"id": in_list(item_ids), "owner_user_id": eq(self.owner_id)},
            columns="id",
        )
        owned = {str(row["id"]) for row in rows}
        foreign = [item_id for item_id in item_ids if str(item_id) not in owned]
        if foreign:
            logger.warning(f"Ignoring wardrobe items not owned by {self.owner_id}: {foreign}")
        return [item_id for item_id in item_ids if str(item_id) in owned]

    async def update_item(self, item_id: Any, values: Mapping[str, Any]) -> None:
        if not values:
            return
        await self.rest.update(
            "wardrobe_items", values, {"id": eq(item_id), "owner_user_id": eq(self.owner_id)}
        )

    async def list_active_items(self, limit: int = 200) -> List[Dict[str, Any]]:
        return await self.rest.select(
            "wardrobe_items",
            {
                "owner_user_id": eq(self.owner_id),
                "archived_at": is_null(),
                "deleted_at": is_null(),
            },
            columns="id,title,category_id,subcategory_id,color_primary",
            limit=limit,
        )

    async def attribute_value_id(self, definition_id: Any, value: str) -> Any:
        """Case-insensitive lookup of an attribute value, inserting it when missing."""
        existing = await self.rest.select_one(
            "attribute_values",
            {"definition_id": eq(definition_id), "value": ilike(value)},
            columns="id",
        )
        if existing:
            return existing["id"]
        created = await self.rest.insert(
            "attribute_values", {"definition_id": definition_id, "value": value}
        )
        return created[0]["id"] if created else None

    async def insert_entity_attributes(self, rows: Sequence[Mapping[str, Any]]) -> None:
        if rows:
            await self.rest.insert("entity_attributes", rows)

    async def attach_product_shot(self, item_id: Any, image_id: Any) -> None:
        """Insert the image as the item's first image, bumping the others."""
        await self.rest.rpc(
            "bump_and_insert_product_shot",
            {
                "p_wardrobe_item_id": item_id,
                "p_image_id": image_id,
                "p_type": PRODUCT_SHOT_TYPE,
            },
        )

    async def best_item_images(self, item_ids: Sequence[Any]) -> List[Any]:
        item_ids = await self.owned_item_ids(item_ids)
        if not item_ids:
            return []
        links = await self.rest.select(
            "wardrobe_item_images",
            {"wardrobe_item_id": in_list(item_ids)},
            columns="wardrobe_item_id,type,sort_order,image_id",
        )
        return best_image_per_item(item_ids, links)

    async def record_outfit_render(
        self,
        outfit_id: Any,
        image_id: Any,
        prompt: Optional[str],
        settings: Mapping[str, Any],
    ) -> None:
        await self.rest.insert(
            "outfit_renders",
            {
                "outfit_id": outfit_id,
                "image_id": image_id,
                "prompt": prompt or None,
                "settings": dict(settings),
                "status": "succeeded",
            },
        )
        await self.rest.update(
            "outfits",
            {"cover_image_id": image_id},
            {"id": eq(outfit_id), "owner_user_id": eq(self.owner_id)},
        )
