from typing import Dict

from ..jobs import JobType
from .base import Handler, HandlerContext, PartialResultPublisher
from .outfit import handle_outfit_mannequin, handle_outfit_render, handle_reference_match
from .portrait import handle_body_shot_generate, handle_headshot_generate
from .product_shot import (
    handle_product_shot,
    handle_wardrobe_item_generate,
    handle_wardrobe_item_render,
)
from .suggest import handle_outfit_suggest
from .tagging import handle_auto_tag, handle_wardrobe_item_tag

HANDLERS: Dict[JobType, Handler] = {
    JobType.AUTO_TAG: handle_auto_tag,
    JobType.PRODUCT_SHOT: handle_product_shot,
    JobType.HEADSHOT_GENERATE: handle_headshot_generate,
    JobType.BODY_SHOT_GENERATE: handle_body_shot_generate,
    JobType.OUTFIT_SUGGEST: handle_outfit_suggest,
    JobType.REFERENCE_MATCH: handle_reference_match,
    JobType.OUTFIT_MANNEQUIN: handle_outfit_mannequin,
    JobType.OUTFIT_RENDER: handle_outfit_render,
    JobType.WARDROBE_ITEM_GENERATE: handle_wardrobe_item_generate,
    JobType.WARDROBE_ITEM_RENDER: handle_wardrobe_item_render,
    JobType.WARDROBE_ITEM_TAG: handle_wardrobe_item_tag,
}


__all__ = [
    "HANDLERS",
    "Handler",
    "HandlerContext",
    "PartialResultPublisher",
]
