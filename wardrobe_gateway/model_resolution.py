"""Model selection and the staged-vs-direct outfit render decision."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

STANDARD_MODEL = "gemini-2.5-flash-image"
PRO_MODEL = "gemini-3-pro-image-preview"
TEXT_MODEL = "gemini-2.5-flash"

STRATEGY_REUSE_MANNEQUIN = "reuse_mannequin"
STRATEGY_STAGED = "staged"
STRATEGY_DIRECT = "direct"


@dataclass(frozen=True)
class ModelConfig:
    standard_model: str = STANDARD_MODEL
    pro_model: str = PRO_MODEL
    text_model: str = TEXT_MODEL
    # Final pass of the staged path; never follows the user's preference
    composite_model: str = PRO_MODEL
    body_shot_model: str = PRO_MODEL
    standard_item_limit: int = 2
    pro_item_limit: int = 7

    def item_limit(self, model: str) -> int:
        """Maximum number of item images ``model`` accepts in one call."""
        return self.pro_item_limit if "pro" in model else self.standard_item_limit

    def preferred_model(self, settings_row: Optional[Mapping[str, Any]]) -> str:
        return resolve_model(settings_row, "ai_model_preference", self.standard_model)


@dataclass(frozen=True)
class RenderPlan:
    strategy: str
    item_count: int
    limit: int
    # Model for the single direct call, or for the mannequin stage
    model: str
    composite_model: Optional[str] = None

    @property
    def staged(self) -> bool:
        return self.strategy == STRATEGY_STAGED


def resolve_model(
    settings_row: Optional[Mapping[str, Any]],
    override_key: str,
    default: str,
) -> str:
    """Return the model stored under ``override_key`` in ``user_settings``, else ``default``."""
    if not settings_row:
        return default
    value = settings_row.get(override_key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def plan_outfit_render(
    item_count: int,
    preferred_model: str,
    mannequin_image_id: Optional[str] = None,
    config: Optional[ModelConfig] = None,
) -> RenderPlan:
    """
    Choose how an outfit render reaches the final image.

    A supplied ``mannequin_image_id`` skips straight to the composite pass.
    Otherwise ``item_count > limit`` for the preferred model selects the
    staged path (mannequin with the preferred model, composite with the fixed
    composite model) and anything else is one direct call.
    """
    cfg = config or ModelConfig()
    limit = cfg.item_limit(preferred_model)

    if mannequin_image_id:
        return RenderPlan(
            strategy=STRATEGY_REUSE_MANNEQUIN,
            item_count=item_count,
            limit=limit,
            model=cfg.composite_model,
            composite_model=cfg.composite_model,
        )
    if item_count > limit:
        return RenderPlan(
            strategy=STRATEGY_STAGED,
            item_count=item_count,
            limit=limit,
            model=preferred_model,
            composite_model=cfg.composite_model,
        )
    return RenderPlan(
        strategy=STRATEGY_DIRECT,
        item_count=item_count,
        limit=limit,
        model=preferred_model,
    )
