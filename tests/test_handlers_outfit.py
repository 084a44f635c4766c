"""Tests for outfit_mannequin, outfit_render and reference_match."""

import pytest

from fakes import OWNER, Harness, make_image
from wardrobe_gateway import prompts
from wardrobe_gateway.errors import InvalidInput
from wardrobe_gateway.handlers.outfit import (
    handle_outfit_mannequin,
    handle_outfit_render,
    handle_reference_match,
)
from wardrobe_gateway.images import ImageData
from wardrobe_gateway.model_resolution import PRO_MODEL, STANDARD_MODEL
from wardrobe_gateway.repositories import best_image_per_item

COLORS = [(200, 0, 0), (0, 200, 0), (0, 0, 200), (200, 200, 0), (0, 200, 200)]


def seed_outfit(harness, item_count, **settings):
    harness.rest.tables["user_settings"] = [
        {
            "user_id": OWNER,
            "body_shot_image_id": "body",
            "headshot_image_id": "head",
            **settings,
        }
    ]
    harness.rest.tables["outfits"] = [{"id": "o1", "owner_user_id": OWNER}]
    harness.seed("body", make_image(size=(300, 400)))
    harness.seed("head", make_image(size=(200, 200)))
    links = []
    for index in range(item_count):
        item_id = f"item-{index}"
        harness.seed_item(item_id)
        harness.seed(f"photo-{index}", make_image(color=COLORS[index % len(COLORS)]))
        links.append({"wardrobe_item_id": item_id, "image_id": f"photo-{index}", "sort_order": 0})
    harness.rest.tables["wardrobe_item_images"] = links
    return [{"wardrobe_item_id": f"item-{index}"} for index in range(item_count)]


def generated():
    return ImageData(make_image(size=(768, 1024)))


def test_best_image_prefers_product_shot_then_sort_order():
    links = [
        {"wardrobe_item_id": "a", "image_id": "a-photo", "type": "photo", "sort_order": 0},
        {"wardrobe_item_id": "a", "image_id": "a-shot", "type": "product_shot", "sort_order": 3},
        {"wardrobe_item_id": "b", "image_id": "b-late", "sort_order": None},
        {"wardrobe_item_id": "b", "image_id": "b-first", "sort_order": 1},
    ]
    assert best_image_per_item(["b", "a", "missing"], links) == ["b-first", "a-shot"]


@pytest.mark.asyncio
async def test_two_items_on_standard_model_render_directly():
    harness = Harness()
    selected = seed_outfit(harness, 2)
    harness.gemini.queues["IMAGE"].append(generated())
    ctx = await harness.context("outfit_render")

    result = await handle_outfit_render(ctx, {"outfit_id": "o1", "selected": selected})

    assert len(harness.gemini.calls) == 1
    call = harness.gemini.calls[0]
    assert call["model"] == STANDARD_MODEL
    assert len(call["images"]) == 4
    assert result["strategy"] == "direct"
    assert result["items_count"] == 2
    assert result["used_stacked_image"] is False
    assert "mannequin_image_id" not in result

    render = harness.rest.rows("outfit_renders")[0]
    assert render["image_id"] == result["renders"][0]["image_id"]
    assert render["settings"]["strategy"] == "direct"
    assert harness.rest.rows("outfits")[0]["cover_image_id"] == render["image_id"]
    assert result["renders"][0]["storage_key"] == f"{OWNER}/ai/outfits/o1/{ctx.job_id}.jpg"


@pytest.mark.asyncio
async def test_three_items_on_standard_model_are_staged():
    harness = Harness()
    selected = seed_outfit(harness, 3)
    mannequin = ImageData(make_image(color=(120, 120, 120), size=(600, 800)))
    harness.gemini.queues["IMAGE"].extend([mannequin, generated()])
    ctx = await harness.context("outfit_render")

    result = await handle_outfit_render(ctx, {"outfit_id": "o1", "selected": selected})

    mannequin_call, composite_call = harness.gemini.calls
    # Over the limit: items are gridded into one image for the mannequin pass
    assert len(mannequin_call["images"]) == 1
    assert mannequin_call["model"] == STANDARD_MODEL
    assert "grid showing 3 clothing items" in mannequin_call["prompt"]
    assert composite_call["model"] == PRO_MODEL
    assert composite_call["prompt"] == prompts.OUTFIT_APPLY_MANNEQUIN
    assert composite_call["images"][1] == mannequin

    assert result["strategy"] == "staged"
    assert result["mannequin_image_id"]
    assert any(key.startswith(f"{OWNER}/ai/outfits/o1/mannequin/") for key, _ in harness.media.uploads)


@pytest.mark.asyncio
async def test_five_items_on_pro_model_render_directly():
    harness = Harness()
    selected = seed_outfit(harness, 5, ai_model_preference=PRO_MODEL)
    harness.gemini.queues["IMAGE"].append(generated())
    ctx = await harness.context("outfit_render")

    result = await handle_outfit_render(ctx, {"outfit_id": "o1", "selected": selected})

    call = harness.gemini.calls[0]
    assert call["model"] == PRO_MODEL
    assert len(call["images"]) == 7
    assert result["strategy"] == "direct"


@pytest.mark.asyncio
async def test_supplied_mannequin_is_reused():
    harness = Harness()
    seed_outfit(harness, 0)
    harness.seed("mannequin-1")
    harness.gemini.queues["IMAGE"].append(generated())
    ctx = await harness.context("outfit_render")

    result = await handle_outfit_render(
        ctx, {"outfit_id": "o1", "mannequin_image_id": "mannequin-1", "settings": {"items_count": 4}}
    )

    call = harness.gemini.calls[0]
    assert call["model"] == harness.models.composite_model
    assert call["prompt"] == prompts.OUTFIT_APPLY_MANNEQUIN
    assert result["strategy"] == "reuse_mannequin"
    assert result["items_count"] == 4


@pytest.mark.asyncio
async def test_stacked_grid_renders_in_one_call():
    harness = Harness()
    seed_outfit(harness, 0)
    harness.media.objects[f"{OWNER}/stacks/grid.jpg"] = make_image(size=(300, 400))
    harness.gemini.queues["IMAGE"].append(generated())
    ctx = await harness.context("outfit_render")

    result = await handle_outfit_render(
        ctx,
        {
            "outfit_id": "o1",
            "stacked_image_id": f"{OWNER}/stacks/grid.jpg",
            "settings": {"items_count": 6},
        },
    )

    call = harness.gemini.calls[0]
    assert len(call["images"]) == 3
    assert "composite grid image showing 6 clothing items" in call["prompt"]
    assert result["used_stacked_image"] is True
    assert result["strategy"] == "stacked"


@pytest.mark.asyncio
async def test_render_validation():
    harness = Harness()
    ctx = await harness.context("outfit_render")
    with pytest.raises(InvalidInput, match="Missing stacked_image_id or selected items"):
        await handle_outfit_render(ctx, {"outfit_id": "o1", "selected": []})

    harness.rest.tables["outfits"] = [{"id": "o1", "owner_user_id": OWNER}]
    harness.rest.tables["user_settings"] = [{"user_id": OWNER, "headshot_image_id": "head"}]
    with pytest.raises(InvalidInput, match="Missing body shot or headshot"):
        await handle_outfit_render(ctx, {"outfit_id": "o1", "selected": [{"wardrobe_item_id": "a"}]})


@pytest.mark.asyncio
async def test_items_without_images_are_rejected():
    harness = Harness()
    seed_outfit(harness, 0)
    ctx = await harness.context("outfit_render")
    with pytest.raises(InvalidInput, match="No valid images found for outfit items"):
        await handle_outfit_render(ctx, {"outfit_id": "o1", "selected": ["item-x"]})


@pytest.mark.asyncio
async def test_outfit_mannequin_uploads_under_outfit():
    harness = Harness()
    selected = seed_outfit(harness, 2)
    harness.gemini.queues["IMAGE"].append(generated())
    ctx = await harness.context("outfit_mannequin")

    result = await handle_outfit_mannequin(ctx, {"outfit_id": "o1", "selected": selected})

    call = harness.gemini.calls[0]
    assert len(call["images"]) == 2
    assert result["items_count"] == 2
    assert result["model"] == STANDARD_MODEL
    assert result["storage_key"] == f"{OWNER}/ai/outfits/o1/mannequin/{ctx.job_id}.jpg"


@pytest.mark.asyncio
async def test_reference_match_uses_body_shot():
    harness = Harness()
    seed_outfit(harness, 0)
    harness.seed("ref-1")
    harness.gemini.queues["IMAGE"].append(generated())
    ctx = await harness.context("reference_match")

    result = await handle_reference_match(ctx, {"reference_image_id": "ref-1"})

    assert len(harness.gemini.calls[0]["images"]) == 2
    assert result["reference_image_id"] == "ref-1"
    assert result["storage_key"] == f"{OWNER}/ai/reference_matches/{ctx.job_id}.jpg"


@pytest.mark.asyncio
async def test_reference_match_requires_body_shot():
    harness = Harness()
    ctx = await harness.context("reference_match")
    with pytest.raises(InvalidInput, match="Missing body shot"):
        await handle_reference_match(ctx, {"reference_image_id": "ref-1"})


@pytest.mark.asyncio
async def test_render_rejects_outfit_owned_by_another_user():
    harness = Harness()
    selected = seed_outfit(harness, 2)
    harness.rest.tables["outfits"] = [{"id": "o2", "owner_user_id": "user-2"}]
    ctx = await harness.context("outfit_render")

    with pytest.raises(InvalidInput, match="Outfit not found: o2"):
        await handle_outfit_render(ctx, {"outfit_id": "o2", "selected": selected})

    assert harness.gemini.calls == []
    assert harness.rest.rows("outfit_renders") == []


@pytest.mark.asyncio
async def test_mannequin_rejects_outfit_owned_by_another_user():
    harness = Harness()
    selected = seed_outfit(harness, 2)
    harness.rest.tables["outfits"] = [{"id": "o2", "owner_user_id": "user-2"}]
    ctx = await harness.context("outfit_mannequin")

    with pytest.raises(InvalidInput, match="Outfit not found: o2"):
        await handle_outfit_mannequin(ctx, {"outfit_id": "o2", "selected": selected})

    assert harness.gemini.calls == []
    assert harness.media.uploads == []


@pytest.mark.asyncio
async def test_stacked_grid_from_another_users_folder_is_rejected():
    harness = Harness()
    seed_outfit(harness, 0)
    harness.media.objects["user-2/ai/headshots/secret.jpg"] = make_image()
    ctx = await harness.context("outfit_render")

    with pytest.raises(InvalidInput, match="not owned by this user"):
        await handle_outfit_render(
            ctx, {"outfit_id": "o1", "stacked_image_id": "user-2/ai/headshots/secret.jpg"}
        )

    assert harness.gemini.calls == []


@pytest.mark.asyncio
async def test_items_owned_by_another_user_are_left_out():
    harness = Harness()
    selected = seed_outfit(harness, 2)
    harness.seed_item("item-theirs", owner="user-2")
    harness.seed("photo-theirs", owner="user-2")
    harness.rest.rows("wardrobe_item_images").append(
        {"wardrobe_item_id": "item-theirs", "image_id": "photo-theirs", "sort_order": 0}
    )
    harness.gemini.queues["IMAGE"].append(generated())
    ctx = await harness.context("outfit_mannequin")

    result = await handle_outfit_mannequin(
        ctx, {"outfit_id": "o1", "selected": [*selected, {"wardrobe_item_id": "item-theirs"}]}
    )

    assert result["items_count"] == 2
    assert len(harness.gemini.calls[0]["images"]) == 2
