"""Prompt templates for each generation workflow."""

from __future__ import annotations

import json
from textwrap import dedent
from typing import Iterable, Mapping, Optional, Sequence

NO_DETAILS = "No additional details"


def auto_tag(categories: Iterable[str], subcategories: Iterable[str]) -> str:
    return dedent(
        f"""
        Analyze this clothing item image and extract detailed attributes in JSON format.

        Available Categories: {", ".join(categories)}
        Available Subcategories: {", ".join(subcategories)}

        IMPORTANT:
        1. Look at the image and RECOGNIZE the most appropriate category and subcategory from the available lists above.
        2. Match the names EXACTLY as they appear in the lists.
        3. Do NOT use the current category/subcategory values - recognize them fresh from the image.
        4. If you cannot confidently identify a subcategory, set "recognized_subcategory" to null.

        Extract the following attributes with confidence scores (0.0-1.0):
        {{
          "attributes": [
            {{"key": "color", "values": [{{"value": "color name", "confidence": 0.0-1.0}}]}},
            {{"key": "material", "values": [{{"value": "material name", "confidence": 0.0-1.0}}]}},
            {{"key": "pattern", "values": [{{"value": "pattern type", "confidence": 0.0-1.0}}]}},
            {{"key": "style", "values": [{{"value": "style descriptor", "confidence": 0.0-1.0}}]}},
            {{"key": "formality", "values": [{{"value": "formality level", "confidence": 0.0-1.0}}]}},
            {{"key": "season", "values": [{{"value": "season", "confidence": 0.0-1.0}}]}},
            {{"key": "occasion", "values": [{{"value": "occasion type", "confidence": 0.0-1.0}}]}}
          ],
          "recognized_category": "Exact category name from available list",
          "recognized_subcategory": "Exact subcategory name from available list (or null if none match)",
          "suggested_title": "Short descriptive title",
          "suggested_notes": "Brief description"
        }}

        Return ONLY valid JSON, no markdown code blocks, no explanation.
        """
    ).strip()


PRODUCT_SHOT = dedent(
    """
    Transform this clothing item into a professional e-commerce product shot.

    VISUAL REQUIREMENTS:
    1. STYLE: "Ghost Mannequin" / "Invisible Mannequin". The item must look 3D and filled out as if worn, but NO mannequin, human body parts, or stands should be visible. Hollow out the neck/sleeves.
    2. BACKGROUND: Pure Solid White (Hex #FFFFFF). Do not use light grey or off-white.
    3. LIGHTING: Soft, commercial studio lighting. Subtle, natural drop shadow directly underneath to ground the item.
    4. FIDELITY: Maintain the EXACT colors, patterns, texture, and text/logos of the original item. Do not hallucinate new details.

    NEGATIVE CONSTRAINTS:
    - NO visible mannequin heads, arms, legs, or stands.
    - NO grey backgrounds.
    - NO complex props or clutter.
    - NO cropping of the item (keep the full item visible).

    OUTPUT FORMAT:
    - Square aspect ratio (1:1).
    - Center the item with balanced white padding on all sides.
    """
).strip()


def headshot(hair: str, makeup: str) -> str:
    return dedent(
        f"""
        Professional studio headshot.
        SUBJECT: The person in the image.
        CLOTHING: Wearing a simple white ribbed singlet.
        MODIFICATIONS: {hair}, {makeup}.
        CRITICAL: Maintain the EXACT framing, zoom level, and head angle of the original image.
        STYLE: Photorealistic, 8k, soft lighting, light grey/white background.
        OUTPUT: Professional headshot suitable for fashion photography.
        """
    ).strip()


def headshot_preset(style_notes: str) -> str:
    return dedent(
        """
        Professional studio headshot.
        SUBJECT: The person in the image.
        CLOTHING: Wearing a simple white ribbed singlet.
        STYLE DIRECTION:
        {notes}
        CRITICAL: Maintain the EXACT framing, zoom level, and head angle of the original image.
        STYLE: Photorealistic, 8k, soft lighting, light grey/white background.
        OUTPUT: Professional headshot suitable for fashion photography.
        """
    ).strip().format(notes=style_notes.strip())


BODY_COMPOSITE = dedent(
    """
    Generate a wide-shot, full-body studio photograph.
    SUBJECT: A person standing in grey boxer shorts and a white ribbed singlet.
    REFERENCES:
    - Image 0: Source for facial features (headshot).
    - Image 1: STRICT Source for body shape, pose, framing, and crop.

    INSTRUCTIONS:
    1. COMPOSITION: Wide shot showing full body with feet and space above head.
    2. ANATOMY: Enforce "8-heads-tall" rule. Head should be proportional to body.
    3. INTEGRATION: Seamlessly blend Head (Img 0) onto Body (Img 1) matching lighting and skin tone.
    4. FRAMING: Maintain exact framing of Image 1 (Full Body Vertical 3:4 or 9:16).
    5. PROPORTIONS: Head and neck must be proportional to shoulders (avoid bobblehead effect).
    6. BACKGROUND: Pure white studio background.
    """
).strip()

# Selfie plus mirror selfie: the second image only carries body shape
BODY_FROM_SELFIES = dedent(
    """
    Generate a wide-shot, full-body studio photograph.
    SUBJECT: A person standing in grey boxer shorts and a white ribbed singlet.
    REFERENCES:
    - Image 0: Source for facial features (headshot or selfie).
    - Image 1: Mirror selfie showing body shape and proportions. Ignore the phone, mirror and room.

    INSTRUCTIONS:
    1. COMPOSITION: Wide shot showing full body with feet and space above head, facing the camera.
    2. ANATOMY: Enforce "8-heads-tall" rule. Keep the body shape from Image 1.
    3. IDENTITY: Use the face and hair from Image 0.
    4. FRAMING: Full Body Vertical 3:4.
    5. BACKGROUND: Pure white studio background.
    """
).strip()


def outfit_mannequin(count: int, details: str = NO_DETAILS, from_grid: bool = False) -> str:
    source = (
        f"- The single reference image is a grid showing {count} clothing items on white."
        if from_grid
        else f"- CLOTHING: {count} items provided."
    )
    return dedent(
        """
        Generate a photorealistic image of a fashion outfit on a ghost mannequin.
        INSTRUCTIONS:
        - Combine all provided clothing items into a single cohesive outfit.
        {source}
        - BACKGROUND: Simple grey studio.
        - STYLE: Ghost mannequin (invisible mannequin).
        - DETAILS: {details}.
        - ASPECT RATIO: Vertical Portrait.
        """
    ).strip().format(source=source, details=details or NO_DETAILS)


OUTFIT_APPLY_MANNEQUIN = dedent(
    """
    DRESSING THE SUBJECT:
    - IMAGE 0: The body/pose reference (base photo).
    - IMAGE 1: The target outfit (on mannequin).
    - IMAGE 2: The facial identity reference (headshot).

    TASK:
    - Transfer the EXACT outfit from Image 1 onto the person in Image 0.
    - Use the face, hair, and head from Image 2.
    - Maintain the body pose and framing from Image 0.
    - Ensure lighting and skin tones match perfectly.
    - Ensure head-to-body proportions are accurate (8-heads-tall rule).
    - OUTPUT: Full Body Vertical Portrait.
    """
).strip()


def _subject_section(include_headshot: bool) -> str:
    if include_headshot:
        return (
            "SUBJECT REFERENCE:\n"
            "- Image 0: Current body state, pose, and framing.\n"
            "- Image 1: STRICT Facial Identity reference. Use the face, hair, and head from this image."
        )
    return (
        "SUBJECT REFERENCE:\n"
        "- Image 0: BASE BODY & FACE. Contains the subject's real face. Do not modify."
    )


def _identity_instruction(include_headshot: bool) -> str:
    if include_headshot:
        return "1. Apply the exact facial identity, hair, and head from Image 1 onto the body in Image 0."
    return (
        "1. CRITICAL: PRESERVE THE FACE. Composite the new clothes onto the body in Image 0 "
        "WITHOUT altering the facial features, hair, or head shape."
    )


_OUTFIT_CRITICAL = (
    "2. Maintain the EXACT pose and framing from Image 0.\n"
    "3. Use ALL clothing items provided.\n"
    "4. Ensure head-to-body proportions are accurate (8-heads-tall rule). No long necks or large heads.\n"
    "5. Background: Pure white infinite studio.\n"
    "6. Pay attention to layering: base layers first, then outer layers."
)


def outfit_final_stacked(details: str, item_count: int, include_headshot: bool = True) -> str:
    grid_index = 2 if include_headshot else 1
    return "\n\n".join(
        [
            "Fashion Photography.\nOUTPUT FORMAT: Vertical Portrait (3:4 Aspect Ratio).",
            _subject_section(include_headshot),
            (
                "CLOTHING REFERENCE:\n"
                f"- Image {grid_index}: A composite grid image showing {item_count} clothing items on a white background.\n"
                "- Analyze ALL items in this grid image carefully."
            ),
            (
                "CLOTHING INSTRUCTIONS:\n"
                f"- Dress the subject in ALL {item_count} clothing items from Image {grid_index}.\n"
                "- Combine all items into a cohesive, fashionable outfit.\n"
                f"- {details or NO_DETAILS}"
            ),
            "CRITICAL:\n" + _identity_instruction(include_headshot) + "\n" + _OUTFIT_CRITICAL,
        ]
    )


def outfit_final(details: str, item_count: int, include_headshot: bool = True) -> str:
    first = 2 if include_headshot else 1
    last = first + item_count - 1
    return "\n\n".join(
        [
            "Fashion Photography.\nOUTPUT FORMAT: Vertical Portrait (3:4 Aspect Ratio).",
            _subject_section(include_headshot),
            (
                "CLOTHING REFERENCE:\n"
                f"- Images {first} to {last}: Individual clothing items.\n"
                "- Analyze ALL items in these images carefully."
            ),
            (
                "CLOTHING INSTRUCTIONS:\n"
                f"- Dress the subject in ALL {item_count} clothing items from Images {first} to {last}.\n"
                "- Combine all items into a cohesive, fashionable outfit.\n"
                f"- {details or NO_DETAILS}"
            ),
            "CRITICAL:\n" + _identity_instruction(include_headshot) + "\n" + _OUTFIT_CRITICAL,
        ]
    )


def outfit_reference(details: str = "Match the outfit exactly") -> str:
    return dedent(
        f"""
        Fashion Photography.
        OUTPUT FORMAT: Vertical Portrait (3:4 Aspect Ratio).

        SUBJECT REFERENCE:
        - Image 0: User body and face. Preserve identity, pose, and framing.

        OUTFIT REFERENCE:
        - Image 1: Outfit to replicate. Match clothing pieces, colors, patterns, textures, layering, and footwear.

        CRITICAL:
        1. PRESERVE THE FACE. Do not alter facial features, hair, or head shape from Image 0.
        2. Maintain the EXACT pose and framing from Image 0.
        3. Recreate the outfit from Image 1 as faithfully as possible.
        4. Ensure head-to-body proportions are accurate (8-heads-tall rule).
        5. Background: Pure white infinite studio.
        6. {details}.
        """
    ).strip()


def outfit_suggest(
    items: Sequence[Mapping[str, object]],
    request: str = "",
    constraints: Optional[Mapping[str, object]] = None,
) -> str:
    catalogue = [
        {
            "id": item.get("id"),
            "title": item.get("title"),
            "category": item.get("category_name"),
            "color": item.get("color"),
        }
        for item in items
    ]
    return dedent(
        """
        You are a personal stylist. Build one outfit from the wardrobe below.

        WARDROBE (JSON):
        {catalogue}

        REQUEST: {request}
        CONSTRAINTS (JSON): {constraints}

        Pick at most one item per category. Use ONLY ids from the wardrobe.
        Respond with JSON only:
        {{"items": [{{"id": "item id", "category": "category", "reason": "short reason"}}],
          "summary": "one sentence describing the outfit"}}
        """
    ).strip().format(
        catalogue=json.dumps(catalogue),
        request=request or "Everyday outfit",
        constraints=json.dumps(dict(constraints or {})),
    )
