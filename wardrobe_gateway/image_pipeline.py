"""
Image Pipeline: download, composite, generate, optimize and upload.

CPU-bound Pillow work (trimming, grid compositing, re-encoding) runs through
``asyncio.to_thread`` so it never blocks other dispatches on the event loop.
"""

from __future__ import annotations

import asyncio
import io
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import aiofiles
import numpy as np
from PIL import Image

from .concurrency import run_all
from .errors import ImageNotFound, InvalidImage, InvalidInput, RecordCreateFailed, SupabaseError
from .gemini_client import RESPONSE_IMAGE, GeminiClient
from .images import JPEG, ImageData, ImageRef, sniff_mime_type
from .media_store import MediaStore
from .supabase_rest import SupabaseRestClient, eq

logger = logging.getLogger(__name__)

IMAGES_TABLE = "images"

CANVAS_WIDTH = 1536
CANVAS_HEIGHT = 2048
GRID_PADDING = 20
TRIM_THRESHOLD = 15
BACKGROUND = (255, 255, 255)

_GRID_TABLE = {
    1: (1, 1),
    2: (1, 2),
    3: (2, 2),
    4: (2, 2),
    5: (2, 3),
    6: (2, 3),
    7: (3, 3),
    8: (3, 3),
    9: (3, 3),
    10: (3, 4),
    11: (3, 4),
    12: (3, 4),
}

__all__ = [
    "GridLayout",
    "ImagePipeline",
    "composite_grid_image",
    "grid_layout",
    "optimize_image_bytes",
    "sniff_mime_type",
    "storage_key",
    "trim_whitespace",
]


@dataclass(frozen=True)
class GridLayout:
    cols: int
    rows: int

    @property
    def cells(self) -> int:
        return self.cols * self.rows


def grid_layout(count: int) -> GridLayout:
    """Grid dimensions packing ``count`` cells into the 3:4 canvas."""
    if count <= 0:
        return GridLayout(1, 1)
    if count in _GRID_TABLE:
        return GridLayout(*_GRID_TABLE[count])
    cols = math.ceil(math.sqrt(count))
    return GridLayout(cols, math.ceil(count / cols))


def storage_key(owner_id: str, purpose: str, disambiguator: str) -> str:
    return f"{owner_id}/ai/{purpose.strip('/')}/{disambiguator}.jpg"


def _to_rgb(img: Image.Image) -> Image.Image:
    """Flatten alpha onto white; transparent pixels count as background."""
    if img.mode in ("RGBA", "LA", "P"):
        img = img.convert("RGBA")
        flattened = Image.new("RGB", img.size, BACKGROUND)
        flattened.paste(img, mask=img.split()[-1])
        return flattened
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def trim_whitespace(img: Image.Image, threshold: int = TRIM_THRESHOLD) -> Image.Image:
    """Crop to the bounding box of pixels that are not near-white."""
    rgb = _to_rgb(img)
    pixels = np.asarray(rgb)
    floor = 255 - threshold
    content = np.any(pixels <= floor, axis=2)
    if not content.any():
        return rgb
    rows = np.flatnonzero(content.any(axis=1))
    cols = np.flatnonzero(content.any(axis=0))
    return rgb.crop((int(cols[0]), int(rows[0]), int(cols[-1]) + 1, int(rows[-1]) + 1))


def composite_grid_image(
    images: Sequence[bytes],
    width: int = CANVAS_WIDTH,
    height: int = CANVAS_HEIGHT,
    padding: int = GRID_PADDING,
    quality: int = 80,
) -> bytes:
    """Lay out ``images`` on a white canvas, fit-without-crop and centered per cell."""
    if not images:
        raise InvalidImage("No images provided for grid generation")

    layout = grid_layout(len(images))
    cell_width = (width - (layout.cols - 1) * padding) // layout.cols
    cell_height = (height - (layout.rows - 1) * padding) // layout.rows

    canvas = Image.new("RGB", (width, height), BACKGROUND)
    for index, data in enumerate(images):
        with Image.open(io.BytesIO(data)) as img:
            item = trim_whitespace(img).copy()
        scale = min(cell_width / item.width, cell_height / item.height)
        size = (max(1, round(item.width * scale)), max(1, round(item.height * scale)))
        item = item.resize(size, Image.Resampling.LANCZOS)

        col, row = index % layout.cols, index // layout.cols
        x = col * (cell_width + padding) + (cell_width - size[0]) // 2
        y = row * (cell_height + padding) + (cell_height - size[1]) // 2
        canvas.paste(item, (x, y))

    buffer = io.BytesIO()
    canvas.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def optimize_image_bytes(data: bytes, max_dim: int = 1024, quality: int = 80) -> bytes:
    """Downscale so the longest side is at most ``max_dim`` and re-encode as JPEG."""
    with Image.open(io.BytesIO(data)) as img:
        img = _to_rgb(img)
        # thumbnail() never upscales
        img.thumbnail((max_dim, max_dim), Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality, optimize=True, progressive=True)
        return buffer.getvalue()


class ImagePipeline:
    """Image stages for one dispatch, bound to that dispatch's clients."""

    def __init__(
        self,
        rest: SupabaseRestClient,
        media: MediaStore,
        gemini: GeminiClient,
        signed_url_ttl: int = 60,
        optimize_max_dim: int = 1024,
        optimize_quality: int = 80,
        debug_output_dir: Optional[Path] = None,
    ):
        self.rest = rest
        self.media = media
        self.gemini = gemini
        self.signed_url_ttl = signed_url_ttl
        self.optimize_max_dim = optimize_max_dim
        self.optimize_quality = optimize_quality
        self.debug_output_dir = debug_output_dir

    async def download(self, owner_id: str, image_id: str) -> ImageData:
        record = await self.rest.select_one(
            IMAGES_TABLE,
            {"id": eq(image_id), "owner_user_id": eq(owner_id)},
            columns="id,storage_bucket,storage_key,mime_type",
        )
        if not record or not record.get("storage_key"):
            raise ImageNotFound(f"Image not found: {image_id}")

        data = await self.media.download_object(
            record["storage_key"],
            bucket=record.get("storage_bucket"),
            expires_in=self.signed_url_ttl,
        )
        sniffed = self._sniff(data, f"image {image_id}")
        stored = record.get("mime_type")
        if stored and stored != sniffed:
            logger.info(f"Image {image_id} stored as {stored} but is {sniffed}")
        return ImageData(data=data, mime_type=sniffed)

    async def download_storage_path(self, owner_id: str, path: str) -> ImageData:
        """Fetch a raw storage path; only paths under the owner's prefix are allowed."""
        if not path.startswith(f"{owner_id}/") or ".." in path.split("/"):
            raise InvalidInput(f"Storage path is not owned by this user: {path}")
        data = await self.media.download_object(path, expires_in=self.signed_url_ttl)
        return ImageData(data=data, mime_type=self._sniff(data, path))

    async def download_many(self, owner_id: str, image_ids: Sequence[str]) -> List[ImageData]:
        return await run_all(*(self.download(owner_id, image_id) for image_id in image_ids))

    @staticmethod
    def _sniff(data: bytes, label: str) -> str:
        mime_type = sniff_mime_type(data)
        if mime_type is None:
            raise InvalidImage(f"Unsupported image format for {label}")
        return mime_type

    async def composite_grid(self, images: Sequence[ImageData]) -> ImageData:
        layout = grid_layout(len(images))
        logger.info(f"Compositing {len(images)} items into a {layout.cols}x{layout.rows} grid")
        try:
            data = await asyncio.to_thread(composite_grid_image, [image.data for image in images])
        except (OSError, ValueError) as e:
            raise InvalidImage(f"Failed to composite grid: {e}") from e
        return ImageData(data=data, mime_type=JPEG)

    async def generate(
        self,
        prompt: str,
        images: Sequence[ImageData],
        model: str,
        response_type: str = RESPONSE_IMAGE,
    ):
        return await self.gemini.generate(prompt, images, model, response_type)

    async def optimize(self, image: ImageData) -> ImageData:
        """Best-effort resize and recompress; returns ``image`` unchanged on any failure."""
        try:
            data = await asyncio.to_thread(
                optimize_image_bytes, image.data, self.optimize_max_dim, self.optimize_quality
            )
        except Exception as e:
            logger.warning(f"Image optimization failed, keeping original bytes: {e}")
            return image
        logger.info(f"Optimized image from {len(image.data)} to {len(data)} bytes")
        return ImageData(data=data, mime_type=JPEG)

    async def upload(
        self, owner_id: str, image: ImageData, purpose: str, disambiguator: str
    ) -> ImageRef:
        key = storage_key(owner_id, purpose, disambiguator)
        mime_type = sniff_mime_type(image.data) or image.mime_type
        await self.media.upload(key, image.data, content_type=mime_type)

        try:
            rows = await self.rest.insert(
                IMAGES_TABLE,
                {
                    "owner_user_id": owner_id,
                    "storage_bucket": self.media.bucket,
                    "storage_key": key,
                    "mime_type": mime_type,
                    "source": "ai_generated",
                },
            )
        except SupabaseError as e:
            raise RecordCreateFailed(f"Failed to create DB record: {e}") from e
        if not rows or rows[0].get("id") is None:
            raise RecordCreateFailed("Failed to create DB record: no row returned")

        if self.debug_output_dir is not None:
            await self._dump(key, image.data)
        return ImageRef(image_id=str(rows[0]["id"]), storage_key=key, mime_type=mime_type)

    async def _dump(self, key: str, data: bytes) -> None:
        target = Path(self.debug_output_dir) / key
        target.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(target, "wb") as f:
            await f.write(data)
        logger.debug(f"Wrote debug copy to {target}")

    async def finalize(
        self, owner_id: str, image: ImageData, purpose: str, disambiguator: str
    ) -> ImageRef:
        """Optimize then upload; the common tail of every image handler."""
        optimized = await self.optimize(image)
        return await self.upload(owner_id, optimized, purpose, disambiguator)
