"""In-memory image values passed between pipeline stages."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Optional

JPEG = "image/jpeg"
PNG = "image/png"
WEBP = "image/webp"


def sniff_mime_type(data: bytes) -> Optional[str]:
    """Detect JPEG, PNG or WebP from magic bytes; ``None`` for anything else."""
    if data[:3] == b"\xff\xd8\xff":
        return JPEG
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return PNG
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return WEBP
    return None


@dataclass(frozen=True)
class ImageData:
    data: bytes
    mime_type: str = JPEG

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @classmethod
    def from_base64(cls, encoded: str, mime_type: Optional[str] = None) -> "ImageData":
        raw = base64.b64decode(encoded)
        return cls(data=raw, mime_type=sniff_mime_type(raw) or mime_type or JPEG)


@dataclass(frozen=True)
class ImageRef:
    image_id: str
    storage_key: str
    mime_type: str = JPEG
