"""Shared plumbing for job type handlers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Sequence

from ..errors import InvalidInput
from ..image_pipeline import ImagePipeline
from ..job_store import JobStore
from ..jobs import Job
from ..model_resolution import ModelConfig
from ..repositories import WardrobeRepository
from ..timing import JobTimer

logger = logging.getLogger(__name__)


class PartialResultPublisher:
    """Writes non-terminal results for one job until it is closed.

    ``close`` waits for an in-flight publish, so nothing is written after the
    dispatcher's terminal write.
    """

    def __init__(self, store: JobStore, job_id: str):
        self.store = store
        self.job_id = job_id
        self.closed = False
        self.published = 0
        self._lock = asyncio.Lock()

    async def publish(self, result: Dict[str, Any]) -> bool:
        async with self._lock:
            if self.closed:
                logger.warning(f"Dropping partial result for job {self.job_id}: publisher closed")
                return False
            written = await self.store.write_partial(self.job_id, result)
            if written:
                self.published += 1
                logger.info(f"Partial result written for job {self.job_id}")
            else:
                logger.warning(f"Partial result for job {self.job_id} rejected: job not running")
            return written

    async def close(self) -> None:
        async with self._lock:
            self.closed = True


@dataclass
class HandlerContext:
    job: Job
    owner_id: str
    repo: WardrobeRepository
    pipeline: ImagePipeline
    models: ModelConfig
    publisher: PartialResultPublisher
    timer: JobTimer

    @property
    def job_id(self) -> str:
        return self.job.id


Handler = Callable[[HandlerContext, Mapping[str, Any]], Awaitable[Dict[str, Any]]]


def require(input: Mapping[str, Any], job_type: str, *fields: str) -> None:
    missing = [name for name in fields if input.get(name) in (None, "")]
    if missing:
        raise InvalidInput(f"{job_type} requires {' and '.join(missing)}")


def require_list(input: Mapping[str, Any], job_type: str, name: str) -> List[Any]:
    value = input.get(name)
    if not isinstance(value, (list, tuple)) or not value:
        raise InvalidInput(f"{job_type} requires a non-empty {name} list")
    return list(value)


def selected_item_ids(selected: Sequence[Any]) -> List[Any]:
    """Item ids from a ``selected`` list of ``{"wardrobe_item_id": ...}`` entries or bare ids."""
    ids = []
    for entry in selected:
        item_id = entry.get("wardrobe_item_id") if isinstance(entry, Mapping) else entry
        if item_id is not None:
            ids.append(item_id)
    return ids
