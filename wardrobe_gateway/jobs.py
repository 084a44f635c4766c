"""Job record, job types and the status state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidTransition


class JobType(str, Enum):
    AUTO_TAG = "auto_tag"
    PRODUCT_SHOT = "product_shot"
    HEADSHOT_GENERATE = "headshot_generate"
    BODY_SHOT_GENERATE = "body_shot_generate"
    OUTFIT_SUGGEST = "outfit_suggest"
    REFERENCE_MATCH = "reference_match"
    OUTFIT_MANNEQUIN = "outfit_mannequin"
    OUTFIT_RENDER = "outfit_render"
    WARDROBE_ITEM_GENERATE = "wardrobe_item_generate"
    WARDROBE_ITEM_RENDER = "wardrobe_item_render"
    WARDROBE_ITEM_TAG = "wardrobe_item_tag"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["JobType"]:
        try:
            return cls(raw)
        except ValueError:
            return None


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.SUCCEEDED, JobStatus.FAILED},
    JobStatus.SUCCEEDED: set(),
    JobStatus.FAILED: set(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _TRANSITIONS[current]


def ensure_transition(current: JobStatus, target: JobStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(f"cannot move job from {current.value} to {target.value}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return utcnow()


@dataclass
class Job:
    id: str
    owner_user_id: str
    job_type: str
    input: Dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.QUEUED
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def type(self) -> Optional[JobType]:
        return JobType.parse(self.job_type)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def touch(self, status: Optional[JobStatus] = None, error: Optional[str] = None) -> None:
        if status is not None:
            ensure_transition(self.status, status)
            self.status = status
        if error is not None:
            self.error = error
        self.updated_at = utcnow()

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Job":
        return cls(
            id=str(row["id"]),
            owner_user_id=str(row["owner_user_id"]),
            job_type=str(row.get("job_type") or ""),
            input=dict(row.get("input") or {}),
            status=JobStatus(row.get("status") or JobStatus.QUEUED.value),
            result=row.get("result"),
            error=row.get("error"),
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "job_type": self.job_type,
            "input": self.input,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
