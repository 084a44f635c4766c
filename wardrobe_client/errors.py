"""Errors raised on the requesting-device side of the job pipeline."""

from __future__ import annotations


class ClientError(Exception):
    """Base exception for job client errors."""


class JobCreateError(ClientError):
    """The job row could not be inserted."""


class TriggerError(ClientError):
    """The runner endpoint could not be called at all."""


class PollError(ClientError):
    """Base exception for polling failures."""

    def __init__(self, job_id: str, message: str = ""):
        super().__init__(message or self.__class__.__doc__)
        self.job_id = job_id


class AlreadyPolling(PollError):
    """Job already being polled."""


class CircuitOpen(PollError):
    """Circuit breaker open: too many failures."""


class PollTimeout(PollError):
    """Polling timeout."""


class JobReadError(PollError):
    """Reading the job row failed."""


class JobNotVisible(PollError):
    """Job not found."""
