"""Exception hierarchy for the event bus."""

from __future__ import annotations


class PublishError(Exception):
    """Base exception for all bus publish errors."""


class TransientPublishError(PublishError):
    """A single publish attempt failed but may succeed if retried."""


class PublishExhaustedError(PublishError):
    """Every retry was used up; the event has been dropped."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        reason = f": {last_error}" if last_error else ""
        super().__init__(f"publish failed after {attempts} attempt(s){reason}")
