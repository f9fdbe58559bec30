"""Request-level result wrapper."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Result[T](BaseModel):
    """Outcome of a schema, metrics or path request.

    Request-level failures (metadata cannot be read) come back as
    ``Result.fail``. Per-instruction failures are part of the value and
    degraded-but-usable outcomes are listed in ``warnings``.
    """

    success: bool
    value: T | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, value: T, warnings: list[str] | None = None) -> Result[T]:
        return cls(success=True, value=value, warnings=warnings or [])

    @classmethod
    def fail(cls, error: str) -> Result[T]:
        return cls(success=False, error=error)

    def unwrap(self) -> T:
        """The value, or ValueError carrying the failure message."""
        if not self.success or self.value is None:
            raise ValueError(f"Request failed: {self.error}")
        return self.value
