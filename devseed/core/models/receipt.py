"""
Receipt model — the adapter result contract.

Adapters run external tools and return Receipts. They never raise:
failures are captured in the receipt and turned into a step error by the
caller via ``raise_for_status()``, which is where the fatal/advisory
decision is made (by the step, not by the adapter).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from devseed.core.errors import BootstrapError, ExternalCapabilityFailed


class Receipt(BaseModel):
    """Result of one adapter operation.

    ``operation`` names what was attempted (``"apt install"``,
    ``"git clone"``); it is what shows up in error messages, so it must
    never contain secret material.
    """

    adapter: str
    operation: str
    status: Literal["ok", "skipped", "failed"] = "ok"
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    return_code: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def raise_for_status(self, error_cls: type[BootstrapError] = ExternalCapabilityFailed) -> Receipt:
        """Raise ``error_cls`` when the operation failed; otherwise return self."""
        if self.failed:
            detail = self.error or f"exit code {self.return_code}"
            raise error_cls(f"{self.adapter}: {self.operation} failed: {detail}")
        return self

    @classmethod
    def success(cls, adapter: str, operation: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, operation=operation, output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, operation: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, operation=operation, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, adapter: str, operation: str, reason: str = "", **kwargs: Any) -> Receipt:
        """A no-op: nothing needed doing, ``reason`` says why."""
        return cls(adapter=adapter, operation=operation, status="skipped", output=reason, **kwargs)
