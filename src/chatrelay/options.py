"""Per-call tuning options derived from user preferences."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CallOptions:
    """Ephemeral tuning parameters for one call; never persisted."""

    #: Omitted (None) lets the adapter apply its own default.
    temperature: float | None = None

    def __post_init__(self) -> None:
        """Reject negative temperatures early."""
        if self.temperature is not None and self.temperature < 0:
            raise ValueError("CallOptions.temperature must be >= 0")
