from __future__ import annotations

from typing import Any, Protocol, Sequence


class RowSink(Protocol):
    """Common interface for feed outputs; rows arrive in catalog order."""

    def write_row(self, row: Sequence[Any]) -> None:
        ...

    def commit(self) -> None:
        """Publish everything written so far as the current feed."""
        ...

    def discard(self) -> None:
        """Drop everything written so far; the previous feed stays in place."""
        ...
