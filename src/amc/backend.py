"""Display backend interface and its errors."""

from __future__ import annotations

from typing import AsyncIterator, Protocol, Sequence

from .models import ConfigOperation, ConnectedOutput, ScreenState


class BackendUnavailable(ConnectionError):
    """Raised when the display server connection is missing or lost."""
    pass


class BackendError(Exception):
    """Raised when the display server rejects an operation.

    *index* is the position of the first failing operation in the submitted
    sequence, or None when the failure is not tied to one operation.
    """

    def __init__(
        self,
        detail: str,
        index: int | None = None,
        operation: ConfigOperation | None = None,
    ) -> None:
        self.detail = detail
        self.index = index
        self.operation = operation
        if operation is not None:
            detail = f"operation {index} ({operation.connector} {operation.identity}): {detail}"
        super().__init__(detail)


class Backend(Protocol):
    def query_outputs(self) -> list[ConnectedOutput]: ...

    # None when the backend cannot tell; the cycle then compares outputs only
    def query_screen(self) -> ScreenState | None: ...

    def submit(self, operations: Sequence[ConfigOperation]) -> None: ...

    def subscribe_hotplug(self) -> AsyncIterator[str]: ...
