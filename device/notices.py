from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Protocol

from .errors import WorkflowError


@dataclass(frozen=True)
class Notice:
    """User-visible message raised by the workflow."""

    kind: str
    message: str
    error: WorkflowError | None = None

    @classmethod
    def from_error(cls, error: WorkflowError) -> "Notice":
        return cls(kind=type(error).__name__, message=error.user_message, error=error)


class Notifier(Protocol):
    def notify(self, notice: Notice) -> None: ...


class ConsoleNotifier:
    """Print notices the way an alert dialog would show them."""

    def __init__(self, write: Callable[[str], None] = print) -> None:
        self._write = write
        self.history: List[Notice] = []

    def notify(self, notice: Notice) -> None:
        self.history.append(notice)
        self._write(f"[device] {notice.message}")


__all__ = ["Notice", "Notifier", "ConsoleNotifier"]
