"""Atomic operation boundary and re-entrancy guard."""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..errors import ReentrancyError
from ..models import EngineEvent

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[bool]]


class ReentrancyGuard:
    """Single-entry flag shared by every mutating operation of one engine.

    Entry while another operation holds the guard fails immediately; there is
    no waiting.
    """

    def __init__(self) -> None:
        self._holder: str | None = None

    @property
    def locked(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> str | None:
        return self._holder

    def acquire(self, operation: str) -> None:
        if self._holder is not None:
            raise ReentrancyError(
                f"Cannot start {operation} while {self._holder} is in progress"
            )
        self._holder = operation

    def release(self) -> None:
        self._holder = None


@dataclass
class _PendingCompensation:
    description: str
    action: Compensation


class Transaction:
    """Collaborator side effects and events staged by one operation.

    Every successful external call registers its inverse with
    ``on_rollback``; ``compensate`` runs them newest first. Events are only
    published by the engine once the operation commits.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self._compensations: list[_PendingCompensation] = []
        self._events: list[EngineEvent] = []

    @property
    def events(self) -> tuple[EngineEvent, ...]:
        return tuple(self._events)

    def on_rollback(self, description: str, action: Compensation) -> None:
        self._compensations.append(_PendingCompensation(description, action))

    def emit(self, event: EngineEvent) -> None:
        self._events.append(event)

    async def compensate(self) -> list[str]:
        """Undo registered side effects; returns descriptions that failed.

        A failing compensation is logged and does not stop the remaining
        ones from running. An interrupt (e.g. ``asyncio.CancelledError``)
        raised by a compensation is re-raised once all of them have run.
        """
        failed: list[str] = []
        interrupted: BaseException | None = None
        while self._compensations:
            pending = self._compensations.pop()
            try:
                ok = await pending.action()
            except Exception as e:
                logger.error(
                    "%s: compensation '%s' raised: %s",
                    self.operation,
                    pending.description,
                    e,
                )
                failed.append(pending.description)
                continue
            except BaseException as e:
                logger.error(
                    "%s: compensation '%s' interrupted: %s",
                    self.operation,
                    pending.description,
                    type(e).__name__,
                )
                failed.append(pending.description)
                if interrupted is None:
                    interrupted = e
                continue
            if not ok:
                logger.error(
                    "%s: compensation '%s' reported failure",
                    self.operation,
                    pending.description,
                )
                failed.append(pending.description)
        self._events.clear()
        if interrupted is not None:
            raise interrupted
        return failed
