"""Event bus: fans orchestrator events out to registered observers.

Observers subscribe per event kind or to everything.  Any subset of kinds may
have no handlers; publishing to such a kind is a no-op.  A failing handler is
logged and never interrupts the orchestrator or the remaining handlers.
"""

from __future__ import annotations

import collections
import logging
from collections.abc import Callable

from airport.models.events import MigrationEvent, MigrationEventKind
from airport.models.status import MigrationAvailability
from airport.models.steps import MigrationStep

logger = logging.getLogger(__name__)

EventHandler = Callable[[MigrationEvent], None]


class MigrationEventBus:
    """Tagged-event channel between the orchestrator and its caller.

    Parameters
    ----------
    history_size:
        How many recent events to keep for inspection.
    """

    def __init__(self, history_size: int = 256) -> None:
        self._handlers: dict[MigrationEventKind, list[EventHandler]] = {
            kind: [] for kind in MigrationEventKind
        }
        self._catch_all: list[EventHandler] = []
        self._history: collections.deque[MigrationEvent] = collections.deque(
            maxlen=history_size
        )

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, kind: MigrationEventKind, handler: EventHandler) -> None:
        """Register a handler for one event kind.  Duplicates are ignored."""
        if handler not in self._handlers[kind]:
            self._handlers[kind].append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Register a handler for every event kind."""
        if handler not in self._catch_all:
            self._catch_all.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove a handler from every list it appears in."""
        for handlers in self._handlers.values():
            if handler in handlers:
                handlers.remove(handler)
        if handler in self._catch_all:
            self._catch_all.remove(handler)

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    def publish(self, event: MigrationEvent) -> int:
        """Deliver ``event`` to its handlers.

        Returns the number of handlers that accepted the event.
        """
        self._history.append(event)
        delivered = 0
        for handler in [*self._handlers[event.kind], *self._catch_all]:
            try:
                handler(event)
                delivered += 1
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Event handler %r failed for %s: %s",
                    handler,
                    event.kind.value,
                    exc,
                )
        return delivered

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def history(self) -> list[MigrationEvent]:
        """Recent events, oldest first."""
        return list(self._history)

    def events_of(self, kind: MigrationEventKind) -> list[MigrationEvent]:
        return [e for e in self._history if e.kind == kind]

    def clear_history(self) -> None:
        self._history.clear()


def bind_callbacks(
    bus: MigrationEventBus,
    *,
    on_step_update: Callable[[int, MigrationStep], None] | None = None,
    on_state_update: Callable[[MigrationAvailability], None] | None = None,
    on_retry_update: Callable[[int, int], None] | None = None,
    on_show_continue_anyway: Callable[[int, bool], None] | None = None,
    on_identity_token_required: Callable[[], None] | None = None,
    on_migration_complete: Callable[[], None] | None = None,
) -> None:
    """Subscribe plain callbacks, one per event kind.  Any may be omitted."""
    if on_step_update is not None:
        bus.subscribe(
            MigrationEventKind.STEP_UPDATED,
            lambda e: on_step_update(int(e.step_index), e.step),
        )
    if on_state_update is not None:
        bus.subscribe(
            MigrationEventKind.STATE_UPDATED,
            lambda e: on_state_update(e.availability),
        )
    if on_retry_update is not None:
        bus.subscribe(
            MigrationEventKind.RETRY_COUNT_UPDATED,
            lambda e: on_retry_update(int(e.step_index), e.count),
        )
    if on_show_continue_anyway is not None:
        bus.subscribe(
            MigrationEventKind.OVERRIDE_AVAILABILITY_CHANGED,
            lambda e: on_show_continue_anyway(int(e.step_index), bool(e.flag)),
        )
    if on_identity_token_required is not None:
        bus.subscribe(
            MigrationEventKind.IDENTITY_TOKEN_REQUIRED,
            lambda e: on_identity_token_required(),
        )
    if on_migration_complete is not None:
        bus.subscribe(
            MigrationEventKind.MIGRATION_COMPLETE,
            lambda e: on_migration_complete(),
        )
