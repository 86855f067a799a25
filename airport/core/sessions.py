"""In-memory session store: one migration run per authenticated context.

Between the phase-3 suspension and the token submission the run state must
stay addressable.  The store keeps the orchestrator (and its client) keyed by
the caller's session token.  Nothing here is durable: losing the process
loses the run, and the user restarts from phase 1.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone

from airport.client.protocol import RemoteCapabilityClient
from airport.core.orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when no run state exists for a session token."""


class MigrationSession:
    """A live migration bound to one session token."""

    def __init__(
        self,
        token: str,
        client: RemoteCapabilityClient,
        orchestrator: MigrationOrchestrator,
    ) -> None:
        self.token = token
        self.client = client
        self.orchestrator = orchestrator
        self.created_at = datetime.now(timezone.utc)


class SessionStore:
    """Thread-safe key-value store of migration sessions.

    Parameters
    ----------
    orchestrator_factory:
        Builds the orchestrator for a new session.  Defaults to
        ``MigrationOrchestrator(client)``.
    """

    def __init__(
        self,
        orchestrator_factory: Callable[[RemoteCapabilityClient], MigrationOrchestrator]
        | None = None,
    ) -> None:
        self._factory = orchestrator_factory or MigrationOrchestrator
        self._sessions: dict[str, MigrationSession] = {}
        self._lock = threading.Lock()

    def open(self, token: str, client: RemoteCapabilityClient) -> MigrationSession:
        """Return the session for ``token``, creating it on first use.

        An existing session keeps its orchestrator, so a second request for
        the same context never starts a parallel migration.
        """
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                session = MigrationSession(
                    token=token, client=client, orchestrator=self._factory(client)
                )
                self._sessions[token] = session
                logger.info("Opened migration session for %s", client.source_account_id)
            return session

    def get(self, token: str) -> MigrationSession:
        with self._lock:
            try:
                return self._sessions[token]
            except KeyError:
                raise SessionNotFoundError(
                    "Migration state was lost; start again from account creation"
                ) from None

    def close(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
