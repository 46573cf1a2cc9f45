"""In-memory session registry for the sandbox runner.

The registry is the single owner of session records. Everything it returns
to the outside world is a copy, and status changes go through ``transition``
so a session can only move forward through its lifecycle
(preparing -> pending -> running -> error), with stopped reachable from
any live state.

All access happens on the event loop thread, so no lock is taken.
"""

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any

from sandbox_runner.runner.errors import SessionNotFoundError, SessionStateError
from sandbox_runner.runner.models import RunnerSession, SessionStatus
from sandbox_runner.sandbox.runtime import SandboxRuntime

_ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PREPARING: frozenset({SessionStatus.PENDING, SessionStatus.STOPPED}),
    SessionStatus.PENDING: frozenset({SessionStatus.RUNNING, SessionStatus.STOPPED}),
    SessionStatus.RUNNING: frozenset({SessionStatus.ERROR, SessionStatus.STOPPED}),
    SessionStatus.ERROR: frozenset({SessionStatus.STOPPED}),
    SessionStatus.STOPPED: frozenset(),
}

_UPDATABLE_FIELDS = frozenset({"url", "port", "started_at"})


@dataclass
class RegistryEntry:
    """A session paired with the runtime that backs it."""

    session: RunnerSession
    runtime: SandboxRuntime
    root_dir: str | None = None
    env_vars: dict[str, str] = field(default_factory=dict)
    # Set by the first start() or stop() to take this session
    claimed: bool = False
    # Detached server process started by ``SandboxRunner.start``
    server_task: asyncio.Task[Any] | None = None
    # Set when the server process fails before the session reached running
    server_error: str | None = None


def can_transition(current: SessionStatus, requested: SessionStatus) -> bool:
    """Whether a session in ``current`` may move to ``requested``."""
    return requested in _ALLOWED_TRANSITIONS[current]


class SessionRegistry:
    """Maps session id to its record and sandbox runtime."""

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def register(
        self,
        session: RunnerSession,
        runtime: SandboxRuntime,
        env_vars: dict[str, str] | None = None,
    ) -> RegistryEntry:
        """Insert a new session.

        Raises:
            ValueError: If a session with the same id is already registered
        """
        if session.id in self._entries:
            raise ValueError(f"Session {session.id} is already registered")
        entry = RegistryEntry(
            session=replace(session),
            runtime=runtime,
            env_vars=dict(env_vars or {}),
        )
        self._entries[session.id] = entry
        return entry

    def get_entry(self, session_id: str) -> RegistryEntry | None:
        return self._entries.get(session_id)

    def require(self, session_id: str) -> RegistryEntry:
        """Return the entry for ``session_id`` or raise SessionNotFoundError."""
        entry = self._entries.get(session_id)
        if entry is None:
            raise SessionNotFoundError(session_id)
        return entry

    def snapshot(self, session_id: str) -> RunnerSession | None:
        """Return a copy of the session record, or None if unknown."""
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        return replace(entry.session)

    def find_pending(self, port: int) -> RegistryEntry | None:
        """Find a prepared session on ``port`` that no start() has claimed yet."""
        for entry in self._entries.values():
            if (
                entry.session.status == SessionStatus.PENDING
                and entry.session.port == port
                and not entry.claimed
            ):
                return entry
        return None

    def transition(
        self,
        session_id: str,
        status: SessionStatus,
        **updates: Any,
    ) -> RunnerSession:
        """Move a session to ``status`` and apply field updates.

        Args:
            session_id: Session to update
            status: Requested status
            **updates: Any of ``url``, ``port``, ``started_at``

        Returns:
            Copy of the updated session

        Raises:
            SessionNotFoundError: If the session is unknown
            SessionStateError: If the move is not allowed by the lifecycle
        """
        entry = self.require(session_id)
        current = entry.session.status
        if not can_transition(current, status):
            raise SessionStateError(session_id, current.value, status.value)

        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown session fields: {sorted(unknown)}")

        entry.session = replace(entry.session, status=status, **updates)
        return replace(entry.session)

    def remove(self, session_id: str) -> RegistryEntry | None:
        return self._entries.pop(session_id, None)

    def list_sessions(self) -> list[RunnerSession]:
        """Copies of every registered session, in registration order."""
        return [replace(entry.session) for entry in self._entries.values()]

    def session_ids(self) -> list[str]:
        return list(self._entries.keys())
