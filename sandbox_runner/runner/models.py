"""Session and option types for the sandbox runner."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SessionStatus(str, Enum):
    """Lifecycle status of a runner session."""

    PENDING = "pending"
    PREPARING = "preparing"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass
class RunnerSession:
    """One sandbox's identity, network address and lifecycle status.

    Instances handed out by the runner are copies; mutating them has no effect
    on the registry.
    """

    id: str
    status: SessionStatus
    port: int | None = None
    url: str | None = None
    started_at: datetime | None = None


@dataclass
class RunnerStartOptions:
    """Options for ``SandboxRunner.prepare`` and ``SandboxRunner.start``."""

    output_directory: str
    env_vars: dict[str, str] = field(default_factory=dict)
    port: int | None = None
    start_command: str | None = None
    # Readiness wait in seconds
    timeout: int | None = None
