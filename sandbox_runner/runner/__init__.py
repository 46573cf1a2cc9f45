"""Sandbox runner: bundle transport, readiness probing and session lifecycle."""

from sandbox_runner.runner.errors import (
    BundleTransportError,
    RunnerError,
    SessionNotFoundError,
    SessionStateError,
)
from sandbox_runner.runner.models import RunnerSession, RunnerStartOptions, SessionStatus
from sandbox_runner.runner.registry import SessionRegistry
from sandbox_runner.runner.sandbox_runner import SandboxRunner

__all__ = [
    "SandboxRunner",
    "SessionRegistry",
    "RunnerSession",
    "RunnerStartOptions",
    "SessionStatus",
    "RunnerError",
    "SessionNotFoundError",
    "SessionStateError",
    "BundleTransportError",
]
