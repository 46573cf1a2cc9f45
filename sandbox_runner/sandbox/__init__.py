"""Sandbox providers.

This package contains:
- The SandboxRuntime protocol the runner depends on
- Provider adapters: E2B (cloud) and BoxLite (local, optional extra)
- The provider factory selecting an adapter from settings
"""

from sandbox_runner.sandbox.provider import (
    RuntimeFactory,
    create_runtime,
    get_sandbox_provider,
    is_provider_available,
    make_runtime_factory,
)
from sandbox_runner.sandbox.runtime import CommandResult, SandboxRuntime

__all__ = [
    "CommandResult",
    "SandboxRuntime",
    "RuntimeFactory",
    "create_runtime",
    "make_runtime_factory",
    "get_sandbox_provider",
    "is_provider_available",
]
