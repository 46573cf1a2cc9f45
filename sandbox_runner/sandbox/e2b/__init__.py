"""E2B provider adapter."""

from sandbox_runner.sandbox.e2b.runtime import E2BRuntime

__all__ = ["E2BRuntime"]
