"""BoxLite local sandbox provider.

Runs bundles in a local container instead of a cloud sandbox. Requires the
``local-sandbox`` extra.
"""

try:
    from sandbox_runner.sandbox.boxlite.runtime import BoxLiteRuntime

    BOXLITE_AVAILABLE = True
except ImportError:
    BOXLITE_AVAILABLE = False
    BoxLiteRuntime = None  # type: ignore[assignment,misc]

__all__ = [
    "BOXLITE_AVAILABLE",
    "BoxLiteRuntime",
]
