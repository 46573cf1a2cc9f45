"""Errors raised by the sandbox runner."""


class RunnerError(Exception):
    """Base class for sandbox runner failures."""


class SessionNotFoundError(RunnerError, KeyError):
    """Raised when an operation references a session id the registry does not hold.

    Callers that need idempotent teardown should treat this as "already stopped".
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class SessionStateError(RunnerError):
    """Raised when a session is asked to move backwards in its lifecycle."""

    def __init__(self, session_id: str, current: str, requested: str):
        self.session_id = session_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Session {session_id} cannot move from '{current}' to '{requested}'"
        )


class BundleTransportError(RunnerError):
    """Raised when packing, uploading, extracting or installing a bundle fails.

    Carries the remote exit code and captured output verbatim so the failure can
    be diagnosed without re-running.
    """

    def __init__(self, stage: str, exit_code: int | None, output: str, message: str | None = None):
        self.stage = stage
        self.exit_code = exit_code
        self.output = output
        if message is None:
            message = f"Bundle {stage} failed (exit {exit_code}): {output}"
        super().__init__(message)
