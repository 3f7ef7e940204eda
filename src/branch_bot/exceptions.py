class UnrecoverableError(ValueError):
    """Base class for all unrecoverable errors in the branch bot."""

    pass


class ValidationError(UnrecoverableError):
    """Raised when a push payload lacks the fields a run needs."""

    pass


class GitStepError(UnrecoverableError):
    """Raised when a pipeline step exits non-zero.

    ``diagnostic`` holds the step's error output verbatim and is what the
    caller sees as the failure body.
    """

    def __init__(self, step: str, diagnostic: str, returncode: int | None = None):
        self.step = step
        self.diagnostic = diagnostic
        self.returncode = returncode
        super().__init__(diagnostic)

    def __str__(self) -> str:
        return f"git step '{self.step}' failed: {self.diagnostic}"


class StatusReportError(UnrecoverableError):
    """Raised when a commit status could not be posted."""

    pass


class CleanupError(UnrecoverableError):
    """Raised when a workspace directory could not be removed."""

    pass
