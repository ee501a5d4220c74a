"""Exception hierarchy for the generation pipeline."""


class ChatlogSynthError(Exception):
    """Base class for all pipeline errors."""


class RequestValidationError(ChatlogSynthError):
    """A generation request is incomplete or inconsistent.

    Attributes:
        problems: Every problem found, in the order they were detected.
    """

    def __init__(self, problems: list[str] | str):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class NoWorkingDaysError(RequestValidationError):
    """The requested date range contains no working days."""

    def __init__(self, start_date, end_date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"No working days in range {start_date.isoformat()} to {end_date.isoformat()}"
        )


class CredentialRejectedError(ChatlogSynthError):
    """The model provider refused the supplied credential or model."""


class PersistenceError(ChatlogSynthError):
    """The backend could not store or return synthetic chat logs."""

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
