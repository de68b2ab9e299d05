"""Exceptions related to chart-release."""

__all__ = [
    "ChartReleaseException",
    "InputException",
    "CommandException",
    "HelmException",
    "ValidationFailure",
    "GitHubApiException",
    "TransientAPIError",
    "NotFoundError",
    "ConcurrencyConflict",
    "MalformedResponse",
    "RegistryException",
    "ReleaseException",
]


class ChartReleaseException(Exception):
    """Generic base exception used for this library."""


class InputException(ChartReleaseException):
    """Raised when the input files or values are not formatted as expected."""


class CommandException(ChartReleaseException):
    """Raised when there is a failure running a subcommand."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""


class ValidationFailure(ChartReleaseException):
    """Raised when a chart fails linting or packaging."""

    def __init__(self, chart_dir: str, message: str) -> None:
        super().__init__(f"Chart {chart_dir} failed validation: {message}")
        self.chart_dir = chart_dir


class GitHubApiException(ChartReleaseException):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TransientAPIError(GitHubApiException):
    """Raised for rate limiting or network failures that may succeed on retry."""


class NotFoundError(GitHubApiException):
    """Raised when the requested GitHub object does not exist."""


class ConcurrencyConflict(GitHubApiException):
    """Raised when a branch head no longer matches the expected revision."""


class MalformedResponse(GitHubApiException):
    """Raised when a paginated listing breaks the pagination contract."""


class RegistryException(ChartReleaseException):
    """Raised when an OCI registry login or push fails."""


class ReleaseException(ChartReleaseException):
    """Raised when a required release operation fails."""

    def __init__(self, operation: str, error: BaseException) -> None:
        super().__init__(f"Failed to {operation}: {error}")
        self.operation = operation
