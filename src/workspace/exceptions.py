"""Custom exceptions for workspace validation and deployment."""

from enum import StrEnum

from src.workspace.models import ValidationResult


class WorkspaceError(Exception):
    """Base exception for workspace deployment errors."""


class WorkspaceValidationError(WorkspaceError):
    """Raised when a workspace spec is incompatible with the Notion API.

    Carries the full validation result so callers can show every violation.
    """

    def __init__(self, result: ValidationResult) -> None:
        """Initialise WorkspaceValidationError.

        :param result: The failed validation result.
        """
        self.result = result
        super().__init__(
            f"Workspace specification is incompatible with Notion API: {len(result.errors)} error(s)"
        )


class RateLimitExceededError(WorkspaceError):
    """Raised when a rate-limited operation is still failing after all retries."""

    def __init__(self, attempts: int) -> None:
        """Initialise RateLimitExceededError.

        :param attempts: Number of attempts made.
        """
        self.attempts = attempts
        super().__init__(f"Notion API rate limit exceeded after {attempts} attempts")


class DeploymentErrorKind(StrEnum):
    """Broad causes of a fatal deployment failure."""

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    INCOMPATIBLE_SPEC = "incompatible_spec"


DEPLOYMENT_SUGGESTIONS: dict[DeploymentErrorKind, tuple[str, str]] = {
    DeploymentErrorKind.AUTH: (
        "Check your Notion integration settings. Ensure NOTION_INTEGRATION_SECRET is set "
        "and the integration has been shared with the parent page.",
        "https://developers.notion.com/docs/authorization",
    ),
    DeploymentErrorKind.RATE_LIMIT: (
        "Notion API rate limit exceeded. Try again in a few minutes. Notion allows roughly "
        "3 requests per second, so large workspaces take a while to deploy.",
        "https://developers.notion.com/reference/request-limits",
    ),
    DeploymentErrorKind.INCOMPATIBLE_SPEC: (
        "Check the workspace specification for compatibility issues with the Notion API.",
        "https://developers.notion.com/reference/property-value-object",
    ),
}


class DeploymentError(WorkspaceError):
    """Raised when a deployment cannot continue.

    :param message: Description of the failure.
    :param kind: Broad cause, used to pick a remediation hint.
    """

    def __init__(self, message: str, kind: DeploymentErrorKind) -> None:
        """Initialise DeploymentError."""
        self.kind = kind
        self.suggestion, self.docs = DEPLOYMENT_SUGGESTIONS[kind]
        super().__init__(message)
