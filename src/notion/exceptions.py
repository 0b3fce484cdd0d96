"""Custom exceptions for the Notion API client."""


class NotionClientError(Exception):
    """Raised when a Notion API request fails.

    This exception covers HTTP errors, API-level errors returned by Notion,
    and configuration issues such as missing authentication tokens.

    :param message: Human readable description of the failure.
    :param status_code: HTTP status code, if the failure came from a response.
    :param code: Notion error code (e.g. ``rate_limited``), if provided.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        """Initialise NotionClientError."""
        self.status_code = status_code
        self.code = code
        super().__init__(message)
