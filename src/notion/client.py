"""Notion API client for creating pages and databases."""

import logging
import os
from typing import Any

import requests

from src.notion.exceptions import NotionClientError

logger = logging.getLogger(__name__)

# Notion API timeout in seconds
REQUEST_TIMEOUT = 30

# Notion API version. Database endpoints in this version take property
# schemas directly rather than through data sources.
NOTION_VERSION = "2022-06-28"


class NotionClient:
    """Client for interacting with the Notion API.

    Provides the page, database, search and user operations needed to deploy
    a workspace.
    """

    BASE_URL = "https://api.notion.com/v1"

    def __init__(self, *, token: str | None = None) -> None:
        """Initialise the Notion client.

        :param token: Notion integration token. If not provided, reads from
            NOTION_INTEGRATION_SECRET environment variable.
        :raises ValueError: If token is not provided and not found in environment.
        """
        self._token = token or os.environ.get("NOTION_INTEGRATION_SECRET")

        if not self._token:
            raise ValueError(
                "Notion integration token not provided. Set NOTION_INTEGRATION_SECRET "
                "environment variable or pass token parameter."
            )

        logger.debug("NotionClient initialised")

    @property
    def _headers(self) -> dict[str, str]:
        """Headers for Notion API requests.

        :returns: Dictionary of required headers.
        """
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
            "Notion-Version": NOTION_VERSION,
        }

    def _request(
        self,
        method: str,
        endpoint: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a request to the Notion API.

        :param method: HTTP method.
        :param endpoint: API endpoint path (without base URL).
        :param payload: Optional request body.
        :returns: JSON response as dictionary.
        :raises NotionClientError: If the request fails.
        """
        url = f"{self.BASE_URL}/{endpoint}"
        logger.debug(f"Making {method} request to endpoint={endpoint}")

        try:
            response = requests.request(
                method,
                url,
                headers=self._headers,
                json=payload,
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            return response.json()

        except requests.exceptions.Timeout as e:
            raise NotionClientError(f"Notion API request timed out after {REQUEST_TIMEOUT}s") from e
        except requests.exceptions.HTTPError as e:
            message, code = self._extract_error(e.response)
            raise NotionClientError(
                f"Notion API request failed: {e.response.status_code} - {message}",
                status_code=e.response.status_code,
                code=code,
            ) from e
        except requests.exceptions.RequestException as e:
            raise NotionClientError(f"Notion API request failed: {e}") from e

    def _extract_error(self, response: requests.Response) -> tuple[str, str | None]:
        """Extract error message and code from a Notion API error response.

        :param response: Response object from failed request.
        :returns: Tuple of (message, Notion error code or None).
        """
        try:
            data = response.json()
        except ValueError:
            return response.text, None
        if not isinstance(data, dict):
            return response.text, None
        return data.get("message", response.text), data.get("code")

    # Page endpoints

    def create_page(
        self,
        parent_page_id: str,
        title: str,
        children: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Create a page as a child of another page.

        :param parent_page_id: Parent page ID.
        :param title: Page title.
        :param children: Optional content blocks (max 100 per request).
        :returns: Created page object.
        :raises NotionClientError: If the request fails.
        """
        logger.info(f"Creating page '{title}' under page: {parent_page_id}")
        payload: dict[str, Any] = {
            "parent": {"type": "page_id", "page_id": parent_page_id},
            "properties": {"title": {"title": [{"type": "text", "text": {"content": title}}]}},
        }
        if children:
            payload["children"] = children
        return self._request("POST", "pages", payload)

    def create_database_page(
        self,
        database_id: str,
        properties: dict[str, Any],
    ) -> dict[str, Any]:
        """Create a new page (row) in a database.

        :param database_id: Parent database ID.
        :param properties: Page property values.
        :returns: Created page object.
        :raises NotionClientError: If the request fails.
        """
        logger.debug(f"Creating page in database: {database_id}")
        payload = {
            "parent": {"type": "database_id", "database_id": database_id},
            "properties": properties,
        }
        return self._request("POST", "pages", payload)

    def append_block_children(self, block_id: str, children: list[dict[str, Any]]) -> None:
        """Append blocks to a page or block.

        :param block_id: The page or block ID.
        :param children: List of block objects to append (max 100).
        :raises NotionClientError: If the request fails.
        """
        if not children:
            logger.debug(f"No blocks to append to block: {block_id}")
            return

        logger.info(f"Appending {len(children)} blocks to block: {block_id}")
        self._request("PATCH", f"blocks/{block_id}/children", {"children": children})

    # Database endpoints

    def create_database(
        self,
        parent_page_id: str,
        title: str,
        properties: dict[str, Any],
        *,
        description: str | None = None,
    ) -> dict[str, Any]:
        """Create a database as a child of a page.

        :param parent_page_id: Parent page ID.
        :param title: Database title.
        :param properties: Property schema keyed by property name.
        :param description: Optional database description.
        :returns: Created database object.
        :raises NotionClientError: If the request fails.
        """
        logger.info(f"Creating database '{title}' under page: {parent_page_id}")
        payload: dict[str, Any] = {
            "parent": {"type": "page_id", "page_id": parent_page_id},
            "title": [{"type": "text", "text": {"content": title}}],
            "properties": properties,
        }
        if description:
            payload["description"] = [{"type": "text", "text": {"content": description[:2000]}}]
        return self._request("POST", "databases", payload)

    def update_database(self, database_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        """Add or change properties on an existing database.

        :param database_id: Notion database ID.
        :param properties: Property schema changes keyed by property name.
        :returns: Updated database object.
        :raises NotionClientError: If the request fails.
        """
        logger.info(f"Updating database: {database_id}")
        return self._request("PATCH", f"databases/{database_id}", {"properties": properties})

    # Search and users

    def search(
        self,
        *,
        query: str | None = None,
        object_type: str | None = None,
        page_size: int = 100,
    ) -> dict[str, Any]:
        """Search pages and databases shared with the integration.

        Results are sorted by last edited time, most recent first.

        :param query: Optional text to match against titles.
        :param object_type: Restrict results to ``page`` or ``database``.
        :param page_size: Number of results (max 100).
        :returns: Search results with pagination info.
        :raises NotionClientError: If the request fails.
        """
        payload: dict[str, Any] = {
            "sort": {"direction": "descending", "timestamp": "last_edited_time"},
            "page_size": min(page_size, 100),
        }
        if query:
            payload["query"] = query
        if object_type:
            payload["filter"] = {"property": "object", "value": object_type}
        return self._request("POST", "search", payload)

    def find_latest_page_id(self) -> str:
        """Find the most recently edited page the integration can access.

        :returns: Page ID.
        :raises NotionClientError: If the search fails or no page is accessible.
        """
        logger.info("Searching for the most recently edited page")
        response = self.search(object_type="page", page_size=1)
        results = response.get("results", [])
        if not results:
            raise NotionClientError("No accessible pages found in Notion workspace")
        return results[0]["id"]

    def get_me(self) -> dict[str, Any]:
        """Retrieve the user (bot) the token belongs to.

        :returns: User object.
        :raises NotionClientError: If the request fails.
        """
        return self._request("GET", "users/me")
