"""Notion API integration module for deploying workspaces."""

from src.notion.client import NotionClient
from src.notion.exceptions import NotionClientError
from src.notion.models import NotionUser

__all__ = [
    "NotionClient",
    "NotionClientError",
    "NotionUser",
]
