"""Pydantic models for Notion API data."""

from typing import Any

from pydantic import BaseModel, Field

UNKNOWN = "Unknown"


class NotionUser(BaseModel):
    """The Notion account a deployment acts on behalf of."""

    id: str = Field(default="unknown", description="Notion user or bot ID")
    name: str = Field(default="Unknown User", description="Display name")
    email: str = Field(default=UNKNOWN, description="Email of the owning person")

    @classmethod
    def from_api(cls, user: dict[str, Any]) -> "NotionUser":
        """Build a NotionUser from a ``users/me`` response.

        Integrations authenticate as bots, so the email usually lives on the
        bot's owner rather than on the user object itself.

        :param user: Raw user object from the Notion API.
        :returns: Parsed NotionUser.
        """
        person = user.get("person") or {}
        owner = (user.get("bot") or {}).get("owner") or {}
        owner_person = (owner.get("user") or {}).get("person") or {}
        email = person.get("email") or owner_person.get("email") or UNKNOWN

        return cls(
            id=user.get("id") or "unknown",
            name=user.get("name") or "Unknown User",
            email=email,
        )
