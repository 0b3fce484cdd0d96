"""Configuration for workspace deployment using pydantic-settings."""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeploySettings(BaseSettings):
    """Configuration for deploying workspaces to Notion.

    All settings are loaded from environment variables with the DEPLOY_
    prefix. The parent page can also be set with NOTION_PAGE_ID.

    :param parent_page_id: Page to create workspaces under. When unset, the
        most recently edited accessible page is used.
    :param max_retries: Retries for a rate-limited request.
    :param base_delay_ms: Base backoff delay in milliseconds.
    :param database_delay_ms: Base pause after each database is created.
    :param database_delay_step_ms: Extra pause per database index.
    :param database_delay_cap: Cap on the database count used to scale the pause.
    :param max_properties: Maximum properties created per database.
    :param max_page_blocks: Maximum blocks sent when creating a page.
    :param pass_through_unknown_blocks: Forward unrecognised content blocks
        to Notion unchanged instead of dropping them.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    parent_page_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("parent_page_id", "DEPLOY_PARENT_PAGE_ID", "NOTION_PAGE_ID"),
        description="Parent page for deployed workspaces",
    )
    max_retries: int = Field(default=3, ge=0, le=10, description="Retries for rate-limited requests")
    base_delay_ms: int = Field(default=1000, ge=0, description="Base backoff delay in milliseconds")
    database_delay_ms: int = Field(default=500, ge=0, description="Pause after each database")
    database_delay_step_ms: int = Field(default=100, ge=0, description="Extra pause per database index")
    database_delay_cap: int = Field(default=10, ge=1, description="Cap on the delay scaling factor")
    max_properties: int = Field(default=100, ge=1, le=100, description="Properties per database")
    max_page_blocks: int = Field(default=100, ge=1, le=100, description="Blocks per page request")
    pass_through_unknown_blocks: bool = Field(
        default=False,
        description="Forward unrecognised content blocks unchanged",
    )

    def database_delay_seconds(self, index: int, database_count: int) -> float:
        """Pause after creating the database at ``index``.

        :param index: Zero-based position of the database in the spec.
        :param database_count: Number of databases in the spec.
        :returns: Delay in seconds.
        """
        factor = min(database_count, self.database_delay_cap)
        delay_ms = self.database_delay_ms + index * factor * self.database_delay_step_ms
        return delay_ms / 1000


@lru_cache
def get_deploy_settings() -> DeploySettings:
    """Get cached deploy settings.

    Settings are loaded once and cached for the lifetime of the process.

    :returns: Configured DeploySettings instance.
    """
    return DeploySettings()
