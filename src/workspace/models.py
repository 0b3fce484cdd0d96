"""Pydantic models for workspace specifications and deployment results.

A workspace specification is produced by an upstream generator and is only
loosely structured. These models accept what the generator emits, normalise
the most common inconsistencies, and leave strict checking to the validator.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from src.notion.models import NotionUser

# Generator spellings that map onto a Notion property type
PROPERTY_TYPE_ALIASES: dict[str, str] = {
    "multiselect": "multi_select",
    "multi-select": "multi_select",
    "phone": "phone_number",
    "text": "rich_text",
    "person": "people",
    "file": "files",
}

# Top-level property keys the generator sometimes emits outside of ``config``
_CONFIG_KEYS = (
    "options",
    "format",
    "formula",
    "expression",
    "relatedDatabase",
    "relationType",
    "relation",
    "relationProperty",
    "rollupProperty",
    "property",
    "function",
)


def _as_list(value: Any) -> list[Any]:
    """Coerce a loosely typed collection to a list."""
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> str:
    """Coerce a loosely typed scalar to a string."""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class _SpecModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)


class PropertySpec(_SpecModel):
    """A typed column definition within a database."""

    name: str = ""
    type: str = ""
    config: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def fold_config(cls, data: Any) -> Any:
        """Move generator keys emitted beside ``config`` into it.

        :param data: Raw property input.
        :returns: Normalised property input.
        """
        if not isinstance(data, dict):
            return {}

        data = dict(data)
        if not data.get("name") and data.get("title"):
            data["name"] = data["title"]

        config = dict(data["config"]) if isinstance(data.get("config"), dict) else {}
        for key in _CONFIG_KEYS:
            if key in data and key not in config:
                config[key] = data.pop(key)
        data["config"] = config
        return data

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, v: Any) -> str:
        """Coerce the property name to a string."""
        return _as_str(v)

    @field_validator("type", mode="before")
    @classmethod
    def normalise_type(cls, v: Any) -> str:
        """Lower-case the type and resolve generator aliases.

        :param v: Raw type value.
        :returns: Normalised type string (not checked against the vocabulary).
        """
        type_ = _as_str(v).strip().lower()
        return PROPERTY_TYPE_ALIASES.get(type_, type_)


class RelationSpec(_SpecModel):
    """A cross reference from a property to another database in the spec."""

    property: str = ""
    related_database: str = Field(
        default="",
        validation_alias=AliasChoices("related_database", "relatedDatabase", "database"),
    )
    type: str = ""

    @field_validator("property", "related_database", "type", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> str:
        """Coerce string fields."""
        return _as_str(v)


class ViewSpec(_SpecModel):
    """A database view. Informational only, views are not deployed."""

    name: str = ""
    type: str = ""
    filters: list[Any] = Field(default_factory=list)
    sorts: list[Any] = Field(default_factory=list)
    layout: str = ""

    @field_validator("name", "type", "layout", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> str:
        """Coerce string fields."""
        return _as_str(v)

    @field_validator("filters", "sorts", mode="before")
    @classmethod
    def coerce_lists(cls, v: Any) -> list[Any]:
        """Coerce collections to lists."""
        return _as_list(v)


class DatabaseSpec(_SpecModel):
    """A structured collection with a typed property schema."""

    name: str = ""
    description: str = ""
    properties: list[PropertySpec] = Field(default_factory=list)
    views: list[ViewSpec] = Field(default_factory=list)
    relations: list[RelationSpec] = Field(default_factory=list)
    sample_data: list[dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("sample_data", "sampleData"),
    )

    @model_validator(mode="before")
    @classmethod
    def use_title_as_name(cls, data: Any) -> Any:
        """Fall back to a ``title`` key when ``name`` is missing."""
        if not isinstance(data, dict):
            return {}
        if not data.get("name") and data.get("title"):
            return {**data, "name": data["title"]}
        return data

    @field_validator("name", "description", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> str:
        """Coerce string fields."""
        return _as_str(v)

    @field_validator("properties", "views", "relations", mode="before")
    @classmethod
    def coerce_lists(cls, v: Any) -> list[Any]:
        """Coerce collections to lists of mappings."""
        return [item for item in _as_list(v) if isinstance(item, dict)]

    @field_validator("sample_data", mode="before")
    @classmethod
    def coerce_sample_data(cls, v: Any) -> list[Any]:
        """Keep only mapping records."""
        return [item for item in _as_list(v) if isinstance(item, dict)]

    def property_named(self, name: str) -> PropertySpec | None:
        """Find a property by name.

        :param name: Property name.
        :returns: The first property declared with that name, or None.
        """
        return next((prop for prop in self.properties if prop.name == name), None)


class PageSpec(_SpecModel):
    """A standalone page with polymorphic content."""

    title: str = ""
    content: Any = None
    type: str = ""

    @field_validator("title", "type", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> str:
        """Coerce string fields."""
        return _as_str(v)

    @property
    def has_structured_content(self) -> bool:
        """Whether the content is a block list or an object wrapper."""
        return isinstance(self.content, list | dict) and bool(self.content)


class WorkspaceSpec(_SpecModel):
    """Root artifact describing an entire workspace."""

    title: str = ""
    description: str = ""
    theme: str = ""
    layout: str = ""
    databases: list[DatabaseSpec] = Field(default_factory=list)
    pages: list[PageSpec] = Field(default_factory=list)

    @field_validator("title", "description", "theme", "layout", mode="before")
    @classmethod
    def coerce_strings(cls, v: Any) -> str:
        """Coerce string fields."""
        return _as_str(v)

    @field_validator("databases", "pages", mode="before")
    @classmethod
    def coerce_lists(cls, v: Any) -> list[Any]:
        """Coerce collections to lists of mappings."""
        return [item for item in _as_list(v) if isinstance(item, dict)]

    @classmethod
    def from_raw(cls, data: WorkspaceSpec | dict[str, Any] | str) -> WorkspaceSpec:
        """Build a spec from a model, a mapping, or a JSON string.

        :param data: Raw specification.
        :returns: Parsed specification.
        :raises ValueError: If the input is not a JSON object.
        """
        if isinstance(data, WorkspaceSpec):
            return data
        if isinstance(data, str):
            data = json.loads(data)
        if not isinstance(data, dict):
            raise ValueError("Workspace specification must be a JSON object")
        return cls.model_validate(data)


class ValidationResult(BaseModel):
    """Outcome of validating a workspace spec against Notion API limits."""

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        """Whether the spec can be deployed. Warnings never block."""
        return not self.errors


class FailureKind(StrEnum):
    """Item types that can fail without aborting a deployment."""

    DATABASE = "database"
    SAMPLE_ROW = "sample_row"
    RELATION = "relation"
    ROLLUP = "rollup"
    PAGE = "page"


class DeploymentFailure(BaseModel):
    """A single item that failed during an otherwise successful deployment."""

    kind: FailureKind
    name: str
    error: str


class DeployedWorkspace(BaseModel):
    """Result of deploying a workspace spec to Notion."""

    page_id: str
    url: str
    databases: dict[str, str] = Field(default_factory=dict)
    pages: dict[str, str] = Field(default_factory=dict)
    failures: list[DeploymentFailure] = Field(default_factory=list)
    notion_user: NotionUser = Field(default_factory=NotionUser)

    @property
    def is_partial(self) -> bool:
        """Whether any item failed during the deployment."""
        return bool(self.failures)
