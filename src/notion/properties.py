"""Conversion of declared database properties into Notion property schemas.

Database creation happens in three steps because relation and rollup
properties reference other databases and properties that may not exist yet.
``build_database_schema`` produces the first-pass schema with those two
types left out; ``build_relation_schema`` and ``build_rollup_schema`` produce
the updates applied once their targets exist.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from src.notion.enums import DEFERRED_PROPERTY_TYPES, PropertyType, RelationType, RollupFunction
from src.workspace.models import DatabaseSpec, PropertySpec

logger = logging.getLogger(__name__)

# Notion limit on properties per database
MAX_PROPERTIES = 100

FALLBACK_TITLE_NAMES = ("Name", "Title", "Name (title)")
DEFAULT_NUMBER_FORMAT = "number"
DEFAULT_FORMULA_EXPRESSION = "1"
DEFAULT_OPTION_COLOR = "default"

# Notion rejects option names longer than this or containing commas
MAX_OPTION_NAME_LENGTH = 100

OPTION_COLORS = frozenset(
    {"default", "gray", "brown", "orange", "yellow", "green", "blue", "purple", "pink", "red"}
)


@dataclass
class DatabaseSchema:
    """First-pass schema for one database.

    :param properties: Notion property schema keyed by property name.
    :param deployed: Property specs matching ``properties``, with their
        effective types (unknown types resolved to rich_text).
    :param dropped: Names of properties cut by the property limit.
    :param synthetic_title: Whether a fallback title property was added.
    """

    properties: dict[str, dict[str, Any]] = field(default_factory=dict)
    deployed: list[PropertySpec] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    synthetic_title: bool = False


def property_type(prop: PropertySpec) -> PropertyType | None:
    """Resolve a property's declared type.

    :param prop: Property spec.
    :returns: The property type, or None if it is not a Notion type.
    """
    try:
        return PropertyType(prop.type)
    except ValueError:
        return None


def transform_property(prop: PropertySpec) -> tuple[str, dict[str, Any]] | None:
    """Convert one declared property into a Notion schema entry.

    :param prop: Property spec.
    :returns: Tuple of (name, schema), or None for blank names and for
        relation/rollup properties, which are wired in later passes.
    """
    if not prop.name.strip():
        logger.warning("Skipping property with a blank name")
        return None

    type_ = property_type(prop)
    if type_ is None:
        logger.warning(f"Unknown property type '{prop.type}' for '{prop.name}', using rich_text")
        return prop.name, {PropertyType.RICH_TEXT.value: {}}

    if type_ in DEFERRED_PROPERTY_TYPES:
        return None

    return prop.name, {type_.value: _schema_config(type_, prop.config)}


def _schema_config(type_: PropertyType, config: dict[str, Any]) -> dict[str, Any]:
    if type_ is PropertyType.NUMBER:
        number_format = config.get("format")
        return {"format": number_format if isinstance(number_format, str) else DEFAULT_NUMBER_FORMAT}

    if type_ in (PropertyType.SELECT, PropertyType.MULTI_SELECT):
        return {"options": _options(config.get("options"))}

    if type_ is PropertyType.FORMULA:
        expression = config.get("expression") or config.get("formula")
        if not isinstance(expression, str) or not expression.strip():
            expression = DEFAULT_FORMULA_EXPRESSION
        return {"expression": expression}

    return {}


def option_name(raw: Any) -> str | None:
    """Make a select option name acceptable to Notion.

    Commas are replaced with spaces and the name is cut to
    ``MAX_OPTION_NAME_LENGTH`` characters.

    :param raw: Raw option name.
    :returns: Cleaned name, or None if nothing usable is left.
    """
    if raw is None or isinstance(raw, bool):
        return None
    name = " ".join(str(raw).replace(",", " ").split())[:MAX_OPTION_NAME_LENGTH].rstrip()
    return name or None


def _options(raw_options: Any) -> list[dict[str, str]]:
    """Normalise select options, dropping blanks and duplicates.

    :param raw_options: Options as strings or ``{name, color}`` dicts.
    :returns: List of Notion option objects.
    """
    if not isinstance(raw_options, list):
        return []

    options: list[dict[str, str]] = []
    seen: set[str] = set()
    for option in raw_options:
        if isinstance(option, dict):
            name, color = option.get("name"), option.get("color")
        else:
            name, color = option, None

        name = option_name(name)
        if name is None or name in seen:
            continue

        seen.add(name)
        options.append(
            {
                "name": name,
                "color": color if color in OPTION_COLORS else DEFAULT_OPTION_COLOR,
            }
        )
    return options


def build_database_schema(
    properties: list[PropertySpec],
    max_properties: int = MAX_PROPERTIES,
) -> DatabaseSchema:
    """Build the first-pass schema for a database.

    Keeps exactly one title property (adding a fallback ``Name`` title when
    there is none), keeps the first of any duplicate names, and truncates to
    ``max_properties`` entries without ever dropping the title.

    :param properties: Declared properties.
    :param max_properties: Maximum number of properties to create.
    :returns: The schema and the property specs it was built from.
    """
    entries: dict[str, tuple[PropertySpec, dict[str, Any]]] = {}
    title_name: str | None = None

    for prop in properties:
        transformed = transform_property(prop)
        if transformed is None:
            continue

        name, schema = transformed
        if name in entries:
            logger.warning(f"Ignoring duplicate property '{name}'")
            continue

        if PropertyType.TITLE in schema:
            if title_name is None:
                title_name = name
            else:
                logger.warning(f"Demoting extra title property '{name}' to rich_text")
                schema = {PropertyType.RICH_TEXT.value: {}}

        effective_type = next(iter(schema))
        entries[name] = (prop.model_copy(update={"type": effective_type}), schema)

    result = DatabaseSchema()

    if title_name is None:
        title_name = _fallback_title_name(entries)
        logger.info(f"No title property declared, adding '{title_name}'")
        title_entry = (PropertySpec(name=title_name, type=PropertyType.TITLE.value), {"title": {}})
        entries = {title_name: title_entry, **entries}
        result.synthetic_title = True

    if len(entries) > max_properties:
        remaining = max_properties - 1
        kept: dict[str, tuple[PropertySpec, dict[str, Any]]] = {}
        for name, entry in entries.items():
            if name == title_name:
                kept[name] = entry
            elif remaining > 0:
                kept[name] = entry
                remaining -= 1
            else:
                result.dropped.append(name)
        logger.warning(
            f"Database has {len(entries)} properties, dropping {len(result.dropped)} "
            f"over the limit of {max_properties}"
        )
        entries = kept

    for name, (prop, schema) in entries.items():
        result.properties[name] = schema
        result.deployed.append(prop)

    return result


def _fallback_title_name(taken: dict[str, Any]) -> str:
    """Pick a name for an injected title property that no property uses.

    :param taken: Properties already in the schema, keyed by name.
    :returns: The first free fallback name, or ``Name 2``, ``Name 3``, ...
    """
    for name in FALLBACK_TITLE_NAMES:
        if name not in taken:
            return name

    suffix = 2
    while f"{FALLBACK_TITLE_NAMES[0]} {suffix}" in taken:
        suffix += 1
    return f"{FALLBACK_TITLE_NAMES[0]} {suffix}"


def resolve_relation_target(database: DatabaseSpec, prop: PropertySpec) -> tuple[str | None, RelationType]:
    """Find the database a relation property points at.

    The database's ``relations`` list takes precedence over the property's
    own config.

    :param database: Database owning the property.
    :param prop: Relation property.
    :returns: Tuple of (related database name or None, relation type).
    """
    for relation in database.relations:
        if relation.property == prop.name and relation.related_database:
            return relation.related_database, _relation_type(relation.type or prop.config.get("relationType"))

    config = prop.config
    target = config.get("relatedDatabase") or config.get("database") or config.get("database_name")
    if not isinstance(target, str) or not target:
        target = None
    return target, _relation_type(config.get("relationType") or config.get("type"))


def _relation_type(value: Any) -> RelationType:
    try:
        return RelationType(str(value).strip().lower())
    except ValueError:
        return RelationType.SINGLE_PROPERTY


def build_relation_schema(database_id: str, relation_type: RelationType) -> dict[str, Any]:
    """Build the schema that points a relation property at a database.

    :param database_id: Related database ID.
    :param relation_type: Relation cardinality.
    :returns: Notion relation schema.
    """
    return {
        "relation": {
            "database_id": database_id,
            "type": relation_type.value,
            relation_type.value: {},
        }
    }


def rollup_relation_name(prop: PropertySpec) -> str | None:
    """Name of the relation property a rollup aggregates over."""
    config = prop.config
    name = config.get("relation") or config.get("relationProperty") or config.get("relation_property_name")
    return name if isinstance(name, str) and name else None


def rollup_source_name(prop: PropertySpec) -> str | None:
    """Name of the property on the related database a rollup reads."""
    config = prop.config
    name = config.get("property") or config.get("rollupProperty") or config.get("rollup_property_name")
    return name if isinstance(name, str) and name else None


def build_rollup_schema(prop: PropertySpec) -> dict[str, Any] | None:
    """Build the schema for a rollup property.

    :param prop: Rollup property.
    :returns: Notion rollup schema, or None when the relation or source
        property is not configured.
    """
    relation_name = rollup_relation_name(prop)
    source_name = rollup_source_name(prop)
    if relation_name is None or source_name is None:
        return None

    return {
        "rollup": {
            "relation_property_name": relation_name,
            "rollup_property_name": source_name,
            "function": _rollup_function(prop.config.get("function")).value,
        }
    }


def _rollup_function(value: Any) -> RollupFunction:
    if value is None:
        return RollupFunction.COUNT
    try:
        return RollupFunction(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Unknown rollup function '{value}', using count")
        return RollupFunction.COUNT
