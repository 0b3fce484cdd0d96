"""Conversion of sample data records into Notion property values."""

import logging
import math
from collections.abc import Sequence
from typing import Any

from src.notion.blocks import transform_rich_text
from src.notion.enums import PropertyType
from src.notion.properties import option_name, property_type
from src.workspace.models import PropertySpec

logger = logging.getLogger(__name__)

_TRUTHY_STRINGS = frozenset({"true", "yes", "y", "1", "checked", "done"})

# Computed, read-only, or id-based types that sample data cannot populate
_UNWRITABLE_TYPES = frozenset(
    {
        PropertyType.FORMULA,
        PropertyType.ROLLUP,
        PropertyType.RELATION,
        PropertyType.PEOPLE,
        PropertyType.CREATED_TIME,
        PropertyType.CREATED_BY,
        PropertyType.LAST_EDITED_TIME,
        PropertyType.LAST_EDITED_BY,
    }
)


def transform_sample_row(record: dict[str, Any], properties: Sequence[PropertySpec]) -> dict[str, Any]:
    """Convert one sample data record into Notion property values.

    Keys that match no property are ignored. Empty values are skipped, except
    for checkboxes, which default to unchecked. Values that cannot be coerced
    to their property's type are dropped rather than sent as invalid data.

    :param record: Sample record keyed by property name.
    :param properties: Properties of the database the row belongs to.
    :returns: Notion property values keyed by property name.
    """
    by_name = {prop.name: prop for prop in properties}
    values: dict[str, Any] = {}

    for key, raw in record.items():
        prop = by_name.get(key)
        if prop is None:
            continue

        type_ = property_type(prop) or PropertyType.RICH_TEXT
        if type_ in _UNWRITABLE_TYPES:
            continue

        if raw is None and type_ is not PropertyType.CHECKBOX:
            continue

        value = _property_value(type_, raw)
        if value is None:
            logger.debug(f"Dropping sample value for '{key}': cannot coerce to {type_}")
            continue
        values[key] = {type_.value: value}

    return values


def _property_value(type_: PropertyType, raw: Any) -> Any:  # noqa: PLR0911
    """Coerce a raw value for one property type.

    :param type_: Property type.
    :param raw: Raw sample value.
    :returns: The Notion value body, or None if the value is unusable.
    """
    if type_ in (PropertyType.TITLE, PropertyType.RICH_TEXT):
        text = raw if isinstance(raw, str | list | dict) else str(raw)
        runs = transform_rich_text(text)
        return runs or None

    if type_ is PropertyType.NUMBER:
        return _number(raw)

    if type_ is PropertyType.CHECKBOX:
        return _checkbox(raw)

    if type_ in (PropertyType.SELECT, PropertyType.STATUS):
        return _option(raw)

    if type_ is PropertyType.MULTI_SELECT:
        items = raw if isinstance(raw, list) else [raw]
        options = [option for option in (_option(item) for item in items) if option is not None]
        return options or None

    if type_ is PropertyType.DATE:
        if isinstance(raw, str) and raw.strip():
            return {"start": raw.strip()}
        if isinstance(raw, dict) and raw.get("start"):
            return raw
        return None

    if type_ in (PropertyType.URL, PropertyType.EMAIL, PropertyType.PHONE_NUMBER):
        return raw if isinstance(raw, str) and raw else None

    if type_ is PropertyType.FILES:
        urls = raw if isinstance(raw, list) else [raw]
        files = [
            {"name": url.rsplit("/", 1)[-1][:100] or "file", "external": {"url": url}}
            for url in urls
            if isinstance(url, str) and url
        ]
        return files or None

    return None


def _number(raw: Any) -> int | float | None:
    """Parse a number, never returning NaN or infinity."""
    if isinstance(raw, bool):
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def _checkbox(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in _TRUTHY_STRINGS
    return bool(raw)


def _option(raw: Any) -> dict[str, str] | None:
    """Accept an option as a bare string or a ``{name}`` dict."""
    if isinstance(raw, dict):
        raw = raw.get("name")
    if not isinstance(raw, str | int | float):
        return None
    name = option_name(raw)
    return {"name": name} if name else None
