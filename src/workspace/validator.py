"""Static validation of workspace specs against Notion API limits.

Validation runs before any network call. Errors block deployment; warnings
describe things the deployer will work around.
"""

import json
import logging
from collections import Counter
from typing import Any

from pydantic import ValidationError

from src.notion.enums import PropertyType
from src.notion.properties import (
    MAX_PROPERTIES,
    property_type,
    resolve_relation_target,
    rollup_relation_name,
    rollup_source_name,
)
from src.workspace.models import DatabaseSpec, PageSpec, ValidationResult, WorkspaceSpec

logger = logging.getLogger(__name__)

# Notion limit on names and titles
MAX_NAME_LENGTH = 2000

# Formulas longer than this tend to be rejected or time out
MAX_FORMULA_LENGTH = 2000


def validate_workspace_spec(spec: WorkspaceSpec | dict[str, Any] | str) -> ValidationResult:
    """Check a workspace spec against Notion API structural limits.

    Never raises: malformed input is reported as errors, and missing
    collections are treated as empty.

    :param spec: Parsed spec, raw mapping, or JSON string.
    :returns: Validation result with errors and warnings.
    """
    result = ValidationResult()

    try:
        parsed = WorkspaceSpec.from_raw(spec)
    except (ValueError, ValidationError, json.JSONDecodeError) as e:
        result.errors.append(f"Workspace specification could not be parsed: {e}")
        return result

    if not parsed.databases and not parsed.pages:
        result.warnings.append("Workspace specification has no databases and no pages")

    database_names = {database.name for database in parsed.databases}
    for index, database in enumerate(parsed.databases):
        _validate_database(database, index, database_names, result)

    for index, page in enumerate(parsed.pages):
        _validate_page(page, index, result)

    logger.debug(
        f"Validated workspace '{parsed.title}': "
        f"errors={len(result.errors)}, warnings={len(result.warnings)}"
    )
    return result


def _validate_database(
    database: DatabaseSpec,
    index: int,
    database_names: set[str],
    result: ValidationResult,
) -> None:
    label = database.name or f"#{index + 1}"

    if not database.name.strip():
        result.warnings.append(f"Database {label} has no name")
    elif len(database.name) > MAX_NAME_LENGTH:
        result.errors.append(
            f"Database name '{database.name[:50]}...' exceeds {MAX_NAME_LENGTH} characters"
        )

    if len(database.properties) > MAX_PROPERTIES:
        result.errors.append(
            f"Database '{label}' has {len(database.properties)} properties "
            f"(maximum {MAX_PROPERTIES})"
        )

    has_title = False
    for prop in database.properties:
        if not prop.name.strip():
            result.warnings.append(f"Database '{label}' has a property with a blank name, it will be skipped")
            continue

        if len(prop.name) > MAX_NAME_LENGTH:
            result.errors.append(
                f"Property name '{prop.name[:50]}...' in database '{label}' "
                f"exceeds {MAX_NAME_LENGTH} characters"
            )

        type_ = property_type(prop)
        if type_ is None:
            result.errors.append(
                f"Property '{prop.name}' in database '{label}' has unsupported type '{prop.type}'"
            )
            continue

        if type_ is PropertyType.TITLE:
            has_title = True
        elif type_ is PropertyType.FORMULA:
            expression = prop.config.get("expression") or prop.config.get("formula") or ""
            if isinstance(expression, str) and len(expression) > MAX_FORMULA_LENGTH:
                result.warnings.append(
                    f"Formula for property '{prop.name}' in database '{label}' may be too complex"
                )
        elif type_ is PropertyType.RELATION:
            target, _ = resolve_relation_target(database, prop)
            if target is None or target not in database_names:
                result.warnings.append(
                    f"Relation '{prop.name}' in database '{label}' references an unknown "
                    f"database '{target}', it will be skipped"
                )
        elif type_ is PropertyType.ROLLUP:
            if rollup_relation_name(prop) is None or rollup_source_name(prop) is None:
                result.warnings.append(
                    f"Rollup '{prop.name}' in database '{label}' is missing its relation "
                    f"or source property, it will be skipped"
                )

    if not has_title:
        result.errors.append(f"Database '{label}' has no title property")

    counts = Counter(prop.name for prop in database.properties if prop.name.strip())
    for name, count in counts.items():
        if count > 1:
            result.warnings.append(
                f"Property '{name}' is declared {count} times in database '{label}', "
                f"only the first is used"
            )

    property_names = set(counts)
    unknown_keys = sorted({key for row in database.sample_data for key in row} - property_names)
    if unknown_keys:
        result.warnings.append(
            f"Sample data for database '{label}' has fields with no matching property: "
            f"{', '.join(unknown_keys)}"
        )


def _validate_page(page: PageSpec, index: int, result: ValidationResult) -> None:
    if not page.title.strip():
        result.errors.append(f"Page #{index + 1} has no title")
    elif len(page.title) > MAX_NAME_LENGTH:
        result.errors.append(
            f"Page title '{page.title[:50]}...' exceeds {MAX_NAME_LENGTH} characters"
        )
