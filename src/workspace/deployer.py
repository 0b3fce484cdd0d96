"""Deployment of workspace specs into Notion.

A deployment runs in five sequential steps:

1. Create the workspace page that holds everything else.
2. Create each database in spec order, followed by its sample rows.
3. Wire relation properties, now that every target database exists.
4. Wire rollup properties, now that the relations they read exist.
5. Create the remaining standalone pages.

Individual databases, rows, relations, rollups and pages may fail without
stopping the run; they are collected on the result. Failing to create the
workspace page, or running out of rate-limit retries while creating
databases, aborts the deployment.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from src.notion.blocks import transform_block, transform_page_content
from src.notion.client import NotionClient
from src.notion.enums import PropertyType
from src.notion.exceptions import NotionClientError
from src.notion.models import NotionUser
from src.notion.properties import (
    DatabaseSchema,
    build_database_schema,
    build_relation_schema,
    build_rollup_schema,
    property_type,
    resolve_relation_target,
    rollup_relation_name,
)
from src.notion.rows import transform_sample_row
from src.workspace.backoff import is_rate_limit_error, with_backoff
from src.workspace.config import DeploySettings, get_deploy_settings
from src.workspace.exceptions import (
    DeploymentError,
    DeploymentErrorKind,
    RateLimitExceededError,
    WorkspaceValidationError,
)
from src.workspace.models import (
    DatabaseSpec,
    DeployedWorkspace,
    DeploymentFailure,
    FailureKind,
    PropertySpec,
    WorkspaceSpec,
)
from src.workspace.validator import validate_workspace_spec

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WORKSPACE_TITLE = "Generated Workspace"
DEFAULT_WORKSPACE_DESCRIPTION = "AI-generated workspace"
DEFAULT_DATABASE_TITLE = "Database"
DEFAULT_PAGE_TITLE = "Untitled"

# Notion error codes that point at credentials or sharing rather than the spec
_AUTH_ERROR_CODES = frozenset({"unauthorized", "restricted_resource", "object_not_found"})
_AUTH_STATUS_CODES = frozenset({401, 403})

# Errors a single item may fail with without aborting the deployment
_ITEM_ERRORS = (NotionClientError, RateLimitExceededError)


def classify_deployment_error(error: BaseException) -> DeploymentErrorKind:
    """Pick the broad cause of a fatal error so callers can suggest a fix.

    :param error: The error that stopped the deployment.
    :returns: The error kind.
    """
    if is_rate_limit_error(error):
        return DeploymentErrorKind.RATE_LIMIT

    if (
        getattr(error, "status_code", None) in _AUTH_STATUS_CODES
        or getattr(error, "code", None) in _AUTH_ERROR_CODES
        or "no accessible pages" in str(error).lower()
        or "token" in str(error).lower()
    ):
        return DeploymentErrorKind.AUTH

    return DeploymentErrorKind.INCOMPATIBLE_SPEC


@dataclass
class _DeploymentState:
    """Mutable state owned by a single deployment run."""

    parent_id: str = ""
    database_ids: dict[str, str] = field(default_factory=dict)
    created: dict[int, str] = field(default_factory=dict)
    schemas: dict[int, DatabaseSchema] = field(default_factory=dict)
    property_counts: dict[int, int] = field(default_factory=dict)
    wired_relations: set[tuple[int, str]] = field(default_factory=set)
    page_ids: dict[str, str] = field(default_factory=dict)
    failures: list[DeploymentFailure] = field(default_factory=list)

    def record_failure(self, kind: FailureKind, name: str, error: Exception) -> None:
        logger.error(f"Failed to create {kind} '{name}': {error}")
        self.failures.append(DeploymentFailure(kind=kind, name=name, error=str(error)))


class WorkspaceDeployer:
    """Deploys workspace specs through a Notion client.

    Every API request goes through ``with_backoff`` individually. Requests are
    made one at a time to stay under Notion's rate limit.
    """

    def __init__(
        self,
        client: NotionClient,
        settings: DeploySettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the deployer.

        :param client: Notion client authenticated as the deploying account.
        :param settings: Deploy settings. Defaults to environment settings.
        :param sleep: Sleep function taking seconds.
        """
        self._client = client
        self._settings = settings or get_deploy_settings()
        self._sleep = sleep

    def _call(self, operation: Callable[[], T]) -> T:
        return with_backoff(
            operation,
            self._settings.max_retries,
            self._settings.base_delay_ms,
            sleep=self._sleep,
        )

    def get_notion_user(self) -> NotionUser:
        """Look up the Notion account the client acts as.

        :returns: The account, or placeholder values if the lookup fails.
        """
        try:
            return NotionUser.from_api(self._call(self._client.get_me))
        except _ITEM_ERRORS as e:
            logger.warning(f"Could not look up Notion user: {e}")
            return NotionUser()

    def deploy(
        self,
        spec: WorkspaceSpec | dict[str, Any] | str,
        *,
        notion_user: NotionUser | None = None,
    ) -> DeployedWorkspace:
        """Deploy a workspace spec.

        The spec is not validated here; use ``deploy_workspace`` for the
        validated entry point.

        :param spec: Workspace spec.
        :param notion_user: Account to report on the result. Looked up when
            not provided.
        :returns: The deployed workspace, including any per-item failures.
        :raises DeploymentError: If the workspace page cannot be created or
            rate limiting persists while creating databases.
        """
        spec = WorkspaceSpec.from_raw(spec)
        title = spec.title or DEFAULT_WORKSPACE_TITLE
        logger.info(
            f"Deploying workspace '{title}': databases={len(spec.databases)}, pages={len(spec.pages)}"
        )

        state = _DeploymentState()
        parent, first_page_consumed = self._create_parent_page(spec, state)

        self._create_databases(spec, state)
        self._wire_relations(spec, state)
        self._wire_rollups(spec, state)
        self._create_pages(spec, state, skip_first=first_page_consumed)

        user = notion_user or self.get_notion_user()
        logger.info(
            f"Workspace '{title}' deployed to Notion account {user.email} ({user.name}): "
            f"databases={len(state.database_ids)}/{len(spec.databases)}, "
            f"failures={len(state.failures)}"
        )

        return DeployedWorkspace(
            page_id=parent["id"],
            url=parent.get("url", ""),
            databases=state.database_ids,
            pages=state.page_ids,
            failures=state.failures,
            notion_user=user,
        )

    # Workspace page

    def _create_parent_page(
        self, spec: WorkspaceSpec, state: _DeploymentState
    ) -> tuple[dict[str, Any], bool]:
        """Create the page that holds the workspace.

        When the first spec page has structured content, that content becomes
        the workspace page's body and the page is not created again later.

        :returns: Tuple of (created page, whether the first page was used).
        :raises DeploymentError: If the page cannot be created.
        """
        title = spec.title or DEFAULT_WORKSPACE_TITLE
        blocks: list[dict[str, Any]] = []
        first_page_consumed = False

        if spec.pages and spec.pages[0].has_structured_content:
            blocks = self._page_blocks(spec.pages[0].content)
            first_page_consumed = bool(blocks)

        if not blocks:
            blocks = [
                block
                for block in (
                    transform_block({"type": "heading_1", "content": title}),
                    transform_block(
                        {"type": "paragraph", "content": spec.description or DEFAULT_WORKSPACE_DESCRIPTION}
                    ),
                )
                if block is not None
            ]

        try:
            parent_page_id = self._settings.parent_page_id or self._call(self._client.find_latest_page_id)
            page = self._create_page_with_blocks(parent_page_id, title, blocks, state)
        except _ITEM_ERRORS as e:
            raise DeploymentError(
                f"Failed to create workspace page: {e}", classify_deployment_error(e)
            ) from e

        state.parent_id = page["id"]
        logger.info(f"Created workspace page: {page['id']}")
        return page, first_page_consumed

    # Pass 1: databases and sample rows

    def _create_databases(self, spec: WorkspaceSpec, state: _DeploymentState) -> None:
        count = len(spec.databases)

        for index, database in enumerate(spec.databases):
            name = database.name or DEFAULT_DATABASE_TITLE
            logger.info(f"Creating database {index + 1}/{count}: {name}")

            schema = build_database_schema(database.properties, self._settings.max_properties)
            state.schemas[index] = schema

            try:
                created = self._call(
                    lambda: self._client.create_database(
                        state.parent_id,
                        name,
                        schema.properties,
                        description=database.description or None,
                    )
                )
            except RateLimitExceededError as e:
                raise DeploymentError(
                    f"Rate limit exceeded while creating database '{name}'. Please try again later.",
                    DeploymentErrorKind.RATE_LIMIT,
                ) from e
            except NotionClientError as e:
                state.record_failure(FailureKind.DATABASE, name, e)
            else:
                if name in state.database_ids:
                    logger.warning(f"Duplicate database name '{name}', relations will use the latest")
                state.database_ids[name] = created["id"]
                state.created[index] = created["id"]
                state.property_counts[index] = len(schema.properties)
                self._create_sample_rows(database, name, created["id"], schema, state)

            delay = self._settings.database_delay_seconds(index, count)
            logger.debug(f"Waiting {delay:.2f}s before the next database")
            self._sleep(delay)

    def _create_sample_rows(
        self,
        database: DatabaseSpec,
        name: str,
        database_id: str,
        schema: DatabaseSchema,
        state: _DeploymentState,
    ) -> None:
        """Create each sample row of a database, one request per row.

        :raises DeploymentError: If rate limiting persists after retries.
        """
        for row_number, record in enumerate(database.sample_data, start=1):
            values = transform_sample_row(record, schema.deployed)
            if not values:
                logger.debug(f"Skipping empty sample row {row_number} for database '{name}'")
                continue

            try:
                self._call(lambda: self._client.create_database_page(database_id, values))
            except RateLimitExceededError as e:
                raise DeploymentError(
                    f"Rate limit exceeded while adding sample data to '{name}'. Please try again later.",
                    DeploymentErrorKind.RATE_LIMIT,
                ) from e
            except NotionClientError as e:
                state.record_failure(FailureKind.SAMPLE_ROW, f"{name} row {row_number}", e)

        if database.sample_data:
            logger.info(f"Added sample data to database '{name}': rows={len(database.sample_data)}")

    # Pass 2: relations

    def _wire_relations(self, spec: WorkspaceSpec, state: _DeploymentState) -> None:
        for index, database in enumerate(spec.databases):
            database_id = state.created.get(index)
            if database_id is None:
                continue

            for prop in _relation_properties(database):
                if prop.name in state.schemas[index].properties:
                    logger.warning(f"Relation '{prop.name}' clashes with an existing property, skipping")
                    continue

                target_name, relation_type = resolve_relation_target(database, prop)
                target_id = state.database_ids.get(target_name) if target_name else None
                if target_id is None:
                    logger.info(
                        f"Skipping relation '{prop.name}' on '{database.name}': "
                        f"database '{target_name}' was not created"
                    )
                    continue

                if not self._has_property_capacity(index, state, prop.name):
                    continue

                update = {prop.name: build_relation_schema(target_id, relation_type)}
                try:
                    self._call(lambda: self._client.update_database(database_id, update))
                except _ITEM_ERRORS as e:
                    state.record_failure(FailureKind.RELATION, f"{database.name}.{prop.name}", e)
                    continue

                state.wired_relations.add((index, prop.name))
                state.property_counts[index] += 1
                logger.info(f"Wired relation '{database.name}.{prop.name}' -> '{target_name}'")

    # Pass 3: rollups

    def _wire_rollups(self, spec: WorkspaceSpec, state: _DeploymentState) -> None:
        for index, database in enumerate(spec.databases):
            database_id = state.created.get(index)
            if database_id is None:
                continue

            declared_relations = {prop.name for prop in _relation_properties(database)}

            for prop in database.properties:
                if property_type(prop) is not PropertyType.ROLLUP or not prop.name.strip():
                    continue

                update = build_rollup_schema(prop)
                if update is None:
                    logger.warning(f"Skipping rollup '{prop.name}': relation or source property missing")
                    continue

                # Relations not declared here may be synced from another database
                relation_name = rollup_relation_name(prop)
                if relation_name in declared_relations and (index, relation_name) not in state.wired_relations:
                    logger.info(
                        f"Skipping rollup '{prop.name}' on '{database.name}': "
                        f"relation '{relation_name}' was not wired"
                    )
                    continue

                if not self._has_property_capacity(index, state, prop.name):
                    continue

                try:
                    self._call(lambda: self._client.update_database(database_id, {prop.name: update}))
                except _ITEM_ERRORS as e:
                    state.record_failure(FailureKind.ROLLUP, f"{database.name}.{prop.name}", e)
                    continue

                state.property_counts[index] += 1
                logger.info(f"Wired rollup '{database.name}.{prop.name}' over '{relation_name}'")

    def _has_property_capacity(self, index: int, state: _DeploymentState, name: str) -> bool:
        if state.property_counts[index] < self._settings.max_properties:
            return True
        logger.warning(f"Skipping '{name}': database already has {self._settings.max_properties} properties")
        return False

    # Standalone pages

    def _create_pages(self, spec: WorkspaceSpec, state: _DeploymentState, *, skip_first: bool) -> None:
        for index, page in enumerate(spec.pages):
            if index == 0 and skip_first:
                continue

            title = page.title or DEFAULT_PAGE_TITLE
            blocks = self._page_blocks(page.content)
            try:
                created = self._create_page_with_blocks(state.parent_id, title, blocks, state)
            except _ITEM_ERRORS as e:
                state.record_failure(FailureKind.PAGE, title, e)
                continue

            key = title if title not in state.page_ids else f"{title} #{index + 1}"
            state.page_ids[key] = created["id"]

    def _page_blocks(self, content: Any) -> list[dict[str, Any]]:
        return transform_page_content(
            content, pass_through_unknown=self._settings.pass_through_unknown_blocks
        )

    def _create_page_with_blocks(
        self,
        parent_id: str,
        title: str,
        blocks: list[dict[str, Any]],
        state: _DeploymentState,
    ) -> dict[str, Any]:
        """Create a page, appending blocks beyond the per-request limit.

        :returns: The created page.
        :raises NotionClientError: If the page itself cannot be created.
        :raises RateLimitExceededError: If rate limiting persists.
        """
        limit = self._settings.max_page_blocks
        page = self._call(lambda: self._client.create_page(parent_id, title, blocks[:limit]))

        for start in range(limit, len(blocks), limit):
            chunk = blocks[start : start + limit]
            try:
                self._call(lambda: self._client.append_block_children(page["id"], chunk))
            except _ITEM_ERRORS as e:
                state.record_failure(FailureKind.PAGE, f"{title} (content from block {start + 1})", e)
                break

        return page


def _relation_properties(database: DatabaseSpec) -> list[PropertySpec]:
    """Relation properties declared on a database.

    Entries in the database's ``relations`` list that name a property not
    declared at all are included as relation properties too.
    """
    relations = [
        prop
        for prop in database.properties
        if property_type(prop) is PropertyType.RELATION and prop.name.strip()
    ]
    declared = {prop.name for prop in database.properties}
    for relation in database.relations:
        if relation.property and relation.property not in declared:
            relations.append(PropertySpec(name=relation.property, type=PropertyType.RELATION.value))
            declared.add(relation.property)
    return relations


def deploy_workspace(
    spec: WorkspaceSpec | dict[str, Any] | str,
    *,
    client: NotionClient,
    settings: DeploySettings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DeployedWorkspace:
    """Validate a workspace spec and deploy it to Notion.

    :param spec: Workspace spec.
    :param client: Notion client authenticated as the deploying account.
    :param settings: Deploy settings. Defaults to environment settings.
    :param sleep: Sleep function taking seconds.
    :returns: The deployed workspace.
    :raises WorkspaceValidationError: If the spec is incompatible with the
        Notion API. No request is made in that case.
    :raises DeploymentError: If the deployment cannot continue.
    """
    validation = validate_workspace_spec(spec)
    if not validation.valid:
        logger.error(f"Workspace validation failed: {validation.errors}")
        raise WorkspaceValidationError(validation)

    if validation.warnings:
        logger.warning(f"Workspace validation warnings: {validation.warnings}")

    deployer = WorkspaceDeployer(client, settings, sleep=sleep)
    user = deployer.get_notion_user()
    logger.info(f"Deploying workspace to Notion account: {user.email} ({user.name})")
    return deployer.deploy(spec, notion_user=user)
