"""Tests for workspace deployment."""

import unittest
from typing import Any
from unittest.mock import MagicMock, call

from src.notion.client import NotionClient
from src.notion.exceptions import NotionClientError
from src.workspace.config import DeploySettings
from src.workspace.deployer import WorkspaceDeployer, classify_deployment_error, deploy_workspace
from src.workspace.exceptions import (
    DeploymentError,
    DeploymentErrorKind,
    RateLimitExceededError,
    WorkspaceValidationError,
)
from src.workspace.models import FailureKind

_BOT_USER = {
    "id": "bot-1",
    "name": "Deployer",
    "type": "bot",
    "bot": {"owner": {"type": "user", "user": {"person": {"email": "owner@example.com"}}}},
}


def _settings(**overrides: Any) -> DeploySettings:
    values: dict[str, Any] = {"parent_page_id": "root", "max_retries": 1, "base_delay_ms": 0}
    values.update(overrides)
    return DeploySettings(_env_file=None, **values)


def _mock_client() -> MagicMock:
    client = MagicMock(spec=NotionClient)
    client.get_me.return_value = _BOT_USER
    client.find_latest_page_id.return_value = "latest"

    def create_page(parent_page_id: str, title: str, children: list | None = None) -> dict:
        return {"id": f"page-{title}", "url": f"https://notion.so/{title}"}

    def create_database(
        parent_page_id: str, title: str, properties: dict, *, description: str | None = None
    ) -> dict:
        return {"id": f"db-{title}"}

    client.create_page.side_effect = create_page
    client.create_database.side_effect = create_database
    client.create_database_page.return_value = {"id": "row"}
    client.update_database.return_value = {"id": "db"}
    client.append_block_children.return_value = {"results": []}
    return client


def _database(name: str, *properties: dict, **extra: Any) -> dict:
    return {"name": name, "properties": [{"name": "Name", "type": "title"}, *properties], **extra}


def _rate_limited() -> NotionClientError:
    return NotionClientError("Notion API error 429: rate limited", status_code=429, code="rate_limited")


class TestClassifyDeploymentError(unittest.TestCase):
    """Tests for classify_deployment_error function."""

    def test_rate_limit(self) -> None:
        """Rate limit errors are classified as such."""
        self.assertEqual(classify_deployment_error(RateLimitExceededError(4)), DeploymentErrorKind.RATE_LIMIT)

    def test_auth(self) -> None:
        """Credential and sharing problems are auth errors."""
        self.assertEqual(
            classify_deployment_error(NotionClientError("denied", status_code=401)),
            DeploymentErrorKind.AUTH,
        )
        self.assertEqual(
            classify_deployment_error(NotionClientError("missing", status_code=404, code="object_not_found")),
            DeploymentErrorKind.AUTH,
        )
        self.assertEqual(
            classify_deployment_error(NotionClientError("No accessible pages found in Notion workspace")),
            DeploymentErrorKind.AUTH,
        )

    def test_other(self) -> None:
        """Anything else points at the spec."""
        self.assertEqual(
            classify_deployment_error(NotionClientError("body failed validation", status_code=400)),
            DeploymentErrorKind.INCOMPATIBLE_SPEC,
        )


class TestWorkspaceDeployer(unittest.TestCase):
    """Tests for WorkspaceDeployer."""

    def setUp(self) -> None:
        """Set up a mock client and sleep."""
        self.client = _mock_client()
        self.sleep = MagicMock()

    def _deploy(self, spec: dict, **settings: Any):
        deployer = WorkspaceDeployer(self.client, _settings(**settings), sleep=self.sleep)
        return deployer.deploy(spec)

    def test_parent_page_default_body(self) -> None:
        """The workspace page gets a heading and description by default."""
        result = self._deploy({"title": "Team Hub", "description": "Everything in one place"})

        self.assertEqual(result.page_id, "page-Team Hub")
        self.assertEqual(result.url, "https://notion.so/Team Hub")
        parent_id, title, children = self.client.create_page.call_args.args
        self.assertEqual((parent_id, title), ("root", "Team Hub"))
        self.assertEqual([block["type"] for block in children], ["heading_1", "paragraph"])
        self.assertEqual(
            children[1]["paragraph"]["rich_text"][0]["text"]["content"], "Everything in one place"
        )

    def test_default_title(self) -> None:
        """An untitled spec uses the default workspace title."""
        self._deploy({})

        self.assertEqual(self.client.create_page.call_args.args[1], "Generated Workspace")

    def test_parent_found_by_search(self) -> None:
        """Without a configured parent the latest accessible page is used."""
        self._deploy({"title": "Team"}, parent_page_id=None)

        self.client.find_latest_page_id.assert_called_once()
        self.assertEqual(self.client.create_page.call_args.args[0], "latest")

    def test_parent_page_failure_is_fatal(self) -> None:
        """Failing to create the workspace page aborts the deployment."""
        self.client.create_page.side_effect = NotionClientError(
            "Notion API error 401: API token is invalid.", status_code=401, code="unauthorized"
        )

        with self.assertRaises(DeploymentError) as context:
            self._deploy({"title": "Team", "databases": [_database("Tasks")]})

        self.assertEqual(context.exception.kind, DeploymentErrorKind.AUTH)
        self.assertIn("integration", context.exception.suggestion)
        self.client.create_database.assert_not_called()

    def test_no_accessible_pages_is_fatal(self) -> None:
        """An empty search means the integration has not been shared."""
        self.client.find_latest_page_id.side_effect = NotionClientError(
            "No accessible pages found in Notion workspace"
        )

        with self.assertRaises(DeploymentError) as context:
            self._deploy({"title": "Team"}, parent_page_id=None)

        self.assertEqual(context.exception.kind, DeploymentErrorKind.AUTH)
        self.client.create_page.assert_not_called()

    def test_first_structured_page_becomes_parent_body(self) -> None:
        """Structured content on the first page is used as the workspace body."""
        result = self._deploy(
            {
                "title": "Team",
                "pages": [
                    {"title": "Home", "content": [{"type": "callout", "content": "Welcome"}]},
                    {"title": "Guide", "content": "# Guide"},
                ],
            }
        )

        first_call, second_call = self.client.create_page.call_args_list
        self.assertEqual(first_call.args[1], "Team")
        self.assertEqual(first_call.args[2][0]["type"], "callout")
        self.assertEqual(second_call.args[1], "Guide")
        self.assertEqual(result.pages, {"Guide": "page-Guide"})

    def test_markdown_first_page_is_not_consumed(self) -> None:
        """A markdown first page is created as its own page."""
        result = self._deploy({"title": "Team", "pages": [{"title": "Guide", "content": "Hello"}]})

        self.assertEqual(self.client.create_page.call_count, 2)
        self.assertEqual(result.pages, {"Guide": "page-Guide"})

    def test_databases_created_under_parent(self) -> None:
        """Databases are created with their first-pass schema."""
        result = self._deploy(
            {
                "title": "Team",
                "databases": [
                    _database(
                        "Tasks",
                        {"name": "Due", "type": "date"},
                        {"name": "Project", "type": "relation", "relatedDatabase": "Projects"},
                        description="Work items",
                    )
                ],
            }
        )

        self.assertEqual(result.databases, {"Tasks": "db-Tasks"})
        args, kwargs = self.client.create_database.call_args
        self.assertEqual(args, ("page-Team", "Tasks", {"Name": {"title": {}}, "Due": {"date": {}}}))
        self.assertEqual(kwargs, {"description": "Work items"})

    def test_database_with_every_fallback_name_taken(self) -> None:
        """A database using all fallback title names is created with a numbered title."""
        crowded = {
            "name": "Crowded",
            "properties": [
                {"name": "Name", "type": "rich_text"},
                {"name": "Title", "type": "rich_text"},
                {"name": "Name (title)", "type": "rich_text"},
            ],
        }

        result = self._deploy({"title": "Team", "databases": [crowded, _database("Good")]})

        self.assertEqual(result.databases, {"Crowded": "db-Crowded", "Good": "db-Good"})
        self.assertEqual(result.failures, [])
        first_call = self.client.create_database.call_args_list[0]
        self.assertEqual(first_call.args[2]["Name 2"], {"title": {}})

    def test_partial_failure_continues(self) -> None:
        """A failing database is recorded and the others are still created."""

        def create_database(parent_page_id, title, properties, *, description=None):
            if title == "Broken":
                raise NotionClientError("Notion API error 400: body failed validation", status_code=400)
            return {"id": f"db-{title}"}

        self.client.create_database.side_effect = create_database

        result = self._deploy(
            {"title": "Team", "databases": [_database("A"), _database("Broken"), _database("C")]}
        )

        self.assertEqual(result.databases, {"A": "db-A", "C": "db-C"})
        self.assertTrue(result.is_partial)
        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0].kind, FailureKind.DATABASE)
        self.assertEqual(result.failures[0].name, "Broken")
        self.assertIn("body failed validation", result.failures[0].error)

    def test_database_delays(self) -> None:
        """Each database is followed by a growing pause."""
        self._deploy({"title": "Team", "databases": [_database("A"), _database("B"), _database("C")]})

        self.assertEqual(self.sleep.call_args_list, [call(0.5), call(0.8), call(1.1)])

    def test_rate_limit_while_creating_databases_is_fatal(self) -> None:
        """Running out of retries in the database pass aborts the deployment."""
        self.client.create_database.side_effect = _rate_limited()

        with self.assertRaises(DeploymentError) as context:
            self._deploy({"title": "Team", "databases": [_database("A"), _database("B")]})

        self.assertEqual(context.exception.kind, DeploymentErrorKind.RATE_LIMIT)
        self.assertIn("'A'", str(context.exception))
        self.assertEqual(self.client.create_database.call_count, 2)

    def test_rate_limit_recovers(self) -> None:
        """A transient rate limit is retried transparently."""
        self.client.create_database.side_effect = [_rate_limited(), {"id": "db-A"}]

        result = self._deploy({"title": "Team", "databases": [_database("A")]})

        self.assertEqual(result.databases, {"A": "db-A"})
        self.assertFalse(result.is_partial)

    def test_sample_rows(self) -> None:
        """Sample rows are created one request at a time."""
        self._deploy(
            {
                "title": "Team",
                "databases": [
                    _database(
                        "Tasks",
                        {"name": "Count", "type": "number"},
                        sampleData=[{"Name": "First", "Count": "3"}, {"Ghost": "x"}, {"Name": "Second"}],
                    )
                ],
            }
        )

        self.assertEqual(self.client.create_database_page.call_count, 2)
        database_id, values = self.client.create_database_page.call_args_list[0].args
        self.assertEqual(database_id, "db-Tasks")
        self.assertEqual(values["Count"], {"number": 3})
        self.assertEqual(values["Name"]["title"][0]["text"]["content"], "First")

    def test_sample_row_failure_is_recorded(self) -> None:
        """A failing row does not stop the deployment."""
        self.client.create_database_page.side_effect = [
            NotionClientError("Notion API error 400: invalid select", status_code=400),
            {"id": "row-2"},
        ]

        result = self._deploy(
            {
                "title": "Team",
                "databases": [_database("Tasks", sampleData=[{"Name": "One"}, {"Name": "Two"}])],
            }
        )

        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0].kind, FailureKind.SAMPLE_ROW)
        self.assertEqual(result.failures[0].name, "Tasks row 1")

    def test_relations_wired_after_all_databases(self) -> None:
        """Forward references resolve because relations run after every database exists."""
        self._deploy(
            {
                "title": "Team",
                "databases": [
                    _database("Tasks", {"name": "Project", "type": "relation", "relatedDatabase": "Projects"}),
                    _database("Projects"),
                ],
            }
        )

        method_names = [name for name, _, _ in self.client.method_calls]
        self.assertEqual(
            method_names,
            ["create_page", "create_database", "create_database", "update_database", "get_me"],
        )
        self.client.update_database.assert_called_once_with(
            "db-Tasks",
            {
                "Project": {
                    "relation": {
                        "database_id": "db-Projects",
                        "type": "single_property",
                        "single_property": {},
                    }
                }
            },
        )

    def test_relations_before_rollups(self) -> None:
        """Every relation is wired before any rollup."""
        self._deploy(
            {
                "title": "Team",
                "databases": [
                    _database(
                        "Projects",
                        {"name": "Tasks", "type": "relation", "relatedDatabase": "Tasks"},
                        {
                            "name": "Total Hours",
                            "type": "rollup",
                            "config": {"relation": "Tasks", "property": "Hours", "function": "sum"},
                        },
                    ),
                    _database(
                        "Tasks",
                        {"name": "Hours", "type": "number"},
                        {"name": "Project", "type": "relation", "relatedDatabase": "Projects"},
                    ),
                ],
            }
        )

        updates = [next(iter(c.args[1].values())) for c in self.client.update_database.call_args_list]
        self.assertEqual([next(iter(update)) for update in updates], ["relation", "relation", "rollup"])
        self.assertEqual(
            updates[2]["rollup"],
            {"relation_property_name": "Tasks", "rollup_property_name": "Hours", "function": "sum"},
        )

    def test_relation_to_missing_database_is_skipped(self) -> None:
        """Relations to databases that were not created are skipped quietly."""
        result = self._deploy(
            {
                "title": "Team",
                "databases": [
                    _database("Tasks", {"name": "Owner", "type": "relation", "relatedDatabase": "People"})
                ],
            }
        )

        self.client.update_database.assert_not_called()
        self.assertFalse(result.is_partial)

    def test_relations_list_adds_undeclared_relation(self) -> None:
        """Entries in a database's relations list are wired even when not declared."""
        self._deploy(
            {
                "title": "Team",
                "databases": [
                    _database("Tasks", relations=[{"property": "Project", "relatedDatabase": "Projects"}]),
                    _database("Projects"),
                ],
            }
        )

        database_id, update = self.client.update_database.call_args.args
        self.assertEqual(database_id, "db-Tasks")
        self.assertEqual(update["Project"]["relation"]["database_id"], "db-Projects")

    def test_failed_relation_skips_dependent_rollup(self) -> None:
        """A rollup over a relation that failed to wire is not attempted."""
        self.client.update_database.side_effect = NotionClientError(
            "Notion API error 400: invalid relation", status_code=400
        )

        result = self._deploy(
            {
                "title": "Team",
                "databases": [
                    _database(
                        "Projects",
                        {"name": "Tasks", "type": "relation", "relatedDatabase": "Tasks"},
                        {"name": "Count", "type": "rollup", "relation": "Tasks", "property": "Name"},
                    ),
                    _database("Tasks"),
                ],
            }
        )

        self.client.update_database.assert_called_once()
        self.assertEqual([f.kind for f in result.failures], [FailureKind.RELATION])
        self.assertEqual(result.failures[0].name, "Projects.Tasks")

    def test_rollup_failure_is_recorded(self) -> None:
        """A failing rollup is recorded and does not abort."""
        self.client.update_database.side_effect = [
            {"id": "db-Projects"},
            NotionClientError("Notion API error 400: invalid rollup", status_code=400),
        ]

        result = self._deploy(
            {
                "title": "Team",
                "databases": [
                    _database(
                        "Projects",
                        {"name": "Tasks", "type": "relation", "relatedDatabase": "Tasks"},
                        {"name": "Count", "type": "rollup", "relation": "Tasks", "property": "Name"},
                    ),
                    _database("Tasks"),
                ],
            }
        )

        self.assertEqual([f.kind for f in result.failures], [FailureKind.ROLLUP])
        self.assertEqual(result.databases, {"Projects": "db-Projects", "Tasks": "db-Tasks"})

    def test_property_limit_blocks_relations(self) -> None:
        """Relations are not added to a database already at the property limit."""
        self._deploy(
            {
                "title": "Team",
                "databases": [
                    _database(
                        "Tasks",
                        {"name": "Notes", "type": "rich_text"},
                        {"name": "Project", "type": "relation", "relatedDatabase": "Projects"},
                    ),
                    _database("Projects"),
                ],
            },
            max_properties=2,
        )

        self.client.update_database.assert_not_called()

    def test_page_failure_is_recorded(self) -> None:
        """A failing standalone page does not stop the others."""

        def create_page(parent_page_id, title, children=None):
            if title == "Broken":
                raise NotionClientError("Notion API error 400: invalid block", status_code=400)
            return {"id": f"page-{title}", "url": ""}

        self.client.create_page.side_effect = create_page

        result = self._deploy(
            {
                "title": "Team",
                "pages": [{"title": "Broken", "content": "x"}, {"title": "Fine", "content": "y"}],
            }
        )

        self.assertEqual(result.pages, {"Fine": "page-Fine"})
        self.assertEqual(result.failures[0].kind, FailureKind.PAGE)
        self.assertEqual(result.failures[0].name, "Broken")

    def test_pages_with_same_title_are_all_reported(self) -> None:
        """Repeated page titles get numbered keys instead of replacing each other."""
        result = self._deploy(
            {
                "title": "Team",
                "pages": [
                    {"title": "Guide", "content": "First"},
                    {"title": "Guide", "content": "Second"},
                ],
            }
        )

        self.assertEqual(self.client.create_page.call_count, 3)
        self.assertEqual(result.pages, {"Guide": "page-Guide", "Guide #2": "page-Guide"})

    def test_long_pages_are_appended_in_chunks(self) -> None:
        """Blocks beyond the per-request limit are appended afterwards."""
        self._deploy(
            {"title": "Team", "pages": [{"title": "Notes", "content": "a\nb\nc\nd\ne"}]},
            max_page_blocks=2,
        )

        notes_call = self.client.create_page.call_args_list[1]
        self.assertEqual(len(notes_call.args[2]), 2)
        appended = [c.args for c in self.client.append_block_children.call_args_list]
        self.assertEqual([page_id for page_id, _ in appended], ["page-Notes", "page-Notes"])
        self.assertEqual([len(blocks) for _, blocks in appended], [2, 1])

    def test_unknown_blocks_passed_through_when_enabled(self) -> None:
        """Unrecognised blocks are forwarded when configured."""
        embed = {"type": "embed", "embed": {"url": "https://example.com"}}

        self._deploy(
            {"title": "Team", "pages": [{"title": "A", "content": "x"}, {"title": "B", "content": [embed]}]},
            pass_through_unknown_blocks=True,
        )

        self.assertEqual(self.client.create_page.call_args.args[2], [embed])

    def test_notion_user_reported(self) -> None:
        """The acting account is included in the result."""
        result = self._deploy({"title": "Team"})

        self.assertEqual(result.notion_user.email, "owner@example.com")

    def test_notion_user_lookup_failure_uses_placeholder(self) -> None:
        """A failed user lookup does not fail the deployment."""
        self.client.get_me.side_effect = NotionClientError("Notion API error 500", status_code=500)

        result = self._deploy({"title": "Team"})

        self.assertEqual(result.notion_user.email, "Unknown")


class TestDeployWorkspace(unittest.TestCase):
    """Tests for deploy_workspace function."""

    def test_invalid_spec_makes_no_requests(self) -> None:
        """Validation errors stop the deployment before any request."""
        client = _mock_client()
        spec = {"title": "Team", "databases": [_database("Tasks", {"name": "X", "type": "bogus_type"})]}

        with self.assertRaises(WorkspaceValidationError) as context:
            deploy_workspace(spec, client=client, settings=_settings(), sleep=MagicMock())

        self.assertIn(
            "Property 'X' in database 'Tasks' has unsupported type 'bogus_type'",
            context.exception.result.errors,
        )
        self.assertEqual(client.method_calls, [])

    def test_valid_spec_is_deployed(self) -> None:
        """A valid spec is deployed and reports the acting account."""
        client = _mock_client()

        result = deploy_workspace(
            {"title": "Team", "databases": [_database("Tasks")]},
            client=client,
            settings=_settings(),
            sleep=MagicMock(),
        )

        self.assertEqual(result.databases, {"Tasks": "db-Tasks"})
        self.assertEqual(result.notion_user.name, "Deployer")
        client.get_me.assert_called_once()


if __name__ == "__main__":
    unittest.main()
