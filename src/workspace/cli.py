"""Command line interface for validating and deploying workspace specs.

Usage:
    python -m src.workspace validate spec.json
    python -m src.workspace deploy spec.json [--parent-page-id PAGE_ID]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from src.notion.client import NotionClient
from src.observability.sentry import init_sentry
from src.utils.logging import configure_logging
from src.workspace.config import DeploySettings
from src.workspace.deployer import deploy_workspace
from src.workspace.exceptions import DeploymentError, WorkspaceValidationError
from src.workspace.models import ValidationResult
from src.workspace.validator import validate_workspace_spec

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m src.workspace", description=__doc__.splitlines()[0])
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="Check a spec against Notion API limits")
    validate_parser.add_argument("spec", type=Path, help="Path to a workspace spec JSON file")

    deploy_parser = subparsers.add_parser("deploy", help="Validate and deploy a spec to Notion")
    deploy_parser.add_argument("spec", type=Path, help="Path to a workspace spec JSON file")
    deploy_parser.add_argument("--parent-page-id", default=None, help="Override the parent page")

    return parser


def _load_spec(path: Path) -> dict[str, Any]:
    """Read a spec file.

    :param path: Path to a JSON file.
    :returns: Parsed JSON object.
    :raises ValueError: If the file is not a JSON object.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def _print_validation(result: ValidationResult) -> None:
    print(json.dumps({"valid": result.valid, "errors": result.errors, "warnings": result.warnings}, indent=2))


def main(argv: list[str] | None = None) -> int:
    """Run the CLI.

    :param argv: Arguments, defaulting to ``sys.argv[1:]``.
    :returns: Process exit code.
    """
    load_dotenv()
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level, stream=sys.stderr)
    init_sentry(args.command)

    try:
        spec = _load_spec(args.spec)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read workspace spec: {e}")
        return 1

    if args.command == "validate":
        result = validate_workspace_spec(spec)
        _print_validation(result)
        return 0 if result.valid else 1

    settings = DeploySettings()
    if args.parent_page_id:
        settings = settings.model_copy(update={"parent_page_id": args.parent_page_id})

    try:
        deployed = deploy_workspace(spec, client=NotionClient(), settings=settings)
    except WorkspaceValidationError as e:
        _print_validation(e.result)
        return 1
    except DeploymentError as e:
        logger.error(f"{e} ({e.suggestion} See {e.docs})")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 1

    print(deployed.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
