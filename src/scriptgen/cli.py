"""Command line entry point printing check scripts.

Usage:
    python -m scriptgen create [--database NAME]
    python -m scriptgen check-create
    python -m scriptgen check-perms [--blueprint PATH]
    python -m scriptgen check-valid [--blueprint PATH]
    python -m scriptgen evaluate check-valid --catalog snapshot.json
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from dotenv import load_dotenv

from schema.blueprint import Blueprint, default_blueprint, load_blueprint
from scriptgen.catalog import CatalogSnapshot
from scriptgen.composer import (
    Pipeline,
    interaction_permission_pipeline,
    provisioning_permission_pipeline,
    structural_validation_pipeline,
)
from scriptgen.config import validate_configuration
from scriptgen.errors import CompositionError
from scriptgen.provisioning import build_create_database_script

logger = logging.getLogger(__name__)

PIPELINES: Dict[str, Callable[[Blueprint], Pipeline]] = {
    # Blueprints without server, database or schema requirements get the default checks.
    "check-create": lambda blueprint: provisioning_permission_pipeline(
        blueprint.provisioning_permissions or None
    ),
    "check-perms": lambda blueprint: interaction_permission_pipeline(
        blueprint.tables, blueprint.interaction_permissions
    ),
    "check-valid": lambda blueprint: structural_validation_pipeline(blueprint.tables),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scriptgen", description="Generate SQL Server provisioning and check scripts."
    )
    parser.add_argument("--blueprint", help="JSON blueprint (defaults to City/Country)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Print the database creation script")
    create.add_argument("--database", help="Name of the database to create")
    create.add_argument("--file-growth-mb", type=int, help="File growth increment in MB")

    for name in PIPELINES:
        subparsers.add_parser(name, help=f"Print the {name} procedure")

    evaluate = subparsers.add_parser(
        "evaluate", help="Evaluate a check against a catalog snapshot instead of printing it"
    )
    evaluate.add_argument("pipeline", choices=sorted(PIPELINES))
    evaluate.add_argument("--catalog", required=True, help="JSON catalog snapshot")
    return parser


def _load_blueprint(path: Optional[str]) -> Blueprint:
    if path:
        return load_blueprint(path)
    return default_blueprint()


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        settings = validate_configuration()
        logging.basicConfig(level=settings.log_level.upper(), stream=sys.stderr)
        blueprint = _load_blueprint(args.blueprint or settings.blueprint_path)

        if args.command == "create":
            print(
                build_create_database_script(
                    args.database or settings.database_name,
                    blueprint.tables,
                    file_growth_mb=args.file_growth_mb or settings.file_growth_mb,
                ),
                end="",
            )
            return 0

        if args.command == "evaluate":
            catalog = CatalogSnapshot.model_validate_json(
                Path(args.catalog).read_text(encoding="utf-8")
            )
            outcome = PIPELINES[args.pipeline](blueprint).evaluate(catalog)
            print(outcome.token)
            if not outcome.is_success:
                logger.info("%s failed in %s", args.pipeline, outcome.fragment)
            return 0 if outcome.is_success else 1

        print(PIPELINES[args.command](blueprint).render(), end="")
        return 0
    except (CompositionError, RuntimeError, ValueError, OSError) as exc:
        print(f"scriptgen: {exc}", file=sys.stderr)
        return 2
