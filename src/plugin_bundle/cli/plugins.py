# src/plugin_bundle/cli/plugins.py
"""
Operator commands for plugin bundles.

Usage:
    plugin-bundle reload
    plugin-bundle list
    plugin-bundle migrate email_stats --dry-run
    plugin-bundle migrate email_stats --allow-destructive
    plugin-bundle drop email_stats --yes
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from plugin_bundle.config import AppSettings, SQLiteConfig, settings as default_settings
from plugin_bundle.context import PluginContext
from plugin_bundle.db.setup import initialize_database
from plugin_bundle.logging_setup import setup_logging
from plugin_bundle.services.registrar import PluginRegistrar

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plugin-bundle",
        description="Install, update and remove plugin bundle schemas",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    plugin-bundle reload
    plugin-bundle migrate email_stats --dry-run
    plugin-bundle drop email_stats --yes
        """,
    )
    parser.add_argument(
        "--plugin-dir",
        type=Path,
        default=None,
        help="Directory holding plugin bundles (default: from config)",
    )
    parser.add_argument(
        "--sqlite",
        default=None,
        help="Use this SQLite database file instead of the configured database",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("reload", help="Install new bundles, update changed ones, flag missing ones")
    sub.add_parser("list", help="Show installed plugins")

    migrate = sub.add_parser("migrate", help="Apply a generated schema diff for one bundle")
    migrate.add_argument("bundle")
    migrate.add_argument(
        "--allow-destructive",
        action="store_true",
        help="Permit dropping columns and tables",
    )
    migrate.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the statements without executing them",
    )

    drop = sub.add_parser("drop", help="Drop a bundle's tables and forget it")
    drop.add_argument("bundle")
    drop.add_argument("--yes", action="store_true", help="Confirm data loss")

    return parser


def _build_settings(args) -> AppSettings:
    app_settings = default_settings
    updates = {}
    if args.sqlite:
        updates["database"] = SQLiteConfig(db_location=args.sqlite)
    if args.plugin_dir:
        updates["plugins"] = app_settings.plugins.model_copy(update={"plugin_dir": str(args.plugin_dir)})
    if updates:
        app_settings = app_settings.model_copy(update=updates)
    return app_settings


def _print_plugins(registrar: PluginRegistrar):
    plugins = registrar.list_plugins()
    if not plugins:
        print("No plugins installed.")
        return
    for plugin in plugins:
        flag = " [missing]" if plugin.is_missing else ""
        integrations = ", ".join(i.name for i in plugin.integrations) or "-"
        print(f"  {plugin.bundle:<24} {plugin.version or '?':<10} {plugin.name}{flag}  integrations: {integrations}")


def run(argv: Optional[List[str]] = None) -> int:
    """Execute one command. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    app_settings = _build_settings(args)
    setup_logging(app_settings.logging)

    context = PluginContext.from_settings(app_settings)
    try:
        initialize_database(context.engine)
        registrar = PluginRegistrar.from_settings(context, app_settings)

        match args.command:
            case "reload":
                report = registrar.reload()
                for key in ("installed", "updated", "restored", "missing"):
                    names = getattr(report, key)
                    if names:
                        print(f"{key}: {', '.join(names)}")
                for name, error in report.failed.items():
                    print(f"failed: {name}: {error}")
                return 0 if report.ok else 1

            case "list":
                _print_plugins(registrar)
                return 0

            case "migrate":
                changes = registrar.migrate(
                    args.bundle,
                    allow_destructive=args.allow_destructive,
                    dry_run=args.dry_run,
                )
                if not changes:
                    print("Schema is up to date.")
                for change in changes:
                    marker = "!" if change.destructive else " "
                    print(f"{marker} {change.sql};")
                return 0

            case "drop":
                if not args.yes:
                    logger.error("Refusing to drop without --yes")
                    return 1
                registrar.drop(args.bundle)
                return 0

    except Exception as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        return 1
    finally:
        context.engine.dispose()

    return 1


def main():
    """CLI entry point for plugin-bundle."""
    sys.exit(run())


if __name__ == "__main__":
    main()
