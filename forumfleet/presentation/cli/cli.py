"""
CLI Module

Architectural Intent:
- Command-line interface for forumfleet
- Entry point for all user interactions
- Delegates to application use cases via composition root
- Supports --verbose/--debug flags for log level control
"""

import argparse
import asyncio
import json
import logging
import sys
import traceback

from forumfleet.application.use_cases.upgrade_fleet import ExecutionPolicy
from forumfleet.domain.entities.forum_instance import parse_tags
from forumfleet.domain.errors import (
    ConfigError,
    FleetUpgradeError,
    ForumFleetError,
    UpgradeError,
)
from forumfleet.infrastructure.config import (
    DEFAULT_CONFIG_FILE,
    ForumFleetConfig,
    load_config,
)
from forumfleet.infrastructure.logging import configure_logging, level_from_name
from forumfleet.presentation.cli.console import ConsoleProgress


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forumfleet",
        description="forumfleet: manage and upgrade a fleet of Discourse forums",
    )
    parser.add_argument(
        "--config", "-c", default=DEFAULT_CONFIG_FILE, help="Path to config file"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit logs as JSON lines"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    list_parser = subparsers.add_parser(
        "list", aliases=["ls"], help="List configured forums"
    )
    list_parser.add_argument(
        "--format",
        "-f",
        choices=["plaintext", "markdown", "json"],
        default="plaintext",
        help="Output format",
    )
    list_parser.add_argument(
        "--tags",
        "-t",
        metavar="TAG1,TAG2",
        default="",
        help="Only list forums carrying any of these tags",
    )

    update_parser = subparsers.add_parser(
        "update", help="Upgrade the OS and Discourse on one forum or 'all'"
    )
    update_parser.add_argument("name", help="Forum name, or 'all' for every forum")
    update_parser.add_argument(
        "--concurrent",
        "-C",
        action="store_true",
        help="Upgrade forums in parallel (update all only)",
    )
    update_parser.add_argument(
        "--max",
        "-m",
        type=int,
        help="Maximum number of concurrent upgrades (update all only)",
    )
    update_parser.add_argument(
        "--post-changelog",
        "-p",
        action="store_true",
        help="Post a changelog entry after each successful upgrade",
    )
    update_parser.add_argument(
        "--yes", "-y", action="store_true", help="Post changelogs without asking"
    )
    return parser


def _list_forums(config: ForumFleetConfig, fmt: str, tags: str = "") -> None:
    wanted = parse_tags(tags)
    forums = [f for f in config.forums if f.matches_tags(wanted)]
    if fmt == "json":
        entries = [
            {
                "name": f.name,
                "baseurl": f.baseurl,
                "fullname": f.fullname,
                "tags": list(f.tags),
                "ssh_host": f.ssh_host,
                "changelog_topic_id": f.changelog_topic_id,
            }
            for f in forums
        ]
        print(json.dumps(entries, indent=2))
        return
    for f in forums:
        if fmt == "markdown":
            print(f"- {f.name} ({f.baseurl})")
        else:
            print(f"{f.name} - {f.baseurl}")


async def _update(args, config: ForumFleetConfig, verbose: bool) -> None:
    from forumfleet.composition_root import create_container

    if args.name != "all" and (args.concurrent or args.max is not None):
        print("[-] --concurrent/--max only apply to 'forumfleet update all'")
        sys.exit(1)
    if args.max is not None and args.max < 1:
        print("[-] --max must be at least 1")
        sys.exit(1)

    if args.name == "all":
        targets = config.targets()
        if not targets:
            print(f"[-] No forums configured in {args.config}")
            sys.exit(1)
    else:
        forum = config.find_forum(args.name)
        if forum is None:
            print(f"[-] Unknown forum: {args.name}")
            sys.exit(1)
        targets = (config.target_for(forum),)

    console = ConsoleProgress()
    try:
        container = create_container(
            config,
            progress=console,
            confirm=console.confirm,
            output=console.print,
            assume_yes=args.yes,
        )
    except ValueError as e:
        print(f"[-] Config error: {e}")
        sys.exit(1)
    policy = ExecutionPolicy.PARALLEL if args.concurrent else ExecutionPolicy.SEQUENTIAL

    try:
        outcomes = await container.upgrade_fleet.execute(
            targets,
            policy=policy,
            max_concurrency=args.max,
            post_changelog=args.post_changelog,
        )
    except UpgradeError as e:
        print(f"[-] Upgrade of {e.host} failed at step {e.step}: {e}")
        if verbose:
            traceback.print_exc()
        sys.exit(1)
    except FleetUpgradeError as e:
        print(f"[-] {e}")
        for host, error in sorted(e.errors.items()):
            step = getattr(error, "step", None)
            where = f" at step {step}" if step else ""
            print(f"    {host}{where}: {error}")
        if verbose:
            traceback.print_exc()
        sys.exit(1)
    except ForumFleetError as e:
        print(f"[-] Update failed: {e}")
        if verbose:
            traceback.print_exc()
        sys.exit(1)

    print(f"[+] Updated {len(outcomes)} forum(s).")


async def async_main():
    parser = _build_parser()
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[-] Config error: {e}")
        sys.exit(1)

    # Configure logging based on flags
    if args.debug:
        level = logging.DEBUG
    elif args.verbose:
        level = logging.INFO
    else:
        level = level_from_name(config.log_level)
    configure_logging(level=level, json_format=args.json_logs)

    verbose = args.verbose or args.debug

    if args.command in ("list", "ls"):
        _list_forums(config, args.format, args.tags)
        return

    if args.command == "update":
        await _update(args, config, verbose)
        return

    parser.print_help()


def main():
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
