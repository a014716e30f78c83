from __future__ import annotations

import argparse
import sys
from collections.abc import Callable, Mapping

from promote_tools.common import PromoteToolError


def command_map() -> dict[str, Callable[[], None]]:
    """
    Map CLI command names to Python entry functions.

    Each value is the entry function of one workflow helper module.
    """
    from promote_tools.copy_images import main as copy_images
    from promote_tools.images import main as image_matrix
    from promote_tools.push_image_tags import main as push_image_tags
    from promote_tools.registry_login import login_dockerhub, login_ecr, login_gar
    from promote_tools.wait_for_check import main as wait_for_check

    return {
        "image-matrix": image_matrix,
        "wait-for-check": wait_for_check,
        "login-gar": login_gar,
        "login-ecr": login_ecr,
        "login-dockerhub": login_dockerhub,
        "push-image-tags": push_image_tags,
        "copy-images": copy_images,
    }


def build_parser(commands: Mapping[str, Callable[[], None]]) -> argparse.ArgumentParser:
    """Build argument parser with one positional command choice."""
    parser = argparse.ArgumentParser(
        prog="python3 -m promote_tools.cli",
        description="Run one image promotion helper command.",
    )
    parser.add_argument("command", choices=sorted(commands.keys()))
    return parser


def run_command(command: str, commands: Mapping[str, Callable[[], None]]) -> None:
    """
    Run one registered command.

    `commands` is passed in to keep this function easy to test.
    """
    commands[command]()


def main(argv: list[str] | None = None) -> None:
    # Build command registry once so parser and dispatcher use the same keys.
    commands = command_map()
    parser = build_parser(commands)
    args = parser.parse_args(argv)

    try:
        run_command(args.command, commands)
    except PromoteToolError as exc:
        # Keep failures short and readable in workflow logs.
        print(str(exc), file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
