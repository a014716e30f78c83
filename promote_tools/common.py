"""
Script: promote_tools/common.py
What: Shared helper functions used by all `promote_tools` modules.
Doing: Wraps env reads, command execution, skopeo login/copy calls, and output writes.
Why: Avoids duplicated helper code.
Goal: Keep behavior consistent across all helper modules.
"""

from __future__ import annotations

import os
import subprocess
from typing import Mapping, Sequence


class PromoteToolError(RuntimeError):
    """Raised when a workflow helper script hits a known error condition."""


def require_env(name: str) -> str:
    """Return a required environment variable or raise a clear error."""
    value = os.environ.get(name)
    if value is None or value == "":
        raise PromoteToolError(f"Missing required environment variable: {name}")
    return value


def optional_env(name: str, default: str = "") -> str:
    """Return an environment variable with a fallback default."""
    return os.environ.get(name, default)


def env_flag(name: str, default: bool = False) -> bool:
    """Read a `true`/`false` style environment variable."""
    return optional_env(name, "true" if default else "false").strip().lower() == "true"


def split_csv(value: str) -> list[str]:
    """Split a comma-separated setting, dropping blanks and surrounding spaces."""
    return [item.strip() for item in value.split(",") if item.strip()]


def run_cmd(
    args: Sequence[str],
    *,
    capture_output: bool = True,
    input_text: str | None = None,
) -> str:
    """
    Run a command and return stdout, raising a readable error on failure.

    `input_text` is written to stdin; secrets go there instead of into `args`.
    """
    try:
        result = subprocess.run(
            list(args),
            check=True,
            text=True,
            capture_output=capture_output,
            input=input_text,
        )
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        stdout = (exc.stdout or "").strip()
        details = stderr or stdout or f"exit status {exc.returncode}"
        raise PromoteToolError(f"Command failed: {' '.join(args)}\n{details}") from exc
    except FileNotFoundError as exc:
        raise PromoteToolError(f"Command not found: {args[0]}") from exc

    if not capture_output:
        return ""
    return result.stdout


def write_github_outputs(values: Mapping[str, str]) -> None:
    """
    Write step outputs for GitHub Actions.

    GitHub provides a file path in `GITHUB_OUTPUT`; writing `name=value` lines
    there makes that value available to later steps in the same job.
    """
    output_file = require_env("GITHUB_OUTPUT")
    with open(output_file, "a", encoding="utf-8") as handle:
        for key, value in values.items():
            handle.write(f"{key}={value}\n")


def skopeo_login(registry: str, *, username: str, password: str) -> None:
    """
    Store registry credentials for later `skopeo copy` calls.

    The password goes through stdin so it never shows up in the process list.
    """
    command = ["skopeo", "login", "--username", username, "--password-stdin", registry]
    run_cmd(command, input_text=password)


def skopeo_copy(
    source: str,
    destination: str,
    *,
    all_images: bool = True,
    retry_times: int = 3,
) -> None:
    """
    Copy an image between registry references using skopeo.

    `all_images` keeps every platform of a multi-arch manifest list instead of
    only the one matching the runner.
    """
    command = ["skopeo", "copy", "--retry-times", str(retry_times)]
    if all_images:
        command.append("--all")
    command.extend([source, destination])
    run_cmd(command, capture_output=False)
