"""
Script: promote_tools/wait_for_check.py
What: Blocks until the upstream image build checks for this ref have passed.
Doing: Polls the GitHub check-runs API, filters runs by name pattern, and stops on success, failure, or timeout.
Why: Images can only be promoted after the build that produces them has pushed them.
Goal: Fail closed, so nothing is logged in to or pushed unless the build succeeded in time.
"""

from __future__ import annotations

import re
import time
from typing import Callable, Iterable, Mapping, Sequence

import requests

from promote_tools.common import PromoteToolError, optional_env, require_env, split_csv


DEFAULT_CHECK_REGEXP = "rust-images.*"
DEFAULT_ALLOWED_CONCLUSIONS = ("success", "skipped")
DEFAULT_TIMEOUT_MINUTES = 20
DEFAULT_WAIT_INTERVAL = 10
DEFAULT_API_URL = "https://api.github.com"

PENDING = "pending"
SUCCESS = "success"


def select_checks(
    check_runs: Iterable[Mapping],
    *,
    check_regexp: str,
    ignore_checks: Sequence[str] = (),
) -> list[Mapping]:
    """Keep check runs whose name matches `check_regexp` and is not ignored."""
    pattern = re.compile(check_regexp)
    return [
        run
        for run in check_runs
        if pattern.search(str(run.get("name") or "")) and run.get("name") not in ignore_checks
    ]


def evaluate_checks(
    check_runs: Sequence[Mapping],
    *,
    allowed_conclusions: Sequence[str] = DEFAULT_ALLOWED_CONCLUSIONS,
) -> str:
    """
    Reduce the selected check runs to one state.

    - no runs yet, or any run not `completed`: `pending`
    - all completed with an allowed conclusion: `success`
    - otherwise raise, listing every check with a bad conclusion
    """
    if not check_runs:
        return PENDING
    if any(run.get("status") != "completed" for run in check_runs):
        return PENDING

    failed = [
        f"{run.get('name')}: {run.get('conclusion')}"
        for run in check_runs
        if run.get("conclusion") not in allowed_conclusions
    ]
    if failed:
        raise PromoteToolError(
            "Upstream checks did not succeed "
            f"(allowed conclusions: {', '.join(allowed_conclusions)}):\n" + "\n".join(failed)
        )
    return SUCCESS


def wait_for_checks(
    fetch_check_runs: Callable[[], list[Mapping]],
    *,
    check_regexp: str,
    ignore_checks: Sequence[str] = (),
    allowed_conclusions: Sequence[str] = DEFAULT_ALLOWED_CONCLUSIONS,
    timeout_seconds: float,
    wait_interval: float,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
) -> list[Mapping]:
    """
    Poll until every matching check run succeeded, then return those runs.

    `fetch_check_runs`, `sleep`, and `monotonic` are passed in to keep this
    function easy to test.
    """
    deadline = monotonic() + timeout_seconds
    while True:
        selected = select_checks(
            fetch_check_runs(),
            check_regexp=check_regexp,
            ignore_checks=ignore_checks,
        )
        if evaluate_checks(selected, allowed_conclusions=allowed_conclusions) == SUCCESS:
            return selected

        remaining = deadline - monotonic()
        if remaining <= 0:
            names = ", ".join(str(run.get("name")) for run in selected) or "none found yet"
            raise PromoteToolError(
                f"Timed out after {timeout_seconds:.0f}s waiting for checks matching "
                f"{check_regexp!r} (matching checks: {names})"
            )

        # Last sleep is shortened so the final poll lands on the deadline.
        delay = min(wait_interval, remaining)
        pending = [str(run.get("name")) for run in selected if run.get("status") != "completed"]
        if pending:
            print(f"Waiting {delay:.0f}s for checks: {', '.join(pending)}")
        else:
            print(f"Waiting {delay:.0f}s for checks matching {check_regexp!r} to start")
        sleep(delay)


def fetch_check_runs(
    session: requests.Session,
    *,
    api_url: str,
    repository: str,
    ref: str,
) -> list[Mapping]:
    """Return every check run for `ref`, following API pagination."""
    url: str | None = f"{api_url.rstrip('/')}/repos/{repository}/commits/{ref}/check-runs"
    params: dict | None = {"per_page": 100}
    check_runs: list[Mapping] = []
    while url:
        try:
            response = session.get(url, params=params, timeout=30)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.JSONDecodeError as exc:
            raise PromoteToolError(f"Expected JSON from check-runs API: {url}") from exc
        except requests.exceptions.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "HTTPError"
            raise PromoteToolError(f"Check-runs request failed ({status}): {url}") from exc
        except requests.exceptions.RequestException as exc:
            raise PromoteToolError(f"Check-runs request error: {exc}") from exc

        check_runs.extend(payload.get("check_runs") or [])
        # The `next` link already carries the query string.
        url = response.links.get("next", {}).get("url")
        params = None
    return check_runs


def github_session(token: str) -> requests.Session:
    session = requests.Session()
    session.headers.update(
        {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
    )
    return session


def _positive_number(name: str, default: int) -> float:
    raw_value = optional_env(name, str(default))
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise PromoteToolError(f"{name} must be a number, got {raw_value!r}") from exc
    if value <= 0:
        raise PromoteToolError(f"{name} must be positive, got {raw_value!r}")
    return value


def main() -> None:
    # Same inputs as lewagon/wait-on-check-action: ref, name pattern, token, interval.
    repository = require_env("GITHUB_REPOSITORY")
    ref = optional_env("CHECK_REF") or require_env("GITHUB_REF")
    token = require_env("GITHUB_TOKEN")
    api_url = optional_env("GITHUB_API_URL", DEFAULT_API_URL)

    check_regexp = optional_env("CHECK_REGEXP") or DEFAULT_CHECK_REGEXP
    try:
        re.compile(check_regexp)
    except re.error as exc:
        raise PromoteToolError(f"Invalid CHECK_REGEXP {check_regexp!r}: {exc}") from exc

    ignore_checks = split_csv(optional_env("IGNORE_CHECKS"))
    allowed_conclusions = split_csv(optional_env("ALLOWED_CONCLUSIONS")) or list(
        DEFAULT_ALLOWED_CONCLUSIONS
    )
    timeout_seconds = _positive_number("TIMEOUT_MINUTES", DEFAULT_TIMEOUT_MINUTES) * 60
    wait_interval = _positive_number("WAIT_INTERVAL", DEFAULT_WAIT_INTERVAL)

    print(f"Waiting for checks matching {check_regexp!r} on {repository}@{ref}")
    with github_session(token) as session:
        passed = wait_for_checks(
            lambda: fetch_check_runs(session, api_url=api_url, repository=repository, ref=ref),
            check_regexp=check_regexp,
            ignore_checks=ignore_checks,
            allowed_conclusions=allowed_conclusions,
            timeout_seconds=timeout_seconds,
            wait_interval=wait_interval,
        )

    for run in passed:
        print(f"Check passed: {run.get('name')} ({run.get('conclusion')})")


if __name__ == "__main__":
    main()
