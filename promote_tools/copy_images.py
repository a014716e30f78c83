"""
Script: promote_tools/copy_images.py
What: Runs the full promotion job for one image name.
Doing: Waits for the upstream build checks, logs in to every registry, then pushes all promotion tags.
Why: One matrix entry of the reusable workflow maps to one call of this command.
Goal: Keep step order fixed so no credential or push step runs before the build passed.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from promote_tools.common import env_flag, require_env
from promote_tools.images import validate_image_name
from promote_tools.push_image_tags import main as push_image_tags
from promote_tools.registry_login import login_dockerhub, login_ecr, login_gar
from promote_tools.wait_for_check import main as wait_for_check


def job_steps(*, skip_check_wait: bool) -> list[tuple[str, Callable[[], None]]]:
    """Return `(name, function)` pairs in the order they must run."""
    steps: list[tuple[str, Callable[[], None]]] = []
    if not skip_check_wait:
        steps.append(("Wait for images to have been built", wait_for_check))
    steps.extend(
        [
            ("Log in to Artifact Registry", login_gar),
            ("Log in to ECR", login_ecr),
            ("Log in to Docker Hub", login_dockerhub),
            ("Push image tags", push_image_tags),
        ]
    )
    return steps


def run_steps(steps: Sequence[tuple[str, Callable[[], None]]]) -> None:
    # A raised error stops the job here; later steps never run.
    for name, step in steps:
        print(f"::group::{name}")
        try:
            step()
        finally:
            print("::endgroup::")


def main() -> None:
    # Fail on a bad matrix entry before waiting up to the full check timeout.
    image_name = validate_image_name(require_env("IMAGE_NAME"))
    require_env("IMAGE_TAG_PREFIX")

    skip_check_wait = env_flag("SKIP_CHECK_WAIT")
    if skip_check_wait:
        print("SKIP_CHECK_WAIT=true; not waiting for upstream checks.")

    print(f"Promoting image {image_name}")
    run_steps(job_steps(skip_check_wait=skip_check_wait))


if __name__ == "__main__":
    main()
