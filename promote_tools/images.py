"""
Script: promote_tools/images.py
What: Holds the fixed list of image names that get promoted.
Doing: Validates one matrix entry and exports the full list as a JSON step output.
Why: The workflow matrix and the Python helpers must agree on the same image names.
Goal: Keep one source of truth for which images are copied on every run.
"""

from __future__ import annotations

import json

from promote_tools.common import PromoteToolError, write_github_outputs


# Must match the images produced by the upstream `rust-images` build jobs.
IMAGE_NAMES: tuple[str, ...] = (
    "validator",
    "forge",
    "init",
    "validator_tcb",
    "tools",
    "faucet",
    "txn-emitter",
    "indexer",
    "node-checker",
)


def validate_image_name(image_name: str) -> str:
    """Return `image_name` if it is one of the promoted images, else raise."""
    if image_name not in IMAGE_NAMES:
        raise PromoteToolError(
            f"Unknown image name {image_name!r}. Expected one of: {', '.join(IMAGE_NAMES)}"
        )
    return image_name


def image_matrix_json() -> str:
    """Render the image list as compact JSON for `fromJSON(...)` in workflow YAML."""
    return json.dumps(list(IMAGE_NAMES), separators=(",", ":"))


def main() -> None:
    # Downstream jobs read this as:
    # strategy.matrix.IMAGE_NAME: ${{ fromJSON(needs.<job>.outputs.image_names) }}
    matrix_json = image_matrix_json()
    write_github_outputs({"image_names": matrix_json})
    print(f"Image matrix: {matrix_json}")


if __name__ == "__main__":
    main()
