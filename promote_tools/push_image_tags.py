"""
Script: promote_tools/push_image_tags.py
What: Publishes one built image under every promotion tag.
Doing: Builds the source ref from the commit SHA, derives eight destination refs, and copies the image to each.
Why: Releases need the same image content in Docker Hub, Artifact Registry, and ECR under environment tags.
Goal: Write every destination tag for the image, or fail the job.
"""

from __future__ import annotations

import re
from typing import Callable, NamedTuple, Sequence

from promote_tools.common import (
    PromoteToolError,
    optional_env,
    require_env,
    skopeo_copy,
    write_github_outputs,
)
from promote_tools.images import validate_image_name


# OCI distribution spec tag grammar.
TAG_RE = re.compile(r"[A-Za-z0-9_][A-Za-z0-9._-]{0,127}")

DOCKERHUB_NAMESPACES = ("docker.io/aptoslab", "docker.io/aptoslabs")
ECR_REPOSITORY_PREFIX = "aptos"
DEFAULT_AWS_REGION = "us-west-2"


class ImageRef(NamedTuple):
    registry: str
    repository: str
    tag: str

    def __str__(self) -> str:
        return f"{self.registry}/{self.repository}:{self.tag}"


def parse_image_ref(text: str) -> ImageRef:
    """
    Split `host/path/name:tag` into its parts.

    The host is everything before the first `/`. The tag is whatever follows
    the last `:` in the final path segment, so registry ports
    (`localhost:5000/app:v1`) are not mistaken for tags.
    """
    if "@" in text:
        raise PromoteToolError(f"Digest references are not supported: {text}")
    registry, sep, remainder = text.partition("/")
    if not sep or not registry or not remainder:
        raise PromoteToolError(f"Image reference has no registry host: {text}")
    head, slash, last_segment = remainder.rpartition("/")
    name, colon, tag = last_segment.rpartition(":")
    if not colon or not name or not tag:
        raise PromoteToolError(f"Image reference has no tag: {text}")
    return ImageRef(registry, f"{head}{slash}{name}", tag)


def ecr_registry_host(account_num: str, region: str) -> str:
    """Return the private ECR registry host for one AWS account and region."""
    return f"{account_num}.dkr.ecr.{region}.amazonaws.com"


def promotion_tags(tag_prefix: str, revision: str) -> list[str]:
    """
    Return the two tags every destination gets.

    The bare prefix (`devnet`) moves with each promotion. The
    `<prefix>_<revision>` tag (`devnet_<sha>`) pins this exact build.
    """
    tags = [tag_prefix, f"{tag_prefix}_{revision}"]
    for tag in tags:
        if not TAG_RE.fullmatch(tag):
            raise PromoteToolError(f"Invalid image tag {tag!r} (tag prefix {tag_prefix!r})")
    return tags


def source_ref(gar_repo: str, image_name: str, revision: str) -> ImageRef:
    """The image the build workflow pushed for this commit."""
    return parse_image_ref(f"{gar_repo.rstrip('/')}/{image_name}:{revision}")


def destination_refs(
    *,
    image_name: str,
    tag_prefix: str,
    revision: str,
    gar_repo: str,
    ecr_registry: str,
) -> list[ImageRef]:
    """
    Build every destination ref for one image.

    Order is Docker Hub namespaces first, then the source Artifact Registry
    repo, then ECR. Each repository gets both promotion tags.
    """
    tags = promotion_tags(tag_prefix, revision)
    repositories = [
        *(f"{namespace}/{image_name}" for namespace in DOCKERHUB_NAMESPACES),
        f"{gar_repo.rstrip('/')}/{image_name}",
        f"{ecr_registry}/{ECR_REPOSITORY_PREFIX}/{image_name}",
    ]
    return [parse_image_ref(f"{repository}:{tag}") for repository in repositories for tag in tags]


def push_image_tags(
    source: ImageRef,
    destinations: Sequence[ImageRef],
    *,
    copy_image: Callable[[str, str], None] = skopeo_copy,
) -> list[str]:
    """
    Copy `source` to each destination in order and return the written refs.

    `copy_image` is passed in to keep this function easy to test.
    Stops on the first failed copy; tags written before it stay in place.
    """
    pushed: list[str] = []
    for destination in destinations:
        try:
            copy_image(f"docker://{source}", f"docker://{destination}")
        except PromoteToolError as exc:
            raise PromoteToolError(
                f"Failed to push {destination} "
                f"({len(pushed)} of {len(destinations)} destinations written)\n{exc}"
            ) from exc
        pushed.append(str(destination))
        print(f"Pushed {source} -> {destination}")
    return pushed


def main() -> None:
    # Matrix entry and caller input.
    image_name = validate_image_name(require_env("IMAGE_NAME"))
    tag_prefix = require_env("IMAGE_TAG_PREFIX")
    # Build jobs tag the source image with the commit SHA.
    revision = require_env("GITHUB_SHA")

    gar_repo = require_env("GCP_DOCKER_ARTIFACT_REPO")
    ecr_registry = ecr_registry_host(
        require_env("AWS_ECR_ACCOUNT_NUM"),
        optional_env("AWS_REGION", DEFAULT_AWS_REGION),
    )

    source = source_ref(gar_repo, image_name, revision)
    destinations = destination_refs(
        image_name=image_name,
        tag_prefix=tag_prefix,
        revision=revision,
        gar_repo=gar_repo,
        ecr_registry=ecr_registry,
    )

    pushed = push_image_tags(source, destinations, copy_image=skopeo_copy)
    write_github_outputs({"pushed_refs": " ".join(pushed)})
    print(f"Published {len(pushed)} tags for {image_name}")


if __name__ == "__main__":
    main()
