"""shepherd_shared.builds - Default images, default buildspecs and build dispatch."""

from __future__ import annotations

import logging
import pathlib
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import _get_codebuild
from .errors import ExternalServiceError, UnsupportedImageError

logger = logging.getLogger(__name__)

DEFAULT_IMAGES = ("nodejs6.x", "python2.7", "python3.6")

_BUILDSPEC_DIR = pathlib.Path(__file__).with_name("buildspecs")


def image_uri(image: str, account_id: str, region: str) -> str:
    """ECR URI for a default image name; anything else is already a URI."""
    if image in DEFAULT_IMAGES:
        return f"{account_id}.dkr.ecr.{region}.amazonaws.com/bundle-shepherd:{image}"
    return image


def default_buildspec(image: str) -> str:
    """Text of the built-in buildspec for a default image."""
    if image not in DEFAULT_IMAGES:
        raise UnsupportedImageError(
            f"No default buildspec for image {image!r}; add a buildspec.yml to the "
            f"repository or use one of: {', '.join(DEFAULT_IMAGES)}"
        )
    return (_BUILDSPEC_DIR / f"{image}.yml").read_text(encoding="utf-8")


def artifacts_override(sha: str, *, bucket: str, prefix: str, repo: str) -> Dict[str, str]:
    return {
        "type": "S3",
        "packaging": "ZIP",
        "location": bucket,
        "path": f"{prefix}/{repo}",
        "name": f"{sha}.zip",
    }


def run_build(
    project: str,
    sha: str,
    *,
    bucket: str,
    prefix: str,
    repo: str,
    region: Optional[str] = None,
    buildspec: Optional[str] = None,
) -> Dict[str, Any]:
    """Start a build of ``sha`` in ``project``; returns the build descriptor."""
    params: Dict[str, Any] = {
        "projectName": project,
        "sourceVersion": sha,
        "artifactsOverride": artifacts_override(sha, bucket=bucket, prefix=prefix, repo=repo),
    }
    if buildspec:
        params["buildspecOverride"] = buildspec

    try:
        build = _get_codebuild(region).start_build(**params)["build"]
    except (BotoCoreError, ClientError) as exc:
        raise ExternalServiceError("codebuild", "StartBuild", str(exc), cause=exc) from exc

    logger.info("CodeBuild started: %s", build.get("id"))
    return build
