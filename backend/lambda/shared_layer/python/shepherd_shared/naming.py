"""shepherd_shared.naming - CodeBuild project and log group names."""

from __future__ import annotations

# Images published by bundle-shepherd itself are tagged
# ``<registry>/bundle-shepherd:<image>``.
_IMAGE_FAMILY_PREFIX = "bundle-shepherd_"


def project_name(org: str, repo: str, image_uri: str) -> str:
    """Name of the CodeBuild project for ``org/repo`` built on ``image_uri``.

    >>> project_name("mapbox", "api", "123.dkr.ecr.us-east-1.amazonaws.com/bundle-shepherd:nodejs6.x")
    'mapbox_api_nodejs6_x'
    >>> project_name("mapbox", "api", "lambci/lambda:build-python3.6")
    'mapbox_api_lambda_build-python3_6'
    """
    image = image_uri.split("/")[-1].replace(":", "_").replace(".", "_")
    image = image.replace(_IMAGE_FAMILY_PREFIX, "", 1)
    return f"{org}_{repo}_{image}"


def log_group_name(project: str) -> str:
    return f"/aws/codebuild/{project}"
