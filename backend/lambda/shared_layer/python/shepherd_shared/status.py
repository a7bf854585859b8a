"""shepherd_shared.status - Relay CodeBuild build phases to GitHub commit statuses."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import _get_codebuild
from .config import DEFAULT_GITHUB_API_BASE, DEFAULT_GITHUB_TIMEOUT, DEFAULT_STATUS_CONTEXT
from .errors import ExternalServiceError, InvalidEventError, UnknownPhaseError
from .github import post_commit_status

logger = logging.getLogger(__name__)

# phase -> (GitHub state, description)
COMMIT_STATES: Dict[str, Tuple[str, str]] = {
    "IN_PROGRESS": ("pending", "Your build is in progress"),
    "SUCCEEDED": ("success", "Your build succeeded"),
    "FAILED": ("failure", "Your build failed"),
    "STOPPED": ("error", "Your build encountered an error"),
}


def commit_status_for(phase: str) -> Tuple[str, str]:
    try:
        return COMMIT_STATES[phase]
    except KeyError:
        raise UnknownPhaseError(
            f"No commit status for build phase {phase!r}; expected one of "
            f"{', '.join(COMMIT_STATES)}"
        ) from None


def parse_source_location(location: str) -> Tuple[str, str]:
    """(owner, repo) from a CodeBuild GitHub source location.

    >>> parse_source_location("https://token@github.com/mapbox/api.git")
    ('mapbox', 'api')
    """
    parts = [p for p in urlparse(location or "").path.split("/") if p]
    if len(parts) < 2:
        raise InvalidEventError(f"Cannot derive owner/repo from source location {location!r}")
    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return owner, repo


def get_build(build_id: str, region: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """The CodeBuild build descriptor for ``build_id``, or None."""
    try:
        resp = _get_codebuild(region).batch_get_builds(ids=[build_id])
    except (BotoCoreError, ClientError) as exc:
        raise ExternalServiceError("codebuild", "BatchGetBuilds", str(exc), cause=exc) from exc
    builds = resp.get("builds") or []
    return builds[0] if builds else None


def relay_build_status(
    build_id: str,
    phase: str,
    token: str,
    *,
    region: Optional[str] = None,
    api_base: str = DEFAULT_GITHUB_API_BASE,
    timeout: float = DEFAULT_GITHUB_TIMEOUT,
    context: str = DEFAULT_STATUS_CONTEXT,
) -> Optional[Dict[str, Any]]:
    """Publish the commit status for one build state change.

    Returns the posted status, or None when the build is unknown.
    """
    state, description = commit_status_for(phase)

    build = get_build(build_id, region)
    if build is None:
        logger.info("Build %s not found; nothing to report", build_id)
        return None

    owner, repo = parse_source_location((build.get("source") or {}).get("location", ""))
    sha = build.get("sourceVersion")
    if not sha:
        raise InvalidEventError(f"Build {build_id} has no source version")

    logger.info("Setting %s/%s@%s to %s (%s)", owner, repo, sha, state, phase)
    return post_commit_status(
        owner,
        repo,
        sha,
        token,
        state=state,
        description=description,
        context=context,
        target_url=(build.get("logs") or {}).get("deepLink"),
        api_base=api_base,
        timeout=timeout,
    )
