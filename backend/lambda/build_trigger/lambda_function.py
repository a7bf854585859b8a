"""build_trigger/lambda_function.py

SNS-triggered Lambda that starts a CodeBuild build for every GitHub push.

Flow:
    GitHub push webhook → SNS topic
    → This Lambda
    → Decrypt secrets (KMS)
    → Look for buildspec.yml / .bundle-shepherd.json at the pushed commit
    → Find the repo's CodeBuild project, or provision it
      (log group, project, status rule + target)
    → Start a build of the pushed commit

Returns the CodeBuild build descriptor. Any failure is logged and re-raised
so the invocation is recorded as failed.

Environment variables: see shepherd_shared.config.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from shepherd_shared.builds import default_buildspec, image_uri, run_build
from shepherd_shared.config import Secrets, ShepherdSettings, decrypt_secrets
from shepherd_shared.errors import InvalidEventError, ShepherdError
from shepherd_shared.overrides import ResolvedConfig, check_repo_overrides
from shepherd_shared.projects import ProjectOptions, create_project, find_project
from shepherd_shared.serialization import _json_safe

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)


@dataclass(frozen=True)
class PushCommit:
    org: str
    repo: str
    sha: str


# ---------------------------------------------------------------------------
# Event parsing
# ---------------------------------------------------------------------------


def _push_payload(event: Dict[str, Any]) -> Dict[str, Any]:
    """Unwrap the GitHub push payload from an SNS event (or take it as-is)."""
    records = event.get("Records")
    if records:
        if not isinstance(records, list) or not isinstance(records[0], dict):
            raise InvalidEventError("SNS Records must be a list of objects")
        sns = records[0].get("Sns") or records[0].get("sns") or {}
        message = sns.get("Message")
        if message is None:
            raise InvalidEventError("SNS record has no Message")
        try:
            payload = json.loads(message) if isinstance(message, str) else message
        except json.JSONDecodeError as exc:
            raise InvalidEventError(f"SNS message is not JSON: {exc}", cause=exc) from exc
    else:
        payload = event

    if not isinstance(payload, dict):
        raise InvalidEventError(f"Unsupported push payload type: {type(payload).__name__}")
    return payload


def _parse_commit(event: Dict[str, Any]) -> PushCommit:
    payload = _push_payload(event)
    repository = payload.get("repository") or {}
    owner = repository.get("owner") or {}
    org = owner.get("name") or owner.get("login")
    repo = repository.get("name")
    sha = payload.get("after")
    missing = [
        field
        for field, value in (
            ("repository.owner.name", org),
            ("repository.name", repo),
            ("after", sha),
        )
        if not value
    ]
    if missing:
        raise InvalidEventError(f"Push payload missing: {', '.join(missing)}")
    return PushCommit(org=org, repo=repo, sha=sha)


# ---------------------------------------------------------------------------
# Core logic
# ---------------------------------------------------------------------------


def _project_options(
    commit: PushCommit,
    config: ResolvedConfig,
    settings: ShepherdSettings,
    secrets: Secrets,
) -> ProjectOptions:
    return ProjectOptions(
        org=commit.org,
        repo=commit.repo,
        image_uri=image_uri(config.image, settings.account_id, settings.region),
        size=config.size,
        bucket=settings.bucket,
        prefix=settings.prefix,
        region=settings.region,
        role_arn=settings.project_role,
        status_function_arn=settings.status_function,
        github_token=secrets.github_token,
        npm_token=secrets.npm_token,
        use_oauth=settings.use_oauth,
    )


def _trigger_build(
    commit: PushCommit,
    settings: ShepherdSettings,
    secrets: Secrets,
) -> Dict[str, Any]:
    logger.info(
        "Looking for repo overrides in %s/%s@%s", commit.org, commit.repo, commit.sha
    )
    config = check_repo_overrides(
        commit.org,
        commit.repo,
        commit.sha,
        secrets.github_token,
        api_base=settings.github_api_base,
        timeout=settings.github_timeout,
    )

    # Unsupported images fail here, before anything is provisioned.
    buildspec: Optional[str] = None
    if not config.has_custom_buildspec:
        buildspec = default_buildspec(config.image)

    options = _project_options(commit, config, settings, secrets)
    logger.info(
        "Looking for existing project for %s/%s using image %s",
        commit.org,
        commit.repo,
        options.image_uri,
    )

    project = find_project(options.name, settings.region)
    if project:
        logger.info("Found existing project")
    else:
        logger.info("Creating a new project")
        project = create_project(options)

    logger.info("Running a build for %s/%s@%s", commit.org, commit.repo, commit.sha)
    return run_build(
        project.get("name") or options.name,
        commit.sha,
        bucket=settings.bucket,
        prefix=settings.prefix,
        repo=commit.repo,
        region=settings.region,
        buildspec=buildspec,
    )


# ---------------------------------------------------------------------------
# Lambda handler
# ---------------------------------------------------------------------------


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """SNS Lambda handler."""
    try:
        settings = ShepherdSettings.from_env().validate_trigger()
        secrets = decrypt_secrets(settings)
        commit = _parse_commit(event)
        build = _trigger_build(commit, settings, secrets)
    except ShepherdError as exc:
        logger.error("[ERROR] build_trigger failed (%s): %s", exc.tag, exc, exc_info=True)
        raise

    return _json_safe(build)


handler = lambda_handler
