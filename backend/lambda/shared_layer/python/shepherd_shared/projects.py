"""shepherd_shared.projects - Locate or provision per-repository CodeBuild projects.

A project is provisioned together with:
    - its CloudWatch log group (14 day retention)
    - a CloudWatch Events rule matching the project's build state changes
    - a rule target invoking the build_status Lambda

Callers look a project up with ``find_project`` first and only call
``create_project`` when nothing was found. Provisioning steps run strictly in
order; a failing step aborts the sequence and nothing is rolled back.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import _get_codebuild, _get_events, _get_logs
from .errors import ExternalServiceError
from .naming import log_group_name, project_name

logger = logging.getLogger(__name__)

LOG_RETENTION_DAYS = 14
STATUS_TARGET_ID = "invoke-lambda"
NOTIFIED_PHASES = ("IN_PROGRESS", "SUCCEEDED", "FAILED", "STOPPED")

_COMPUTE_TYPES = {
    "small": "BUILD_GENERAL1_SMALL",
    "medium": "BUILD_GENERAL1_MEDIUM",
    "large": "BUILD_GENERAL1_LARGE",
}


@dataclass(frozen=True)
class ProjectOptions:
    org: str
    repo: str
    image_uri: str
    size: str
    bucket: str
    prefix: str
    region: str
    role_arn: str
    status_function_arn: str
    github_token: str
    npm_token: str
    use_oauth: bool = False

    @property
    def name(self) -> str:
        return project_name(self.org, self.repo, self.image_uri)


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "Unknown")
    return ""


def _wrap(service: str, operation: str, exc: Exception) -> ExternalServiceError:
    return ExternalServiceError(service, operation, str(exc), cause=exc)


# ---------------------------------------------------------------------------
# Request builders
# ---------------------------------------------------------------------------


def compute_type(size: str) -> str:
    try:
        return _COMPUTE_TYPES[size]
    except KeyError:
        raise ValueError(f"Unknown compute size: {size!r}") from None


def project_definition(options: ProjectOptions) -> Dict[str, Any]:
    """CreateProject request for ``options``."""
    org, repo = options.org, options.repo
    if options.use_oauth:
        source: Dict[str, Any] = {
            "type": "GITHUB",
            "location": f"https://github.com/{org}/{repo}",
            "auth": {"type": "OAUTH"},
        }
    else:
        source = {
            "type": "GITHUB",
            "location": f"https://{options.github_token}@github.com/{org}/{repo}",
        }

    return {
        "name": options.name,
        "description": f"Lambda builds for {org}/{repo}",
        "serviceRole": options.role_arn,
        "source": source,
        "artifacts": {
            "type": "S3",
            "packaging": "ZIP",
            "location": options.bucket,
            "path": f"{options.prefix}/{repo}",
        },
        "environment": {
            "type": "LINUX_CONTAINER",
            "image": options.image_uri,
            "computeType": compute_type(options.size),
            "environmentVariables": [
                {"name": "NPM_ACCESS_TOKEN", "value": options.npm_token},
            ],
        },
    }


def status_rule(name: str) -> Dict[str, Any]:
    """PutRule request routing ``name``'s build state changes."""
    pattern = {
        "source": ["aws.codebuild"],
        "detail-type": ["CodeBuild Build State Change"],
        "detail": {
            "build-status": list(NOTIFIED_PHASES),
            "project-name": [name],
        },
    }
    return {
        "Name": name,
        "Description": f"Build status notifications for {name}",
        "EventPattern": json.dumps(pattern),
        "State": "ENABLED",
    }


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def find_project(name: str, region: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Return the CodeBuild project called ``name``, or None."""
    logger.info("Looking for project: %s", name)
    try:
        resp = _get_codebuild(region).batch_get_projects(names=[name])
    except (BotoCoreError, ClientError) as exc:
        raise _wrap("codebuild", "BatchGetProjects", exc) from exc

    projects = resp.get("projects") or []
    return projects[0] if projects else None


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------


def ensure_log_group(name: str, region: Optional[str] = None) -> None:
    """Create the project's log group and apply retention; safe to repeat."""
    logs = _get_logs(region)
    group = log_group_name(name)

    try:
        logs.create_log_group(logGroupName=group)
    except (BotoCoreError, ClientError) as exc:
        if _error_code(exc) != "ResourceAlreadyExistsException":
            raise _wrap("logs", "CreateLogGroup", exc) from exc
        logger.info("Log group %s already exists", group)

    try:
        logs.put_retention_policy(logGroupName=group, retentionInDays=LOG_RETENTION_DAYS)
    except (BotoCoreError, ClientError) as exc:
        raise _wrap("logs", "PutRetentionPolicy", exc) from exc


def create_project(options: ProjectOptions) -> Dict[str, Any]:
    """Provision the CodeBuild project described by ``options``."""
    name = options.name
    region = options.region
    definition = project_definition(options)
    logger.info("Creating project %s for %s/%s", name, options.org, options.repo)

    ensure_log_group(name, region)

    try:
        project = _get_codebuild(region).create_project(**definition)["project"]
    except (BotoCoreError, ClientError) as exc:
        raise _wrap("codebuild", "CreateProject", exc) from exc

    events = _get_events(region)
    try:
        events.put_rule(**status_rule(name))
    except (BotoCoreError, ClientError) as exc:
        raise _wrap("events", "PutRule", exc) from exc

    try:
        events.put_targets(
            Rule=name,
            Targets=[{"Id": STATUS_TARGET_ID, "Arn": options.status_function_arn}],
        )
    except (BotoCoreError, ClientError) as exc:
        raise _wrap("events", "PutTargets", exc) from exc

    logger.info("Project %s provisioned", name)
    return project
