"""build_status/lambda_function.py

CloudWatch Events-triggered Lambda that reports CodeBuild progress to GitHub.

Each bundle-shepherd project has a rule matching its "CodeBuild Build State
Change" events (IN_PROGRESS, SUCCEEDED, FAILED, STOPPED) that targets this
function. The build's commit receives a "bundle-shepherd" commit status
linking to the build logs.

Builds CodeBuild no longer knows about are skipped without error.

Environment variables:
    GITHUB_ACCESS_TOKEN   required (plain or secure:-encrypted)
    AWS_DEFAULT_REGION    region of the CodeBuild projects
    GITHUB_API_BASE, GITHUB_HTTP_TIMEOUT_SECONDS, STATUS_CONTEXT  optional
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from shepherd_shared.config import ShepherdSettings, decrypt_secrets
from shepherd_shared.errors import InvalidEventError, ShepherdError
from shepherd_shared.status import relay_build_status

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _parse_state_change(event: Dict[str, Any]) -> Tuple[str, str]:
    detail = event.get("detail") or {}
    build_id = detail.get("build-id")
    phase = detail.get("build-status")
    if not build_id or not phase:
        raise InvalidEventError("State change event missing detail.build-id or detail.build-status")
    return build_id, phase


def lambda_handler(event: Dict[str, Any], context: Any) -> None:
    """CloudWatch Events Lambda handler."""
    try:
        settings = ShepherdSettings.from_env().validate_status()
        secrets = decrypt_secrets(settings)
        build_id, phase = _parse_state_change(event)
        logger.info("Build %s is %s", build_id, phase)
        relay_build_status(
            build_id,
            phase,
            secrets.github_token,
            region=settings.region,
            api_base=settings.github_api_base,
            timeout=settings.github_timeout,
            context=settings.status_context,
        )
    except ShepherdError as exc:
        logger.error("[ERROR] build_status failed (%s): %s", exc.tag, exc, exc_info=True)
        raise


handler = lambda_handler
