"""shepherd_shared.aws_clients - Lazy-singleton AWS service clients.

One client per service, built the first time a handler asks for it and
reused for the life of the Lambda container.
"""

from __future__ import annotations

import os
from typing import Optional

import boto3
from botocore.config import Config

# ---------------------------------------------------------------------------
# Default region (overridable via env)
# ---------------------------------------------------------------------------

DEFAULT_REGION: str = os.environ.get(
    "AWS_DEFAULT_REGION", os.environ.get("AWS_REGION", "us-east-1")
)

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_codebuild = None
_events = None
_logs = None
_kms = None


def _get_codebuild(region: Optional[str] = None):
    """Get (or create) the CodeBuild client singleton."""
    global _codebuild
    if _codebuild is None:
        _codebuild = boto3.client(
            "codebuild",
            region_name=region or DEFAULT_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _codebuild


def _get_events(region: Optional[str] = None):
    """Get (or create) the CloudWatch Events client singleton."""
    global _events
    if _events is None:
        _events = boto3.client(
            "events",
            region_name=region or DEFAULT_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _events


def _get_logs(region: Optional[str] = None):
    """Get (or create) the CloudWatch Logs client singleton."""
    global _logs
    if _logs is None:
        _logs = boto3.client(
            "logs",
            region_name=region or DEFAULT_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _logs


def _get_kms(region: Optional[str] = None):
    """Get (or create) the KMS client singleton."""
    global _kms
    if _kms is None:
        _kms = boto3.client(
            "kms",
            region_name=region or DEFAULT_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _kms
