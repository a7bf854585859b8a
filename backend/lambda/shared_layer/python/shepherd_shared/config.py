"""shepherd_shared.config - Runtime settings and secret decryption.

Environment variables:
    GITHUB_ACCESS_TOKEN          GitHub token (plain or ``secure:``-encrypted)
    AWS_ACCOUNT_ID               account hosting the default ECR images
    AWS_DEFAULT_REGION           region for CodeBuild / CloudWatch (AWS_REGION fallback)
    S3_BUCKET                    artifact bucket
    S3_PREFIX                    artifact key prefix
    PROJECT_ROLE                 IAM role ARN assumed by CodeBuild projects
    STATUS_FUNCTION              ARN of the build_status Lambda function
    USE_OAUTH                    "true" when CodeBuild is connected to GitHub via OAuth
    NPM_ACCESS_TOKEN             encrypted NPM token injected into builds
    GITHUB_API_BASE              default: https://api.github.com
    GITHUB_HTTP_TIMEOUT_SECONDS  default: 10
    STATUS_CONTEXT               default: bundle-shepherd

Values prefixed with ``secure:`` hold base64 KMS ciphertext. They are
decrypted once per activation by ``decrypt_secrets`` and handed around as a
``Secrets`` bundle rather than written back into the environment.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import _get_kms
from .errors import ConfigurationError, SecretsError

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "secure:"
DEFAULT_GITHUB_API_BASE = "https://api.github.com"
DEFAULT_STATUS_CONTEXT = "bundle-shepherd"
DEFAULT_GITHUB_TIMEOUT = 10.0

# field name -> environment variable
_ENV_NAMES: Dict[str, str] = {
    "github_access_token": "GITHUB_ACCESS_TOKEN",
    "account_id": "AWS_ACCOUNT_ID",
    "region": "AWS_DEFAULT_REGION",
    "bucket": "S3_BUCKET",
    "prefix": "S3_PREFIX",
    "project_role": "PROJECT_ROLE",
    "status_function": "STATUS_FUNCTION",
    "npm_access_token": "NPM_ACCESS_TOKEN",
}

TRIGGER_FIELDS = (
    "github_access_token",
    "account_id",
    "region",
    "bucket",
    "prefix",
    "project_role",
    "status_function",
    "npm_access_token",
)
STATUS_FIELDS = ("github_access_token",)


@dataclass(frozen=True)
class ShepherdSettings:
    github_access_token: str
    account_id: str
    region: str
    bucket: str
    prefix: str
    project_role: str
    status_function: str
    use_oauth: bool
    npm_access_token: str
    github_api_base: str = DEFAULT_GITHUB_API_BASE
    github_timeout: float = DEFAULT_GITHUB_TIMEOUT
    status_context: str = DEFAULT_STATUS_CONTEXT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ShepherdSettings":
        env = os.environ if environ is None else environ

        raw_timeout = env.get("GITHUB_HTTP_TIMEOUT_SECONDS", "").strip()
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_GITHUB_TIMEOUT
        except ValueError as exc:
            raise ConfigurationError(
                f"GITHUB_HTTP_TIMEOUT_SECONDS must be a number, got {raw_timeout!r}",
                cause=exc,
            ) from exc
        if timeout <= 0:
            raise ConfigurationError("GITHUB_HTTP_TIMEOUT_SECONDS must be positive")

        return cls(
            github_access_token=env.get("GITHUB_ACCESS_TOKEN", "").strip(),
            account_id=env.get("AWS_ACCOUNT_ID", "").strip(),
            region=(env.get("AWS_DEFAULT_REGION") or env.get("AWS_REGION") or "us-east-1").strip(),
            bucket=env.get("S3_BUCKET", "").strip(),
            prefix=env.get("S3_PREFIX", "").strip().rstrip("/"),
            project_role=env.get("PROJECT_ROLE", "").strip(),
            status_function=env.get("STATUS_FUNCTION", "").strip(),
            use_oauth=env.get("USE_OAUTH", "").strip().lower() == "true",
            npm_access_token=env.get("NPM_ACCESS_TOKEN", "").strip(),
            github_api_base=(env.get("GITHUB_API_BASE") or DEFAULT_GITHUB_API_BASE).rstrip("/"),
            github_timeout=timeout,
            status_context=(env.get("STATUS_CONTEXT") or DEFAULT_STATUS_CONTEXT).strip(),
        )

    def require(self, *fields: str) -> "ShepherdSettings":
        """Raise ConfigurationError naming every empty field's env var."""
        missing = [_ENV_NAMES.get(f, f) for f in fields if not getattr(self, f)]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )
        return self

    def validate_trigger(self) -> "ShepherdSettings":
        """Check everything the trigger path needs before any external call."""
        self.require(*TRIGGER_FIELDS)
        problems: List[str] = []
        if not self.project_role.startswith("arn:aws:iam::"):
            problems.append(f"PROJECT_ROLE is not an IAM role ARN: {self.project_role!r}")
        if not self.status_function.startswith("arn:aws:lambda:"):
            problems.append(
                f"STATUS_FUNCTION is not a Lambda function ARN: {self.status_function!r}"
            )
        if not self.account_id.isdigit():
            problems.append(f"AWS_ACCOUNT_ID must be numeric: {self.account_id!r}")
        if problems:
            raise ConfigurationError("; ".join(problems))
        return self

    def validate_status(self) -> "ShepherdSettings":
        return self.require(*STATUS_FIELDS)


@dataclass(frozen=True)
class Secrets:
    github_token: str
    # Left encrypted; builds decrypt it themselves.
    npm_token: str


def _decrypt_value(name: str, value: str, region: str) -> str:
    if not value.startswith(ENCRYPTED_PREFIX):
        return value

    try:
        blob = base64.b64decode(value[len(ENCRYPTED_PREFIX):], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SecretsError(f"{name} is not valid base64 ciphertext", cause=exc) from exc

    try:
        resp = _get_kms(region).decrypt(CiphertextBlob=blob)
    except (BotoCoreError, ClientError) as exc:
        raise SecretsError(f"KMS could not decrypt {name}: {exc}", cause=exc) from exc

    try:
        return resp["Plaintext"].decode("utf-8")
    except (KeyError, AttributeError, UnicodeDecodeError) as exc:
        raise SecretsError(f"KMS returned an unusable plaintext for {name}", cause=exc) from exc


def decrypt_secrets(settings: ShepherdSettings) -> Secrets:
    """Resolve the secrets bundle for one activation."""
    github_token = _decrypt_value(
        "GITHUB_ACCESS_TOKEN", settings.github_access_token, settings.region
    )
    if settings.github_access_token.startswith(ENCRYPTED_PREFIX):
        logger.info("Decrypted GITHUB_ACCESS_TOKEN")
    return Secrets(github_token=github_token, npm_token=settings.npm_access_token)
