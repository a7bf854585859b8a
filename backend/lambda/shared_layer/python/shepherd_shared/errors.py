"""shepherd_shared.errors - Tagged errors raised by bundle-shepherd.

Every failure that leaves a shared module is a ShepherdError subclass with a
stable ``tag``. Wrapped failures are raised with ``raise ... from exc`` and
also keep the original exception on ``cause``.

"Not found" outcomes (missing project, missing build, missing override file)
are returned as ``None`` and never raised.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ShepherdError(Exception):
    """Base class for every bundle-shepherd failure."""

    tag = "shepherd_error"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"tag": self.tag, "message": self.message}
        if self.cause is not None:
            out["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return out


class ExternalServiceError(ShepherdError):
    """An AWS or GitHub API call failed."""

    tag = "external_service_error"

    def __init__(
        self,
        service: str,
        operation: str,
        message: str,
        *,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(f"{service} {operation} failed: {message}", cause=cause)
        self.service = service
        self.operation = operation

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update({"service": self.service, "operation": self.operation})
        return out


class GitHubError(ExternalServiceError):
    """A GitHub REST request failed for a reason other than 404."""

    def __init__(
        self,
        operation: str,
        message: str,
        *,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__("github", operation, message, cause=cause)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        if self.status_code is not None:
            out["status_code"] = self.status_code
        return out


class ConfigurationError(ShepherdError):
    """Runtime configuration is missing or malformed."""

    tag = "configuration_error"


class UnsupportedImageError(ConfigurationError):
    """No default buildspec exists for the requested image."""

    tag = "unsupported_image"


class SecretsError(ShepherdError):
    """An encrypted environment value could not be decrypted."""

    tag = "secrets_error"


class SettingsParseError(ShepherdError):
    """The repository's .bundle-shepherd.json could not be parsed."""

    tag = "settings_parse_error"


class InvalidEventError(ShepherdError):
    """An incoming Lambda event is missing required fields."""

    tag = "invalid_event"


class UnknownPhaseError(ShepherdError):
    """A build phase has no commit status mapping."""

    tag = "unknown_phase"
