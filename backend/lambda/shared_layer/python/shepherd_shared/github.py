"""shepherd_shared.github - Minimal GitHub REST client.

Only the two calls bundle-shepherd needs:
    GET  /repos/{owner}/{repo}/contents/{path}?ref={sha}
    POST /repos/{owner}/{repo}/statuses/{sha}

A 404 from the contents API is a normal outcome and comes back as ``None``.
Every other failure raises GitHubError.
"""

from __future__ import annotations

import base64
import binascii
import http.client
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

from .config import DEFAULT_GITHUB_API_BASE, DEFAULT_GITHUB_TIMEOUT
from .errors import GitHubError

logger = logging.getLogger(__name__)

USER_AGENT = "bundle-shepherd"


def _headers(token: str) -> Dict[str, str]:
    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": USER_AGENT,
        "X-GitHub-Api-Version": "2022-11-28",
    }
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


def _read_error_body(exc: urllib.error.HTTPError) -> str:
    try:
        return exc.read().decode("utf-8", errors="replace")
    except (OSError, ValueError):
        return ""


def _transport_reason(exc: Exception) -> str:
    if isinstance(exc, urllib.error.URLError):
        return str(exc.reason)
    return f"{type(exc).__name__}: {exc}"


def get_repo_file(
    owner: str,
    repo: str,
    path: str,
    ref: str,
    token: str,
    *,
    api_base: str = DEFAULT_GITHUB_API_BASE,
    timeout: float = DEFAULT_GITHUB_TIMEOUT,
) -> Optional[Any]:
    """Fetch a contents API entry at ``ref``; ``None`` when it does not exist."""
    url = (
        f"{api_base}/repos/{quote(owner)}/{quote(repo)}/contents/{quote(path)}"
        f"?{urlencode({'ref': ref})}"
    )
    req = urllib.request.Request(url, method="GET", headers=_headers(token))

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read())
    except urllib.error.HTTPError as exc:
        if exc.code == 404:
            logger.info("%s not found in %s/%s@%s", path, owner, repo, ref)
            return None
        body = _read_error_body(exc)
        logger.error("GitHub contents request failed: %s %s", exc.code, body)
        raise GitHubError(
            "GetContents", f"{path} ({exc.code}): {body}", status_code=exc.code, cause=exc
        ) from exc
    except (OSError, http.client.HTTPException) as exc:
        raise GitHubError("GetContents", f"{path}: {_transport_reason(exc)}", cause=exc) from exc
    except ValueError as exc:
        raise GitHubError("GetContents", f"{path}: invalid JSON response", cause=exc) from exc


def is_file(entry: Optional[Any]) -> bool:
    """True when a contents API entry describes a regular file."""
    return isinstance(entry, dict) and entry.get("type") == "file"


def decode_file_content(entry: Dict[str, Any]) -> str:
    """Decode the ``content`` of a contents API file entry to text.

    Raises ValueError when the payload cannot be decoded.
    """
    encoding = entry.get("encoding") or "base64"
    content = entry.get("content") or ""
    if encoding != "base64":
        raise ValueError(f"Unsupported content encoding: {encoding}")
    try:
        raw = base64.b64decode(content)
    except (binascii.Error, TypeError) as exc:
        raise ValueError(f"Invalid base64 content: {exc}") from exc
    return raw.decode("utf-8")


def post_commit_status(
    owner: str,
    repo: str,
    sha: str,
    token: str,
    *,
    state: str,
    description: str,
    context: str,
    target_url: Optional[str] = None,
    api_base: str = DEFAULT_GITHUB_API_BASE,
    timeout: float = DEFAULT_GITHUB_TIMEOUT,
) -> Dict[str, Any]:
    """Create a commit status. Returns the payload that was sent."""
    url = f"{api_base}/repos/{quote(owner)}/{quote(repo)}/statuses/{quote(sha)}"
    payload: Dict[str, Any] = {
        "state": state,
        "description": description,
        "context": context,
    }
    if target_url:
        payload["target_url"] = target_url

    req = urllib.request.Request(
        url,
        method="POST",
        data=json.dumps(payload).encode("utf-8"),
        headers={**_headers(token), "Content-Type": "application/json"},
    )

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            resp.read()
    except urllib.error.HTTPError as exc:
        body = _read_error_body(exc)
        logger.error("GitHub status creation failed: %s %s", exc.code, body)
        raise GitHubError(
            "CreateCommitStatus",
            f"{owner}/{repo}@{sha} ({exc.code}): {body}",
            status_code=exc.code,
            cause=exc,
        ) from exc
    except (OSError, http.client.HTTPException) as exc:
        raise GitHubError(
            "CreateCommitStatus", f"{owner}/{repo}@{sha}: {_transport_reason(exc)}", cause=exc
        ) from exc

    return payload
