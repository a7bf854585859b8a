"""shepherd_shared.overrides - Per-commit build overrides.

A repository may carry, at the root of the pushed commit:
    buildspec.yml          its own CodeBuild buildspec
    .bundle-shepherd.json  {"image": "...", "size": "small|medium|large"}

Both are optional. The two lookups are independent and run concurrently.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .config import DEFAULT_GITHUB_API_BASE, DEFAULT_GITHUB_TIMEOUT
from .errors import SettingsParseError
from .github import decode_file_content, get_repo_file, is_file

logger = logging.getLogger(__name__)

BUILDSPEC_PATH = "buildspec.yml"
SETTINGS_PATH = ".bundle-shepherd.json"

DEFAULT_IMAGE = "nodejs6.x"
DEFAULT_SIZE = "small"
VALID_SIZES = ("small", "medium", "large")


@dataclass(frozen=True)
class ResolvedConfig:
    has_custom_buildspec: bool = False
    image: str = DEFAULT_IMAGE
    size: str = DEFAULT_SIZE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_settings(entry: Dict[str, Any]) -> Dict[str, str]:
    """Parse a .bundle-shepherd.json contents entry into its override fields."""
    try:
        doc = json.loads(decode_file_content(entry))
    except (ValueError, UnicodeDecodeError) as exc:
        raise SettingsParseError(f"{SETTINGS_PATH} is not valid JSON: {exc}", cause=exc) from exc

    if not isinstance(doc, dict):
        raise SettingsParseError(f"{SETTINGS_PATH} must contain a JSON object")

    out: Dict[str, str] = {}
    image = doc.get("image")
    if image:
        if not isinstance(image, str):
            raise SettingsParseError(f"{SETTINGS_PATH} 'image' must be a string")
        if image.strip():
            out["image"] = image.strip()

    size = doc.get("size")
    if size:
        if not isinstance(size, str) or size.strip().lower() not in VALID_SIZES:
            raise SettingsParseError(
                f"{SETTINGS_PATH} 'size' must be one of {', '.join(VALID_SIZES)}, got {size!r}"
            )
        out["size"] = size.strip().lower()
    return out


def check_repo_overrides(
    org: str,
    repo: str,
    sha: str,
    token: str,
    *,
    api_base: str = DEFAULT_GITHUB_API_BASE,
    timeout: float = DEFAULT_GITHUB_TIMEOUT,
) -> ResolvedConfig:
    """Look for a buildspec and settings document in ``org/repo@sha``."""
    def _fetch(path: str) -> Optional[Any]:
        return get_repo_file(org, repo, path, sha, token, api_base=api_base, timeout=timeout)

    with ThreadPoolExecutor(max_workers=2) as pool:
        buildspec_future = pool.submit(_fetch, BUILDSPEC_PATH)
        settings_future = pool.submit(_fetch, SETTINGS_PATH)
        # Both lookups must finish; either failure propagates here.
        buildspec_entry = buildspec_future.result()
        settings_entry = settings_future.result()

    overrides: Dict[str, str] = {}
    if is_file(settings_entry):
        overrides = parse_settings(settings_entry)

    result = ResolvedConfig(
        has_custom_buildspec=is_file(buildspec_entry),
        image=overrides.get("image", DEFAULT_IMAGE),
        size=overrides.get("size", DEFAULT_SIZE),
    )
    logger.info("Override result: %s", json.dumps(result.to_dict()))
    return result
