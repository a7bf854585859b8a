"""shepherd_shared.serialization - JSON helpers for SDK payloads.

boto3 responses carry ``datetime`` values that the Lambda runtime cannot
serialize when they are returned from a handler.
"""

from __future__ import annotations

import datetime as dt
import json
from decimal import Decimal
from typing import Any


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (dt.datetime, dt.date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return int(obj) if obj % 1 == 0 else float(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    return str(obj)


def _json_safe(value: Any) -> Any:
    """Return a copy of ``value`` containing only JSON-native types."""
    return json.loads(json.dumps(value, default=_json_default))
