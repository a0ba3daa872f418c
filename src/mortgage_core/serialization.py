"""JSON-ready conversion of result objects for the persistence and export layers."""
from __future__ import annotations

import dataclasses
import json
from datetime import date
from typing import Any, Optional


def to_dict(obj: Any) -> Any:
    """Recursively convert dataclasses, tuples and dates into plain JSON types.

    Dates become ISO-8601 strings; field names are kept as declared.
    """
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_dict(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(key): to_dict(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_dict(item) for item in obj]
    return obj


def to_json(obj: Any, *, indent: Optional[int] = 2) -> str:
    return json.dumps(to_dict(obj), indent=indent)
