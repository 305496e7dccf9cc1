"""Helper functions for the OpenAPI builder."""
import re
from typing import Any, Dict, List

BASE_PARAM = {"name": "base_id", "in": "path", "required": True, "schema": {"type": "integer"}}

_PATH_VAR = re.compile(r"\{([^}]+)\}")


def schema_minimal(name: str) -> Dict[str, Any]:
    return {"type": "object", "properties": {"id": {"type": "integer"}}, "required": ["id"]}


def caching_headers() -> Dict[str, Any]:
    return {
        "ETag": {"schema": {"type": "string"}},
        "Last-Modified": {"schema": {"type": "string"}},
        "X-Last-Modified-ISO": {"schema": {"type": "string"}},
    }


def path_params(prefix: str, *names: str) -> List[Dict[str, Any]]:
    params: List[Dict[str, Any]] = []
    seen = set()
    for name in _PATH_VAR.findall(prefix) + list(names):
        if name in seen:
            continue
        seen.add(name)
        if name == "base_id":
            params.append(BASE_PARAM)
        else:
            params.append({"name": name, "in": "path", "required": True, "schema": {"type": "integer"}})
    return params


__all__ = ["schema_minimal", "caching_headers", "path_params", "BASE_PARAM"]
