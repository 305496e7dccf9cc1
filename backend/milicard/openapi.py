"""Minimal deterministic OpenAPI spec builder.

Scope:
- Auth endpoints: /iam/auth/login (POST), /iam/auth/me (GET)
- For each registered entity: list, create and single GET & HEAD with caching headers,
  plus lifecycle action endpoints
- Aggregate read endpoints (inventory, reports)
"""
from typing import Any, Dict
from .openapi_parts.constants import BASE_PREFIX, ENTITIES, SORT_DETAILS, TRANSITIONS, sort_param_name
from .openapi_parts.helpers import schema_minimal, caching_headers, path_params
from .openapi_parts.paths import build_entity_paths

__all__ = ["build_openapi_spec"]

# Endpoints computed in memory; they paginate and carry a content ETag.
_AGGREGATES = [
    (f"{BASE_PREFIX}/inventory", "Current stock per goods and location", "INV.READ"),
    (f"{BASE_PREFIX}/inventory/summary", "Stock totals per goods", "INV.READ"),
    (f"{BASE_PREFIX}/points/{{point_id}}/goods", "Goods assigned to a point", "POINT.READ"),
    (f"{BASE_PREFIX}/points/{{point_id}}/inventory", "Goods delivered to a point", "POINT.READ"),
    (f"{BASE_PREFIX}/point-visits/latest", "Latest visit per point", "VISIT.READ"),
    ("/reports/metrics", "Counts per domain and status", "RPT.READ"),
    ("/reports/metrics/pivot", "Counts pivoted per domain", "RPT.READ"),
]


def _aggregate_op(path: str, summary: str, permission: str) -> Dict[str, Any]:
    return {
        "get": {
            "summary": summary,
            "parameters": path_params(path) + [
                {"$ref": "#/components/parameters/LimitParam"},
                {"$ref": "#/components/parameters/OffsetParam"},
            ],
            "responses": {
                "200": {"description": "OK", "headers": {"ETag": caching_headers()["ETag"]}},
                "304": {"description": "Not Modified"},
            },
            "x-required-permissions": [permission],
        }
    }


def build_openapi_spec() -> Dict[str, Any]:
    schemas = {e[0]: schema_minimal(e[0]) for e in ENTITIES}
    for name, states in TRANSITIONS.items():
        schemas[name]["x-transitions"] = list(states)

    components: Dict[str, Any] = {
        "schemas": schemas
        | {
            "Pagination": {
                "type": "object",
                "properties": {
                    "total": {"type": "integer"},
                    "limit": {"type": "integer"},
                    "offset": {"type": "integer"},
                    "returned": {"type": "integer"},
                },
                "required": ["total", "limit", "offset", "returned"],
            },
            "Error": {
                "type": "object",
                "properties": {
                    "error": {
                        "type": "object",
                        "properties": {
                            "status": {"type": "integer"},
                            "title": {"type": "string"},
                            "detail": {"type": "string"},
                        },
                    }
                },
                "required": ["error"],
            },
        },
        "responses": {
            "NotFound": {"description": "Not Found"},
            "BadRequest": {"description": "Bad Request"},
            "Conflict": {"description": "Conflict"},
        },
        "securitySchemes": {"BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        "parameters": {},
    }

    params = components["parameters"]
    params.update({
        "LimitParam": {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 50}},
        "OffsetParam": {"name": "offset", "in": "query", "schema": {"type": "integer", "default": 0}},
    })
    for schema_name, fields in SORT_DETAILS.items():
        if fields:
            params[sort_param_name(schema_name)] = {
                "name": "sort",
                "in": "query",
                "schema": {"type": "string"},
                "description": f"Multi-field sort ({fields}). Prefix - for desc",
            }

    paths: Dict[str, Any] = {
        "/iam/auth/login": {"post": {"summary": "Login", "responses": {"200": {"description": "JWT issued"}}}},
        "/iam/auth/me": {"get": {"summary": "Current user", "responses": {"200": {"description": "OK"}}}},
    }

    for schema_name, prefix, coll, id_param, read_permission in ENTITIES:
        frag = build_entity_paths(schema_name, prefix, coll, id_param)
        list_path = f"{prefix}/{coll}"
        single_path = f"{list_path}/{{{id_param}}}"
        for path in (list_path, single_path):
            for meth in ("get", "head"):
                frag[path][meth].setdefault("x-required-permissions", [read_permission])
        for k, v in frag.items():
            paths[k] = v

    for path, summary, permission in _AGGREGATES:
        paths[path] = _aggregate_op(path, summary, permission)

    # Add operationIds & tags
    tag_desc: Dict[str, str] = {}
    for path, ops in paths.items():
        tag = path.split("/")[1].capitalize()
        for method, od in ops.items():
            rid = path.strip("/").replace("/", "_").replace("{", "").replace("}", "")
            od["operationId"] = f"auto_{method}_{rid}"
            od["tags"] = [tag]
        tag_desc[tag] = f"{tag} domain endpoints"

    return {
        "openapi": "3.0.3",
        "info": {"title": "Milicard API", "version": "0.1.0"},
        "paths": paths,
        "components": components,
        "security": [{"BearerAuth": []}],
        "tags": [{"name": n, "description": d} for n, d in sorted(tag_desc.items())],
    }
