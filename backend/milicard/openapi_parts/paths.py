"""Per-entity path fragments: list path first, then the single resource, then actions in registry order."""
from typing import Any, Dict, List

from .constants import ACTION_REGISTRY, SORT_DETAILS, sort_param_name
from .helpers import caching_headers, path_params


def _list_ops(schema_name: str, prefix: str, coll: str) -> Dict[str, Any]:
    params: List[Dict[str, Any]] = path_params(prefix) + [
        {"$ref": "#/components/parameters/LimitParam"},
        {"$ref": "#/components/parameters/OffsetParam"},
    ]
    if SORT_DETAILS.get(schema_name):
        params.append({"$ref": f"#/components/parameters/{sort_param_name(schema_name)}"})
    return {
        "get": {
            "summary": f"List {coll.replace('-', ' ')}",
            "parameters": params,
            "responses": {
                "200": {
                    "description": "OK",
                    "headers": caching_headers(),
                    "content": {
                        "application/json": {
                            "schema": {
                                "type": "object",
                                "properties": {
                                    "data": {"type": "array", "items": {"$ref": f"#/components/schemas/{schema_name}"}},
                                    "pagination": {"$ref": "#/components/schemas/Pagination"},
                                },
                            }
                        }
                    },
                },
                "304": {"description": "Not Modified"},
                "400": {"$ref": "#/components/responses/BadRequest"},
            },
        },
        "head": {
            "summary": f"{schema_name} list validators",
            "parameters": path_params(prefix),
            "responses": {
                "200": {"description": "Headers only", "headers": caching_headers()},
                "304": {"description": "Not Modified"},
            },
        },
        "post": {
            "summary": f"Create {schema_name}",
            "parameters": path_params(prefix),
            "responses": {
                "201": {
                    "description": "Created",
                    "content": {"application/json": {"schema": {"$ref": f"#/components/schemas/{schema_name}"}}},
                },
                "400": {"$ref": "#/components/responses/BadRequest"},
                "409": {"$ref": "#/components/responses/Conflict"},
            },
        },
    }


def _single_ops(schema_name: str, prefix: str, id_param: str) -> Dict[str, Any]:
    params = path_params(prefix, id_param)
    return {
        "get": {
            "summary": f"Get {schema_name}",
            "parameters": params,
            "responses": {
                "200": {
                    "description": "OK",
                    "headers": caching_headers(),
                    "content": {"application/json": {"schema": {"$ref": f"#/components/schemas/{schema_name}"}}},
                },
                "304": {"description": "Not Modified"},
                "404": {"$ref": "#/components/responses/NotFound"},
            },
        },
        "head": {
            "summary": f"{schema_name} validators",
            "parameters": params,
            "responses": {
                "200": {"description": "Headers only", "headers": caching_headers()},
                "304": {"description": "Not Modified"},
                "404": {"$ref": "#/components/responses/NotFound"},
            },
        },
    }


def build_entity_paths(schema_name: str, prefix: str, coll: str, id_param: str) -> Dict[str, Any]:
    paths: Dict[str, Any] = {}
    list_path = f"{prefix}/{coll}"
    single_path = f"{list_path}/{{{id_param}}}"
    paths[list_path] = _list_ops(schema_name, prefix, coll)
    paths[single_path] = _single_ops(schema_name, prefix, id_param)

    for spec in ACTION_REGISTRY.get(schema_name, []):
        paths[f"{single_path}/{spec['action']}"] = {
            "post": {
                "summary": spec["summary"],
                "parameters": path_params(prefix, id_param),
                "responses": {
                    "200": {
                        "description": "OK",
                        "content": {"application/json": {"schema": {"$ref": f"#/components/schemas/{schema_name}"}}},
                    },
                    "400": {"$ref": "#/components/responses/BadRequest"},
                    "404": {"$ref": "#/components/responses/NotFound"},
                },
                "x-required-permissions": [spec["permission"]],
            }
        }
    return paths


__all__ = ["build_entity_paths"]
