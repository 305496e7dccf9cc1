from __future__ import annotations
from typing import Iterable, List

WILDCARD = '*'
ALWAYS_READABLE = ('id',)


def filter_readable(obj: dict, readable: Iterable[str]) -> dict:
    readable = list(readable)
    if WILDCARD in readable:
        return obj
    allowed = set(readable) | set(ALWAYS_READABLE)
    return {k: v for k, v in obj.items() if k in allowed}


def filter_readable_rows(rows: List[dict], readable: Iterable[str]) -> List[dict]:
    readable = list(readable)
    if WILDCARD in readable:
        return rows
    return [filter_readable(r, readable) for r in rows]


def filter_writable(data: dict, writable: Iterable[str]) -> dict:
    writable = list(writable)
    if WILDCARD in writable:
        return data
    allowed = set(writable)
    return {k: v for k, v in data.items() if k in allowed}
