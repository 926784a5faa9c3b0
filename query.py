import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from bson import ObjectId

from errors import ValidationError

TASK_DEFAULT_LIMIT = 100
USER_DEFAULT_LIMIT = None

_ID_OPERATORS = ("$eq", "$ne", "$in", "$nin")
_LOGICAL_OPERATORS = ("$and", "$or", "$nor")


@dataclass
class QuerySpec:
    filter: Dict[str, Any]
    sort: Optional[List[Tuple[str, Any]]] = None
    projection: Optional[Dict[str, Any]] = None
    skip: Optional[int] = None
    limit: Optional[int] = None
    count: bool = False


def parse_json(value: Optional[str], default: Any = None) -> Any:
    """Parse a JSON query parameter, falling back to ``default`` on absence or bad JSON."""
    if value is None or value == "":
        return default
    try:
        return json.loads(value)
    except ValueError:
        return default


def parse_int(name: str, value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Bad request: {name} must be an integer")


def to_object_id(value: Any) -> Any:
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def cast_ids(where: Any) -> Any:
    """Return a copy of a filter with ``_id`` string values turned into ObjectIds."""
    if isinstance(where, list):
        return [cast_ids(item) for item in where]
    if not isinstance(where, dict):
        return where
    out: Dict[str, Any] = {}
    for key, value in where.items():
        if key in _LOGICAL_OPERATORS:
            out[key] = cast_ids(value)
        elif key == "_id":
            out[key] = _cast_id_condition(value)
        else:
            out[key] = value
    return out


def _cast_id_condition(value: Any) -> Any:
    if isinstance(value, dict):
        cond = dict(value)
        for op in _ID_OPERATORS:
            if op not in cond:
                continue
            if isinstance(cond[op], list):
                cond[op] = [to_object_id(v) for v in cond[op]]
            else:
                cond[op] = to_object_id(cond[op])
        return cond
    return to_object_id(value)


def parse_projection(value: Optional[str]) -> Optional[Dict[str, Any]]:
    projection = parse_json(value)
    if not isinstance(projection, dict) or not projection:
        return None
    return projection


def translate(params: Mapping[str, str], default_limit: Optional[int]) -> QuerySpec:
    raw_where = params.get("where")
    if raw_where is None or raw_where == "":
        where: Any = {}
    else:
        try:
            where = json.loads(raw_where)
        except ValueError:
            raise ValidationError("Bad request: where must be valid JSON")
        if not isinstance(where, dict):
            raise ValidationError("Bad request: where must be a JSON object")

    sort = parse_json(params.get("sort"))
    sort_items = list(sort.items()) if isinstance(sort, dict) and sort else None

    limit = parse_int("limit", params.get("limit"))
    if limit is None:
        limit = default_limit

    return QuerySpec(
        filter=cast_ids(where),
        sort=sort_items,
        projection=parse_projection(params.get("select")),
        skip=parse_int("skip", params.get("skip")),
        limit=limit,
        count=str(params.get("count", "")).lower() == "true",
    )
