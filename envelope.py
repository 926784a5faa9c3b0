import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Request

from errors import ValidationError

MISSING_BODY = "Bad request: missing request body (expected JSON or form data)"
UNPARSEABLE_BODY = "Bad request: request body could not be parsed (expected valid JSON or form data)"
INVALID_BODY = "Bad request: invalid request format"

FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

_NUMERIC = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?\s*$")


def envelope(message: str, data: Any = None) -> Dict[str, Any]:
    return {"message": message, "data": {} if data is None else data}


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = {**doc}
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            if v.tzinfo is None:
                v = v.replace(tzinfo=timezone.utc)
            d[k] = v.astimezone(timezone.utc).isoformat()
        elif isinstance(v, ObjectId):
            d[k] = str(v)
    return d


# -----------------------------
# Inbound body normalization
# -----------------------------

def coerce_value(value: Any) -> Any:
    """Turn "true"/"false" into booleans and numeric-looking strings into numbers.

    A string is only converted when the number prints back as the same text, so
    ids such as "007..." or "1234e56..." keep their exact spelling.
    """
    if not isinstance(value, str):
        return value
    lower = value.lower()
    if lower == "true":
        return True
    if lower == "false":
        return False
    if _NUMERIC.match(value):
        text = value.strip()
        number = int(text) if re.fullmatch(r"[-+]?\d+", text) else float(text)
        if str(number) == text:
            return number
    return value


def normalize_body(body: Dict[str, Any]) -> Dict[str, Any]:
    return {key: coerce_value(value) for key, value in body.items()}


def load_body(raw: Any) -> Dict[str, Any]:
    """Validate a raw request body and return it as a normalized mapping.

    ``raw`` is either already a mapping (form submissions) or the undecoded text
    of the request. Missing, unparseable and empty bodies are rejected with
    distinct messages.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(MISSING_BODY)
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError(UNPARSEABLE_BODY)
    if not isinstance(raw, dict) or not raw:
        raise ValidationError(INVALID_BODY)
    return normalize_body(raw)


def form_to_dict(form) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in form.keys():
        values = [v if isinstance(v, str) else str(v) for v in form.getlist(key)]
        if key.endswith("[]"):
            out[key[:-2]] = values
        elif len(values) > 1:
            out[key] = values
        else:
            out[key] = values[0]
    return out


async def parsed_body(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in FORM_TYPES:
        form = await request.form()
        return load_body(form_to_dict(form))
    raw = await request.body()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError(UNPARSEABLE_BODY)
    return load_body(text)
