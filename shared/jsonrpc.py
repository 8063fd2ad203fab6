from __future__ import annotations

import json
from typing import Any


def jsonrpc_error(
    request_id: str | int | None,
    *,
    code: int,
    message: str,
    data: Any | None = None,
) -> dict[str, Any]:
    err: dict[str, Any] = {"code": int(code), "message": str(message)}
    if data is not None:
        err["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": err}


def split_call(call: Any) -> tuple[str | None, list[Any]]:
    """
    Pull `(method, params)` out of a request-shaped mapping.

    Missing or odd-typed fields come back as `None` / `[]` so callers can
    decide what a malformed call means for them.
    """
    if not isinstance(call, dict):
        return None, []
    method = call.get("method")
    if not isinstance(method, str) or not method:
        method = None
    params = call.get("params")
    if isinstance(params, (list, tuple)):
        return method, list(params)
    return method, []


def parse_json_object(text: str) -> dict[str, Any] | None:
    s = (text or "").strip()
    if not s:
        return None
    if not (s.startswith("{") and s.endswith("}")):
        return None
    try:
        obj = json.loads(s)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def parse_chain_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        s = value.strip().lower()
        try:
            return int(s, 16) if s.startswith("0x") else int(s)
        except ValueError:
            return None
    return None
