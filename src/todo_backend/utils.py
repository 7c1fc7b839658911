from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel

from .schemas import ApiResponse

_VALUE_ERROR_PREFIX = "Value error, "


# PUBLIC_INTERFACE
def success_envelope(data: Optional[Mapping[str, Any]] = None, message: str = "success") -> ApiResponse:
    """
    Build the ``{result, message, data}`` envelope for a successful call.

    Args:
        data: Mapping of view name to payload. Pydantic models are dumped with
            their camelCase aliases so the envelope serializes the same way
            regardless of how FastAPI walks the ``Dict[str, Any]`` field.
        message: Human readable outcome.

    Returns:
        ApiResponse with result=True.
    """
    dumped: Optional[Dict[str, Any]] = None
    if data is not None:
        dumped = {
            key: value.model_dump(by_alias=True, mode="json") if isinstance(value, BaseModel) else value
            for key, value in data.items()
        }
    return ApiResponse(result=True, message=message, data=dumped)


def error_envelope(message: str) -> Dict[str, Any]:
    return {"result": False, "message": message, "data": None}


# PUBLIC_INTERFACE
def validation_messages(errors: Iterable[Mapping[str, Any]]) -> List[str]:
    """
    Flatten pydantic/FastAPI error details into one message per failure.

    - Custom validator messages are used verbatim (pydantic's "Value error, " prefix is dropped).
    - Missing fields become "`field` is null.".
    - Anything else falls back to "field: msg".
    """
    messages: List[str] = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc)
        kind = err.get("type", "")
        msg = str(err.get("msg", ""))
        if kind == "missing":
            messages.append(f"`{field}` is null." if field else "request body is null.")
        elif kind == "value_error":
            messages.append(msg[len(_VALUE_ERROR_PREFIX):] if msg.startswith(_VALUE_ERROR_PREFIX) else msg)
        else:
            messages.append(f"{field}: {msg}" if field else msg)
    return messages
