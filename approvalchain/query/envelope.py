"""Normalization of console API response envelopes.

The console API answers in one of two shapes::

    {"success": true, "message": "...", "data": {...}}                 # current
    {"header": {"success": true, "messages": [...]}, "body": {...}}    # legacy

and list payloads nest their rows differently depending on the endpoint.
These helpers reduce every variant to one :class:`NormalizedResponse`.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..errors import ChannelError


class ResponseMessage(BaseModel):
    code: Optional[str] = None
    type: Optional[str] = None
    message: str = ""


class NormalizedResponse(BaseModel):
    success: bool
    data: Any = None
    message: Optional[str] = None
    errors: List[ResponseMessage] = Field(default_factory=list)

    def error_message(self, default: str) -> str:
        if self.message:
            return self.message
        if self.errors and self.errors[0].message:
            return self.errors[0].message
        return default


def _messages(raw: Any) -> List[ResponseMessage]:
    return [
        ResponseMessage(
            code=None if m.get("code") is None else str(m.get("code")),
            type=m.get("type"),
            message=m.get("message") or "",
        )
        for m in raw or []
        if isinstance(m, dict)
    ]


def normalize_response(payload: Any) -> NormalizedResponse:
    """Reduce a current or legacy envelope to a :class:`NormalizedResponse`."""
    if not isinstance(payload, dict):
        raise ChannelError(f"Unrecognized response envelope: {type(payload).__name__}")

    if isinstance(payload.get("success"), bool):
        return NormalizedResponse(
            success=payload["success"],
            data=payload.get("data"),
            message=payload.get("message"),
            errors=_messages(payload.get("errors")),
        )

    header = payload.get("header")
    if isinstance(header, dict):
        return NormalizedResponse(
            success=bool(header.get("success")),
            data=payload.get("body"),
            message=header.get("message"),
            errors=_messages(header.get("messages")),
        )

    raise ChannelError("Response has neither a 'success' flag nor a 'header'")


def extract_items(data: Any, key: str = "approvals") -> Tuple[List[Any], Optional[int]]:
    """Pull the row list and the reported total out of a payload.

    Accepts ``{key: {total, pages, items}}``, ``{items, total}`` or a bare
    list. The total is ``None`` when the payload does not report one.
    """
    if data is None:
        return [], None
    if isinstance(data, list):
        return data, None
    if isinstance(data, dict):
        container = data.get(key, data)
        if isinstance(container, list):
            return container, None
        if isinstance(container, dict):
            if container is data and "items" not in data:
                raise ChannelError(f"Cannot find {key!r} rows in response payload")
            items = container.get("items") or []
            total = container.get("total")
            return list(items), int(total) if total is not None else None
    raise ChannelError(f"Cannot find {key!r} rows in response payload")
