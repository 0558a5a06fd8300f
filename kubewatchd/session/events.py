"""Translate raw watch events into ResourceEvent."""

from __future__ import annotations

from typing import Any

from kubewatchd.errors import StreamError
from kubewatchd.models.events import ChangeType, ResourceEvent, ResourceKind


def _payload(raw: dict[str, Any]) -> dict[str, Any] | None:
    """Prefer the JSON body; fall back to a deserialized client model."""
    obj = raw.get("raw_object")
    if obj is None:
        obj = raw.get("object")
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()  # type: ignore[no-any-return]
    return None


def parse_watch_event(kind: ResourceKind, raw: Any) -> ResourceEvent:
    """Build a ResourceEvent from one raw watch event.

    Raises:
        StreamError: the event is an ERROR notification, has no payload, has an
            unknown type, or its object lacks metadata.name.
    """
    if not isinstance(raw, dict):
        raise StreamError(f"unexpected event shape {type(raw).__name__}", kind=kind.value)

    event_type = str(raw.get("type") or "").upper()
    if event_type == ChangeType.ERROR:
        status = _payload(raw) or {}
        detail = status.get("message") or status.get("reason") or "unspecified"
        raise StreamError(f"error event: {detail}", kind=kind.value)
    try:
        change_type = ChangeType(event_type)
    except ValueError as exc:
        raise StreamError(f"unknown event type {event_type!r}", kind=kind.value) from exc
    obj = _payload(raw)
    if obj is None:
        raise StreamError(f"{change_type.value} event without object", kind=kind.value)

    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        raise StreamError(f"{change_type.value} event object has no name", kind=kind.value)

    extra: dict[str, Any] = {}
    if kind is ResourceKind.POD:
        phase = (obj.get("status") or {}).get("phase")
        if phase:
            extra["phase"] = phase

    return ResourceEvent(
        resource_kind=kind,
        change_type=change_type,
        namespace=str(metadata.get("namespace") or ""),
        name=str(name),
        extra=extra,
    )
