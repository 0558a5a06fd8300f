"""Tests for raw watch event translation."""

from __future__ import annotations

import pytest

from kubewatchd.errors import StreamError
from kubewatchd.models.events import ChangeType, ResourceKind
from kubewatchd.session.events import parse_watch_event


class _Model:
    """Stands in for a deserialized kubernetes-asyncio model."""

    def __init__(self, data: dict) -> None:
        self._data = data

    def to_dict(self) -> dict:
        return self._data


class TestValidEvents:
    def test_pod_added_with_phase(self) -> None:
        raw = {
            "type": "ADDED",
            "raw_object": {"metadata": {"name": "web-1", "namespace": "shop"}, "status": {"phase": "Pending"}},
        }
        event = parse_watch_event(ResourceKind.POD, raw)
        assert event.resource_kind is ResourceKind.POD
        assert event.change_type is ChangeType.ADDED
        assert event.namespace == "shop"
        assert event.name == "web-1"
        assert event.phase == "Pending"

    def test_deployment_has_no_phase(self) -> None:
        raw = {"type": "MODIFIED", "raw_object": {"metadata": {"name": "api", "namespace": "prod"}}}
        event = parse_watch_event(ResourceKind.DEPLOYMENT, raw)
        assert event.change_type is ChangeType.MODIFIED
        assert event.phase is None
        assert event.extra == {}

    def test_falls_back_to_model_object(self) -> None:
        model = _Model({"metadata": {"name": "deny-all", "namespace": "prod"}})
        event = parse_watch_event(ResourceKind.NETWORK_POLICY, {"type": "DELETED", "object": model})
        assert event.name == "deny-all"
        assert event.change_type is ChangeType.DELETED

    def test_lowercase_type_accepted(self) -> None:
        raw = {"type": "added", "object": {"metadata": {"name": "a", "namespace": "b"}}}
        assert parse_watch_event(ResourceKind.POD, raw).change_type is ChangeType.ADDED


class TestMalformedEvents:
    def test_error_event(self) -> None:
        raw = {"type": "ERROR", "raw_object": {"kind": "Status", "code": 410, "message": "too old resource version"}}
        with pytest.raises(StreamError, match="too old resource version"):
            parse_watch_event(ResourceKind.POD, raw)

    def test_missing_object(self) -> None:
        with pytest.raises(StreamError, match="without object"):
            parse_watch_event(ResourceKind.POD, {"type": "ADDED", "object": None})

    def test_unknown_type(self) -> None:
        raw = {"type": "BOOKMARK", "object": {"metadata": {"name": "a"}}}
        with pytest.raises(StreamError, match="unknown event type"):
            parse_watch_event(ResourceKind.DEPLOYMENT, raw)

    def test_missing_name(self) -> None:
        raw = {"type": "ADDED", "object": {"metadata": {"namespace": "default"}}}
        with pytest.raises(StreamError, match="no name"):
            parse_watch_event(ResourceKind.POD, raw)

    def test_not_a_dict(self) -> None:
        with pytest.raises(StreamError) as exc_info:
            parse_watch_event(ResourceKind.NETWORK_POLICY, None)
        assert exc_info.value.kind == "NetworkPolicy"
