"""Tests for event formatting and the file / log sinks."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from kubewatchd.errors import SinkWriteError
from kubewatchd.models.events import ChangeType, ResourceEvent, ResourceKind
from kubewatchd.sink import FileEventSink, LogEventSink, build_sink, format_event, safe_component
from kubewatchd.sink import sinks

_TS = datetime(2026, 10, 19, 9, 12, 44, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


class TestFormatEvent:
    def test_pod_line_contains_phase(self) -> None:
        event = ResourceEvent(ResourceKind.POD, ChangeType.ADDED, "default", "web-1", {"phase": "Running"})
        assert format_event(event, now=_TS) == "2026-10-19T09:12:44+00:00 pod ADDED web-1 (default) phase=Running"

    def test_pod_without_phase(self) -> None:
        event = ResourceEvent(ResourceKind.POD, ChangeType.DELETED, "default", "web-1")
        assert format_event(event, now=_TS).endswith("phase=Unknown")

    def test_deployment_line(self) -> None:
        event = ResourceEvent(ResourceKind.DEPLOYMENT, ChangeType.MODIFIED, "prod", "api")
        assert format_event(event, now=_TS) == "2026-10-19T09:12:44+00:00 deploy MODIFIED api (prod)"

    def test_network_policy_line(self) -> None:
        event = ResourceEvent(ResourceKind.NETWORK_POLICY, ChangeType.MODIFIED, "prod", "deny-all")
        assert " netpol MODIFIED deny-all (prod)" in format_event(event, now=_TS)


class TestSafeComponent:
    def test_plain_name_unchanged(self) -> None:
        assert safe_component("kind-dev") == "kind-dev"

    def test_eks_arn(self) -> None:
        assert safe_component("arn:aws:eks:eu-west-1:123:cluster/prod") == "arn_aws_eks_eu-west-1_123_cluster_prod"

    def test_dot_names_cannot_escape(self) -> None:
        assert safe_component("..") == "_.."
        assert safe_component("") == "_"


# ---------------------------------------------------------------------------
# File sink
# ---------------------------------------------------------------------------


class TestFileEventSink:
    async def test_appends_lines_per_context_and_kind(self, tmp_path: Path) -> None:
        sink = FileEventSink(tmp_path)
        await sink.write("ctx", ResourceKind.POD, "first")
        await sink.write("ctx", ResourceKind.POD, "second\n")
        await sink.write("ctx", ResourceKind.DEPLOYMENT, "third")

        assert (tmp_path / "ctx" / "pod.log").read_text(encoding="utf-8") == "first\nsecond\n"
        assert (tmp_path / "ctx" / "deployment.log").read_text(encoding="utf-8") == "third\n"

    async def test_target_is_deterministic(self, tmp_path: Path) -> None:
        sink = FileEventSink(tmp_path)
        assert sink.target("a/b", ResourceKind.NETWORK_POLICY) == tmp_path / "a_b" / "networkpolicy.log"
        assert sink.target("a/b", ResourceKind.NETWORK_POLICY) == sink.target("a/b", ResourceKind.NETWORK_POLICY)

    async def test_write_failure_raises_sink_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x", encoding="utf-8")
        sink = FileEventSink(blocker)
        with pytest.raises(SinkWriteError, match="cannot append"):
            await sink.write("ctx", ResourceKind.POD, "line")


# ---------------------------------------------------------------------------
# Log sink
# ---------------------------------------------------------------------------


class TestLogEventSink:
    async def test_emits_resource_event(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake_log = MagicMock()
        monkeypatch.setattr(sinks, "_log", fake_log)
        await LogEventSink().write("ctx", ResourceKind.POD, "pod ADDED web-1 (default) phase=Running")
        fake_log.info.assert_called_once_with(
            "resource_event",
            context="ctx",
            kind="Pod",
            record="pod ADDED web-1 (default) phase=Running",
        )

    async def test_logging_failure_raises_sink_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake_log = MagicMock()
        fake_log.info.side_effect = ValueError("I/O operation on closed file")
        monkeypatch.setattr(sinks, "_log", fake_log)
        with pytest.raises(SinkWriteError):
            await LogEventSink().write("ctx", ResourceKind.POD, "line")


class TestBuildSink:
    def test_no_output_dir_uses_log(self) -> None:
        assert isinstance(build_sink(None), LogEventSink)

    def test_output_dir_uses_file(self, tmp_path: Path) -> None:
        sink = build_sink(tmp_path)
        assert isinstance(sink, FileEventSink)
        assert sink.root == tmp_path
