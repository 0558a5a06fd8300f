"""Filter chain deciding which change events reach the sink.

The decision is a pure function of (resource kind, change type, namespace).
Policy lives in a FilterConfig table so it can vary without touching the
session merge loop.
"""

from __future__ import annotations

from kubewatchd.models.config import FilterConfig
from kubewatchd.models.events import ChangeType, ResourceEvent, ResourceKind


class FilterChain:
    """Keep/drop decisions backed by a per-kind change-type table.

    Kinds absent from the table are dropped. ERROR is never kept: error
    events end the session before filtering is reached.
    """

    def __init__(self, config: FilterConfig | None = None) -> None:
        config = config or FilterConfig()
        self._keep = {
            kind: frozenset(ct for ct in change_types if ct is not ChangeType.ERROR)
            for kind, change_types in config.keep.items()
        }
        self._excluded = frozenset(config.excluded_namespaces)

    def keep(self, kind: ResourceKind, change_type: ChangeType, namespace: str) -> bool:
        """Return True if an event with these attributes should be written."""
        if namespace in self._excluded:
            return False
        return change_type in self._keep.get(kind, frozenset())

    def accepts(self, event: ResourceEvent) -> bool:
        return self.keep(event.resource_kind, event.change_type, event.namespace)

    def describe(self) -> dict[str, list[str]]:
        """Policy as plain data, for the startup log line."""
        table = {str(kind): sorted(ct.value for ct in cts) for kind, cts in self._keep.items()}
        table["excluded_namespaces"] = sorted(self._excluded)
        return table
