"""Session supervision: one live WatchSession per discovered kubeconfig."""

from kubewatchd.supervisor.supervisor import SessionFactory, SessionSupervisor

__all__ = ["SessionFactory", "SessionSupervisor"]
