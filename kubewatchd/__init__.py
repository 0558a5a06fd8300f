"""kubewatchd: per-kubeconfig Kubernetes change-event watcher."""

__version__ = "0.1.0"
