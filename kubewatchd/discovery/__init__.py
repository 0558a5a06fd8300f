"""Filesystem discovery of kubeconfig files.

Submodules:
    watcher -- DirectoryWatcher: register-then-enumerate recursive discovery on watchdog.
"""

from kubewatchd.discovery.watcher import DirectoryWatcher

__all__ = ["DirectoryWatcher"]
