"""Entry point for `python -m kubewatchd`.

Usage:
    KUBEWATCHD_WATCH_DIR=/srv/kubeconfigs python -m kubewatchd
"""

from __future__ import annotations

import asyncio

from kubewatchd.app import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
