"""Demo entrypoint exercising every interception path.

This is a manual harness, not production logic:

    python -m logtap              # all five severities, then a clean exit
    python -m logtap rejection    # an unretrieved asyncio task exception
    python -m logtap crash        # an uncaught exception (exit status 1)
    python -m logtap wait         # block until SIGINT/SIGTERM (exit status 0)

Afterwards inspect `logs/app.log` and `logs/error.log`.
"""

from __future__ import annotations

import asyncio
import gc
import logging
import sys
import time

import logtap


async def _orphan_failure() -> None:
    """Start a task that fails and is never awaited."""

    async def _boom() -> None:
        raise RuntimeError("background task failed")

    task = asyncio.ensure_future(_boom())
    await asyncio.sleep(0.05)
    del task
    gc.collect()
    await asyncio.sleep(0)


def main(argv: list[str]) -> int:
    mode = argv[1] if len(argv) > 1 else "basic"
    logtap.install()

    print("demo starting", {"mode": mode})
    logging.debug("debug detail %s", 1)
    logging.info("info message")
    logging.warning("disk almost full", {"free_mb": 12})
    logging.error("failed", {"code": 42})

    if mode == "rejection":
        asyncio.run(_orphan_failure())
        print("still running after unhandled rejection")
    elif mode == "crash":
        raise RuntimeError("demo crash")
    elif mode == "wait":
        print("waiting for SIGINT/SIGTERM ...")
        while True:
            time.sleep(1.0)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
