"""Bridges between the async controller and the threaded deployment code."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

T = TypeVar("T")


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run a controller coroutine to completion from synchronous code.

    Chart workers run in a thread pool, so each call normally gets a fresh
    event loop on its own thread. When called from inside a running loop
    (e.g. an async test) the coroutine runs on a helper thread instead of
    nesting loops.

    Example:
        controller = get_k8s_controller(kubeconfig)
        pods = run_sync(controller.get_pods("monitoring", "app=loki"))
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="k8s-sync") as pool:
        return pool.submit(asyncio.run, coro).result()
