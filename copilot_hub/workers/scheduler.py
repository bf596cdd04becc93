# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Recurring background task with an explicit start/stop lifecycle."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RecurringTask:
    """Runs ``func`` every ``interval`` seconds on the running event loop.

    ``start()`` is idempotent, so repeated application startup never registers a second loop.
    A failing iteration is logged and the loop carries on with the next tick.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], Awaitable[object]]):
        self.name = name
        self.interval = interval
        self.func = func
        self._task: Optional[asyncio.Task] = None
        self.iterations = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the loop; returns False if it was already running."""
        if self.running:
            return False
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"Started recurring task {self.name} (every {self.interval}s)")
        return True

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Stopped recurring task {self.name}")

    async def run_once(self) -> None:
        self.iterations += 1
        try:
            await self.func()
        except Exception as e:
            self.failures += 1
            logger.error(f"Recurring task {self.name} failed: {e}", exc_info=True)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()
