"""
Background task that periodically purges expired transactions and tokens.
"""
import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Run `sweep` every `interval` seconds on the running event loop until stopped."""

    def __init__(self, sweep: Callable[[], object], interval: float = 60.0) -> None:
        self._sweep = sweep
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="pkce-proxy-sweeper")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self._sweep()
            except Exception:
                # A bad pass must not kill the loop; next interval tries again
                logger.exception("Expiry sweep failed")
