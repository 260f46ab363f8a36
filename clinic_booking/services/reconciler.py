"""
Background task that re-applies the day-off availability policy.

Runs once when the application starts and then every
``RECONCILE_INTERVAL_SECONDS``. A failed pass is logged and the next tick
simply tries again.
"""
from typing import Callable, Optional
import asyncio
import logging

from sqlalchemy.orm import Session

from ..core.clock import Clock, system_clock
from ..core.config import settings
from .availability import AvailabilityService
from .slot_ledger import SlotLedger

logger = logging.getLogger(__name__)


class AvailabilityReconciler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Optional[Clock] = None,
        interval_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or system_clock
        self.interval_seconds = interval_seconds or settings.RECONCILE_INTERVAL_SECONDS
        self.last_summary: Optional[dict] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> Optional[dict]:
        """One availability pass plus a ledger integrity check.

        Never raises; returns None when the pass failed.
        """
        db = None
        try:
            db = self.session_factory()
            summary = AvailabilityService(db).reconcile_all(self.clock.today())
            drifts = SlotLedger(db).find_drift()
            summary["ledger_drift"] = [drift.as_dict() for drift in drifts]
            self.last_summary = summary
            return summary
        except Exception as e:
            logger.error(f"Error updating doctor availability based on day off: {str(e)}")
            return None
        finally:
            if db is not None:
                db.close()

    async def start(self) -> None:
        """Run a pass now, then keep running on the interval in the background."""
        if self.is_running:
            logger.warning("Availability reconciler is already running")
            return

        logger.info("Initializing availability reconciler...")
        await asyncio.get_running_loop().run_in_executor(None, self.run_once)
        logger.info("Initial day off check completed")

        self._task = asyncio.create_task(self._loop())
        logger.info(f"Availability reconciler scheduled every {self.interval_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Availability reconciler stopped")

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self.interval_seconds)
            logger.info("Running scheduled day off check...")
            await loop.run_in_executor(None, self.run_once)
            logger.info("Scheduled day off check completed")
