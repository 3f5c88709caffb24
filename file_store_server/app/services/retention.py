import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging

from logger_config import setup_logger, structured_log
from monitor import Monitor
from app.services.storage_manager import FileNotFoundInStorage, StorageError, StorageManager


class RetentionSweeper:
    """Periodically delete stored files whose last modification is older than the retention window."""

    def __init__(
        self,
        storage_manager: StorageManager,
        retention_seconds: int,
        interval_seconds: int,
        monitor: Optional[Monitor] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("Sweep interval must be positive")

        self.storage_manager = storage_manager
        self.retention = timedelta(seconds=retention_seconds)
        self.interval_seconds = interval_seconds
        self.logger = logger or setup_logger()
        self.monitor = monitor or Monitor(
            "retention sweep",
            failure_threshold=3,
            window_seconds=3 * interval_seconds,
            logger=self.logger,
        )
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Run one cleanup cycle and return the names of the deleted files.

        A failure to read the storage directory aborts the cycle. Failures on
        individual files are logged and the cycle continues.
        """
        now = now or datetime.now(timezone.utc)

        try:
            filenames = await self.storage_manager.list_files()
        except StorageError as e:
            self.logger.error(f"Error reading upload directory for cleanup: {e}")
            self.monitor.fail()
            return []

        deleted = []
        for filename in filenames:
            try:
                details = await self.storage_manager.get_details(filename)
                if now - details.modified_at <= self.retention:
                    continue
                await self.storage_manager.delete_file(filename)
            except FileNotFoundInStorage:
                # Removed by a client or not a regular file
                self.logger.debug(f"Skipping {filename} during cleanup: no longer a stored file")
                continue
            except StorageError as e:
                self.logger.error(f"Error cleaning up {filename}: {e}")
                continue
            deleted.append(filename)

        self.monitor.pass_()
        self.logger.info(structured_log(
            "Retention sweep finished",
            event="sweep_finished",
            scanned=len(filenames),
            deleted=len(deleted),
        ))
        return deleted

    async def run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                self.logger.error(f"Unexpected error during retention sweep: {e}", exc_info=True)
                self.monitor.fail()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self.run())
        self.logger.info(
            f"Retention sweep scheduled every {self.interval_seconds}s, "
            f"retention {int(self.retention.total_seconds())}s"
        )

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("Retention sweep stopped")
