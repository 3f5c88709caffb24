from typing import Callable, Optional
from datetime import datetime, timedelta
from collections import deque
import logging

from logger_config import setup_logger, structured_log


class Monitor:
    def __init__(
        self,
        name: str,
        failure_threshold: int,
        window_seconds: int = 60,
        alert_handler: Optional[Callable[[str], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the monitor with a failure threshold and optional alert handler.

        Args:
            name: Name of the monitored activity, used in alert messages
            failure_threshold: Number of consecutive failures before raising an alert
            window_seconds: Time window in seconds to check for failures
            alert_handler: Optional callback function to handle alerts. If None, logs at ERROR level
            logger: Logger used by the default alert handler
        """
        if failure_threshold <= 0:
            raise ValueError("Failure threshold must be positive")
        if window_seconds <= 0:
            raise ValueError("Window seconds must be positive")

        self.name = name
        self._failure_threshold = failure_threshold
        self._window_seconds = window_seconds
        self._logger = logger or setup_logger()
        self._alert_handler = alert_handler or self._default_alert_handler
        self._total_passes = 0
        self._total_failures = 0
        self._failure_timestamps = deque()  # Store failure timestamps
        self._last_status_time = datetime.now()

    def _clean_old_failures(self) -> None:
        """Remove failures outside the time window."""
        now = datetime.now()
        window_start = now - timedelta(seconds=self._window_seconds)

        while self._failure_timestamps and self._failure_timestamps[0] < window_start:
            self._failure_timestamps.popleft()

    def _default_alert_handler(self, message: str) -> None:
        self._logger.error(structured_log(message, event="monitor_alert", monitor=self.name))

    def pass_(self) -> None:
        """Record a successful action. Breaks any run of consecutive failures."""
        self._total_passes += 1
        self._last_status_time = datetime.now()
        self._failure_timestamps.clear()

    def fail(self) -> None:
        """
        Record a failed action.
        Triggers alert if consecutive failures reach threshold within the time window.
        """
        now = datetime.now()
        self._failure_timestamps.append(now)
        self._total_failures += 1
        self._last_status_time = now

        self._clean_old_failures()

        if len(self._failure_timestamps) == self._failure_threshold:
            self._alert_handler(
                f"Alert: {self._failure_threshold} consecutive {self.name} failures detected "
                f"within {self._window_seconds}s! "
                f"(Total passes: {self._total_passes}, Total failures: {self._total_failures})"
            )

    @property
    def consecutive_failures(self) -> int:
        """Get current number of consecutive failures within the window."""
        self._clean_old_failures()
        return len(self._failure_timestamps)

    @property
    def stats(self) -> dict:
        """Get monitor statistics."""
        self._clean_old_failures()
        return {
            'total_passes': self._total_passes,
            'total_failures': self._total_failures,
            'consecutive_failures': len(self._failure_timestamps),
            'last_status_time': int(self._last_status_time.timestamp()),
            'window_seconds': self._window_seconds
        }
