import logging
import time

from lib_bulk.transports.bulk_copy import RowsCopiedEvent

logger = logging.getLogger(__name__)


class RowsCopiedTracker:
    """Rows-copied handler that reports bulk copy progress via logging.

    Register it on a transport, usually from the writer's pre-write hook:

    ```python
    writer.bulk_copy_setup = lambda t: t.rows_copied_handlers.append(RowsCopiedTracker(total=n))
    ```
    """

    def __init__(
        self,
        total: int | None = None,
        desc: str = "",
        logger_instance: logging.Logger | None = None,
    ):
        self.total = total
        self.desc = desc
        self.logger = logger_instance or logger

        self.rows_copied = 0
        self.start_time = time.time()

    def __call__(self, event: RowsCopiedEvent):
        self.rows_copied = event.rows_copied
        self._log_progress()

    def _log_progress(self):
        elapsed = time.time() - self.start_time
        elapsed_str = self._format_time(elapsed)

        rate = self.rows_copied / elapsed if elapsed > 0 else 0.0

        if self.total is not None and self.rows_copied > 0:
            remaining = max(self.total - self.rows_copied, 0)
            eta_str = self._format_time(remaining * elapsed / self.rows_copied)
            total_str = str(self.total)
        else:
            eta_str = "unknown"
            total_str = "unknown"

        prefix = f"{self.desc}: " if self.desc else ""
        self.logger.info(
            f"{prefix}{self.rows_copied}/{total_str} rows "
            f"elapsed: {elapsed_str}, rate: {rate:.1f} rows/s, eta: {eta_str}",
        )

    @staticmethod
    def _format_time(seconds: float):
        if seconds < 60:
            return f"{seconds:.1f}s"
        if seconds < 3600:
            minutes = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{minutes}m{secs:02d}s"
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h{minutes:02d}m"
