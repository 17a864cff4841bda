"""Tracking of the next expected Telegram update id."""

import logging

logger = logging.getLogger("telegram_log.offset")


class OffsetTracker:
    """Keeps the smallest ``update_id`` not processed yet.

    The offset only moves forward. It advances as soon as an update is
    observed, before its payload is validated, so an update that is later
    rejected is never delivered again.
    """

    def __init__(self, offset: int = 0):
        self.offset = offset

    def observe(self, update_id: int) -> bool:
        """Account an update id.

        Returns:
            True if the update is fresh, False if it was already seen
        """
        if update_id >= self.offset:
            self.offset = update_id + 1
            return True

        logger.debug(f"Ignoring duplicated update {update_id} (offset {self.offset})")
        return False
