"""
Log filters that stamp tracker context onto records.
"""

import logging
from typing import Dict, Any


class TrackerIdFilter(logging.Filter):
    """
    Filter that adds the tracker id to every record.

    Several trackers (one per replication) usually share a process; the id
    keeps their interleaved output apart.

    Example:
        >>> handler.addFilter(TrackerIdFilter("pull-inbox"))
        >>> logger.info("Started")  # Will include tracker_id=pull-inbox
    """

    def __init__(self, tracker_id: str):
        super().__init__()
        self.tracker_id = tracker_id

    def filter(self, record: logging.LogRecord) -> bool:
        """Add tracker id unless the record already carries one."""
        if not hasattr(record, 'tracker_id'):
            record.tracker_id = self.tracker_id
        return True


class ExtraFieldsFilter(logging.Filter):
    """
    Filter that adds extra static fields to all log records.

    Useful for adding environment, service name, version, etc.
    """

    def __init__(self, extra_fields: Dict[str, Any]):
        super().__init__()
        self.extra_fields = extra_fields

    def filter(self, record: logging.LogRecord) -> bool:
        """Add extra fields to record."""
        for key, value in self.extra_fields.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
