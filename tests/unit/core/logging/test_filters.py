"""
Tests for log filters.
"""

import logging

from src.change_tracker.core.logging.filters import ExtraFieldsFilter, TrackerIdFilter


def make_record(msg="Started"):
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None
    )


class TestTrackerIdFilter:

    def test_adds_tracker_id(self):
        record = make_record()

        assert TrackerIdFilter("pull-inbox").filter(record) is True
        assert record.tracker_id == "pull-inbox"

    def test_keeps_existing_id(self):
        record = make_record()
        record.tracker_id = "push-outbox"

        TrackerIdFilter("pull-inbox").filter(record)

        assert record.tracker_id == "push-outbox"


class TestExtraFieldsFilter:

    def test_adds_static_fields(self):
        record = make_record()

        assert ExtraFieldsFilter({"service": "replicator", "env": "test"}).filter(record) is True
        assert record.service == "replicator"
        assert record.env == "test"

    def test_does_not_override_record_fields(self):
        record = make_record()
        record.env = "prod"

        ExtraFieldsFilter({"env": "test"}).filter(record)

        assert record.env == "prod"
