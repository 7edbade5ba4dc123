# -*- coding: utf-8 -*-
"""
Tests of the resource dataclasses

"""

import datetime
import unittest

import pytz

from secret_sync_controller import Condition, SecretSyncStatus
from secret_sync_controller.models import MAX_CONDITIONS, format_timestamp, parse_timestamp


class TestTimestamps(unittest.TestCase):

    def test_parse_and_format(self):
        parsed = parse_timestamp("2024-05-01T12:00:00+02:00")
        self.assertEqual(parsed, datetime.datetime(2024, 5, 1, 10, 0, tzinfo=pytz.utc))
        self.assertEqual(format_timestamp(parsed), "2024-05-01T10:00:00Z")
        self.assertIsNone(parse_timestamp(""))
        self.assertIsNone(format_timestamp(None))

    def test_naive_is_utc(self):
        self.assertEqual(format_timestamp(datetime.datetime(2024, 1, 2, 3, 4, 5)),
                         "2024-01-02T03:04:05Z")


class TestSecretSyncStatus(unittest.TestCase):

    def test_conditions_sorted_and_capped(self):
        conditions = [Condition(type=f"Type{i:02d}", status="True", reason="r")
                      for i in reversed(range(MAX_CONDITIONS + 4))]
        body = SecretSyncStatus(conditions=conditions).to_dict()
        types = [c["type"] for c in body["conditions"]]
        self.assertEqual(len(types), MAX_CONDITIONS)
        self.assertEqual(types, sorted(types))
        self.assertEqual(types[0], "Type00")

    def test_empty_status(self):
        self.assertEqual(SecretSyncStatus().to_dict(), {"conditions": []})
        status = SecretSyncStatus.from_dict(None)
        self.assertEqual((status.sync_hash, status.conditions), ("", []))


if __name__ == '__main__':
    unittest.main()
