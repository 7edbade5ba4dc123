# -*- coding: utf-8 -*-
"""
Tests of the change detection digest

"""

import unittest

from secret_sync_controller import DigestError, compute_digest, compute_secret_data_object_hash
from secret_sync_controller.digest import serialize_digest_input

from fakes import SECRET_SYNC_UID, SPC_UID, make_secret_sync, make_spc


class TestDigest(unittest.TestCase):

    def setUp(self):
        self.data = {"pwd": b"hello", "user": b"admin"}
        self.args = (SPC_UID, 1, SECRET_SYNC_UID, 1, "")

    def test_deterministic(self):
        first = compute_digest(self.data, *self.args)
        second = compute_digest(dict(self.data), *self.args)
        self.assertEqual(first, second)

    def test_insertion_order_irrelevant(self):
        reordered = {"user": b"admin", "pwd": b"hello"}
        self.assertEqual(compute_digest(self.data, *self.args),
                         compute_digest(reordered, *self.args))

    def test_version_prefix_and_length(self):
        digest = compute_digest(self.data, *self.args)
        # hex of b"v1" followed by a 64 byte HMAC-SHA512
        self.assertTrue(digest.startswith(b"v1".hex()))
        self.assertEqual(len(digest), (2 + 64) * 2)

    def test_every_input_changes_digest(self):
        base = compute_digest(self.data, *self.args)
        variants = [
            compute_digest({"pwd": b"hellp", "user": b"admin"}, *self.args),
            compute_digest({"pwd2": b"hello", "user": b"admin"}, *self.args),
            compute_digest(self.data, SPC_UID + "x", 1, SECRET_SYNC_UID, 1, ""),
            compute_digest(self.data, SPC_UID, 2, SECRET_SYNC_UID, 1, ""),
            compute_digest(self.data, SPC_UID, 1, SECRET_SYNC_UID + "x", 1, ""),
            compute_digest(self.data, SPC_UID, 1, SECRET_SYNC_UID, 2, ""),
            compute_digest(self.data, SPC_UID, 1, SECRET_SYNC_UID, 1, "rotate"),
        ]
        for variant in variants:
            self.assertNotEqual(base, variant)
        self.assertEqual(len(set(variants)), len(variants))

    def test_serialization_order(self):
        material = serialize_digest_input({"pwd": b"hello"}, "spc", 3, "ss", 4, "now")
        self.assertEqual(material, b'{"pwd":"aGVsbG8="}"spc"3"ss"4"now"')

    def test_non_bytes_value_is_an_internal_error(self):
        with self.assertRaises(DigestError):
            compute_digest({"pwd": object()}, *self.args)

    def test_resource_helper_matches(self):
        secret_sync = make_secret_sync(force_synchronization="f1")
        spc = make_spc()
        self.assertEqual(compute_secret_data_object_hash(self.data, spc, secret_sync),
                         compute_digest(self.data, SPC_UID, 1, SECRET_SYNC_UID, 1, "f1"))


if __name__ == '__main__':
    unittest.main()
