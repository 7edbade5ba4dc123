# -*- coding: utf-8 -*-
"""
Tests of the condition ledger

"""

import unittest
from datetime import datetime, timedelta

import pytz

from secret_sync_controller import CONDITION_TYPE_CREATE, \
    CONDITION_TYPE_UPDATE, \
    Condition, \
    ConditionLedger, \
    ConditionReasons, \
    SecretSyncStatus
from secret_sync_controller.conditions import CONDITION_TYPE_UNKNOWN, \
    REASONS, \
    can_display_error_message, \
    find_status_condition, \
    is_retry_triggering, \
    is_succeeded, \
    new_condition, \
    remove_status_condition, \
    set_status_condition


class TestReasonTable(unittest.TestCase):

    def test_classification_is_disjoint_and_complete(self):
        for reason, (status, message) in REASONS.items():
            self.assertTrue(message)
            self.assertNotEqual(is_retry_triggering(reason), is_succeeded(reason), reason)
            if is_succeeded(reason):
                self.assertEqual(status, "True")
            else:
                self.assertIn(status, ("False", "Unknown"))

    def test_statuses(self):
        self.assertEqual(new_condition(CONDITION_TYPE_CREATE,
                                       ConditionReasons.CREATE_SUCCEEDED).status, "True")
        self.assertEqual(new_condition(CONDITION_TYPE_UPDATE,
                                       ConditionReasons.PROVIDER_ERROR).status, "False")
        self.assertEqual(new_condition(CONDITION_TYPE_UPDATE,
                                       ConditionReasons.CONTROLLER_INTERNAL_ERROR).status,
                         "Unknown")
        self.assertEqual(new_condition(CONDITION_TYPE_UPDATE,
                                       ConditionReasons.SECRET_PATCH_FAILED_UNKNOWN_ERROR).status,
                         "Unknown")

    def test_unrecognised_reason_becomes_placeholder(self):
        condition = new_condition(CONDITION_TYPE_UPDATE, "SomethingElse")
        self.assertEqual((condition.type, condition.status, condition.reason),
                         (CONDITION_TYPE_UPDATE, "Unknown", "Unknown"))

    def test_display_allowlist(self):
        self.assertTrue(can_display_error_message(
            'admission webhook denied: ValidatingAdmissionPolicy "deny-secrets" failed'))
        self.assertFalse(can_display_error_message("connection refused to 10.0.0.1"))
        self.assertFalse(can_display_error_message(""))


class TestConditionHelpers(unittest.TestCase):

    def test_set_appends_then_replaces(self):
        conditions = []
        set_status_condition(conditions, new_condition(CONDITION_TYPE_CREATE,
                                                       ConditionReasons.UNKNOWN))
        set_status_condition(conditions, new_condition(CONDITION_TYPE_CREATE,
                                                       ConditionReasons.CREATE_SUCCEEDED))
        self.assertEqual(len(conditions), 1)
        self.assertEqual(conditions[0].reason, ConditionReasons.CREATE_SUCCEEDED)
        self.assertEqual(conditions[0].status, "True")

    def test_transition_time_moves_only_on_status_change(self):
        earlier = datetime(2020, 1, 1, tzinfo=pytz.utc)
        conditions = [Condition(type=CONDITION_TYPE_UPDATE, status="False",
                                reason=ConditionReasons.PROVIDER_ERROR,
                                last_transition_time=earlier)]
        set_status_condition(conditions, new_condition(CONDITION_TYPE_UPDATE,
                                                       ConditionReasons.CONTROLLER_SPC_ERROR))
        self.assertEqual(conditions[0].last_transition_time, earlier)
        self.assertEqual(conditions[0].reason, ConditionReasons.CONTROLLER_SPC_ERROR)

        set_status_condition(conditions, new_condition(
            CONDITION_TYPE_UPDATE, ConditionReasons.UPDATE_NO_VALUE_CHANGE_SUCCEEDED))
        self.assertGreater(conditions[0].last_transition_time, earlier + timedelta(days=1))

    def test_remove_and_find(self):
        conditions = [new_condition(CONDITION_TYPE_CREATE, ConditionReasons.CREATE_SUCCEEDED)]
        self.assertIsNotNone(find_status_condition(conditions, CONDITION_TYPE_CREATE))
        self.assertFalse(remove_status_condition(conditions, CONDITION_TYPE_UPDATE))
        self.assertTrue(remove_status_condition(conditions, CONDITION_TYPE_CREATE))
        self.assertEqual(conditions, [])


class TestConditionLedger(unittest.TestCase):

    def test_first_pass_is_create(self):
        status = SecretSyncStatus()
        ledger = ConditionLedger(status)
        self.assertEqual(ledger.begin_pass(), CONDITION_TYPE_CREATE)
        self.assertEqual([(c.type, c.reason) for c in status.conditions],
                         [(CONDITION_TYPE_CREATE, ConditionReasons.UNKNOWN)])
        self.assertFalse(ledger.had_retry_triggering())

    def test_update_pass_replaces_create(self):
        status = SecretSyncStatus(sync_hash="7631abcd", conditions=[
            new_condition(CONDITION_TYPE_CREATE, ConditionReasons.CREATE_SUCCEEDED),
            new_condition(CONDITION_TYPE_UNKNOWN, ConditionReasons.UNKNOWN)])
        ledger = ConditionLedger(status)
        self.assertEqual(ledger.begin_pass(), CONDITION_TYPE_UPDATE)
        self.assertEqual([c.type for c in status.conditions], [CONDITION_TYPE_UPDATE])
        # the legacy Unknown condition counted as a failure before the pass
        self.assertTrue(ledger.had_retry_triggering())

    def test_prior_failure_is_remembered(self):
        status = SecretSyncStatus(sync_hash="7631abcd", conditions=[
            new_condition(CONDITION_TYPE_UPDATE, ConditionReasons.PROVIDER_ERROR)])
        ledger = ConditionLedger(status)
        ledger.begin_pass()
        self.assertTrue(ledger.had_retry_triggering())

    def test_prior_success_is_not_a_retry(self):
        status = SecretSyncStatus(sync_hash="7631abcd", conditions=[
            new_condition(CONDITION_TYPE_UPDATE,
                          ConditionReasons.UPDATE_NO_VALUE_CHANGE_SUCCEEDED)])
        ledger = ConditionLedger(status)
        ledger.begin_pass()
        self.assertFalse(ledger.had_retry_triggering())
        # the placeholder itself is not part of the prior state
        self.assertEqual(ledger.current.reason, ConditionReasons.UNKNOWN)

    def test_record_discard_and_clear(self):
        status = SecretSyncStatus()
        ledger = ConditionLedger(status, observed_generation=3)
        ledger.begin_pass()
        ledger.record(ConditionReasons.CREATE_SUCCEEDED)
        self.assertEqual(ledger.current.observed_generation, 3)
        self.assertTrue(ledger.discard())
        self.assertIsNone(ledger.current)

        ledger.record(ConditionReasons.PROVIDER_ERROR)
        status.conditions.append(new_condition(CONDITION_TYPE_UNKNOWN, ConditionReasons.UNKNOWN))
        ledger.clear_retry_triggering()
        self.assertEqual(status.conditions, [])


if __name__ == '__main__':
    unittest.main()
