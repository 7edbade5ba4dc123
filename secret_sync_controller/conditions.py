# -*- coding: utf-8 -*-
"""Status conditions of a SecretSync.

Two condition types are used, ``Create`` for the pass that first writes the
secret and ``Update`` for every later one. At most one of the two exists on a
SecretSync. Every reason maps to a fixed status and message through
``REASONS``; reasons are further classified as retry-triggering (the next
pass must write even without a content change) or succeeded.
"""

import logging

from .models import CONDITION_STATUS_FALSE, \
    CONDITION_STATUS_TRUE, \
    CONDITION_STATUS_UNKNOWN, \
    Condition, \
    utcnow

CONDITION_TYPE_CREATE = "Create"
CONDITION_TYPE_UPDATE = "Update"
# written by earlier controller versions, removed whenever found
CONDITION_TYPE_UNKNOWN = "Unknown"


class ConditionReasons:
    """Reasons recorded on the Create and Update conditions."""

    UNKNOWN = "Unknown"
    CREATE_SUCCEEDED = "CreateSucceeded"
    UPDATE_NO_VALUE_CHANGE_SUCCEEDED = "UpdateNoValueChangeSucceeded"
    UPDATE_VALUE_CHANGE_OR_FORCE_UPDATE_SUCCEEDED = "UpdateValueChangeOrForceUpdateSucceeded"
    PROVIDER_ERROR = "ProviderError"
    INVALID_LABEL_ERROR = "InvalidClusterSecretLabelError"
    INVALID_ANNOTATION_ERROR = "InvalidClusterSecretAnnotationError"
    VALIDATING_ADMISSION_POLICY_CHECK_FAILED = "ValidatingAdmissionPolicyCheckFailed"
    CONTROLLER_SPC_ERROR = "ControllerSPCError"
    USER_INPUT_VALIDATION_FAILED = "UserInputValidationFailed"
    CONTROLLER_INTERNAL_ERROR = "ControllerInternalError"
    SECRET_PATCH_FAILED_UNKNOWN_ERROR = "UnknownError"


REASONS = {
    ConditionReasons.UNKNOWN: (
        CONDITION_STATUS_UNKNOWN,
        "Unknown"),
    ConditionReasons.CREATE_SUCCEEDED: (
        CONDITION_STATUS_TRUE,
        "Secret created successfully."),
    ConditionReasons.UPDATE_NO_VALUE_CHANGE_SUCCEEDED: (
        CONDITION_STATUS_TRUE,
        "The secret was updated successfully at the end of the poll interval and no value "
        "change was detected."),
    ConditionReasons.UPDATE_VALUE_CHANGE_OR_FORCE_UPDATE_SUCCEEDED: (
        CONDITION_STATUS_TRUE,
        "The secret was updated successfully: a value change or a force update was detected."),
    ConditionReasons.PROVIDER_ERROR: (
        CONDITION_STATUS_FALSE,
        "Secret creation failed due to provider error, check the logs or the events for more "
        "information."),
    ConditionReasons.INVALID_LABEL_ERROR: (
        CONDITION_STATUS_FALSE,
        "The secret operation failed because a label reserved for the controller is applied on "
        "the secret."),
    ConditionReasons.INVALID_ANNOTATION_ERROR: (
        CONDITION_STATUS_FALSE,
        "The secret create failed because an annotation reserved for the controller is applied "
        "on the secret."),
    ConditionReasons.VALIDATING_ADMISSION_POLICY_CHECK_FAILED: (
        CONDITION_STATUS_FALSE,
        "Secret update failed due to validating admission policy check failure, check the logs "
        "or the events for more information."),
    ConditionReasons.CONTROLLER_SPC_ERROR: (
        CONDITION_STATUS_FALSE,
        "Secret update failed because the controller could not retrieve the Secret Provider "
        "Class or the SPC is misconfigured. Check the logs or the events for more information."),
    ConditionReasons.USER_INPUT_VALIDATION_FAILED: (
        CONDITION_STATUS_FALSE,
        "Secret create or update failed due to SecretProviderClass or SecretSync error, check "
        "the logs or the events for more information."),
    ConditionReasons.CONTROLLER_INTERNAL_ERROR: (
        CONDITION_STATUS_UNKNOWN,
        "Secret update failed due to controller internal error, check the logs or the events "
        "for more information."),
    ConditionReasons.SECRET_PATCH_FAILED_UNKNOWN_ERROR: (
        CONDITION_STATUS_UNKNOWN,
        "Secret patch failed due to unknown error, check the logs or the events for more "
        "information."),
}

FAILED_CONDITIONS_TRIGGERING_RETRY = frozenset([
    ConditionReasons.CONTROLLER_SPC_ERROR,
    ConditionReasons.INVALID_ANNOTATION_ERROR,
    ConditionReasons.INVALID_LABEL_ERROR,
    ConditionReasons.PROVIDER_ERROR,
    ConditionReasons.SECRET_PATCH_FAILED_UNKNOWN_ERROR,
    ConditionReasons.VALIDATING_ADMISSION_POLICY_CHECK_FAILED,
    ConditionReasons.USER_INPUT_VALIDATION_FAILED,
    ConditionReasons.CONTROLLER_INTERNAL_ERROR,
    ConditionReasons.UNKNOWN,
])

SUCCEEDED_CONDITIONS = frozenset([
    ConditionReasons.CREATE_SUCCEEDED,
    ConditionReasons.UPDATE_NO_VALUE_CHANGE_SUCCEEDED,
    ConditionReasons.UPDATE_VALUE_CHANGE_OR_FORCE_UPDATE_SUCCEEDED,
])

# lower case markers of error texts that are safe to show in a condition
ALLOWED_STRINGS_TO_DISPLAY_CONDITION_ERROR_MESSAGE = (
    "validatingadmissionpolicy",
)


def is_retry_triggering(reason):
    return reason in FAILED_CONDITIONS_TRIGGERING_RETRY


def is_succeeded(reason):
    return reason in SUCCEEDED_CONDITIONS


def can_display_error_message(error_message):
    """True when ``error_message`` matches the display allowlist."""
    lowered = (error_message or "").lower()
    return any(allowed in lowered for allowed in ALLOWED_STRINGS_TO_DISPLAY_CONDITION_ERROR_MESSAGE)


def new_condition(condition_type, reason, observed_generation=0):
    """Build the condition for ``reason``; unknown reasons become the placeholder."""
    if reason not in REASONS:
        reason = ConditionReasons.UNKNOWN
    status, message = REASONS[reason]
    return Condition(type=condition_type,
                     status=status,
                     reason=reason,
                     message=message,
                     observed_generation=observed_generation)


def find_status_condition(conditions, condition_type):
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def remove_status_condition(conditions, condition_type):
    """Remove the condition of ``condition_type`` in place, True if one was removed."""
    for index, condition in enumerate(conditions):
        if condition.type == condition_type:
            del conditions[index]
            return True
    return False


def set_status_condition(conditions, new):
    """
    Upsert ``new`` into ``conditions`` by type.

    The transition time only moves when the status changes, as with the
    apimachinery helper of the same name.
    """
    existing = find_status_condition(conditions, new.type)
    if existing is None:
        if new.last_transition_time is None:
            new.last_transition_time = utcnow()
        conditions.append(new)
        return True

    changed = False
    if existing.status != new.status:
        existing.status = new.status
        existing.last_transition_time = new.last_transition_time or utcnow()
        changed = True
    for attribute in ("reason", "message", "observed_generation"):
        if getattr(existing, attribute) != getattr(new, attribute):
            setattr(existing, attribute, getattr(new, attribute))
            changed = True
    return changed


class ConditionLedger:
    """Applies the per pass condition transitions to one SecretSync status.

    Attributes:
        status (SecretSyncStatus): the status being mutated in place.
        pass_type (str): ``Create`` or ``Update``, set by ``begin_pass``.
    """

    def __init__(self, status, observed_generation=0):
        self.status = status
        self.observed_generation = observed_generation
        self.pass_type = None
        self._prior_conditions = []

    @staticmethod
    def pass_type_for(status):
        """``Create`` until a digest was recorded, ``Update`` afterwards."""
        if not status.sync_hash:
            return CONDITION_TYPE_CREATE
        return CONDITION_TYPE_UPDATE

    def begin_pass(self, pass_type=None):
        """Swap out the previous pass type and place the Unknown placeholder."""
        if pass_type is None:
            pass_type = self.pass_type_for(self.status)
        self.pass_type = pass_type
        self._prior_conditions = [Condition(**vars(c)) for c in self.status.conditions]

        opposite = CONDITION_TYPE_UPDATE if pass_type == CONDITION_TYPE_CREATE \
            else CONDITION_TYPE_CREATE
        for stale in (opposite, CONDITION_TYPE_UNKNOWN):
            if remove_status_condition(self.status.conditions, stale):
                logging.getLogger(__name__).debug(f"Removed condition {stale}")

        self.record(ConditionReasons.UNKNOWN)
        return pass_type

    def record(self, reason):
        condition = new_condition(self.pass_type, reason, self.observed_generation)
        logging.getLogger(__name__).debug(
            f"Setting condition {condition.type} reason {condition.reason}")
        set_status_condition(self.status.conditions, condition)
        return condition

    def discard(self, condition_type=None):
        return remove_status_condition(self.status.conditions, condition_type or self.pass_type)

    def had_retry_triggering(self):
        """Whether a retry-triggering condition existed before this pass began."""
        return any(is_retry_triggering(c.reason) for c in self._prior_conditions)

    def clear_retry_triggering(self):
        for condition in list(self.status.conditions):
            if is_retry_triggering(condition.reason):
                remove_status_condition(self.status.conditions, condition.type)

    @property
    def current(self):
        return find_status_condition(self.status.conditions, self.pass_type)
