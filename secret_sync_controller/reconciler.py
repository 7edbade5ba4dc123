# -*- coding: utf-8 -*-
"""Reconciliation of one SecretSync into its Kubernetes secret.

A pass runs, in order:

validate      - secret object fields and the reserved label/annotation key
token         - service account tokens for the configured audiences
spc           - the referenced SecretProviderClass and its provider client
provider      - fetch the files from the provider
extract       - build the secret data map (TLS normalisation included)
digest        - fingerprint the data map and the resource identities
decide        - skip the write when nothing changed and nothing failed before
apply         - server-side apply the secret, rolling the status back on error
persist       - write the status subresource

Every failing step records its reason on the pass condition, persists the
status and raises to the scheduling layer, which retries on the next trigger.
"""

import base64
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .conditions import CONDITION_TYPE_CREATE, \
    ConditionLedger, \
    ConditionReasons, \
    can_display_error_message
from .context import PassContext
from .digest import compute_secret_data_object_hash
from .exceptions import ControllerInternalError, \
    DigestError, \
    ObjectNotFoundError, \
    PassCancelled, \
    ProviderClassError, \
    ProviderInvokeError, \
    ReservedAnnotationError, \
    ReservedLabelError, \
    SecretApplyError, \
    SecretDataError, \
    SecretObjectValidationError, \
    TokenRequestError
from .models import utcnow
from .provider import CSI_POD_NAME, \
    CSI_POD_NAMESPACE, \
    CSI_POD_SERVICE_ACCOUNT_NAME, \
    CSI_POD_UID
from .secretutil import get_secret_data, get_secret_type, validate_secret_object
from .store import SECRET_SYNC_CONTROLLER_FIELD_MANAGER

# reserved for the controller on both labels and annotations of the secret
CONTROLLER_LABEL_KEY = "secrets-store.sync.x-k8s.io"
CONTROLLER_ANNOTATION_KEY = "secrets-store.sync.x-k8s.io"

# set through the downward API on the controller pod
SYNC_CONTROLLER_POD_NAME = "SYNC_CONTROLLER_POD_NAME"
SYNC_CONTROLLER_POD_UID = "SYNC_CONTROLLER_POD_UID"


@dataclass
class StatusSnapshot:
    """The status fields a failed secret write must restore."""
    sync_hash: str
    last_successful_sync_time: Optional[datetime]

    @classmethod
    def take(cls, status):
        return cls(sync_hash=status.sync_hash,
                   last_successful_sync_time=status.last_successful_sync_time)

    def restore(self, status):
        status.sync_hash = self.sync_hash
        status.last_successful_sync_time = self.last_successful_sync_time


def merge_reserved_key(values, reserved_key, error_class):
    """Copy ``values`` and add the reserved marker with an empty value.

    A caller supplied non-empty value for the reserved key raises
    ``error_class``.
    """
    merged = dict(values or {})
    if merged.get(reserved_key):
        raise error_class(reserved_key)
    merged[reserved_key] = ""
    return merged


def build_secret_manifest(secret_sync, name, datamap, labels, annotations, secret_type):
    """Secret manifest applied by the controller, owned by ``secret_sync``."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": name,
            "namespace": secret_sync.namespace,
            "labels": labels,
            "annotations": annotations,
            "ownerReferences": [{
                "apiVersion": secret_sync.api_version,
                "kind": secret_sync.kind,
                "name": secret_sync.name,
                "uid": secret_sync.uid,
            }],
        },
        "data": {key: base64.b64encode(value).decode("ascii") for key, value in datamap.items()},
        "type": secret_type,
    }


class SecretSyncReconciler:
    """Runs reconciliation passes for SecretSync objects.

    Attributes:
        store (ObjectStore): cluster object store.
        token_client (TokenClient): source of service account token parameters.
        provider_clients (ProviderClientBuilder): provider clients by name.
        audiences (list): token audiences requested for every pass.
    """

    def __init__(self,
                 store,
                 token_client,
                 provider_clients,
                 audiences=None,
                 pod_name=None,
                 pod_uid=None,
                 field_manager=SECRET_SYNC_CONTROLLER_FIELD_MANAGER):
        self._store = store
        self._token_client = token_client
        self._provider_clients = provider_clients
        self._audiences = list(audiences or [])
        self._pod_name = pod_name if pod_name is not None \
            else os.environ.get(SYNC_CONTROLLER_POD_NAME, "")
        self._pod_uid = pod_uid if pod_uid is not None \
            else os.environ.get(SYNC_CONTROLLER_POD_UID, "")
        self._field_manager = field_manager

    @property
    def store(self):
        return self._store

    @property
    def token_client(self):
        return self._token_client

    @property
    def provider_clients(self):
        return self._provider_clients

    @property
    def audiences(self):
        return self._audiences

    def reconcile(self, namespace, name, context=None):
        """Run one pass for the SecretSync ``namespace/name``.

        Args:
            namespace (str): namespace of the SecretSync.
            name (str): name of the SecretSync.
            context (PassContext, optional): cancellation and deadline of the pass.

        Returns:
            SecretSync: the reconciled object, or None when it no longer exists.

        Raises:
            SecretSyncError: the pass failed after recording its condition.
            PassCancelled: the pass was cancelled, nothing further was persisted.
        """
        if context is None:
            context = PassContext()
        logger = logging.getLogger(__name__)
        logger.info(f"Reconciling SecretSync {namespace}/{name}")

        context.check("fetching SecretSync")
        try:
            secret_sync = self._store.get_secret_sync(namespace, name,
                                                      timeout=context.remaining())
        except ObjectNotFoundError:
            logger.info(f"SecretSync {namespace}/{name} not found, ignoring")
            return None

        ledger = ConditionLedger(secret_sync.status, secret_sync.generation)
        pass_type = ledger.begin_pass()
        self._persist_status(secret_sync, context)

        spec = secret_sync.spec
        secret_object = spec.secret_object
        secret_name = secret_sync.name.strip()

        try:
            validate_secret_object(secret_name, secret_object)
        except SecretObjectValidationError:
            logger.exception(f"Failed to validate secret object of {secret_sync.key}")
            self._record_failure(secret_sync, ledger,
                                 ConditionReasons.USER_INPUT_VALIDATION_FAILED, context)
            raise

        try:
            labels = merge_reserved_key(secret_object.labels, CONTROLLER_LABEL_KEY,
                                        ReservedLabelError)
        except ReservedLabelError:
            logger.exception(f"Reserved label set on {secret_sync.key}")
            self._record_failure(secret_sync, ledger,
                                 ConditionReasons.INVALID_LABEL_ERROR, context)
            raise

        try:
            annotations = merge_reserved_key(secret_object.annotations,
                                             CONTROLLER_ANNOTATION_KEY,
                                             ReservedAnnotationError)
        except ReservedAnnotationError:
            logger.exception(f"Reserved annotation set on {secret_sync.key}")
            self._record_failure(secret_sync, ledger,
                                 ConditionReasons.INVALID_ANNOTATION_ERROR, context)
            raise

        context.check("requesting service account tokens")
        try:
            token_attrs = self._token_client.service_account_token_attrs(
                namespace, spec.service_account_name, self._audiences,
                timeout=context.remaining())
        except TokenRequestError as e:
            logger.exception(
                f"Failed to get service account token for {spec.service_account_name}")
            self._record_failure(secret_sync, ledger, self._displayable_reason(e), context)
            raise

        context.check("fetching SecretProviderClass")
        try:
            spc = self._store.get_secret_provider_class(namespace,
                                                        spec.secret_provider_class_name,
                                                        timeout=context.remaining())
            provider_client = self._provider_clients.get(spc.provider)
        except PassCancelled:
            raise
        except Exception as e:
            logger.exception(
                f"Failed to get secret provider class {spec.secret_provider_class_name}")
            self._record_failure(secret_sync, ledger,
                                 ConditionReasons.CONTROLLER_SPC_ERROR, context)
            if isinstance(e, ProviderClassError):
                raise
            raise ProviderClassError(
                f"failed to get secret provider class "
                f"{namespace}/{spec.secret_provider_class_name}: {e}") from e

        try:
            parameters = self._provider_parameters(spc, namespace, spec.service_account_name,
                                                   token_attrs)
        except ControllerInternalError:
            logger.exception(f"Failed to build provider parameters for {secret_sync.key}")
            self._record_failure(secret_sync, ledger,
                                 ConditionReasons.CONTROLLER_INTERNAL_ERROR, context)
            raise

        context.check("invoking provider")
        try:
            _, files = provider_client.invoke(parameters, {}, timeout=context.remaining())
        except PassCancelled:
            raise
        except Exception as e:
            logger.exception(f"Failed to get secrets from provider {spc.provider}")
            self._record_failure(secret_sync, ledger,
                                 ConditionReasons.PROVIDER_ERROR, context)
            raise ProviderInvokeError(spc.provider, e) from e

        secret_type = get_secret_type(secret_object.type)
        try:
            datamap = get_secret_data(secret_object.data, secret_type, files)
        except SecretDataError:
            logger.exception(f"Failed to get secret data for {secret_sync.key}")
            self._record_failure(secret_sync, ledger,
                                 ConditionReasons.USER_INPUT_VALIDATION_FAILED, context)
            raise
        # provider output is not needed past this point
        del files

        try:
            sync_hash = compute_secret_data_object_hash(datamap, spc, secret_sync)
        except DigestError:
            logger.exception(f"Failed to compute secret data hash for {secret_sync.key}")
            self._record_failure(secret_sync, ledger,
                                 ConditionReasons.CONTROLLER_INTERNAL_ERROR, context)
            raise

        hash_changed = sync_hash != secret_sync.status.sync_hash
        if not ledger.had_retry_triggering() and not hash_changed:
            ledger.record(ConditionReasons.UPDATE_NO_VALUE_CHANGE_SUCCEEDED)
            self._persist_status(secret_sync, context)
            logger.info(f"SecretSync {secret_sync.key} unchanged, secret not written")
            return secret_sync

        if pass_type == CONDITION_TYPE_CREATE:
            ledger.record(ConditionReasons.CREATE_SUCCEEDED)
        elif hash_changed:
            ledger.record(ConditionReasons.UPDATE_VALUE_CHANGE_OR_FORCE_UPDATE_SUCCEEDED)
        else:
            # retry of an earlier failure with unchanged content
            ledger.record(ConditionReasons.UPDATE_NO_VALUE_CHANGE_SUCCEEDED)

        snapshot = StatusSnapshot.take(secret_sync.status)
        secret_sync.status.last_successful_sync_time = utcnow()
        secret_sync.status.sync_hash = sync_hash

        context.check("applying secret")
        manifest = build_secret_manifest(secret_sync, secret_name, datamap, labels,
                                         annotations, secret_type)
        try:
            self._store.apply_secret(manifest, self._field_manager,
                                     timeout=context.remaining())
        except PassCancelled:
            raise
        except Exception as e:
            logger.exception(f"Failed to patch secret {namespace}/{secret_name}")
            snapshot.restore(secret_sync.status)
            ledger.discard()
            self._record_failure(secret_sync, ledger, self._displayable_reason(e), context)
            raise SecretApplyError(namespace, secret_name, e) from e

        ledger.clear_retry_triggering()
        self._persist_status(secret_sync, context)

        logger.info(f"Synced secret {namespace}/{secret_name} for SecretSync {secret_sync.key}")
        return secret_sync

    def _provider_parameters(self, spc, namespace, service_account_name, token_attrs):
        # the same parameters the CSI driver sends on mount
        parameters = dict(spc.parameters)
        parameters[CSI_POD_NAME] = self._pod_name
        parameters[CSI_POD_UID] = self._pod_uid
        parameters[CSI_POD_NAMESPACE] = namespace
        parameters[CSI_POD_SERVICE_ACCOUNT_NAME] = service_account_name
        parameters.update(token_attrs)
        for key, value in parameters.items():
            if not isinstance(value, str):
                raise ControllerInternalError(f"provider parameter {key} is not a string")
        return parameters

    @staticmethod
    def _displayable_reason(error):
        if can_display_error_message(str(error)):
            return ConditionReasons.VALIDATING_ADMISSION_POLICY_CHECK_FAILED
        return ConditionReasons.SECRET_PATCH_FAILED_UNKNOWN_ERROR

    def _persist_status(self, secret_sync, context):
        context.check("updating status")
        stored = self._store.update_secret_sync_status(secret_sync, timeout=context.remaining())
        if stored is not None:
            secret_sync.resource_version = stored.resource_version

    def _record_failure(self, secret_sync, ledger, reason, context):
        ledger.record(reason)
        try:
            self._persist_status(secret_sync, context)
        except PassCancelled:
            raise
        except Exception:
            logging.getLogger(__name__).exception(
                f"Failed to update status of {secret_sync.key} with reason {reason}")
