# -*- coding: utf-8 -*-
"""secret_sync_controller

Synchronises secrets served by a secrets store provider into Kubernetes
secrets, owned by SecretSync custom resources, only writing when the content
or the resources describing it change.

"""

from secret_sync_controller.conditions import ConditionLedger, \
    ConditionReasons, \
    CONDITION_TYPE_CREATE, \
    CONDITION_TYPE_UPDATE
from secret_sync_controller.context import PassContext
from secret_sync_controller.controller import ControllerConfig, SecretSyncController
from secret_sync_controller.digest import compute_digest, compute_secret_data_object_hash
from secret_sync_controller.exceptions import SecretSyncError, \
    ObjectNotFoundError, \
    PassCancelled, \
    SecretObjectValidationError, \
    SecretDataError, \
    UnsupportedKeyError, \
    CertificateParseError, \
    UnsupportedPrivateKeyError, \
    ReservedLabelError, \
    ReservedAnnotationError, \
    TokenRequestError, \
    ProviderClassError, \
    ProviderNotFoundError, \
    ProviderInvokeError, \
    SecretApplyError, \
    ControllerInternalError, \
    DigestError
from secret_sync_controller.models import Condition, \
    SecretObject, \
    SecretObjectData, \
    SecretProviderClass, \
    SecretSync, \
    SecretSyncSpec, \
    SecretSyncStatus
from secret_sync_controller.provider import ProviderClient, \
    ProviderClientBuilder, \
    StaticProviderClient
from secret_sync_controller.reconciler import SecretSyncReconciler
from secret_sync_controller.secretutil import get_cert_part, get_secret_data
from secret_sync_controller.store import ObjectStore, KubernetesObjectStore
from secret_sync_controller.token import TokenClient, \
    TokenIssuer, \
    KubernetesTokenIssuer, \
    ServiceAccountToken
from ._version import __version__

__all__ = ["__version__",
           "CONDITION_TYPE_CREATE",
           "CONDITION_TYPE_UPDATE",
           "CertificateParseError",
           "Condition",
           "ConditionLedger",
           "ConditionReasons",
           "ControllerConfig",
           "ControllerInternalError",
           "DigestError",
           "KubernetesObjectStore",
           "KubernetesTokenIssuer",
           "ObjectNotFoundError",
           "ObjectStore",
           "PassCancelled",
           "PassContext",
           "ProviderClassError",
           "ProviderClient",
           "ProviderClientBuilder",
           "ProviderInvokeError",
           "ProviderNotFoundError",
           "ReservedAnnotationError",
           "ReservedLabelError",
           "SecretApplyError",
           "SecretDataError",
           "SecretObject",
           "SecretObjectData",
           "SecretObjectValidationError",
           "SecretProviderClass",
           "SecretSync",
           "SecretSyncController",
           "SecretSyncError",
           "SecretSyncReconciler",
           "SecretSyncSpec",
           "SecretSyncStatus",
           "ServiceAccountToken",
           "StaticProviderClient",
           "TokenClient",
           "TokenIssuer",
           "TokenRequestError",
           "UnsupportedKeyError",
           "UnsupportedPrivateKeyError",
           "compute_digest",
           "compute_secret_data_object_hash",
           "get_cert_part",
           "get_secret_data"]
