# -*- coding: utf-8 -*-
"""Dataclasses for the resources the controller reads and writes.

The shapes follow the ``secret-sync.x-k8s.io/v1alpha1`` SecretSync and the
``secrets-store.csi.x-k8s.io/v1`` SecretProviderClass custom resources. Each
resource converts from and to the plain dictionaries the Kubernetes API
returns so the rest of the package never handles raw JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import pytz
from dateutil import parser

SECRET_SYNC_GROUP = "secret-sync.x-k8s.io"
SECRET_SYNC_VERSION = "v1alpha1"
SECRET_SYNC_PLURAL = "secretsyncs"
SECRET_SYNC_KIND = "SecretSync"

SECRET_PROVIDER_CLASS_GROUP = "secrets-store.csi.x-k8s.io"
SECRET_PROVIDER_CLASS_VERSION = "v1"
SECRET_PROVIDER_CLASS_PLURAL = "secretproviderclasses"

CONDITION_STATUS_TRUE = "True"
CONDITION_STATUS_FALSE = "False"
CONDITION_STATUS_UNKNOWN = "Unknown"

# matches the MaxItems validation of the status.conditions field
MAX_CONDITIONS = 16

RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow():
    # api timestamps carry second precision
    return datetime.now(pytz.utc).replace(microsecond=0)


def format_timestamp(value):
    if value is None:
        return None
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(pytz.utc).strftime(RFC3339_FORMAT)


def parse_timestamp(value):
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = parser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = pytz.utc.localize(parsed)
    return parsed.astimezone(pytz.utc)


@dataclass
class Condition:
    type: str
    status: str
    reason: str
    message: str = ""
    last_transition_time: Optional[datetime] = None
    observed_generation: int = 0

    @classmethod
    def from_dict(cls, body):
        return cls(type=body.get("type", ""),
                   status=body.get("status", CONDITION_STATUS_UNKNOWN),
                   reason=body.get("reason", ""),
                   message=body.get("message", ""),
                   last_transition_time=parse_timestamp(body.get("lastTransitionTime")),
                   observed_generation=int(body.get("observedGeneration") or 0))

    def to_dict(self):
        body = {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": format_timestamp(self.last_transition_time),
        }
        if self.observed_generation:
            body["observedGeneration"] = self.observed_generation
        return body


@dataclass
class SecretObjectData:
    source_path: str
    target_key: str

    @classmethod
    def from_dict(cls, body):
        return cls(source_path=body.get("sourcePath", ""),
                   target_key=body.get("targetKey", ""))

    def to_dict(self):
        return {"sourcePath": self.source_path, "targetKey": self.target_key}


@dataclass
class SecretObject:
    type: str
    data: list = field(default_factory=list)
    labels: dict = field(default_factory=dict)
    annotations: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, body):
        return cls(type=body.get("type", ""),
                   data=[SecretObjectData.from_dict(d) for d in body.get("data") or []],
                   labels=dict(body.get("labels") or {}),
                   annotations=dict(body.get("annotations") or {}))

    def to_dict(self):
        body = {"type": self.type, "data": [d.to_dict() for d in self.data]}
        if self.labels:
            body["labels"] = dict(self.labels)
        if self.annotations:
            body["annotations"] = dict(self.annotations)
        return body


@dataclass
class SecretSyncSpec:
    secret_provider_class_name: str
    service_account_name: str
    secret_object: SecretObject
    force_synchronization: str = ""
    secret_sync_controller_name: str = ""

    @classmethod
    def from_dict(cls, body):
        return cls(secret_provider_class_name=body.get("secretProviderClassName", ""),
                   service_account_name=body.get("serviceAccountName", ""),
                   secret_object=SecretObject.from_dict(body.get("secretObject") or {}),
                   force_synchronization=body.get("forceSynchronization") or "",
                   secret_sync_controller_name=body.get("secretSyncControllerName") or "")

    def to_dict(self):
        body = {
            "secretProviderClassName": self.secret_provider_class_name,
            "serviceAccountName": self.service_account_name,
            "secretObject": self.secret_object.to_dict(),
        }
        if self.force_synchronization:
            body["forceSynchronization"] = self.force_synchronization
        if self.secret_sync_controller_name:
            body["secretSyncControllerName"] = self.secret_sync_controller_name
        return body


@dataclass
class SecretSyncStatus:
    sync_hash: str = ""
    last_successful_sync_time: Optional[datetime] = None
    conditions: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, body):
        body = body or {}
        return cls(sync_hash=body.get("syncHash") or "",
                   last_successful_sync_time=parse_timestamp(body.get("lastSuccessfulSyncTime")),
                   conditions=[Condition.from_dict(c) for c in body.get("conditions") or []])

    def to_dict(self):
        """Wire form of the status, conditions ordered by type and capped."""
        conditions = sorted(self.conditions, key=lambda c: c.type)[:MAX_CONDITIONS]
        body = {"conditions": [c.to_dict() for c in conditions]}
        if self.sync_hash:
            body["syncHash"] = self.sync_hash
        if self.last_successful_sync_time is not None:
            body["lastSuccessfulSyncTime"] = format_timestamp(self.last_successful_sync_time)
        return body


@dataclass
class SecretSync:
    name: str
    namespace: str
    spec: SecretSyncSpec
    uid: str = ""
    generation: int = 0
    resource_version: str = ""
    status: SecretSyncStatus = field(default_factory=SecretSyncStatus)
    api_version: str = f"{SECRET_SYNC_GROUP}/{SECRET_SYNC_VERSION}"
    kind: str = SECRET_SYNC_KIND

    @property
    def key(self):
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_dict(cls, body):
        metadata = body.get("metadata") or {}
        return cls(name=metadata.get("name", ""),
                   namespace=metadata.get("namespace", ""),
                   uid=metadata.get("uid", ""),
                   generation=int(metadata.get("generation") or 0),
                   resource_version=metadata.get("resourceVersion", ""),
                   spec=SecretSyncSpec.from_dict(body.get("spec") or {}),
                   status=SecretSyncStatus.from_dict(body.get("status")),
                   api_version=body.get("apiVersion") or f"{SECRET_SYNC_GROUP}/{SECRET_SYNC_VERSION}",
                   kind=body.get("kind") or SECRET_SYNC_KIND)

    def to_dict(self):
        metadata = {"name": self.name, "namespace": self.namespace}
        if self.uid:
            metadata["uid"] = self.uid
        if self.generation:
            metadata["generation"] = self.generation
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }


@dataclass
class SecretProviderClass:
    name: str
    namespace: str
    provider: str
    parameters: dict = field(default_factory=dict)
    secret_objects: list = field(default_factory=list)
    uid: str = ""
    generation: int = 0

    @classmethod
    def from_dict(cls, body):
        metadata = body.get("metadata") or {}
        spec = body.get("spec") or {}
        return cls(name=metadata.get("name", ""),
                   namespace=metadata.get("namespace", ""),
                   uid=metadata.get("uid", ""),
                   generation=int(metadata.get("generation") or 0),
                   provider=spec.get("provider", ""),
                   parameters=dict(spec.get("parameters") or {}),
                   # passed through untouched, the controller never reads it
                   secret_objects=list(spec.get("secretObjects") or []))
