# -*- coding: utf-8 -*-
"""Object store boundary and its Kubernetes implementation.

The reconciler only needs five operations from the cluster: read a
SecretSync, list them, read a SecretProviderClass, apply the target Secret
and update the SecretSync status subresource. The controller additionally
watches SecretSync objects so changes are picked up between polls. Conflicts
and other API
failures propagate as ``kubernetes.client.ApiException`` so the scheduling
layer can retry them.
"""

import logging
import threading
from abc import ABC, abstractmethod

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from .exceptions import ObjectNotFoundError
from .models import SECRET_PROVIDER_CLASS_GROUP, \
    SECRET_PROVIDER_CLASS_PLURAL, \
    SECRET_PROVIDER_CLASS_VERSION, \
    SECRET_SYNC_GROUP, \
    SECRET_SYNC_PLURAL, \
    SECRET_SYNC_VERSION, \
    SecretProviderClass, \
    SecretSync

SECRET_SYNC_CONTROLLER_FIELD_MANAGER = "v1-secret-sync-controller"

APPLY_PATCH_CONTENT_TYPE = "application/apply-patch+yaml"


def default_api_client():
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
    except ConfigException:
        config.load_kube_config()
    return client.ApiClient()


class KubernetesClientMixin:
    """Thread local Kubernetes API clients.

    ``_api_client_callback`` returns a ``kubernetes.client.ApiClient``; when
    absent the in-cluster or kubeconfig configuration is loaded.
    """

    def _init_clients(self, _api_client_callback=None):
        self._api_client_callback = _api_client_callback
        self.ns = threading.local()

    @property
    def api_client(self):
        if not hasattr(self.ns, "api_client"):
            if self._api_client_callback is not None:
                self.ns.api_client = self._api_client_callback()
            else:
                self.ns.api_client = default_api_client()
        return self.ns.api_client

    @property
    def core_v1(self):
        if not hasattr(self.ns, "core_v1"):
            self.ns.core_v1 = client.CoreV1Api(self.api_client)
        return self.ns.core_v1

    @property
    def custom_objects(self):
        if not hasattr(self.ns, "custom_objects"):
            self.ns.custom_objects = client.CustomObjectsApi(self.api_client)
        return self.ns.custom_objects


class ObjectStore(ABC):
    """Abstract Base Class for the typed object store used by the reconciler."""

    @abstractmethod
    def get_secret_sync(self, namespace, name, timeout=None):
        """Return the SecretSync or raise ObjectNotFoundError."""

    @abstractmethod
    def list_secret_syncs(self, timeout=None):
        """Return every SecretSync the controller should reconcile."""

    @abstractmethod
    def watch_secret_syncs(self, resource_version=None, timeout_seconds=None):
        """Yield ``(event_type, SecretSync)`` for every change until the stream ends.

        ``timeout_seconds`` bounds how long the stream stays open, the caller
        reconnects from the last resource version seen.
        """

    @abstractmethod
    def get_secret_provider_class(self, namespace, name, timeout=None):
        """Return the SecretProviderClass or raise ObjectNotFoundError."""

    @abstractmethod
    def apply_secret(self, secret, field_manager, timeout=None):
        """Server-side apply ``secret`` (a Secret manifest dict) owning every field it sets."""

    @abstractmethod
    def update_secret_sync_status(self, secret_sync, timeout=None):
        """Write the status subresource, returning the stored SecretSync."""


class KubernetesObjectStore(KubernetesClientMixin, ObjectStore):

    def __init__(self, _api_client_callback=None):
        self._init_clients(_api_client_callback)

    def get_secret_sync(self, namespace, name, timeout=None):
        try:
            body = self.custom_objects.get_namespaced_custom_object(
                SECRET_SYNC_GROUP, SECRET_SYNC_VERSION, namespace, SECRET_SYNC_PLURAL, name,
                _request_timeout=timeout)
        except ApiException as e:
            if e.status == 404:
                raise ObjectNotFoundError("SecretSync", namespace, name) from e
            raise
        return SecretSync.from_dict(body)

    def list_secret_syncs(self, timeout=None):
        body = self.custom_objects.list_cluster_custom_object(
            SECRET_SYNC_GROUP, SECRET_SYNC_VERSION, SECRET_SYNC_PLURAL,
            _request_timeout=timeout)
        return [SecretSync.from_dict(item) for item in body.get("items", [])]

    def watch_secret_syncs(self, resource_version=None, timeout_seconds=None):
        watcher = watch.Watch()
        kwargs = {"timeout_seconds": timeout_seconds}
        if resource_version:
            kwargs["resource_version"] = resource_version
        try:
            for event in watcher.stream(self.custom_objects.list_cluster_custom_object,
                                        SECRET_SYNC_GROUP, SECRET_SYNC_VERSION,
                                        SECRET_SYNC_PLURAL, **kwargs):
                body = event.get("object") or {}
                if event.get("type") == "ERROR":
                    # 410 Gone means the resource version is too old to resume from
                    raise ApiException(status=body.get("code"), reason=body.get("message"))
                yield event.get("type"), SecretSync.from_dict(body)
        finally:
            watcher.stop()

    def get_secret_provider_class(self, namespace, name, timeout=None):
        try:
            body = self.custom_objects.get_namespaced_custom_object(
                SECRET_PROVIDER_CLASS_GROUP, SECRET_PROVIDER_CLASS_VERSION, namespace,
                SECRET_PROVIDER_CLASS_PLURAL, name,
                _request_timeout=timeout)
        except ApiException as e:
            if e.status == 404:
                raise ObjectNotFoundError("SecretProviderClass", namespace, name) from e
            raise
        return SecretProviderClass.from_dict(body)

    def apply_secret(self, secret, field_manager, timeout=None):
        metadata = secret["metadata"]
        logging.getLogger(__name__).debug(
            f"Applying secret {metadata['namespace']}/{metadata['name']}")
        return self.core_v1.patch_namespaced_secret(
            metadata["name"],
            metadata["namespace"],
            secret,
            field_manager=field_manager,
            force=True,
            _content_type=APPLY_PATCH_CONTENT_TYPE,
            _request_timeout=timeout)

    def update_secret_sync_status(self, secret_sync, timeout=None):
        # resourceVersion in the body makes the write conditional
        body = self.custom_objects.replace_namespaced_custom_object_status(
            SECRET_SYNC_GROUP, SECRET_SYNC_VERSION, secret_sync.namespace, SECRET_SYNC_PLURAL,
            secret_sync.name, secret_sync.to_dict(),
            _request_timeout=timeout)
        return SecretSync.from_dict(body)
