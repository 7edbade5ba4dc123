# -*- coding: utf-8 -*-
"""Provider boundary.

A provider resolves the logical source paths of a SecretProviderClass to
secret bytes. The plugin transport is not part of this package; concrete
clients implement ``ProviderClient`` and are registered by name in a
``ProviderClientBuilder``.
"""

import threading
from abc import ABC, abstractmethod

from .exceptions import ProviderNotFoundError

CSI_POD_NAME = "csi.storage.k8s.io/pod.name"
CSI_POD_NAMESPACE = "csi.storage.k8s.io/pod.namespace"
CSI_POD_UID = "csi.storage.k8s.io/pod.uid"
CSI_POD_SERVICE_ACCOUNT_NAME = "csi.storage.k8s.io/serviceAccount.name"
CSI_POD_SERVICE_ACCOUNT_TOKENS = "csi.storage.k8s.io/serviceAccount.tokens"


class ProviderClient(ABC):
    """Abstract Base Class for a secret provider."""

    @abstractmethod
    def invoke(self, parameters, previous_versions, timeout=None):
        """Fetch the current secret content.

        Args:
            parameters (dict): provider parameters of the SecretProviderClass
                merged with the controller identity parameters.
            previous_versions (dict): object id to version seen previously.
            timeout (float, optional): seconds left in the pass.

        Returns:
            tuple: ``(versions, files)`` where versions maps object id to
            version and files maps source path to bytes.
        """
        return {}, {}


class StaticProviderClient(ProviderClient):
    """Provider answering from an in-memory map of files.

    Useful for local runs and tests; ``set_files`` and ``set_error`` change
    what the next ``invoke`` returns.
    """

    def __init__(self, files=None, versions=None):
        self._lock = threading.Lock()
        self._files = dict(files or {})
        self._versions = dict(versions or {})
        self._error = None

    def set_files(self, files, versions=None):
        with self._lock:
            self._files = dict(files)
            if versions is not None:
                self._versions = dict(versions)

    def set_error(self, error):
        with self._lock:
            self._error = error

    def invoke(self, parameters, previous_versions, timeout=None):
        with self._lock:
            if self._error is not None:
                raise self._error
            return dict(self._versions), dict(self._files)


class ProviderClientBuilder:
    """Registry of provider clients keyed by the SecretProviderClass provider name."""

    def __init__(self, clients=None):
        self._lock = threading.RLock()
        self._clients = dict(clients or {})

    def register(self, provider, client):
        with self._lock:
            self._clients[provider] = client

    def get(self, provider):
        with self._lock:
            if provider not in self._clients:
                raise ProviderNotFoundError(provider)
            return self._clients[provider]
