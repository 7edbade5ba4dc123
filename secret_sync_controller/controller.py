# -*- coding: utf-8 -*-
"""Configuration and scheduling of reconciliation passes.

Passes are triggered two ways. A watch on SecretSync objects queues a pass
when an object is created or its generation changes; status only updates
are ignored. Every ``rotation_poll_interval`` the controller also lists all
SecretSync objects and queues one pass per object, which picks up content
rotated at the provider. A SecretSync already being reconciled is not queued
again, so passes for one identity never overlap while different identities
run concurrently.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from kubernetes.client.rest import ApiException

from .context import PassContext
from .exceptions import PassCancelled, SecretSyncError
from .reconciler import SYNC_CONTROLLER_POD_NAME, \
    SYNC_CONTROLLER_POD_UID, \
    SecretSyncReconciler
from .store import SECRET_SYNC_CONTROLLER_FIELD_MANAGER
from .token import TokenClient

TOKEN_REQUEST_AUDIENCE = "TOKEN_REQUEST_AUDIENCE"
ROTATION_POLL_INTERVAL = "ROTATION_POLL_INTERVAL"
SYNC_CONTROLLER_MAX_WORKERS = "SYNC_CONTROLLER_MAX_WORKERS"
SYNC_CONTROLLER_PASS_TIMEOUT = "SYNC_CONTROLLER_PASS_TIMEOUT"
SYNC_CONTROLLER_WATCH_TIMEOUT = "SYNC_CONTROLLER_WATCH_TIMEOUT"

DEFAULT_ROTATION_POLL_INTERVAL = 21600.0
MIN_ROTATION_POLL_INTERVAL = 30.0
DEFAULT_WATCH_TIMEOUT = 300
MAX_WATCH_BACKOFF = 30.0

WATCH_EVENT_ADDED = "ADDED"
WATCH_EVENT_MODIFIED = "MODIFIED"
WATCH_EVENT_DELETED = "DELETED"


@dataclass
class ControllerConfig:
    audiences: list = field(default_factory=list)
    rotation_poll_interval: float = DEFAULT_ROTATION_POLL_INTERVAL
    pod_name: str = ""
    pod_uid: str = ""
    field_manager: str = SECRET_SYNC_CONTROLLER_FIELD_MANAGER
    max_workers: int = 4
    pass_timeout: Optional[float] = None
    watch_timeout: int = DEFAULT_WATCH_TIMEOUT

    def __post_init__(self):
        assert self.rotation_poll_interval >= MIN_ROTATION_POLL_INTERVAL, \
            "Trying to poll secrets at too high a frequency min is 30.0 seconds"
        assert self.max_workers >= 1, "At least one worker is required"
        assert self.watch_timeout >= 1, "Watch timeout must be at least 1 second"

    @classmethod
    def from_env(cls, environ=None):
        """Build the configuration from environment variables.

        ``TOKEN_REQUEST_AUDIENCE`` is a comma separated list, empty meaning no
        tokens are requested.
        """
        if environ is None:
            environ = os.environ
        audiences_value = environ.get(TOKEN_REQUEST_AUDIENCE, "")
        audiences = audiences_value.split(",") if audiences_value else []
        pass_timeout = environ.get(SYNC_CONTROLLER_PASS_TIMEOUT)
        return cls(audiences=audiences,
                   rotation_poll_interval=float(environ.get(ROTATION_POLL_INTERVAL,
                                                            DEFAULT_ROTATION_POLL_INTERVAL)),
                   pod_name=environ.get(SYNC_CONTROLLER_POD_NAME, ""),
                   pod_uid=environ.get(SYNC_CONTROLLER_POD_UID, ""),
                   max_workers=int(environ.get(SYNC_CONTROLLER_MAX_WORKERS, 4)),
                   pass_timeout=float(pass_timeout) if pass_timeout else None,
                   watch_timeout=int(environ.get(SYNC_CONTROLLER_WATCH_TIMEOUT,
                                                 DEFAULT_WATCH_TIMEOUT)))


class SecretSyncController:
    """Schedules reconciliation passes for all SecretSync objects."""

    def __init__(self, reconciler, config=None):
        self._reconciler = reconciler
        self._config = config if config is not None else ControllerConfig()
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._in_flight = set()
        # generation last queued by the watch, per identity
        self._generations = {}
        self._executor = ThreadPoolExecutor(max_workers=self._config.max_workers,
                                            thread_name_prefix="secret_sync")
        self._thread = None
        self._watch_thread = None

    @classmethod
    def from_config(cls, config, store, provider_clients, token_issuer):
        reconciler = SecretSyncReconciler(store,
                                          TokenClient(token_issuer),
                                          provider_clients,
                                          audiences=config.audiences,
                                          pod_name=config.pod_name,
                                          pod_uid=config.pod_uid,
                                          field_manager=config.field_manager)
        return cls(reconciler, config)

    @property
    def reconciler(self):
        return self._reconciler

    @property
    def config(self):
        return self._config

    def enqueue(self, namespace, name):
        """Queue a pass, returning its future or None if one is already running."""
        key = (namespace, name)
        with self._lock:
            if key in self._in_flight:
                return None
            self._in_flight.add(key)
        try:
            return self._executor.submit(self._run_pass, key)
        except RuntimeError:
            with self._lock:
                self._in_flight.discard(key)
            raise

    def _run_pass(self, key):
        namespace, name = key
        context = PassContext(self._stop_event, self._config.pass_timeout)
        try:
            return self._reconciler.reconcile(namespace, name, context)
        except PassCancelled as e:
            logging.getLogger(__name__).info(f"SecretSync {namespace}/{name}: {e}")
        except SecretSyncError as e:
            # already recorded on the status, next poll retries
            logging.getLogger(__name__).warning(f"SecretSync {namespace}/{name} failed: {e}")
        except Exception:
            logging.getLogger(__name__).exception(f"While reconciling SecretSync {namespace}/{name}")
        finally:
            with self._lock:
                self._in_flight.discard(key)
        return None

    def poll_once(self):
        """Queue a pass for every SecretSync, returning the futures queued."""
        futures = []
        for secret_sync in self._reconciler.store.list_secret_syncs():
            future = self.enqueue(secret_sync.namespace, secret_sync.name)
            if future is not None:
                futures.append(future)
        return futures

    def handle_watch_event(self, event_type, secret_sync):
        """
        Queue a pass for a watch event when the SecretSync spec changed.

        Creation and generation changes queue a pass, status writes leave the
        generation alone and are skipped. The generation is only remembered
        once a pass was queued, so a change seen while a pass is running is
        queued again on the next event.

        :return: the future of the queued pass or None
        """
        key = (secret_sync.namespace, secret_sync.name)
        if event_type == WATCH_EVENT_DELETED:
            with self._lock:
                self._generations.pop(key, None)
            return None
        if event_type not in (WATCH_EVENT_ADDED, WATCH_EVENT_MODIFIED):
            return None

        with self._lock:
            if self._generations.get(key) == secret_sync.generation:
                return None
        future = self.enqueue(*key)
        if future is not None:
            logging.getLogger(__name__).debug(
                f"{event_type} SecretSync {secret_sync.key} generation {secret_sync.generation}")
            with self._lock:
                self._generations[key] = secret_sync.generation
        return future

    def _poll_loop(self):
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                logging.getLogger(__name__).exception("While listing SecretSync objects")
            self._stop_event.wait(self._config.rotation_poll_interval)

    def _watch_loop(self):
        logger = logging.getLogger(__name__)
        resource_version = None
        backoff = 1.0
        while not self._stop_event.is_set():
            try:
                for event_type, secret_sync in self._reconciler.store.watch_secret_syncs(
                        resource_version=resource_version,
                        timeout_seconds=self._config.watch_timeout):
                    if self._stop_event.is_set():
                        break
                    resource_version = secret_sync.resource_version or resource_version
                    self.handle_watch_event(event_type, secret_sync)
                backoff = 1.0
            except ApiException as e:
                if e.status == 410:
                    logger.warning("SecretSync watch resource version expired, restarting")
                    resource_version = None
                    continue
                logger.exception("While watching SecretSync objects")
                self._stop_event.wait(backoff)
                backoff = min(backoff * 2, MAX_WATCH_BACKOFF)
            except Exception:
                if self._stop_event.is_set():
                    break
                logger.exception("While watching SecretSync objects")
                self._stop_event.wait(backoff)
                backoff = min(backoff * 2, MAX_WATCH_BACKOFF)

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._poll_loop,
                                        name="secret_sync_poll")
        self._thread.daemon = True
        self._thread.start()
        self._watch_thread = threading.Thread(target=self._watch_loop,
                                              name="secret_sync_watch")
        self._watch_thread.daemon = True
        self._watch_thread.start()

    def stop(self, wait=True):
        """Cancel running passes and stop polling and watching."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._watch_thread is not None:
            # the watch stream only notices the stop between events
            self._watch_thread.join(self._config.watch_timeout if wait else 0)
            self._watch_thread = None
        self._executor.shutdown(wait=wait)
