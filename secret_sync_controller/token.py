# -*- coding: utf-8 -*-
"""Service account tokens handed to providers.

Tokens are requested per audience from the TokenRequest API and passed to
the provider under ``csi.storage.k8s.io/serviceAccount.tokens`` as

    {
      "<audience>": {
        "token": "<token>",
        "expirationTimestamp": "<RFC 3339 timestamp>"
      },
      ...
    }

Tokens are not cached between passes.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from kubernetes import client

from .exceptions import TokenRequestError
from .models import format_timestamp, parse_timestamp
from .provider import CSI_POD_SERVICE_ACCOUNT_TOKENS
from .store import KubernetesClientMixin

TOKEN_EXPIRATION_SECONDS = 600


@dataclass
class ServiceAccountToken:
    token: str
    expiration_timestamp: datetime

    def to_dict(self):
        return {"token": self.token,
                "expirationTimestamp": format_timestamp(self.expiration_timestamp)}


class TokenIssuer(ABC):
    """Abstract Base Class for issuing service account tokens."""

    @abstractmethod
    def issue_tokens(self, namespace, service_account_name, audiences, timeout=None):
        """Return a dict of audience to ServiceAccountToken.

        An empty audience list returns an empty dict.
        """
        return {}


class KubernetesTokenIssuer(KubernetesClientMixin, TokenIssuer):
    """Issues one token per audience through the TokenRequest API."""

    def __init__(self, expiration_seconds=TOKEN_EXPIRATION_SECONDS, _api_client_callback=None):
        self._init_clients(_api_client_callback)
        self._expiration_seconds = expiration_seconds

    def issue_tokens(self, namespace, service_account_name, audiences, timeout=None):
        tokens = {}
        for audience in audiences:
            request = client.AuthenticationV1TokenRequest(
                spec=client.V1TokenRequestSpec(audiences=[audience],
                                               expiration_seconds=self._expiration_seconds))
            response = self.core_v1.create_namespaced_service_account_token(
                service_account_name, namespace, request, _request_timeout=timeout)
            tokens[audience] = ServiceAccountToken(
                token=response.status.token,
                expiration_timestamp=parse_timestamp(response.status.expiration_timestamp))
        return tokens


class TokenClient:
    """Turns issued tokens into provider parameters."""

    def __init__(self, issuer):
        self._issuer = issuer

    @property
    def issuer(self):
        return self._issuer

    def service_account_token_attrs(self, namespace, service_account_name, audiences,
                                    timeout=None):
        """
        Provider parameters carrying the tokens for ``audiences``.

        :return: ``{}`` without audiences, otherwise a single entry keyed by
                 ``csi.storage.k8s.io/serviceAccount.tokens``
        :raises TokenRequestError: when the issuer fails
        """
        if not audiences:
            return {}

        try:
            tokens = self._issuer.issue_tokens(namespace, service_account_name, audiences,
                                               timeout=timeout)
        except Exception as e:
            raise TokenRequestError(namespace, service_account_name, e) from e

        logging.getLogger(__name__).debug(
            f"Fetched service account token attrs for {namespace}/{service_account_name}")
        outputs = {audience: tokens[audience].to_dict() for audience in sorted(tokens)}
        return {CSI_POD_SERVICE_ACCOUNT_TOKENS: json.dumps(outputs, separators=(",", ":"))}
