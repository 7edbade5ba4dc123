# -*- coding: utf-8 -*-

class SecretSyncError(Exception):
    """Base Error class."""


class ObjectNotFoundError(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "{} {}/{} not found"

    def __init__(self, kind, namespace, name):
        super(ObjectNotFoundError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(kind,
                                                                                   namespace,
                                                                                   name))
        self.kind = kind
        self.namespace = namespace
        self.name = name


class PassCancelled(SecretSyncError):
    """Raised when the reconciliation pass was cancelled or ran past its deadline."""


class SecretObjectValidationError(SecretSyncError):
    """The secret object of a SecretSync is missing a mandatory field."""


class SecretDataError(SecretSyncError):
    """A data entry could not be resolved against the provider files."""


class UnsupportedKeyError(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "key '{}' is not supported. Only 'tls.key' and 'tls.crt' are supported"

    def __init__(self, key):
        super(UnsupportedKeyError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(key))
        self.key = key


class CertificateParseError(SecretSyncError):
    """Certificate or key material could not be decoded."""


class UnsupportedPrivateKeyError(CertificateParseError):
    CUSTOM_ERROR_MESSAGE = "unknown private key type {} found while getting key. " \
                           "Only rsa and ecdsa are supported"

    def __init__(self, key_type):
        super(UnsupportedPrivateKeyError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(key_type))


class ReservedLabelError(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "label {} is reserved for use by the secret sync controller"

    def __init__(self, key):
        super(ReservedLabelError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(key))


class ReservedAnnotationError(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "annotation {} is reserved for use by the secret sync controller"

    def __init__(self, key):
        super(ReservedAnnotationError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(key))


class TokenRequestError(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "failed to get service account token for {}/{} error {}"

    def __init__(self, namespace, service_account, error):
        super(TokenRequestError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(namespace,
                                                                                 service_account,
                                                                                 str(error)))
        self._error = error

    @property
    def error(self):
        return self._error


class ProviderClassError(SecretSyncError):
    """The SecretProviderClass could not be read or names no usable provider."""


class ProviderNotFoundError(ProviderClassError):
    CUSTOM_ERROR_MESSAGE = "provider {} is not registered"

    def __init__(self, provider):
        super(ProviderNotFoundError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(provider))
        self.provider = provider


class ProviderInvokeError(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "failed to get secrets from provider {} error {}"

    def __init__(self, provider, error):
        super(ProviderInvokeError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(provider,
                                                                                   str(error)))
        self._error = error
        self._provider = provider

    @property
    def error(self):
        return self._error

    @property
    def provider(self):
        return self._provider


class SecretApplyError(SecretSyncError):
    CUSTOM_ERROR_MESSAGE = "failed to patch secret {}/{} error {}"

    def __init__(self, namespace, name, error):
        super(SecretApplyError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(namespace,
                                                                                name,
                                                                                str(error)))
        self._error = error

    @property
    def error(self):
        return self._error


class ControllerInternalError(SecretSyncError):
    """Serialization or other controller side failure."""


class DigestError(ControllerInternalError):
    """The secret data could not be serialized for hashing."""
