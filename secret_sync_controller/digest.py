# -*- coding: utf-8 -*-
"""Change detection digest for a synced secret.

The digest is not a credential. It only tells the reconciler whether the
content, the provider configuration, the SecretSync generation or the force
synchronization token changed since the last successful write, and it is
salted with the SecretSync UID so two resources never share a digest.
"""

import base64
import json

from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import DigestError

DIGEST_VERSION = "v1"
DIGEST_ITERATIONS = 100_000
DIGEST_KEY_LENGTH = 32


def _marshal(value):
    return json.dumps(value, sort_keys=True, separators=(",", ":"),
                      ensure_ascii=False).encode("utf-8")


def serialize_digest_input(data_map, spc_uid, spc_generation, ss_uid, ss_generation,
                           force_synchronization):
    """Concatenate the digest inputs in their fixed order.

    The data map is written with sorted keys and base64 values so insertion
    order never changes the result.
    """
    try:
        encoded = {key: base64.b64encode(value).decode("ascii")
                   for key, value in data_map.items()}
        return b"".join([_marshal(encoded),
                         _marshal(spc_uid),
                         _marshal(spc_generation),
                         _marshal(ss_uid),
                         _marshal(ss_generation),
                         _marshal(force_synchronization)])
    except (TypeError, ValueError) as e:
        raise DigestError(f"failed to serialize secret data for hashing: {e}") from e


def compute_digest(data_map, spc_uid, spc_generation, ss_uid, ss_generation,
                   force_synchronization=""):
    """Compute the versioned hex digest of a secret data map.

    Args:
        data_map (dict): target key to secret bytes.
        spc_uid (str): UID of the SecretProviderClass.
        spc_generation (int): generation of the SecretProviderClass.
        ss_uid (str): UID of the SecretSync, also used as the salt.
        ss_generation (int): generation of the SecretSync.
        force_synchronization (str): the SecretSync force token.

    Returns:
        str: hex of the version prefix followed by the HMAC-SHA512 value.
    """
    material = serialize_digest_input(data_map, spc_uid, spc_generation, ss_uid,
                                      ss_generation, force_synchronization)

    kdf = PBKDF2HMAC(algorithm=hashes.SHA512(),
                     length=DIGEST_KEY_LENGTH,
                     salt=(ss_uid or "").encode("utf-8"),
                     iterations=DIGEST_ITERATIONS)
    derived_key = kdf.derive(material)

    mac = hmac.HMAC(derived_key, hashes.SHA512())
    mac.update(derived_key)
    return (DIGEST_VERSION.encode("ascii") + mac.finalize()).hex()


def compute_secret_data_object_hash(data_map, secret_provider_class, secret_sync):
    return compute_digest(data_map,
                          secret_provider_class.uid,
                          secret_provider_class.generation,
                          secret_sync.uid,
                          secret_sync.generation,
                          secret_sync.spec.force_synchronization)
