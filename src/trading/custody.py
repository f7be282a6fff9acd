"""Managed-wallet key custody.

Private keys are stored as hex(nonce ‖ AES-256-GCM ciphertext) under a key
derived from WALLET_MASTER_KEY (sha256). Plaintext keys only exist inside
``KeyCustody.signing_account`` for the duration of one submission and are
never logged.
"""

import hashlib
import os
from collections.abc import Iterator
from contextlib import contextmanager

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from eth_account import Account
from eth_account.signers.local import LocalAccount

NONCE_SIZE = 12


class MissingMasterKeyError(Exception):
    def __init__(self) -> None:
        super().__init__("WALLET_MASTER_KEY is required")


class KeyDecryptionError(Exception):
    pass


def _derive_key(master_key: str) -> bytes:
    if not master_key:
        raise MissingMasterKeyError()
    return hashlib.sha256(master_key.encode()).digest()


def encrypt_private_key(master_key: str, private_key: bytes) -> str:
    aes = AESGCM(_derive_key(master_key))
    nonce = os.urandom(NONCE_SIZE)
    return (nonce + aes.encrypt(nonce, private_key, None)).hex()


def decrypt_private_key(master_key: str, cipher_hex: str) -> bytes:
    aes = AESGCM(_derive_key(master_key))
    try:
        blob = bytes.fromhex(cipher_hex)
    except (TypeError, ValueError) as e:
        raise KeyDecryptionError("encrypted key is not valid hex") from e
    if len(blob) <= NONCE_SIZE:
        raise KeyDecryptionError("encrypted key is truncated")
    try:
        return aes.decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], None)
    except InvalidTag as e:
        raise KeyDecryptionError("encrypted key could not be decrypted") from e


class KeyCustody:
    def __init__(self, master_key: str) -> None:
        self._master_key = master_key

    def __repr__(self) -> str:
        return f"KeyCustody(configured={bool(self._master_key)})"

    @property
    def configured(self) -> bool:
        return bool(self._master_key)

    def encrypt(self, private_key: bytes) -> str:
        return encrypt_private_key(self._master_key, private_key)

    @contextmanager
    def signing_account(self, cipher_hex: str) -> Iterator[LocalAccount]:
        """Decrypt the key and expose it as a signer; the reference is dropped on exit."""
        key = decrypt_private_key(self._master_key, cipher_hex)
        account = Account.from_key(key)
        try:
            yield account
        finally:
            del account
            del key
