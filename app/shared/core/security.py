import hashlib
import json
import os
import threading
from typing import Any, Dict, Optional, Tuple

import structlog
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from app.shared.core.config import Settings, get_settings
from app.shared.core.credentials import credentials_from_settings
from app.shared.core.provider import CloudProvider

logger = structlog.get_logger()

# ============================================================================
# Credential Store (AES-256-CBC, process-local)
# ============================================================================

KEY_LENGTH = 32  # AES-256
IV_LENGTH = 16
MASK = "••••••••"


def derive_key(raw_key: Optional[str]) -> Tuple[bytes, bool]:
    """
    Resolve the 32-byte store key.

    A 64-char hex string is used as-is, any other string is hashed with
    SHA-256. Returns (key, ephemeral) where ephemeral means the key was
    randomly generated and will not survive a restart.
    """
    if raw_key:
        candidate = raw_key.strip()
        if len(candidate) == KEY_LENGTH * 2:
            try:
                return bytes.fromhex(candidate), False
            except ValueError:
                pass
        return hashlib.sha256(candidate.encode("utf-8")).digest(), False
    return os.urandom(KEY_LENGTH), True


class CredentialStore:
    """
    Encrypts and holds per-provider credential blobs in memory.

    Each blob is JSON-encoded and encrypted with AES-256-CBC under a fresh
    random IV. There is no persistence and no key rotation: the store lives
    and dies with the process.
    """

    def __init__(self, key: Optional[str] = None):
        self._key, self.ephemeral = derive_key(key)
        self._blobs: Dict[CloudProvider, Tuple[bytes, bytes]] = {}
        self._lock = threading.Lock()
        if self.ephemeral:
            logger.warning(
                "credential_store_ephemeral_key",
                msg="CREDENTIAL_ENCRYPTION_KEY not set; stored credentials are lost on restart",
            )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CredentialStore":
        settings = settings or get_settings()
        return cls(key=settings.CREDENTIAL_ENCRYPTION_KEY)

    def _encrypt(self, plaintext: bytes) -> Tuple[bytes, bytes]:
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        return iv, encryptor.update(padded) + encryptor.finalize()

    def _decrypt(self, iv: bytes, ciphertext: bytes) -> bytes:
        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()

    def set(self, provider: CloudProvider, blob: Dict[str, Any]) -> None:
        payload = json.dumps(blob, sort_keys=True).encode("utf-8")
        encrypted = self._encrypt(payload)
        with self._lock:
            self._blobs[provider] = encrypted
        logger.info("credentials_stored", provider=provider.value, fields=sorted(blob))

    def get(self, provider: CloudProvider) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._blobs.get(provider)
        if entry is None:
            return None
        iv, ciphertext = entry
        return json.loads(self._decrypt(iv, ciphertext).decode("utf-8"))

    def has(self, provider: CloudProvider) -> bool:
        with self._lock:
            return provider in self._blobs

    def delete(self, provider: CloudProvider) -> bool:
        with self._lock:
            removed = self._blobs.pop(provider, None) is not None
        if removed:
            logger.info("credentials_deleted", provider=provider.value)
        return removed

    def providers(self) -> list[CloudProvider]:
        with self._lock:
            return list(self._blobs)

    def masked(self, provider: CloudProvider) -> Optional[Dict[str, str]]:
        """Field names of a stored blob with every value masked."""
        blob = self.get(provider)
        if blob is None:
            return None
        return {field: MASK for field in blob}

    def raw_entry(self, provider: CloudProvider) -> Optional[Tuple[bytes, bytes]]:
        """(iv, ciphertext) as held in memory."""
        with self._lock:
            return self._blobs.get(provider)


def bootstrap_from_environment(store: CredentialStore, settings: Optional[Settings] = None) -> list[CloudProvider]:
    """Seed the store with every provider fully configured via environment variables."""
    settings = settings or get_settings()
    seeded: list[CloudProvider] = []
    for provider, blob in credentials_from_settings(settings).items():
        store.set(provider, blob)
        seeded.append(provider)
    logger.info("credential_store_bootstrapped", providers=[p.value for p in seeded])
    return seeded
