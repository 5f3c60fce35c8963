"""Symmetric encryption for provider credentials stored in the database."""

import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from gerai.core.config import settings

logger = logging.getLogger(__name__)


class VaultError(Exception):
    pass


class SecretVault:
    """Encrypts and decrypts secrets with a Fernet key kept on disk."""

    def __init__(self, key_path: Path | None = None):
        self._key_path = key_path or settings.vault_key_path
        self._fernet: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        return self._get_fernet().encrypt(secret.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            return self._get_fernet().decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, ValueError) as e:
            raise VaultError("Stored credential could not be decrypted") from e

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        if path.exists():
            return path.read_bytes().strip()

        path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        logger.info(f"Created new vault key at {path}")
        return key
