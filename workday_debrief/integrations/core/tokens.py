"""
Secret encryption and storage.

Credentials (API tokens, the Google refresh token, SMTP password, webhook URL,
OAuth handshake values) live in a single Fernet-encrypted JSON file. Nothing
secret is ever written to the summary database.
"""

import os
import json
import logging
import threading
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from workday_debrief import config
from .errors import VaultError

logger = logging.getLogger(__name__)

# Shown in place of stored secrets. Writing it back means "keep the current value".
MASKED_SECRET = "••••••"


class VaultKeys:
    """Names of the secrets kept in the vault."""
    JIRA_EMAIL = "jira_email"
    JIRA_API_TOKEN = "jira_api_token"
    TOGGL_API_TOKEN = "toggl_api_token"
    GOOGLE_REFRESH_TOKEN = "google_refresh_token"
    OAUTH_CSRF_TOKEN = "oauth_csrf_token"
    OAUTH_PKCE_VERIFIER = "oauth_pkce_verifier"
    DELIVERY_EMAIL_PASSWORD = "delivery_email_password"
    DELIVERY_SLACK_WEBHOOK = "delivery_slack_webhook"


def is_unchanged_secret(value: Optional[str]) -> bool:
    """True for values that must not overwrite a stored secret."""
    return value is None or value == MASKED_SECRET


class TokenManager:
    """
    Manages encryption/decryption of secrets.

    Uses Fernet symmetric encryption. The key comes from the constructor,
    the DEBRIEF_MASTER_KEY environment variable, or a key file generated on
    first use (mode 0600).
    """

    def __init__(self, encryption_key: Optional[str] = None, key_path: Optional[Path] = None):
        """
        Initialize TokenManager.

        Args:
            encryption_key: Fernet key (base64). If not provided, reads from
                           DEBRIEF_MASTER_KEY, then from the key file.
            key_path: Location of the generated key file
        """
        key = encryption_key or os.getenv("DEBRIEF_MASTER_KEY")
        if not key:
            key = self._load_or_create_key_file(key_path or config.get_master_key_path())

        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except ValueError as e:
            raise VaultError(f"Master key is not a valid Fernet key: {e}") from e

    @staticmethod
    def _load_or_create_key_file(path: Path) -> str:
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            # Another process created it first; use theirs
            return path.read_text().strip()

        key = Fernet.generate_key().decode()
        with os.fdopen(fd, "w") as f:
            f.write(key)
        logger.info(f"[VAULT] Generated new master key at {path}")
        return key

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a value for storage.

        Args:
            plaintext: The value to encrypt

        Returns:
            Base64-encoded encrypted value
        """
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored value.

        Raises:
            cryptography.fernet.InvalidToken: If decryption fails
        """
        return self._fernet.decrypt(ciphertext.encode()).decode()

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet encryption key."""
        return Fernet.generate_key().decode()


class SecretVault:
    """
    Encrypted key-value store backed by one file.

    Every mutation is a read-modify-write under a single lock, and the file is
    replaced atomically so a failed write leaves the previous contents intact.
    """

    def __init__(self, path: Path, token_manager: TokenManager):
        self._path = Path(path)
        self._tokens = token_manager
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            ciphertext = self._path.read_text()
            if not ciphertext.strip():
                return {}
            data = json.loads(self._tokens.decrypt(ciphertext))
        except InvalidToken as e:
            raise VaultError("Secret store could not be decrypted. Was the master key changed?") from e
        except (OSError, ValueError) as e:
            raise VaultError(f"Secret store could not be read: {e}") from e
        if not isinstance(data, dict):
            raise VaultError("Secret store is corrupt")
        return data

    def _write(self, data: dict[str, str]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(self._tokens.encrypt(json.dumps(data)))
            os.replace(tmp, self._path)
        except OSError as e:
            raise VaultError(f"Secret store could not be written: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def has(self, key: str) -> bool:
        return bool(self.get(key))

    def set(self, key: str, value: Optional[str]) -> None:
        """
        Store a secret.

        The masked sentinel and None are ignored so round-tripping a masked
        form never clobbers the real value.
        """
        self.set_many({key: value})

    def set_many(self, values: dict[str, Optional[str]]) -> None:
        updates = {k: v for k, v in values.items() if not is_unchanged_secret(v)}
        if not updates:
            return
        with self._lock:
            data = self._read()
            data.update(updates)
            self._write(data)
        logger.debug(f"[VAULT] Stored {sorted(updates)}")

    def delete(self, key: str) -> None:
        """Remove a secret. Missing keys are not an error."""
        with self._lock:
            data = self._read()
            if key not in data:
                return
            del data[key]
            self._write(data)
        logger.debug(f"[VAULT] Deleted {key}")

    def masked(self, key: str) -> str:
        """Display form: the sentinel when set, empty otherwise."""
        return MASKED_SECRET if self.has(key) else ""


# Singleton instance
_vault: Optional[SecretVault] = None


def get_vault() -> SecretVault:
    """Get the global SecretVault instance."""
    global _vault
    if _vault is None:
        _vault = SecretVault(config.get_vault_path(), TokenManager())
    return _vault
