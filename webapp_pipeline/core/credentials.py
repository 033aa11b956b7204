"""
Credential Store - resolves credential ids to username/password pairs.

Provides:
- Environment lookup using the <ID>_USR / <ID>_PSW convention
- Encrypted file storage using Fernet (symmetric encryption)
- Key derivation from a passphrase
"""

import os
import json
from base64 import urlsafe_b64encode
from dataclasses import dataclass
from hashlib import pbkdf2_hmac
from pathlib import Path
from typing import Optional, Dict

from cryptography.fernet import Fernet, InvalidToken

from .security import SecretsMasker


class CredentialsError(Exception):
    """Raised when a credential cannot be resolved or stored."""
    pass


@dataclass(frozen=True)
class UsernamePassword:
    """A resolved username/password credential."""
    username: str
    password: str

    def __repr__(self) -> str:
        return f"UsernamePassword(username={self.username!r}, password='***')"


def env_prefix(credentials_id: str) -> str:
    """Map a credential id to its environment variable prefix."""
    return credentials_id.upper().replace("-", "_").replace(".", "_")


class CredentialStore:
    """
    Resolves credentials for pipeline stages.

    Environment variables take precedence over the encrypted file.

    Usage:
        store = CredentialStore()
        store.set_credentials("registry-credentials", "ci", "s3cret")
        creds = store.get_credentials("registry-credentials")
    """

    def __init__(
        self,
        secrets_file: Path = None,
        passphrase: str = None,
    ):
        """
        Args:
            secrets_file: Path to encrypted credentials file
            passphrase: Passphrase for encryption (or use PIPELINE_SECRETS_PASSPHRASE)
        """
        self.secrets_file = secrets_file or Path(
            os.getenv("PIPELINE_SECRETS_FILE", str(Path.home() / ".webapp_pipeline" / "credentials.enc"))
        )
        self.passphrase = passphrase or os.getenv("PIPELINE_SECRETS_PASSPHRASE", "")
        self._cipher = self._get_cipher() if self.passphrase else None
        self._cache: Optional[Dict[str, Dict[str, str]]] = None

    def _get_cipher(self) -> Fernet:
        """Get Fernet cipher from passphrase."""
        key = pbkdf2_hmac(
            'sha256',
            self.passphrase.encode(),
            b'webapp-pipeline-credentials',
            100000,
            dklen=32
        )
        return Fernet(urlsafe_b64encode(key))

    def _load(self) -> Dict[str, Dict[str, str]]:
        """Load and decrypt the credentials file."""
        if self._cache is not None:
            return self._cache

        if not self.secrets_file.exists():
            self._cache = {}
            return self._cache

        if self._cipher is None:
            raise CredentialsError(
                f"{self.secrets_file} exists but PIPELINE_SECRETS_PASSPHRASE is not set"
            )

        try:
            decrypted = self._cipher.decrypt(self.secrets_file.read_bytes())
        except InvalidToken:
            raise CredentialsError("Failed to decrypt credentials: wrong passphrase?")

        self._cache = json.loads(decrypted.decode())
        return self._cache

    def _save(self, data: Dict[str, Dict[str, str]]) -> None:
        """Encrypt and save credentials with owner-only permissions."""
        if self._cipher is None:
            raise CredentialsError("A passphrase is required to store credentials")

        self.secrets_file.parent.mkdir(parents=True, exist_ok=True)
        self.secrets_file.write_bytes(self._cipher.encrypt(json.dumps(data).encode()))
        self.secrets_file.chmod(0o600)
        self._cache = data

    def set_credentials(self, credentials_id: str, username: str, password: str) -> None:
        data = dict(self._load())
        data[credentials_id] = {"username": username, "password": password}
        self._save(data)

    def delete_credentials(self, credentials_id: str) -> None:
        data = dict(self._load())
        if credentials_id in data:
            del data[credentials_id]
            self._save(data)

    def list_ids(self) -> list[str]:
        """List stored credential ids (not values)."""
        return list(self._load().keys())

    def get_credentials(self, credentials_id: str) -> UsernamePassword:
        """
        Resolve a credential id.

        Raises:
            CredentialsError: If neither the environment nor the file has it
        """
        prefix = env_prefix(credentials_id)
        username = os.getenv(f"{prefix}_USR")
        password = os.getenv(f"{prefix}_PSW")

        if not (username and password):
            stored = self._load().get(credentials_id)
            if not stored:
                raise CredentialsError(
                    f"Credentials '{credentials_id}' not found "
                    f"(set {prefix}_USR and {prefix}_PSW)"
                )
            username, password = stored["username"], stored["password"]

        SecretsMasker.register(password)
        return UsernamePassword(username=username, password=password)
