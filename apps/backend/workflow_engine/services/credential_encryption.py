"""
Credential encryption for node configuration fields.

Values are encrypted with AES-256-CBC under a random 16-byte IV and stored as
``enc_<iv hex>:<ciphertext hex>``. Only the fields listed in
``CREDENTIAL_FIELDS`` for a node's type go through the codec.
"""

import copy
import logging
import os
from typing import Any, Dict, List, Optional

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from shared.models import NodeInstance, WorkflowGraph
from workflow_engine.core.config import EngineSettings, get_engine_settings
from workflow_engine.core.exceptions import CodecError

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "enc_"
IV_LENGTH = 16
KEY_LENGTH = 32
KDF_ITERATIONS = 100_000

# Node type -> config fields holding secrets. Changing an entry means
# migrating stored workflows of that type.
CREDENTIAL_FIELDS: Dict[str, List[str]] = {
    "telegram": ["botToken"],
    "openai": ["apiKey"],
    "gemini": ["apiKey"],
    "postgres": ["password", "connectionString"],
    "mysql": ["password"],
    "stripe": ["apiKey", "secretKey"],
    "slack": ["token", "botToken"],
    "gmail_send": ["password", "clientSecret"],
    "webhook": ["secret"],
    "mongodb": ["connectionString"],
    "redis": ["password"],
    "elasticsearch": ["password", "apiKey"],
    "snowflake": ["password"],
    "activeCampaign": ["apiKey"],
    "mailerLite": ["apiKey"],
    "brevo": ["apiKey"],
    "convertKit": ["apiSecret"],
    "getResponse": ["apiKey"],
    "todoist": ["token"],
    "microsoftToDo": ["token"],
}


def is_encrypted(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)


class CredentialEncryption:
    """Handles encryption/decryption of sensitive node config fields."""

    def __init__(self, encryption_key: Optional[str] = None, settings: Optional[EngineSettings] = None):
        """Initialize with encryption key.

        Args:
            encryption_key: Secret string. If None, read from settings
                (CREDENTIAL_ENCRYPTION_KEY); a random key is generated when unset.
        """
        self.settings = settings or get_engine_settings()
        secret = encryption_key or self.settings.credential_encryption_key
        self._key = self._derive_key(secret) if secret else self._generate_key()

    def _derive_key(self, secret: str) -> bytes:
        raw = secret.encode("utf-8")
        if len(raw) == KEY_LENGTH:
            return raw
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=self.settings.credential_key_salt.encode("utf-8"),
            iterations=KDF_ITERATIONS,
        )
        return kdf.derive(raw)

    def _generate_key(self) -> bytes:
        logger.warning(
            "Generated new encryption key. Set CREDENTIAL_ENCRYPTION_KEY environment variable for production; "
            "values encrypted with this key cannot be read after restart."
        )
        return os.urandom(KEY_LENGTH)

    def encrypt(self, data: Any) -> Any:
        """Encrypt a string value.

        Empty/non-string values and values already bearing the prefix are
        returned unchanged.

        Raises:
            CodecError: the cipher failed; the caller must not store plaintext.
        """
        if not isinstance(data, str) or not data or is_encrypted(data):
            return data

        try:
            iv = os.urandom(IV_LENGTH)
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(data.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except Exception as e:
            logger.error(f"Encryption failed: {e}")
            raise CodecError(f"Encryption failed: {e}") from e

        return f"{ENCRYPTED_PREFIX}{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, encrypted_data: Any) -> Any:
        """Decrypt a prefixed value.

        Values without the prefix pass through. Corrupt or foreign ciphertext
        is logged and returned unchanged.
        """
        if not is_encrypted(encrypted_data):
            return encrypted_data

        try:
            iv_hex, _, ct_hex = encrypted_data[len(ENCRYPTED_PREFIX) :].partition(":")
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ct_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except Exception as e:
            logger.error(f"Decryption failed: {e}")
            return encrypted_data

    def encrypt_config(self, node_type: str, config: Dict[str, Any]) -> Dict[str, Any]:
        encrypted_config = copy.deepcopy(config)
        for field in CREDENTIAL_FIELDS.get(node_type, []):
            if encrypted_config.get(field):
                encrypted_config[field] = self.encrypt(encrypted_config[field])
        return encrypted_config

    def decrypt_config(self, node_type: str, config: Dict[str, Any]) -> Dict[str, Any]:
        decrypted_config = copy.deepcopy(config)
        for field in CREDENTIAL_FIELDS.get(node_type, []):
            if decrypted_config.get(field):
                decrypted_config[field] = self.decrypt(decrypted_config[field])
        return decrypted_config

    def encrypt_node(self, node: NodeInstance) -> NodeInstance:
        return node.model_copy(update={"config": self.encrypt_config(node.type, node.config)})

    def decrypt_node(self, node: NodeInstance) -> NodeInstance:
        return node.model_copy(update={"config": self.decrypt_config(node.type, node.config)})

    def encrypt_graph(self, graph: WorkflowGraph) -> WorkflowGraph:
        """Copy of ``graph`` with credential fields encrypted."""
        return graph.model_copy(update={"nodes": [self.encrypt_node(n) for n in graph.nodes]}, deep=True)

    def decrypt_graph(self, graph: WorkflowGraph) -> WorkflowGraph:
        """Runtime-only copy of ``graph`` with credential fields decrypted."""
        return graph.model_copy(update={"nodes": [self.decrypt_node(n) for n in graph.nodes]}, deep=True)


__all__ = ["CredentialEncryption", "CREDENTIAL_FIELDS", "ENCRYPTED_PREFIX", "is_encrypted"]
