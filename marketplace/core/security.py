"""Security utilities: credential encryption and admin token checks."""

import hmac
import json

from cryptography.fernet import Fernet, InvalidToken

from marketplace.core.exceptions import ConfigurationError

# ── Field-level encryption (Fernet) ──────────────────────────


class CredentialCipher:
    """Fernet encryption bound to one key.

    A malformed key is rejected on construction. A missing key only fails
    when something actually needs encrypting or decrypting, so a deployment
    that stores no tenant credentials can run without one.
    """

    def __init__(self, key: str | None) -> None:
        self._fernet: Fernet | None = None
        if key:
            try:
                self._fernet = Fernet(key.encode())
            except (ValueError, TypeError) as exc:
                raise ConfigurationError(
                    "ENCRYPTION_KEY is not a valid Fernet key", field="encryption_key"
                ) from exc

    def _require(self) -> Fernet:
        if self._fernet is None:
            raise ConfigurationError("ENCRYPTION_KEY is not configured", field="encryption_key")
        return self._fernet

    def encrypt_value(self, plaintext: str) -> str:
        """Encrypt a string value. Returns base64 ciphertext."""
        return self._require().encrypt(plaintext.encode()).decode()

    def decrypt_value(self, ciphertext: str) -> str:
        try:
            return self._require().decrypt(ciphertext.encode()).decode()
        except InvalidToken as exc:
            raise ConfigurationError(
                "Stored credentials cannot be decrypted with the configured ENCRYPTION_KEY",
                field="encryption_key",
            ) from exc

    def encrypt_json(self, data: dict) -> str:
        return self.encrypt_value(json.dumps(data, sort_keys=True))

    def decrypt_json(self, ciphertext: str) -> dict:
        return json.loads(self.decrypt_value(ciphertext))


# ── Admin bearer token ───────────────────────────────────────

def admin_token_matches(presented: str, expected: str) -> bool:
    """Constant-time comparison; an unset expected token never matches."""
    if not expected:
        return False
    return hmac.compare_digest(presented.encode(), expected.encode())
