"""
Unit tests for stored-token encryption.
"""
import pytest
from cryptography.fernet import Fernet

from launcher.core.database.encryption import TokenCipher, generate_encryption_key
from launcher.core.errors import StorageError


@pytest.fixture
def encryption_key():
    return generate_encryption_key()


class TestTokenCipher:

    def test_round_trip(self, encryption_key):
        cipher = TokenCipher(encryption_key)

        stored = cipher.encrypt("mrp_session_token")

        assert stored != "mrp_session_token"
        assert cipher.decrypt(stored) == "mrp_session_token"

    def test_encryption_is_randomized(self, encryption_key):
        cipher = TokenCipher(encryption_key)
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_old_key_still_decrypts(self):
        old_key = generate_encryption_key()
        stored = TokenCipher(old_key).encrypt("token")

        rotated = TokenCipher(generate_encryption_key(), old_keys=[old_key])

        assert rotated.decrypt(stored) == "token"

    def test_new_encryptions_use_primary_key(self):
        old_key = generate_encryption_key()
        new_key = generate_encryption_key()
        rotated = TokenCipher(new_key, old_keys=[old_key])

        stored = rotated.encrypt("token")

        assert Fernet(new_key.encode()).decrypt(stored.encode()) == b"token"

    def test_unknown_key_is_storage_error(self):
        stored = TokenCipher(generate_encryption_key()).encrypt("token")

        with pytest.raises(StorageError):
            TokenCipher(generate_encryption_key()).decrypt(stored)

    def test_invalid_primary_key(self):
        with pytest.raises(ValueError):
            TokenCipher("not-a-fernet-key")

    def test_invalid_old_key(self, encryption_key):
        with pytest.raises(ValueError, match="position 1"):
            TokenCipher(encryption_key, old_keys=["bad"])

    def test_from_settings_without_key(self, settings):
        assert TokenCipher.from_settings(settings) is None

    def test_from_settings_with_keys(self, settings, encryption_key):
        old_key = generate_encryption_key()
        configured = settings.model_copy(update={
            'db_encryption_key': encryption_key,
            'db_encryption_key_old': f" {old_key} ,",
        })

        cipher = TokenCipher.from_settings(configured)

        assert cipher is not None
        assert cipher.decrypt(TokenCipher(old_key).encrypt("t")) == "t"
