"""
Secret Vault Tests

Encryption round trip, the masked sentinel, idempotent delete, and the
wrong-key failure mode. Uses a temporary directory; no network.

Run: python -m pytest tests/test_vault.py
 or: python tests/test_vault.py
"""

import os
import stat
import tempfile
from pathlib import Path

from workday_debrief.integrations.core.errors import VaultError
from workday_debrief.integrations.core.tokens import (
    MASKED_SECRET,
    SecretVault,
    TokenManager,
    VaultKeys,
)


def _vault(directory: str, key: str = None) -> SecretVault:
    tokens = TokenManager(encryption_key=key or TokenManager.generate_key())
    return SecretVault(Path(directory) / "secrets.enc", tokens)


def test_set_get_roundtrip():
    with tempfile.TemporaryDirectory() as tmp:
        vault = _vault(tmp)
        vault.set(VaultKeys.JIRA_API_TOKEN, "jira-secret-123")

        assert vault.get(VaultKeys.JIRA_API_TOKEN) == "jira-secret-123"
        assert vault.has(VaultKeys.JIRA_API_TOKEN)
        assert vault.get(VaultKeys.TOGGL_API_TOKEN) is None

        # Nothing readable on disk
        raw = (Path(tmp) / "secrets.enc").read_text()
        assert "jira-secret-123" not in raw
        print("  ✓ secret stored encrypted and read back")

    print("✅ set_get_roundtrip: PASSED")


def test_masked_sentinel_never_overwrites():
    with tempfile.TemporaryDirectory() as tmp:
        vault = _vault(tmp)
        vault.set(VaultKeys.DELIVERY_EMAIL_PASSWORD, "hunter2")

        assert vault.masked(VaultKeys.DELIVERY_EMAIL_PASSWORD) == MASKED_SECRET
        assert vault.masked(VaultKeys.DELIVERY_SLACK_WEBHOOK) == ""

        # Saving the form back unchanged
        vault.set(VaultKeys.DELIVERY_EMAIL_PASSWORD, MASKED_SECRET)
        vault.set(VaultKeys.DELIVERY_EMAIL_PASSWORD, None)
        assert vault.get(VaultKeys.DELIVERY_EMAIL_PASSWORD) == "hunter2"

        vault.set_many({
            VaultKeys.DELIVERY_EMAIL_PASSWORD: MASKED_SECRET,
            VaultKeys.TOGGL_API_TOKEN: "toggl-abc",
        })
        assert vault.get(VaultKeys.DELIVERY_EMAIL_PASSWORD) == "hunter2"
        assert vault.get(VaultKeys.TOGGL_API_TOKEN) == "toggl-abc"
        print("  ✓ sentinel and None leave the stored value alone")

    print("✅ masked_sentinel_never_overwrites: PASSED")


def test_delete_is_idempotent():
    with tempfile.TemporaryDirectory() as tmp:
        vault = _vault(tmp)
        vault.set(VaultKeys.GOOGLE_REFRESH_TOKEN, "refresh")

        vault.delete(VaultKeys.GOOGLE_REFRESH_TOKEN)
        vault.delete(VaultKeys.GOOGLE_REFRESH_TOKEN)
        vault.delete("never_set")

        assert vault.get(VaultKeys.GOOGLE_REFRESH_TOKEN) is None
        assert not vault.has(VaultKeys.GOOGLE_REFRESH_TOKEN)

    print("✅ delete_is_idempotent: PASSED")


def test_wrong_key_raises_vault_error():
    with tempfile.TemporaryDirectory() as tmp:
        _vault(tmp).set(VaultKeys.JIRA_EMAIL, "me@example.com")

        other = _vault(tmp)
        try:
            other.get(VaultKeys.JIRA_EMAIL)
        except VaultError as e:
            assert "master key" in e.message
            print(f"  ✓ {e.message}")
        else:
            raise AssertionError("Expected VaultError")

    print("✅ wrong_key_raises_vault_error: PASSED")


def test_key_file_created_once():
    with tempfile.TemporaryDirectory() as tmp:
        key_path = Path(tmp) / "master.key"
        saved = os.environ.pop("DEBRIEF_MASTER_KEY", None)
        try:
            first = SecretVault(Path(tmp) / "secrets.enc", TokenManager(key_path=key_path))
            first.set(VaultKeys.JIRA_EMAIL, "me@example.com")

            # A second manager reuses the generated key
            second = SecretVault(Path(tmp) / "secrets.enc", TokenManager(key_path=key_path))
            assert second.get(VaultKeys.JIRA_EMAIL) == "me@example.com"

            mode = stat.S_IMODE(os.stat(key_path).st_mode)
            assert mode == 0o600, oct(mode)
        finally:
            if saved is not None:
                os.environ["DEBRIEF_MASTER_KEY"] = saved

    print("✅ key_file_created_once: PASSED")


def test_invalid_master_key():
    try:
        TokenManager(encryption_key="not-a-fernet-key")
    except VaultError:
        pass
    else:
        raise AssertionError("Expected VaultError")

    print("✅ invalid_master_key: PASSED")


if __name__ == "__main__":
    print("\n🧪 Running vault tests...\n")

    test_set_get_roundtrip()
    test_masked_sentinel_never_overwrites()
    test_delete_is_idempotent()
    test_wrong_key_raises_vault_error()
    test_key_file_created_once()
    test_invalid_master_key()

    print("\n✅ All vault tests passed!")
