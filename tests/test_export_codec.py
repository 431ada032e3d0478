"""Tests for the export/import container codec.

Covers: container layout, round trips between independent vaults, password
and corruption handling, header/truncation rejection and partial history
restores.
"""

import json

import pytest

from envpocket.store.memory import InMemoryAttributeStore
from envpocket.vault import (
    ContainerFormatError,
    DecryptionError,
    EncryptionService,
    ExportCodec,
    InvalidKeyError,
    KeyNotFoundError,
    MAGIC,
    VersionedVault,
)
from envpocket.vault import export_codec as codec_mod
from envpocket.vault.export_codec import HEADER_LENGTH, derive_key

PASSWORD = "correct horse battery staple"


@pytest.fixture
def populated(vault):
    """A key with three saved versions (two history items)."""
    vault.save("myapp-dev", b"API_KEY=one\n", "/srv/myapp/.env")
    vault.save("myapp-dev", b"API_KEY=two\n", "/srv/myapp/.env")
    vault.save("myapp-dev", b"API_KEY=three\n", "/srv/myapp/.env.local")
    return vault


@pytest.fixture
def target(clock_factory):
    """An independent vault standing in for another machine."""
    return VersionedVault(InMemoryAttributeStore(), clock=clock_factory())


def seal_document(document, password, salt=b"\x01" * 32):
    """Build a container around an arbitrary plaintext document."""
    plaintext = document if isinstance(document, bytes) else json.dumps(document).encode()
    key = derive_key(password, salt)
    nonce, ciphertext, tag = EncryptionService.seal(plaintext, key)
    return MAGIC + salt + nonce + ciphertext + tag


class TestKeyDerivation:

    def test_deterministic(self):
        salt = b"\x00" * 32
        assert derive_key("pw", salt) == derive_key("pw", salt)

    def test_length_is_256_bits(self):
        assert len(derive_key("pw", b"\x00" * 32)) == 32

    def test_salt_and_password_matter(self):
        base = derive_key("pw", b"\x00" * 32)
        assert derive_key("pw", b"\x01" * 32) != base
        assert derive_key("pw2", b"\x00" * 32) != base

    def test_uses_100k_iterations(self):
        assert EncryptionService.PBKDF2_ITERATIONS == 100_000


class TestExport:

    def test_container_layout(self, populated, codec):
        container = codec.export_entry("myapp-dev", PASSWORD)
        assert container[:12] == b"ENVPOCKET_V1"
        assert HEADER_LENGTH == 56
        assert len(container) > HEADER_LENGTH + 16

        parts = ExportCodec.parse_container(container)
        assert len(parts["salt"]) == 32
        assert len(parts["nonce"]) == 12
        assert len(parts["tag"]) == 16
        assert parts["salt"] == container[12:44]
        assert parts["nonce"] == container[44:56]
        assert parts["tag"] == container[-16:]

    def test_each_export_is_unique(self, populated, codec):
        first = codec.export_entry("myapp-dev", PASSWORD)
        second = codec.export_entry("myapp-dev", PASSWORD)
        assert first[12:44] != second[12:44]
        assert first != second

    def test_document_contents(self, populated, codec):
        document = codec.decrypt_document(codec.export_entry("myapp-dev", PASSWORD), PASSWORD)
        metadata = document["metadata"]

        assert EncryptionService.decode_from_storage(document["data"]) == b"API_KEY=three\n"
        assert metadata["key"] == "myapp-dev"
        assert metadata["originalPath"] == "/srv/myapp/.env.local"
        assert metadata["lastModified"] == "2025-01-15T09:32:00Z"
        assert [h["timestamp"] for h in metadata["history"]] == [
            "2025-01-15T09:32:00Z",
            "2025-01-15T09:31:00Z",
        ]
        assert [EncryptionService.decode_from_storage(h["data"]) for h in metadata["history"]] == [
            b"API_KEY=two\n",
            b"API_KEY=one\n",
        ]

    def test_history_omitted_when_empty(self, vault, codec):
        vault.save("solo", b"X=1\n", None)
        document = codec.decrypt_document(codec.export_entry("solo", PASSWORD), PASSWORD)
        assert "history" not in document["metadata"]
        assert "originalPath" not in document["metadata"]

    def test_missing_key(self, codec):
        with pytest.raises(KeyNotFoundError):
            codec.export_entry("nope", PASSWORD)

    def test_export_to_file(self, populated, codec, tmp_path):
        path = tmp_path / "myapp.envpocket"
        size = codec.export_to_file("myapp-dev", path, PASSWORD)
        assert path.read_bytes().startswith(MAGIC)
        assert path.stat().st_size == size


class TestImport:

    def test_roundtrip_into_another_vault(self, populated, codec, target):
        container = codec.export_entry("myapp-dev", PASSWORD)
        summary = ExportCodec(target).import_entry("myapp-dev", container, PASSWORD)

        assert summary.success
        assert summary.history_total == 2
        assert summary.history_restored == 2

        current = target.get("myapp-dev")
        assert current.data == b"API_KEY=three\n"
        assert current.original_path == "/srv/myapp/.env.local"
        assert current.last_modified == "2025-01-15T09:32:00Z"

        assert [ref.timestamp for ref in target.list_history("myapp-dev")] == [
            ref.timestamp for ref in populated.list_history("myapp-dev")
        ]
        assert target.get("myapp-dev", version=1).data == b"API_KEY=one\n"
        assert target.get("myapp-dev", version=1).original_path == "/srv/myapp/.env"

    def test_import_under_different_key(self, populated, codec, target):
        container = codec.export_entry("myapp-dev", PASSWORD)
        ExportCodec(target).import_entry("teammate-copy", container, PASSWORD)
        assert target.get("teammate-copy").data == b"API_KEY=three\n"
        assert len(target.list_history("teammate-copy")) == 2

    def test_import_replaces_current_without_snapshot(self, populated, codec, target):
        target.save("myapp-dev", b"LOCAL=1\n", None)
        container = codec.export_entry("myapp-dev", PASSWORD)

        summary = ExportCodec(target).import_entry("myapp-dev", container, PASSWORD)
        assert summary.history_restored == 2
        assert len(target.list_history("myapp-dev")) == 2
        assert target.get("myapp-dev").data == b"API_KEY=three\n"

    def test_empty_and_binary_payloads(self, vault, codec, target):
        vault.save("bin", bytes(range(256)), None)
        vault.save("bin", b"", None)
        container = codec.export_entry("bin", PASSWORD)

        ExportCodec(target).import_entry("bin", container, PASSWORD)
        assert target.get("bin").data == b""
        assert target.get("bin", version=0).data == bytes(range(256))

    def test_wrong_password_writes_nothing(self, populated, codec):
        container = codec.export_entry("myapp-dev", PASSWORD)
        other_store = InMemoryAttributeStore()
        other = ExportCodec(VersionedVault(other_store))

        with pytest.raises(DecryptionError, match="Decryption failed"):
            other.import_entry("myapp-dev", container, "wrong password")
        assert len(other_store) == 0

    def test_corruption_and_wrong_password_are_indistinguishable(self, populated, codec):
        container = bytearray(codec.export_entry("myapp-dev", PASSWORD))
        container[HEADER_LENGTH + 3] ^= 0xFF

        with pytest.raises(DecryptionError) as corrupted:
            codec.decrypt_document(bytes(container), PASSWORD)
        with pytest.raises(DecryptionError) as wrong:
            codec.decrypt_document(codec.export_entry("myapp-dev", PASSWORD), "nope")
        assert str(corrupted.value) == str(wrong.value)

    def test_tampered_tag_rejected(self, populated, codec):
        container = bytearray(codec.export_entry("myapp-dev", PASSWORD))
        container[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            codec.decrypt_document(bytes(container), PASSWORD)

    def test_bad_magic_rejected_before_key_derivation(self, populated, codec, monkeypatch):
        container = codec.export_entry("myapp-dev", PASSWORD)

        def fail_derive(*args, **kwargs):
            raise AssertionError("key derivation must not run for a bad header")

        monkeypatch.setattr(codec_mod, "derive_key", fail_derive)
        with pytest.raises(ContainerFormatError, match="ENVPOCKET_V1"):
            codec.import_entry("myapp-dev", b"ENVPOCKET_V2" + container[12:], PASSWORD)

    @pytest.mark.parametrize("body_length", [0, 10, 44, 44 + 16])
    def test_truncated_containers(self, codec, body_length):
        with pytest.raises(ContainerFormatError, match="truncated"):
            codec.decrypt_document(MAGIC + b"\x00" * body_length, PASSWORD)

    def test_minimum_valid_length_reaches_decryption(self, codec):
        with pytest.raises(DecryptionError):
            codec.decrypt_document(MAGIC + b"\x00" * (44 + 17), PASSWORD)

    def test_non_json_plaintext(self, codec):
        container = seal_document(b"\xffnot json", PASSWORD)
        with pytest.raises(ContainerFormatError):
            codec.import_entry("k", container, PASSWORD)

    def test_document_without_data(self, codec, store):
        container = seal_document({"metadata": {"key": "k"}}, PASSWORD)
        with pytest.raises(ContainerFormatError, match="data"):
            codec.import_entry("k", container, PASSWORD)
        assert len(store) == 0

    def test_invalid_history_records_are_counted(self, codec, vault):
        document = {
            "data": EncryptionService.encode_for_storage(b"NOW=1\n"),
            "metadata": {
                "key": "k",
                "history": [
                    {"data": EncryptionService.encode_for_storage(b"OK=1\n"),
                     "timestamp": "2024-06-01T12:00:00Z"},
                    {"data": EncryptionService.encode_for_storage(b"BAD=1\n"),
                     "timestamp": "last tuesday"},
                    {"data": "!!not base64!!", "timestamp": "2024-06-02T12:00:00Z"},
                    "not an object",
                ],
            },
        }
        summary = codec.import_entry("k", seal_document(document, PASSWORD), PASSWORD)

        assert summary.history_total == 4
        assert summary.history_restored == 1
        assert not summary.success
        assert vault.get("k").data == b"NOW=1\n"
        assert vault.get("k", version=0).data == b"OK=1\n"

    def test_missing_last_modified_uses_clock(self, codec, vault):
        document = {"data": EncryptionService.encode_for_storage(b"A=1\n"), "metadata": {"key": "k"}}
        codec.import_entry("k", seal_document(document, PASSWORD), PASSWORD)
        assert vault.get("k").last_modified == "2025-01-15T09:30:00Z"

    def test_invalid_target_key(self, populated, codec):
        container = codec.export_entry("myapp-dev", PASSWORD)
        with pytest.raises(InvalidKeyError):
            codec.import_entry("bad-*", container, PASSWORD)

    def test_import_from_file(self, populated, codec, target, tmp_path):
        path = tmp_path / "myapp.envpocket"
        codec.export_to_file("myapp-dev", path, PASSWORD)
        summary = ExportCodec(target).import_from_file("myapp-dev", path, PASSWORD)
        assert summary.success
        assert target.get("myapp-dev").data == b"API_KEY=three\n"
