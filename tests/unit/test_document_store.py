"""Unit tests for registry document persistence.

This module tests:
- Loading documents (absent, valid, malformed)
- Backups taken before every save
- Atomic replacement and failure handling
"""

from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from devctl.core.exceptions import ConfigurationError
from devctl.core.models import Environment
from devctl.registry.document_store import RegistryDocumentStore


@pytest.fixture
def store(tmp_path: Path) -> RegistryDocumentStore:
    return RegistryDocumentStore(tmp_path / "config.yaml", tmp_path / "backups")


@pytest.fixture
def environments() -> list[Environment]:
    created = datetime(2024, 3, 1, 10, 15, 0)
    return [
        Environment(
            id="prod-1",
            display_name="Production 1",
            created_at=created,
            updated_at=created,
            host="10.0.0.5",
            ssh_user="root",
            ssh_password="pw",
        ),
        Environment(id="staging", display_name="Staging", host="10.0.0.6"),
    ]


class TestLoad:
    """Tests for RegistryDocumentStore.load."""

    def test_load_missing_document(self, store: RegistryDocumentStore) -> None:
        assert store.load() == []

    def test_load_empty_document(self, store: RegistryDocumentStore) -> None:
        store.document_path.write_text("")

        assert store.load() == []

    def test_load_preserves_order(self, store: RegistryDocumentStore) -> None:
        store.document_path.write_text(
            """
envs:
- id: b
  name: B
  ip: 10.0.0.2
- id: a
  name: A
  ip: 10.0.0.1
  createTime: "2024-03-01 10:15:00"
"""
        )

        loaded = store.load()

        assert [env.id for env in loaded] == ["b", "a"]
        assert loaded[1].created_at == datetime(2024, 3, 1, 10, 15, 0)

    def test_load_invalid_yaml(self, store: RegistryDocumentStore) -> None:
        store.document_path.write_text("envs: [unclosed")

        with pytest.raises(ConfigurationError):
            store.load()

    def test_load_not_a_mapping(self, store: RegistryDocumentStore) -> None:
        store.document_path.write_text("- id: a\n")

        with pytest.raises(ConfigurationError, match="expected a mapping"):
            store.load()

    def test_load_invalid_entry(self, store: RegistryDocumentStore) -> None:
        store.document_path.write_text("envs:\n- name: missing-id\n")

        with pytest.raises(ConfigurationError):
            store.load()


class TestSave:
    """Tests for RegistryDocumentStore.save."""

    def test_save_round_trips(
        self, store: RegistryDocumentStore, environments: list[Environment]
    ) -> None:
        store.save(environments)

        assert store.load() == environments

    def test_save_writes_document_keys(
        self, store: RegistryDocumentStore, environments: list[Environment]
    ) -> None:
        """Test the document uses the envs key and alias field names."""
        store.save(environments)

        data = yaml.safe_load(store.document_path.read_text())
        assert list(data) == ["envs"]
        first = data["envs"][0]
        assert first["name"] == "Production 1"
        assert first["ip"] == "10.0.0.5"
        assert first["createTime"] == "2024-03-01 10:15:00"

    def test_first_save_takes_no_backup(
        self, store: RegistryDocumentStore, environments: list[Environment]
    ) -> None:
        store.save(environments)

        assert store.list_backups() == []

    def test_save_backs_up_previous_document(
        self, store: RegistryDocumentStore, environments: list[Environment]
    ) -> None:
        """Test every later save copies the previous content aside first."""
        store.save(environments[:1])
        previous = store.document_path.read_text()

        store.save(environments)

        backups = store.list_backups()
        assert len(backups) == 1
        assert backups[0].read_text() == previous
        assert backups[0].name.startswith("config_")

    def test_failed_backup_aborts_save(
        self, store: RegistryDocumentStore, environments: list[Environment]
    ) -> None:
        """Test the document is untouched when the backup cannot be written."""
        store.save(environments[:1])
        before = store.document_path.read_text()

        with patch(
            "devctl.registry.document_store.shutil.copy2", side_effect=OSError("disk full")
        ):
            with pytest.raises(OSError):
                store.save(environments)

        assert store.document_path.read_text() == before

    def test_failed_replace_keeps_document_and_cleans_temp(
        self, store: RegistryDocumentStore, environments: list[Environment]
    ) -> None:
        """Test a failed rename leaves the old document and no temp file."""
        store.save(environments[:1])
        before = store.document_path.read_text()

        with patch(
            "devctl.registry.document_store.os.replace", side_effect=OSError("read-only")
        ):
            with pytest.raises(OSError):
                store.save(environments)

        assert store.document_path.read_text() == before
        assert list(store.document_path.parent.glob(".config.yaml.*.tmp")) == []

    def test_backup_returns_none_without_document(self, store: RegistryDocumentStore) -> None:
        assert store.backup() is None
