"""YAML document persistence for the environment registry."""

import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path

import yaml

from devctl.core.exceptions import ConfigurationError
from devctl.core.models import Environment
from devctl.utils.logging import get_logger

logger = get_logger(__name__)

BACKUP_PREFIX = "config_"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S_%f"


class RegistryDocumentStore:
    """Loads and saves the ``{envs: [...]}`` registry document.

    Every save copies the current document into the backup directory first,
    then writes the new content to a temp file next to the document and
    renames it into place. A failed backup aborts the save.

    No file locking: concurrent writers from separate processes are not
    supported.
    """

    def __init__(self, document_path: str | Path, backup_dir: str | Path):
        """Initialize document store.

        Args:
            document_path: Path of the registry document
            backup_dir: Directory receiving timestamped backups
        """
        self.document_path = Path(document_path).expanduser()
        self.backup_dir = Path(backup_dir).expanduser()

    def load(self) -> list[Environment]:
        """Load environments in document order.

        Returns:
            List of Environment records (empty if no document exists)

        Raises:
            ConfigurationError: If the document cannot be read or parsed
        """
        if not self.document_path.exists():
            logger.info("registry_document_absent", path=str(self.document_path))
            return []

        try:
            with self.document_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("registry_load_failed", path=str(self.document_path), error=str(e))
            raise ConfigurationError(
                f"Failed to load registry document {self.document_path}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid registry document {self.document_path}: expected a mapping"
            )

        try:
            environments = [Environment(**item) for item in data.get("envs") or []]
        except Exception as e:
            logger.error("registry_parse_failed", path=str(self.document_path), error=str(e))
            raise ConfigurationError(
                f"Invalid registry document {self.document_path}: {e}"
            ) from e

        logger.info("registry_loaded", path=str(self.document_path), count=len(environments))
        return environments

    def backup(self) -> Path | None:
        """Copy the current document into the backup directory.

        Returns:
            Backup path, or None when there was no document to back up

        Raises:
            OSError: If the backup cannot be written
        """
        if not self.document_path.exists():
            logger.debug("registry_backup_skipped", reason="no_document")
            return None

        self.backup_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)
        backup_path = self.backup_dir / f"{BACKUP_PREFIX}{timestamp}.yaml"
        shutil.copy2(self.document_path, backup_path)

        logger.info("registry_backup_created", path=str(backup_path))
        return backup_path

    def save(self, environments: list[Environment]) -> None:
        """Persist environments, keeping a backup of the previous document.

        Args:
            environments: Full ordered list to persist

        Raises:
            OSError: If the backup or the write fails; the previous document
                is left intact in both cases
        """
        try:
            self.backup()
        except OSError as e:
            logger.error("registry_backup_failed", path=str(self.document_path), error=str(e))
            raise

        content = yaml.safe_dump(
            {"envs": [env.to_document() for env in environments]},
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )

        self.document_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.document_path.name}.", suffix=".tmp", dir=self.document_path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.document_path)
        except OSError as e:
            logger.error("registry_save_failed", path=str(self.document_path), error=str(e))
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info("registry_saved", path=str(self.document_path), count=len(environments))

    def list_backups(self) -> list[Path]:
        """List backup files, oldest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(f"{BACKUP_PREFIX}*.yaml"))
