"""
Migration registry: the ordered catalog of migrations shipped with the application.
"""

import hashlib
import importlib.util
import os
import re
from typing import Iterable, Iterator, Optional

from docmigrate.core.exceptions import DuplicateVersionError, MigrationLoadError
from docmigrate.log.logging import logger
from docmigrate.migrations.models import MigrationDefinition, version_key

MIGRATION_FILENAME = re.compile(r"^(\d+)_(\w+)\.py$")


class MigrationRegistry:
    """
    Immutable, version-sorted collection of migration definitions.

    Declaration order is not trusted; definitions are sorted by
    ``version_key`` on construction. Duplicate versions fail construction.
    """

    def __init__(self, definitions: Iterable[MigrationDefinition] = ()):
        definitions = tuple(definitions)
        seen: dict[tuple, str] = {}
        for definition in definitions:
            key = version_key(definition.version)
            if key in seen:
                raise DuplicateVersionError(definition.version, seen[key])
            seen[key] = definition.version

        self._definitions = tuple(
            sorted(definitions, key=lambda d: version_key(d.version))
        )
        self._by_key = {version_key(d.version): d for d in self._definitions}

    def list(self) -> list[MigrationDefinition]:
        """Return all definitions sorted ascending by version."""
        return list(self._definitions)

    def get(self, version: str) -> Optional[MigrationDefinition]:
        return self._by_key.get(version_key(version))

    def __contains__(self, version: str) -> bool:
        return version_key(version) in self._by_key

    def __iter__(self) -> Iterator[MigrationDefinition]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    @classmethod
    def from_directory(cls, migrations_dir: str) -> "MigrationRegistry":
        """
        Discover all migration files in a directory.

        Files must be named ``<digits>_<name>.py``; other ``.py`` files are
        skipped with a warning. A migration file that fails to import or
        lacks ``up`` raises MigrationLoadError.
        """
        definitions = []

        if not os.path.isdir(migrations_dir):
            logger.warning(
                "Migrations directory not found: {path}",
                path=migrations_dir,
                event_type="migrations_dir_missing",
            )
            return cls()

        for filename in sorted(os.listdir(migrations_dir)):
            if not filename.endswith(".py") or filename.startswith("_"):
                continue
            definition = load_migration_file(os.path.join(migrations_dir, filename))
            if definition:
                definitions.append(definition)

        registry = cls(definitions)

        logger.info(
            "Discovered {count} migrations",
            count=len(registry),
            migrations_dir=migrations_dir,
            event_type="migrations_discovered",
        )
        return registry


def calculate_checksum(file_path: str) -> str:
    """Calculate SHA256 checksum of a file."""
    with open(file_path, "rb") as f:
        return hashlib.sha256(f.read()).hexdigest()


def load_migration_file(file_path: str) -> Optional[MigrationDefinition]:
    """
    Load a migration from a Python file.

    Returns:
        The definition, or None if the file name is not a migration name.

    Raises:
        MigrationLoadError: If the module cannot be imported or has no ``up``.
    """
    filename = os.path.basename(file_path)

    # e.g. 001_destination_indexes.py
    match = MIGRATION_FILENAME.match(filename)
    if not match:
        logger.warning(
            "Skipping invalid migration filename: {filename}",
            filename=filename,
            event_type="migration_skip",
        )
        return None

    version, name = match.group(1), match.group(2)

    spec = importlib.util.spec_from_file_location(f"docmigrate_migration_{version}", file_path)
    if spec is None or spec.loader is None:
        raise MigrationLoadError(file_path, "not an importable module")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise MigrationLoadError(file_path, f"import failed: {e}", cause=e) from e

    up = getattr(module, "up", None)
    if not callable(up):
        raise MigrationLoadError(file_path, "missing up() function")

    down = getattr(module, "down", None)
    if down is not None and not callable(down):
        raise MigrationLoadError(file_path, "down is not callable")

    return MigrationDefinition(
        version=version,
        description=getattr(module, "description", f"Migration {version}: {name.replace('_', ' ')}"),
        up=up,
        down=down,
        name=name,
        checksum=calculate_checksum(file_path),
        file_path=file_path,
    )
