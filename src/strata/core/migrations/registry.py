"""Registered migration units, ordered by sequence id.

A unit is anything with ``up(schema)`` and ``down(schema)``.  Units are
registered explicitly, or discovered from a directory of Python files
named ``<sequence>_<identifier>.py``::

    # migrations/20261019T120000000000Z_Author.py
    SEQUENCE = "20261019T120000000000Z"

    def up(schema):
        schema.create_record_table(Author)

    def down(schema):
        schema.drop_table("authors")
"""

from __future__ import annotations

import importlib.util
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from strata.core.errors import MigrationError
from strata.core.logging import get_logger

logger = get_logger(__name__)

FILE_PATTERN = re.compile(r"^(?P<sequence>[^_]+)_(?P<identifier>\w+)\.py$")


@runtime_checkable
class MigrationUnit(Protocol):
    def up(self, schema: Any) -> None: ...

    def down(self, schema: Any) -> None: ...


@dataclass(frozen=True)
class MigrationSpec:
    """One registered unit."""

    sequence: str
    identifier: str
    unit: MigrationUnit
    path: Path | None = None


class MigrationRegistry:
    """Units keyed by sequence id; iteration is ascending by sequence."""

    def __init__(self) -> None:
        self._specs: dict[str, MigrationSpec] = {}

    def register(self, sequence: str, identifier: str, unit: MigrationUnit, *, path: Path | None = None) -> MigrationSpec:
        """Add a unit.

        Raises:
            MigrationError: Empty or duplicate sequence, a ``_`` in the
                sequence, or a unit without ``up``/``down``.
        """
        if not sequence or "_" in sequence:
            raise MigrationError(
                f"Invalid migration sequence {sequence!r}: must be non-empty and contain no '_'"
            ).with_context(sequence=sequence, identifier=identifier)
        if sequence in self._specs:
            raise MigrationError(
                f"Duplicate migration sequence {sequence!r} "
                f"({self._specs[sequence].identifier} and {identifier})"
            ).with_context(sequence=sequence, identifier=identifier)
        if not callable(getattr(unit, "up", None)) or not callable(getattr(unit, "down", None)):
            raise MigrationError(
                f"Migration {sequence} ({identifier}) must define up(schema) and down(schema)"
            ).with_context(sequence=sequence, identifier=identifier)
        spec = self._specs[sequence] = MigrationSpec(sequence, identifier, unit, path)
        return spec

    def get(self, sequence: str) -> MigrationSpec | None:
        return self._specs.get(sequence)

    @property
    def sequences(self) -> list[str]:
        return sorted(self._specs)

    def __iter__(self) -> Iterator[MigrationSpec]:
        return (self._specs[s] for s in self.sequences)

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, sequence: object) -> bool:
        return sequence in self._specs

    @classmethod
    def from_directory(cls, directory: Path | str) -> MigrationRegistry:
        """Load every ``<sequence>_<identifier>.py`` file in ``directory``.

        A missing directory yields an empty registry.  Files are imported
        under private module names; a module's optional ``SEQUENCE`` must
        match its file name.
        """
        registry = cls()
        directory = Path(directory)
        if not directory.is_dir():
            logger.debug("migrations.directory_missing", directory=str(directory))
            return registry
        for path in sorted(directory.glob("*.py")):
            matched = FILE_PATTERN.match(path.name)
            if matched is None:
                continue
            sequence = matched["sequence"]
            identifier = matched["identifier"]
            module = _load_module(path, sequence, identifier)
            declared = getattr(module, "SEQUENCE", sequence)
            if declared != sequence:
                raise MigrationError(
                    f"{path.name} declares SEQUENCE {declared!r}, expected {sequence!r}"
                ).with_context(sequence=sequence, identifier=identifier)
            registry.register(sequence, identifier, module, path=path)
        logger.debug("migrations.discovered", directory=str(directory), count=len(registry))
        return registry


def _load_module(path: Path, sequence: str, identifier: str) -> Any:
    name = "_strata_migration_" + re.sub(r"\W", "_", f"{sequence}_{identifier}")
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise MigrationError(f"Cannot load migration file {path}").with_context(
            sequence=sequence, identifier=identifier
        )
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise MigrationError(
            f"Failed to import migration {path.name}: {e}", cause=e
        ).with_context(sequence=sequence, identifier=identifier) from e
    return module


__all__ = ["FILE_PATTERN", "MigrationRegistry", "MigrationSpec", "MigrationUnit"]
