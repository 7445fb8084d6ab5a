"""Readers that list a project's compiled units and module exports."""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from . import config
from .errors import CompileGraphError, ManifestError, ParseError
from .models import ModuleExports, UnitRecord
from .scanner import AstScanner

logger = logging.getLogger(__name__)


class Manifest(ABC):
    """Source of compiled-unit records for one project."""

    def __init__(self, scanner: Optional[AstScanner] = None) -> None:
        self.scanner = scanner or AstScanner()
        self._exports: Dict[str, ModuleExports] = {}

    @abstractmethod
    def list_compiled_units(self) -> List[UnitRecord]:
        ...

    def list_module_exports(self, module: str) -> ModuleExports:
        """Public functions and macros of ``module``; empty when unknown."""
        if module not in self._exports:
            self._exports[module] = self._derive_exports(module)
        return self._exports[module]

    def _derive_exports(self, module: str) -> ModuleExports:
        for unit in self.list_compiled_units():
            if module not in unit.modules:
                continue
            try:
                return self.scanner.module_exports(unit.source_path, module)
            except CompileGraphError as exc:
                logger.warning("Cannot read exports of %s: %s", module, exc)
                break
        return ModuleExports()


class JsonManifest(Manifest):
    """Manifest stored as JSON.

    Expected layout::

        {
          "root": "path/to/project",
          "units": [{"id": "lib/a.ex", "source": "lib/a.ex",
                     "modules": ["A"], "references": ["B"]}],
          "exports": {"B": {"functions": [["f", 1]], "macros": []}}
        }

    ``root`` defaults to the manifest's directory and relative ``source``
    paths are resolved against it. Exports missing from the document are
    derived from source.
    """

    def __init__(self, path: Union[str, Path], scanner: Optional[AstScanner] = None) -> None:
        super().__init__(scanner)
        self.path = Path(path)
        data = self._read()

        root = Path(data.get("root") or ".")
        if not root.is_absolute():
            root = self.path.parent / root
        self.root = root

        self._units = [self._unit_from_json(entry) for entry in data.get("units", [])]
        for module, entry in (data.get("exports") or {}).items():
            self._exports[module] = ModuleExports(
                functions=frozenset((n, int(a)) for n, a in entry.get("functions", [])),
                macros=frozenset((n, int(a)) for n, a in entry.get("macros", [])),
            )

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as exc:
            raise ManifestError(f"cannot read manifest {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ManifestError(f"invalid JSON in manifest {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ManifestError(f"manifest {self.path} must contain a JSON object")
        return data

    def _unit_from_json(self, entry: Dict[str, Any]) -> UnitRecord:
        source = entry.get("source") or entry.get("id")
        if not source:
            raise ManifestError(f"unit without source in {self.path}: {entry!r}")
        source_path = Path(source)
        if not source_path.is_absolute():
            source_path = self.root / source_path
        references = entry.get("references")
        return UnitRecord(
            unit_id=entry.get("id") or source,
            modules=list(entry.get("modules", [])),
            source_path=str(source_path),
            references=list(references) if references is not None else None,
        )

    def list_compiled_units(self) -> List[UnitRecord]:
        return list(self._units)


class SourceTreeManifest(Manifest):
    """Manifest derived by parsing every source file under ``root``.

    Declared modules and references come from the scanner. A file that does
    not parse keeps the modules found in its tokens but declares no
    references, so only its own dependencies are lost.
    """

    def __init__(self, root: Union[str, Path], scanner: Optional[AstScanner] = None) -> None:
        super().__init__(scanner)
        self.root = Path(root)
        self._units: Optional[List[UnitRecord]] = None

    def _source_files(self) -> List[Path]:
        files: List[Path] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if d not in config.SKIP_DIRS)
            for filename in sorted(filenames):
                if Path(filename).suffix in config.SOURCE_EXTENSIONS:
                    files.append(Path(dirpath) / filename)
        return files

    def list_compiled_units(self) -> List[UnitRecord]:
        if self._units is not None:
            return list(self._units)

        units: List[UnitRecord] = []
        for file_path in self._source_files():
            unit_id = file_path.relative_to(self.root).as_posix()
            try:
                modules = self.scanner.declared_modules(file_path)
                references = self.scanner.referenced_modules(file_path)
            except ParseError as exc:
                modules = self._recover_modules(file_path, unit_id, exc)
                references = []
            except CompileGraphError as exc:
                logger.warning("Skipping %s: %s", unit_id, exc)
                continue
            if not modules:
                logger.debug("No modules declared in %s", unit_id)
                continue
            units.append(UnitRecord(
                unit_id=unit_id,
                modules=modules,
                source_path=str(file_path),
                references=[m for m in references if m not in modules],
            ))

        logger.info("Found %d compiled units under %s", len(units), self.root)
        self._units = units
        return list(units)

    def _recover_modules(self, file_path: Path, unit_id: str, error: ParseError) -> List[str]:
        try:
            modules = self.scanner.recover_modules(file_path)
        except CompileGraphError as exc:
            logger.warning("Skipping %s: %s", unit_id, exc)
            return []
        if modules:
            logger.warning("Keeping %s without its dependencies: %s", unit_id, error)
        else:
            logger.warning("Skipping %s: %s", unit_id, error)
        return modules


def open_manifest(project: Union[str, Path], manifest_file: Optional[Union[str, Path]] = None,
                  scanner: Optional[AstScanner] = None) -> Manifest:
    """JSON manifest when one is given, otherwise the project source tree."""
    if manifest_file is not None:
        return JsonManifest(manifest_file, scanner)
    project = Path(project)
    if not project.is_dir():
        raise ManifestError(f"project directory not found: {project}")
    return SourceTreeManifest(project, scanner)
