"""Lexical alias, import and require bindings for one scanned scope."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple, Union

ImportOnly = Optional[Union[List[Tuple[str, int]], str]]


@dataclass
class ImportFilter:
    """The ``only:`` / ``except:`` options of one ``import``."""

    only: ImportOnly = None
    except_: List[Tuple[str, int]] = field(default_factory=list)

    def permits(self, name: str, arity: int, is_macro: bool) -> bool:
        if self.only == "functions" and is_macro:
            return False
        if self.only == "macros" and not is_macro:
            return False
        if isinstance(self.only, list) and (name, arity) not in self.only:
            return False
        return (name, arity) not in self.except_


class NameResolver:
    """Maps local alias names to canonical module names.

    Scopes nest: :meth:`child` opens a scope whose bindings shadow the
    parent's and disappear with it. Declarations must be fed in textual
    order, later ones replacing earlier ones for the same key.
    """

    def __init__(self, parent: Optional["NameResolver"] = None, module: Optional[str] = None) -> None:
        self.parent = parent
        self.module = module if module is not None else (parent.module if parent else None)
        self._aliases: Dict[str, str] = {}
        self._imports: Dict[str, ImportFilter] = {}
        self._requires: Set[str] = set()

    def child(self, module: Optional[str] = None) -> "NameResolver":
        return NameResolver(self, module)

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    def bind(self, key: str, target: str) -> None:
        self._aliases[key] = target

    def alias(self, target: str, as_name: Optional[str] = None) -> None:
        """``alias Target`` or ``alias Target, as: Name``."""
        self.bind(as_name or target.rsplit(".", 1)[-1], target)

    def lookup(self, key: str) -> Optional[str]:
        scope: Optional[NameResolver] = self
        while scope is not None:
            if key in scope._aliases:
                return scope._aliases[key]
            scope = scope.parent
        return None

    def resolve(self, name: str) -> str:
        head, _, rest = name.partition(".")
        if head == "__MODULE__":
            if self.module is None:
                return name
            expanded = self.module
        else:
            bound = self.lookup(head)
            if bound is None:
                return name
            expanded = bound
        return f"{expanded}.{rest}" if rest else expanded

    # ------------------------------------------------------------------
    # Imports and requires
    # ------------------------------------------------------------------

    def add_import(self, module: str, only: ImportOnly = None,
                   except_: Optional[List[Tuple[str, int]]] = None) -> None:
        self._imports[module] = ImportFilter(only, list(except_ or []))

    def add_require(self, module: str, as_name: Optional[str] = None) -> None:
        self._requires.add(module)
        if as_name:
            self.bind(as_name, module)

    def import_filter(self, module: str) -> Optional[ImportFilter]:
        scope: Optional[NameResolver] = self
        while scope is not None:
            if module in scope._imports:
                return scope._imports[module]
            scope = scope.parent
        return None

    def is_imported(self, module: str, name: str, arity: int, is_macro: bool) -> bool:
        imported = self.import_filter(module)
        return imported is not None and imported.permits(name, arity, is_macro)

    def is_required(self, module: str) -> bool:
        """``require`` and ``import`` both make a module's macros callable."""
        scope: Optional[NameResolver] = self
        while scope is not None:
            if module in scope._requires or module in scope._imports:
                return True
            scope = scope.parent
        return False
