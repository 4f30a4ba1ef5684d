"""Whole-project reference index.

Every use of every symbol, across production and test files, is
recorded as a deduplicated :class:`CallSite`. Imports and attribute
chains are resolved against all source models at once, so the index
can only be queried after :meth:`ReferenceIndexBuilder.freeze`.

A symbol that is used in a way that cannot be statically bound
(reflection, decoration, attribute access on an untyped value, a
dunder protocol, an ambiguous module) is *opaque*: its caller count
is :data:`UNBOUNDED`, never zero and never one.
"""

from __future__ import annotations

import logging
import sys
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from slopscan.analysis.static.source_model import (
    ArgInfo,
    CallSite,
    Reference,
    SourceFile,
    Symbol,
)
from slopscan.constants import TRANSPARENT_DECORATORS, RefKind, SymbolKind

logger = logging.getLogger(__name__)

UNBOUNDED = sys.maxsize

# Import chains longer than this are treated as unresolvable
_MAX_IMPORT_HOPS = 8

# Kinds that can be opaque by bare name (obj.name, getattr(x, "name"))
_NAMED_KINDS = frozenset({
    SymbolKind.FUNCTION,
    SymbolKind.METHOD,
    SymbolKind.CLASS,
    SymbolKind.CONSTANT,
    SymbolKind.LOCAL,
})


@dataclass(frozen=True)
class ResolvedUse:
    """One deduplicated use of a symbol."""

    site: CallSite
    kind: RefKind
    args: tuple[ArgInfo, ...] = ()
    bound_call: bool = False

    @property
    def is_call(self) -> bool:
        return self.kind == RefKind.CALL


@dataclass(frozen=True)
class _Module:
    """A project module reached through an import.

    ``path`` is None for an ambiguous name and for a namespace package,
    a dotted prefix of project modules that has no file of its own.
    """

    name: str
    path: str | None
    namespace: bool = False


class ReferenceIndex:
    """Frozen, read-only index. Built only by :class:`ReferenceIndexBuilder`."""

    def __init__(
        self,
        files: dict[str, SourceFile],
        uses: dict[str, dict[CallSite, ResolvedUse]],
        self_uses: dict[str, set[CallSite]],
        opaque: set[str],
        opaque_names: set[str],
        attribute_sites: dict[str, set[CallSite]],
    ) -> None:
        self._files = files
        self._uses = {k: dict(sorted(v.items())) for k, v in uses.items()}
        self._self_uses = {k: frozenset(v) for k, v in self_uses.items()}
        self._opaque = frozenset(opaque)
        self._opaque_names = frozenset(opaque_names)
        self._attribute_sites = {
            k: tuple(sorted(v)) for k, v in attribute_sites.items()
        }

    # -- lookup ---------------------------------------------------------------

    @property
    def paths(self) -> list[str]:
        return sorted(self._files)

    def source(self, path: str) -> SourceFile | None:
        return self._files.get(path)

    def symbol(self, symbol_id: str) -> Symbol | None:
        path = symbol_id.split("::", 1)[0]
        source = self._files.get(path)
        return source.symbols.get(symbol_id) if source else None

    def is_test_path(self, path: str) -> bool:
        source = self._files.get(path)
        return source is not None and source.index_only

    # -- cardinality ----------------------------------------------------------

    def is_opaque(self, symbol_id: str) -> bool:
        if symbol_id in self._opaque:
            return True
        symbol = self.symbol(symbol_id)
        return (
            symbol is not None
            and symbol.kind in _NAMED_KINDS
            and symbol.name in self._opaque_names
        )

    def caller_count(self, symbol_id: str) -> int:
        """Distinct call sites using the symbol, or UNBOUNDED if opaque."""
        if self.is_opaque(symbol_id):
            return UNBOUNDED
        return len(self._uses.get(symbol_id, {}))

    def production_caller_count(self, symbol_id: str) -> int:
        """Like :meth:`caller_count` but ignoring index-only (test) files."""
        if self.is_opaque(symbol_id):
            return UNBOUNDED
        return sum(
            1 for site in self._uses.get(symbol_id, {})
            if not self.is_test_path(site.path)
        )

    def callers(self, symbol_id: str) -> list[CallSite]:
        """Call-site locations in (path, line, scope) order."""
        return list(self._uses.get(symbol_id, {}))

    def uses(self, symbol_id: str) -> list[ResolvedUse]:
        return list(self._uses.get(symbol_id, {}).values())

    def is_recursive(self, symbol_id: str) -> bool:
        """True if the symbol is referenced from inside its own body."""
        return bool(self._self_uses.get(symbol_id))

    def attribute_sites(self, name: str) -> tuple[CallSite, ...]:
        """Every site that accesses ``.name`` on any object."""
        return self._attribute_sites.get(name, ())


class ReferenceIndexBuilder:
    """Collects source models, then resolves every reference in one pass."""

    def __init__(self) -> None:
        self._files: dict[str, SourceFile] = {}
        self._uses: dict[str, dict[CallSite, ResolvedUse]] = defaultdict(dict)
        self._self_uses: dict[str, set[CallSite]] = defaultdict(set)
        self._opaque: set[str] = set()
        self._opaque_names: set[str] = set()
        self._attribute_sites: dict[str, set[CallSite]] = defaultdict(set)
        self._modules: dict[str, str | None] = {}
        self._namespaces: set[str] = set()
        self._frozen = False

    def add_file(self, source: SourceFile) -> None:
        if self._frozen:
            raise RuntimeError("reference index is frozen")
        self._files[source.path] = source

    def record(
        self,
        site: CallSite,
        symbol: Symbol,
        kind: RefKind = RefKind.CALL,
        args: tuple[ArgInfo, ...] = (),
        bound_call: bool = False,
    ) -> None:
        """Record one use. Repeated uses at the same site count once."""
        if _site_inside(site, symbol):
            self._self_uses[symbol.id].add(site)
            return
        existing = self._uses[symbol.id].get(site)
        use = ResolvedUse(site, kind, args, bound_call)
        # A call at a site wins over a plain load of the same name
        if existing is None or (use.is_call and not existing.is_call):
            self._uses[symbol.id][site] = use

    def freeze(self) -> ReferenceIndex:
        """Resolve all references and hand out the read-only index."""
        if self._frozen:
            raise RuntimeError("reference index is already frozen")
        self._modules = _module_map(self._files.values())
        self._namespaces = _namespace_packages(self._modules)
        for path in sorted(self._files):
            source = self._files[path]
            self._declare_opaque(source)
            for ref in source.references:
                self._resolve_reference(source, ref)
        self._frozen = True

        index = ReferenceIndex(
            dict(self._files),
            self._uses,
            self._self_uses,
            self._opaque,
            self._opaque_names,
            self._attribute_sites,
        )
        logger.info(
            "event=index_built files=%d symbols=%d opaque=%d opaque_names=%d",
            len(self._files),
            len(self._uses),
            len(self._opaque),
            len(self._opaque_names),
        )
        return index

    # -- opaque declarations ---------------------------------------------------

    def _declare_opaque(self, source: SourceFile) -> None:
        for symbol in source.symbols.values():
            if _is_dunder(symbol.name) or (
                symbol.decorated
                and not set(symbol.decorators) <= TRANSPARENT_DECORATORS
            ):
                self._opaque.add(symbol.id)
            if symbol.kind == SymbolKind.CLASS and symbol.bases:
                self._mark_methods_opaque(source, symbol)

    def _mark_methods_opaque(self, source: SourceFile, cls: Symbol) -> None:
        if cls.body_scope_id is None:
            return
        scope = source.scopes.get(cls.body_scope_id)
        if scope is None:
            return
        for symbol_id in scope.bindings.values():
            member = source.symbols.get(symbol_id)
            if member is not None and member.kind == SymbolKind.METHOD:
                self._opaque.add(member.id)

    # -- resolution ------------------------------------------------------------

    def _resolve_reference(self, source: SourceFile, ref: Reference) -> None:
        for member in ref.members:
            self._attribute_sites[member].add(ref.site)

        if ref.target_id is None:
            if ref.members:
                self._opaque_names.add(ref.members[-1])
            return

        base = source.symbols.get(ref.target_id)
        if base is None:
            return
        start = self._follow_import(base)

        if not ref.members:
            if isinstance(start, Symbol):
                self._record_use(ref, start, ref.kind)
            return

        target: Symbol | _Module | None = start
        for position, member in enumerate(ref.members):
            target = self._member(target, member)
            if target is None:
                if self._stopped_in_project(ref, base, position):
                    self._opaque_names.update(ref.members[position:])
                return
            if isinstance(target, Symbol):
                last = position == len(ref.members) - 1
                self._record_use(
                    ref, target, ref.kind if last else RefKind.ATTRIBUTE, final=last
                )

    def _record_use(
        self, ref: Reference, symbol: Symbol, kind: RefKind, *, final: bool = True
    ) -> None:
        if kind == RefKind.REFLECTIVE:
            self._opaque.add(symbol.id)
            return
        if kind == RefKind.BASE and symbol.kind == SymbolKind.CLASS:
            source = self._files.get(symbol.path)
            if source is not None:
                self._mark_methods_opaque(source, symbol)
        self.record(
            ref.site,
            symbol,
            kind,
            args=ref.args if final else (),
            bound_call=ref.bound_call if final else False,
        )

    def _stopped_in_project(self, ref: Reference, base: Symbol, position: int) -> bool:
        """Did member resolution stop on a project object (not an external one)?"""
        if base.kind != SymbolKind.IMPORT:
            return True
        return position > 0 or self._follow_import(base) is not None

    def _member(
        self, target: Symbol | _Module | None, member: str
    ) -> Symbol | _Module | None:
        if isinstance(target, _Module):
            if target.namespace:
                return self._lookup_module(f"{target.name}.{member}")
            if target.path is None:
                return None
            module = self._files[target.path]
            bound = module.scopes[module.module_scope_id].bindings.get(member)
            if bound is not None:
                return self._follow_import(module.symbols[bound])
            return self._lookup_module(f"{target.name}.{member}")
        if isinstance(target, Symbol) and target.kind == SymbolKind.CLASS:
            source = self._files.get(target.path)
            if source is None or target.body_scope_id is None:
                return None
            bound = source.scopes[target.body_scope_id].bindings.get(member)
            return source.symbols.get(bound) if bound else None
        return None

    def _follow_import(self, symbol: Symbol, hops: int = 0) -> Symbol | _Module | None:
        """Resolve an import binding to the project symbol or module it names."""
        if symbol.kind != SymbolKind.IMPORT:
            return symbol
        if hops > _MAX_IMPORT_HOPS or symbol.import_module is None:
            return None
        if symbol.import_name is None:
            return self._lookup_module(symbol.import_module)

        module = self._lookup_module(symbol.import_module)
        if module is not None and module.path is None and not module.namespace:
            self._opaque_names.add(symbol.import_name)
            return None
        if module is not None and module.path is not None:
            source = self._files[module.path]
            bound = source.scopes[source.module_scope_id].bindings.get(symbol.import_name)
            if bound is not None:
                return self._follow_import(source.symbols[bound], hops + 1)
        return self._lookup_module(f"{symbol.import_module}.{symbol.import_name}")

    def _lookup_module(self, dotted: str) -> _Module | None:
        if dotted in self._modules:
            return _Module(dotted, self._modules[dotted])
        if dotted in self._namespaces:
            return _Module(dotted, None, namespace=True)
        return None


def build_index(files: Iterable[SourceFile]) -> ReferenceIndex:
    """Build and freeze an index over ``files`` (order-independent)."""
    builder = ReferenceIndexBuilder()
    for source in sorted(files, key=lambda s: s.path):
        builder.add_file(source)
    return builder.freeze()


def _module_map(files: Iterable[SourceFile]) -> dict[str, str | None]:
    """Dotted name → path for every file, including every dotted suffix.

    Exact module names win. A suffix shared by two files maps to None
    (ambiguous), so ``src/pkg/mod.py`` answers to ``pkg.mod`` and
    ``mod`` unless another file claims the same suffix.
    """
    exact: dict[str, str] = {}
    suffixes: dict[str, set[str]] = defaultdict(set)
    for source in files:
        if not source.module_name:
            continue
        exact[source.module_name] = source.path
        parts = source.module_name.split(".")
        for start in range(1, len(parts)):
            suffixes[".".join(parts[start:])].add(source.path)

    modules: dict[str, str | None] = dict(exact)
    for name, paths in suffixes.items():
        if name in modules:
            continue
        modules[name] = next(iter(paths)) if len(paths) == 1 else None
    return modules


def _namespace_packages(modules: dict[str, str | None]) -> set[str]:
    """Dotted prefixes of project modules that have no ``__init__.py``."""
    prefixes: set[str] = set()
    for name in modules:
        parts = name.split(".")
        prefixes.update(".".join(parts[:end]) for end in range(1, len(parts)))
    return prefixes - modules.keys()


def _site_inside(site: CallSite, symbol: Symbol) -> bool:
    body = symbol.body_scope_id
    if body is None:
        return False
    return site.scope_id == body or site.scope_id.startswith(f"{body}.")


def _is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")
