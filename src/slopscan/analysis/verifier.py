"""Verifier: confirm or discard candidate findings against project evidence.

Each finding is checked by the technique its pattern names. The
verifier is built from a frozen :class:`ReferenceIndex`, so a query can
never run before every file has been indexed. Any check that cannot
prove its condition discards the finding.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from slopscan.analysis.detectors.abstraction import (
    ONE_CALLER_HELPER,
    SINGLE_VARIANT_ENUM,
)
from slopscan.analysis.detectors.base import deleted_block
from slopscan.analysis.detectors.dead_code import (
    DEAD_CONSTANT,
    DEAD_FUNCTION,
    UNUSED_LOCAL,
    UNUSED_PARAMETER,
)
from slopscan.analysis.schemas import Finding, ProposedEdit, Verification
from slopscan.analysis.static.dataflow import trace_function
from slopscan.analysis.static.reference_index import ReferenceIndex
from slopscan.analysis.static.source_model import ArgInfo, ArgKind, SourceFile, Symbol
from slopscan.config import Settings
from slopscan.constants import Category, RefKind, SkipReason, Technique, Verdict
from slopscan.ingestion import split_lines

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"(?<![\w.])[A-Za-z_]\w*")


@dataclass
class _Outcome:
    ok: bool
    detail: str
    evidence: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())
    update: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())


def _discard(detail: str, **evidence: Any) -> _Outcome:
    return _Outcome(False, detail, evidence)


def _confirm(detail: str, update: dict[str, Any] | None = None, **evidence: Any) -> _Outcome:
    return _Outcome(True, detail, evidence, update or {})


class Verifier:
    """Applies the per-technique cross-checks to candidate findings."""

    def __init__(
        self,
        index: ReferenceIndex,
        settings: Settings,
        config_texts: dict[str, str] | None = None,
    ) -> None:
        self._index = index
        self._settings = settings
        self._config_texts = config_texts or {}
        self._checks: dict[Technique, Callable[[Finding], _Outcome]] = {
            Technique.CALLER_COUNT: self._check_caller_count,
            Technique.REACHABILITY: self._check_reachability,
            Technique.DATA_TRACING: self._check_data_tracing,
            Technique.PARAMETER_TAX: self._check_parameter_tax,
            Technique.ATTRIBUTE_ACCESS: self._check_attribute_access,
            Technique.STRUCTURAL: self._check_structural,
        }

    def verify(self, findings: list[Finding]) -> tuple[list[Finding], list[Finding]]:
        """Verify every finding concurrently; return (confirmed, discarded)."""
        with ThreadPoolExecutor(max_workers=self._settings.max_workers) as pool:
            verified = list(pool.map(self.verify_one, findings))
        confirmed = [f for f in verified if f.confirmed]
        discarded = [f for f in verified if not f.confirmed]
        logger.info(
            "event=verified candidates=%d confirmed=%d discarded=%d",
            len(findings),
            len(confirmed),
            len(discarded),
        )
        return confirmed, discarded

    def verify_one(self, finding: Finding) -> Finding:
        try:
            outcome = self._check_source(finding)
            if outcome.ok:
                outcome = self._checks[finding.technique](finding)
        except Exception:  # noqa: BLE001
            logger.warning(
                "event=verification_failed finding=%s pattern=%s",
                finding.id,
                finding.pattern,
                exc_info=True,
            )
            outcome = _discard("verification raised an error")

        verification = Verification(
            verdict=Verdict.CONFIRMED if outcome.ok else Verdict.DISCARDED,
            technique=finding.technique,
            detail=outcome.detail,
            evidence=outcome.evidence,
        )
        update: dict[str, Any] = {"verification": verification}
        if outcome.ok:
            update.update(outcome.update)
        return finding.model_copy(update=update)

    # -- shared checks --------------------------------------------------------

    def _check_source(self, finding: Finding) -> _Outcome:
        """The excerpt still matches the file it was taken from."""
        if finding.category == Category.CONFIG:
            text = self._config_texts.get(finding.path)
            if text is None:
                return _discard("config file not loaded")
            lines = split_lines(text)
            current = "\n".join(lines[finding.start_line - 1 : finding.end_line])
        else:
            source = self._index.source(finding.path)
            if source is None:
                return _discard("file not in reference index")
            current = source.excerpt(finding.start_line, finding.end_line)
        if current != finding.excerpt:
            return _discard("excerpt no longer matches source")
        return _confirm("excerpt matches source")

    def _check_structural(self, finding: Finding) -> _Outcome:
        builtins = finding.metadata.get("builtins") or []
        scope_id = finding.metadata.get("scope_id")
        source = self._index.source(finding.path)
        if builtins and source is not None and scope_id:
            shadowed = sorted(n for n in builtins if source.resolve(n, scope_id) is not None)
            if shadowed:
                return _discard("builtin is shadowed", shadowed=shadowed)
        return _confirm("structural match", builtins=sorted(builtins))

    def _source_and_symbol(self, symbol_id: str | None) -> tuple[SourceFile, Symbol] | None:
        if symbol_id is None:
            return None
        symbol = self._index.symbol(symbol_id)
        source = self._index.source(symbol.path) if symbol is not None else None
        if symbol is None or source is None:
            return None
        return source, symbol

    # -- caller count ---------------------------------------------------------

    def _check_caller_count(self, finding: Finding) -> _Outcome:
        if finding.symbol_id is None:
            return _discard("finding has no symbol")
        if self._index.is_opaque(finding.symbol_id):
            return _discard("symbol has an opaque use", callers="unbounded")
        if finding.pattern == ONE_CALLER_HELPER.name:
            return self._one_caller(finding)
        if finding.pattern == SINGLE_VARIANT_ENUM.name:
            uses = self._index.uses(finding.symbol_id)
            if any(u.kind == RefKind.BASE for u in uses):
                return _discard("enum is subclassed")
            return _confirm("enum is never extended", callers=len(uses))
        if finding.pattern in (DEAD_FUNCTION.name, DEAD_CONSTANT.name):
            return self._zero_callers(finding)
        return _discard(f"no caller-count rule for {finding.pattern}")

    def _zero_callers(self, finding: Finding) -> _Outcome:
        if finding.symbol_id is None:
            return _discard("finding has no symbol")
        production = self._index.production_caller_count(finding.symbol_id)
        total = self._index.caller_count(finding.symbol_id)
        if production != 0:
            return _discard("symbol has production callers", callers=production)
        if total:
            return _confirm(
                "only test files use this symbol",
                {"skip_reason": SkipReason.TEST_CALLERS},
                callers=0,
                test_callers=total,
            )
        return _confirm("no callers", callers=0)

    def _one_caller(self, finding: Finding) -> _Outcome:
        if finding.symbol_id is None:
            return _discard("finding has no symbol")
        count = self._index.caller_count(finding.symbol_id)
        if count != 1:
            return _discard("caller count is not one", callers=count)
        if self._index.is_recursive(finding.symbol_id):
            return _discard("helper is recursive")
        use = self._index.uses(finding.symbol_id)[0]
        if not use.is_call:
            return _discard("helper is used as a value", kind=str(use.kind))
        if self._index.is_test_path(use.site.path):
            return _discard("only caller is a test")

        evidence = {"callers": 1, "caller": f"{use.site.path}:{use.site.line}"}
        inline = finding.metadata.get("inline_expression")
        if use.site.path != finding.path:
            return _confirm(
                "one production caller", {"skip_reason": SkipReason.CROSS_FILE}, **evidence
            )
        edits = self._inline_edits(finding, inline, use.site.line, use.site.scope_id)
        if edits is None:
            return _confirm(
                "one production caller", {"skip_reason": SkipReason.ADVISORY}, **evidence
            )
        return _confirm("one production caller", {"edits": edits}, **evidence)

    def _inline_edits(
        self, finding: Finding, inline: str | None, line: int, scope_id: str
    ) -> list[ProposedEdit] | None:
        """Delete the helper and substitute its expression at the call."""
        found = self._source_and_symbol(finding.symbol_id)
        if inline is None or found is None:
            return None
        source, helper = found
        if finding.start_line <= line <= finding.end_line or helper.body_scope_id is None:
            return None
        for name in set(_IDENTIFIER.findall(inline)):
            outer = source.resolve(name, helper.body_scope_id)
            inner = source.resolve(name, scope_id)
            if (outer.id if outer else None) != (inner.id if inner else None):
                return None
        call = re.compile(rf"(?<![\w.]){re.escape(helper.name)}\s*\(\s*\)")
        text = source.lines[line - 1]
        if len(call.findall(text)) != 1:
            return None
        return [
            ProposedEdit(
                path=finding.path,
                start_line=finding.start_line,
                end_line=finding.end_line,
                replacement="",
                block_statements=deleted_block(
                    source, finding.start_line, finding.end_line, ""
                ),
            ),
            ProposedEdit(
                path=finding.path,
                start_line=line,
                end_line=line,
                replacement=call.sub(lambda _: inline, text),
            ),
        ]

    # -- reachability ---------------------------------------------------------

    def _check_reachability(self, finding: Finding) -> _Outcome:
        function_id = finding.metadata.get("function_id")
        param = self._index.symbol(finding.metadata.get("param_id", ""))
        if function_id is None or param is None:
            return _discard("guard has no parameter")
        if self._index.is_opaque(function_id):
            return _discard("function has an opaque use", callers="unbounded")
        if self._index.is_recursive(function_id):
            return _discard("function calls itself")
        uses = self._index.uses(function_id)
        if not uses:
            return _discard("function has no call sites")
        for use in uses:
            if not use.is_call:
                return _discard(
                    "function is referenced as a value",
                    site=f"{use.site.path}:{use.site.line}",
                )
            kind = _argument_kind(use.args, param, use.bound_call)
            if kind != ArgKind.CONCRETE:
                return _discard(
                    "call site passes a non-concrete argument",
                    site=f"{use.site.path}:{use.site.line}",
                    argument=str(kind),
                )
        outcome = self._check_structural(finding)
        if not outcome.ok:
            return outcome
        return _confirm(
            "every call site passes a concrete argument",
            callers=len(uses),
            param=param.name,
        )

    # -- data tracing ---------------------------------------------------------

    def _check_data_tracing(self, finding: Finding) -> _Outcome:
        function_id = finding.metadata.get("function_id") or finding.symbol_id
        found = self._source_and_symbol(function_id)
        if found is None:
            return _discard("function not found")
        source, function = found
        summary = trace_function(source, function)
        if summary.opaque:
            return _discard("function uses locals(), vars(), eval or exec")

        if finding.pattern == UNUSED_PARAMETER.name:
            if self._index.is_opaque(function.id):
                return _discard("function has an opaque use")
            if any(not use.is_call for use in self._index.uses(function.id)):
                return _discard("function is referenced as a value")
            param_id = finding.metadata.get("param_id", "")
            if summary.reaches_live(param_id):
                return _discard("parameter reaches a live use")
            return _confirm("parameter never reaches a live use", param=param_id)

        if finding.symbol_id is None:
            return _discard("finding has no symbol")
        if finding.pattern == UNUSED_LOCAL.name:
            if summary.reaches_live(finding.symbol_id):
                return _discard("local reaches a live use")
            return _confirm("local never reaches a live use")

        reads = summary.read_count(finding.symbol_id)
        if reads != 1:
            return _discard("name is not read exactly once", reads=reads)
        return _confirm("name is read exactly once", reads=1)

    # -- parameter tax --------------------------------------------------------

    def _check_parameter_tax(self, finding: Finding) -> _Outcome:
        if finding.symbol_id is None:
            return _discard("finding has no symbol")
        if self._index.is_opaque(finding.symbol_id):
            return _discard("record has an opaque use")
        uses = self._index.uses(finding.symbol_id)
        if any(u.kind == RefKind.BASE for u in uses):
            return _discard("record is subclassed")
        constructions = [u for u in uses if u.is_call]
        consumers = len(uses) - len(constructions)
        limit = self._settings.param_tax_max_sites
        if not 1 <= len(constructions) <= limit:
            return _discard(
                "record is not built at one or two sites", sites=len(constructions)
            )
        fields = finding.metadata.get("fields") or []
        # every consumer signature grows by the fields the record bundled
        net = finding.lines_saved - max(0, len(fields) - 1) * consumers
        if net <= 0:
            return _discard("inlining the fields would not save lines", net=net)
        return _confirm(
            "record only shuttles fields", sites=len(constructions), net_lines=net
        )

    # -- attribute access -----------------------------------------------------

    def _check_attribute_access(self, finding: Finding) -> _Outcome:
        found = self._source_and_symbol(finding.symbol_id)
        if found is None:
            return _discard("class not found")
        _, cls = found
        if self._index.is_opaque(cls.id):
            return _discard("class has an opaque use")
        if any(u.kind == RefKind.BASE for u in self._index.uses(cls.id)):
            return _discard("class is subclassed")
        members = [*finding.metadata.get("members", []), finding.metadata.get("collaborator")]
        inside = cls.body_scope_id or cls.id
        accessed = sorted(
            name
            for name in {m for m in members if m}
            if any(
                site.scope_id != inside and not site.scope_id.startswith(f"{inside}.")
                for site in self._index.attribute_sites(name)
            )
        )
        if len(accessed) > self._settings.wrapper_max_members:
            return _discard("callers use too many members", members=accessed)
        return _confirm("callers use few members", members=accessed)


def _argument_kind(args: tuple[ArgInfo, ...], param: Symbol, bound_call: bool) -> ArgKind:
    """What a call site passes for ``param``."""
    if param.param_index is None:
        return ArgKind.DYNAMIC
    position = param.param_index - (1 if bound_call else 0)
    for arg in args:
        if arg.keyword == param.name or (arg.position is not None and arg.position == position):
            return arg.kind
    if any(arg.kind == ArgKind.SPLAT for arg in args):
        return ArgKind.SPLAT
    if param.has_default and not param.default_is_none:
        return ArgKind.CONCRETE
    return ArgKind.DYNAMIC


