"""Shell-variable tracking and template expansion.

Variables are mined from text content as it is scanned. Candidate paths
that reference variables are expanded with every known value; templates
that need a variable nobody has defined yet are deferred and retried the
moment one of their missing variables gains a value.
"""

from __future__ import annotations

import re
from typing import Callable, Optional

from ..logging_config import get_logger
from .extractor import is_valid_path
from .models import DeferredTemplate, GeneratedPath, PathResolution, VariableValue

logger = get_logger(__name__)

DEFAULT_MAX_DEPTH = 10

_VARIABLE_REFERENCE = re.compile(r"\$\{?([a-zA-Z_][a-zA-Z0-9_]*|[0-9]+)\}?")

# [export] NAME=value, value optionally quoted
_DEFINITION = re.compile(
    r"(?:^|[\s;])(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=(\"[^\"\n]*\"|'[^'\n]*'|[^\s;#]+)",
    re.MULTILINE,
)
# [ "$NAME" == "value" ] and [[ $NAME = value ]]
_CONDITIONAL = re.compile(
    r"\[\[?\s*\"?\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?\"?\s*==?\s*[\"']?([^\"'\s\]]+)[\"']?\s*\]\]?"
)
_COMMAND_SUBSTITUTION = re.compile(r"`|\$\(")
_EXECUTABLE_VALUE = re.compile(r"^/(?:bin|sbin|usr/bin|usr/sbin)/[a-z]")


def contains_variables(path: str) -> bool:
    return bool(_VARIABLE_REFERENCE.search(path))


def variable_names(path: str) -> list[str]:
    """Referenced variable names, first occurrence order, no duplicates."""
    names: list[str] = []
    for match in _VARIABLE_REFERENCE.finditer(path):
        if match.group(1) not in names:
            names.append(match.group(1))
    return names


def replace_variable(path: str, name: str, value: str) -> str:
    """Substitute both ``${name}`` and ``$name`` forms."""
    escaped = re.escape(name)
    path = re.sub(rf"\$\{{{escaped}\}}", lambda _: value, path)
    return re.sub(rf"\${escaped}\b", lambda _: value, path)


def normalize_generated(path: str) -> str:
    path = re.sub(r"/+", "/", path)
    if not path.startswith("/"):
        path = "/" + path
    return path


class VariableResolver:
    """Resolves variable templates against one session's variable table.

    The resolver does not own its state: ``variables`` and ``deferred`` are
    the session's own collections and are mutated in place, so a resumed
    session continues exactly where it stopped.
    """

    def __init__(
        self,
        variables: dict[str, list[VariableValue]],
        deferred: list[DeferredTemplate],
        max_depth: int = DEFAULT_MAX_DEPTH,
        source_excludes: tuple[str, ...] = (),
        path_validator: Callable[[str], bool] = is_valid_path,
    ):
        self.variables = variables
        self.deferred = deferred
        self.max_depth = max_depth
        self.source_excludes = source_excludes
        self.path_validator = path_validator

    # ── extraction ────────────────────────────────────────────────

    def is_excluded_source(self, source: str) -> bool:
        lowered = source.lower()
        return any(lowered == ex.lower() or lowered.endswith(ex.lower()) for ex in self.source_excludes)

    def extract_variables(self, text: str, source: str) -> list[GeneratedPath]:
        """Record definitions found in ``text`` and return paths they unlock."""
        if self.is_excluded_source(source):
            return []

        generated: list[GeneratedPath] = []

        for match in _DEFINITION.finditer(text):
            name, value = match.group(1), _unquote(match.group(2))
            if _COMMAND_SUBSTITUTION.search(value):
                continue
            generated.extend(self.add_variable(name, value, source, "explicit"))

        for match in _CONDITIONAL.finditer(text):
            generated.extend(self.add_variable(match.group(1), match.group(2), source, "conditional"))

        return generated

    def add_variable(
        self, name: str, value: str, discovered_in: str, confidence: str = "explicit"
    ) -> list[GeneratedPath]:
        """Add one value; retries deferred templates waiting on ``name``.

        Re-adding a value already known for ``name`` is a no-op.
        """
        if not value or self.is_excluded_source(discovered_in):
            return []
        # A command path is what the script runs, not data it stores
        if _EXECUTABLE_VALUE.match(value):
            return []

        values = self.variables.setdefault(name, [])
        if any(v.value == value for v in values):
            return []
        values.append(VariableValue(name, value, discovered_in, confidence))  # type: ignore[arg-type]

        return self.resolve_deferred(name)

    # ── templates ─────────────────────────────────────────────────

    def process_path(self, path: str, discovered_in: str) -> PathResolution:
        """Classify a candidate as literal, generated, deferred or invalid.

        A template that still depends on an unknown variable, directly or
        through the value of a known one, is deferred. Expansions that are
        already complete are returned as ``generated`` alongside the
        deferral, so a partly known template is not held back entirely.
        """
        if not contains_variables(path):
            return PathResolution("literal", [path])

        missing = self._missing(path)
        paths = self._valid_expansions(path)
        if missing:
            self.add_deferred(path, discovered_in, missing)
            logger.debug("Deferred %s (waiting for %s)", path, ", ".join(sorted(missing)))
            if paths:
                return PathResolution("generated", paths)
            return PathResolution("deferred")

        if paths:
            return PathResolution("generated", paths)
        return PathResolution("invalid")

    def add_deferred(
        self, template: str, discovered_in: str, missing: Optional[set[str]] = None
    ) -> DeferredTemplate:
        """Hold ``template`` until its variables are known. Idempotent."""
        for existing in self.deferred:
            if existing.template == template:
                return existing
        if missing is None:
            missing = self._missing(template)
        deferred = DeferredTemplate(
            template=template,
            variables=set(missing),
            discovered_in=discovered_in,
            priority=len(self.deferred),
        )
        self.deferred.append(deferred)
        return deferred

    def resolve_deferred(self, name: str) -> list[GeneratedPath]:
        """Retry every deferred template that was waiting on ``name``."""
        waiting = [d for d in self.deferred if name in d.variables]
        if not waiting:
            return []

        logger.info("Variable %s discovered, resolving %d deferred templates", name, len(waiting))

        generated: list[GeneratedPath] = []
        for deferred in waiting:
            missing = self._missing(deferred.template)
            paths = self._valid_expansions(deferred.template)
            if missing:
                deferred.variables = missing
                generated.extend(GeneratedPath(p, deferred.template, deferred.discovered_in) for p in paths)
                continue

            self.deferred.remove(deferred)
            if not paths:
                logger.warning("Template %s expanded to no valid path; dropped", deferred.template)
                continue

            preview = ", ".join(paths[:3]) + ("..." if len(paths) > 3 else "")
            logger.info("Resolved %s -> %d paths: %s", deferred.template, len(paths), preview)
            generated.extend(GeneratedPath(p, deferred.template, deferred.discovered_in) for p in paths)

        return generated

    def expand_template(self, template: str) -> list[str]:
        """Every substitution of ``template`` using all known values.

        Substitutes one variable per recursion step. A value that refers to
        its own variable (``PATH=$PATH:/x``) is skipped, and a branch never
        substitutes the same value for the same variable twice. Returns an
        empty list when a variable is unknown or the depth ceiling is hit.
        """
        truncated: list[str] = []
        results = self._expand(template, 0, frozenset(), truncated)
        if truncated:
            logger.warning(
                "Max expansion depth reached for template %s (%d branches cut)", template, len(truncated)
            )
        return results

    def _expand(
        self, template: str, depth: int, used: frozenset[tuple[str, str]], truncated: list[str]
    ) -> list[str]:
        if depth >= self.max_depth:
            truncated.append(template)
            return []
        names = variable_names(template)
        if not names:
            return [normalize_generated(template)]
        if any(n not in self.variables for n in names):
            return []

        name = names[0]
        results: list[str] = []
        for value in self.variables[name]:
            if (name, value.value) in used or name in variable_names(value.value):
                continue
            partial = replace_variable(template, name, value.value)
            if partial == template:
                continue
            for path in self._expand(partial, depth + 1, used | {(name, value.value)}, truncated):
                if path not in results:
                    results.append(path)
        return results

    def _valid_expansions(self, template: str) -> list[str]:
        return [p for p in self.expand_template(template) if self.path_validator(p)]

    def _missing(self, template: str) -> set[str]:
        """Unknown names ``template`` depends on, following known values."""
        missing: set[str] = set()
        seen: set[str] = set()
        pending = [(n, 0) for n in variable_names(template)]
        while pending:
            name, depth = pending.pop()
            if name in seen or depth >= self.max_depth:
                continue
            seen.add(name)
            if name not in self.variables:
                missing.add(name)
                continue
            for value in self.variables[name]:
                pending.extend((n, depth + 1) for n in variable_names(value.value) if n != name)
        return missing

    # ── reporting ─────────────────────────────────────────────────

    def stats(self) -> dict:
        by_confidence = {"explicit": 0, "conditional": 0}
        total = 0
        for values in self.variables.values():
            total += len(values)
            for value in values:
                by_confidence[value.confidence] = by_confidence.get(value.confidence, 0) + 1
        return {
            "total_variables": total,
            "total_deferred": len(self.deferred),
            "by_confidence": by_confidence,
        }


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value
