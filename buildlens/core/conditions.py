"""Serializable projections for rule-matching condition trees.

Module rules handed over by the host hold compiled patterns, nested
``and``/``or``/``not`` combinators and lists of either. Report payloads need a
textual form of the patterns, but the very same objects keep being used for
matching while the build runs. Projections are therefore *added* next to the
matcher and the matcher object itself is never replaced.
"""

from __future__ import annotations

import logging
import re
import threading
import weakref
from collections.abc import Mapping
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

PROJECTION_ATTR = "serialized"

RULE_CONDITION_FIELDS: tuple[str, ...] = (
    "test",
    "resourceQuery",
    "resource",
    "resourceFragment",
    "scheme",
    "issuer",
    "include",
    "exclude",
)
NESTED_RULE_FIELDS: tuple[str, ...] = ("oneOf", "rules")

_FLAG_LETTERS: tuple[tuple[int, str], ...] = (
    (re.IGNORECASE, "i"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.VERBOSE, "x"),
)

# Compiled ``re.Pattern`` objects reject new attributes, so their projections
# are kept here, keyed by the pattern object itself.
_PROJECTIONS: "weakref.WeakKeyDictionary[Any, str]" = weakref.WeakKeyDictionary()
_PROJECTIONS_LOCK = threading.Lock()


class ConditionKind(str, Enum):
    PATTERN = "pattern"
    AND = "and"
    OR = "or"
    NOT = "not"
    LIST = "list"
    OPAQUE = "opaque"


_LOGICAL_KINDS: tuple[ConditionKind, ...] = (
    ConditionKind.AND,
    ConditionKind.OR,
    ConditionKind.NOT,
)


def is_pattern(node: Any) -> bool:
    """Return True for compiled patterns and pattern-like host matchers."""

    if isinstance(node, re.Pattern):
        return True
    return isinstance(getattr(node, "pattern", None), str) and callable(
        getattr(node, "search", None)
    )


def classify_condition(node: Any) -> ConditionKind:
    if is_pattern(node):
        return ConditionKind.PATTERN
    if isinstance(node, (list, tuple)):
        return ConditionKind.LIST
    if isinstance(node, Mapping):
        for kind in _LOGICAL_KINDS:
            if kind.value in node:
                return kind
    return ConditionKind.OPAQUE


def _flag_text(flags: Any) -> str:
    if isinstance(flags, str):
        return flags
    if not isinstance(flags, int):
        return ""
    return "".join(letter for flag, letter in _FLAG_LETTERS if flags & flag)


def pattern_text(node: Any) -> str:
    """Render a pattern as ``/source/flags``."""

    source = node.pattern
    if isinstance(source, bytes):
        source = source.decode("utf-8", errors="replace")
    return f"/{source}/{_flag_text(getattr(node, 'flags', 0))}"


def serialized_projection(node: Any) -> str | None:
    """Return the projection attached to ``node`` or None when it has none."""

    attached = getattr(node, PROJECTION_ATTR, None)
    if isinstance(attached, str):
        return attached
    try:
        with _PROJECTIONS_LOCK:
            return _PROJECTIONS.get(node)
    except TypeError:
        return None


def _attach_projection(node: Any) -> None:
    text = pattern_text(node)
    try:
        setattr(node, PROJECTION_ATTR, text)
        return
    except (AttributeError, TypeError):
        pass
    try:
        with _PROJECTIONS_LOCK:
            _PROJECTIONS[node] = text
    except TypeError:
        logger.debug("Leaving unhashable matcher %r without projection", node)


def make_condition_serializable(node: Any, visited: set[int] | None = None) -> None:
    """Attach projections to every pattern reachable from ``node``.

    Safe to call repeatedly on the same tree. ``visited`` holds ``id()`` of
    nodes already handled during this traversal and stops self-references.
    """

    if node is None:
        return
    if visited is None:
        visited = set()
    marker = id(node)
    if marker in visited:
        return
    visited.add(marker)

    kind = classify_condition(node)
    if kind is ConditionKind.PATTERN:
        _attach_projection(node)
    elif kind is ConditionKind.LIST:
        for child in node:
            make_condition_serializable(child, visited)
    elif kind in _LOGICAL_KINDS:
        for logical in _LOGICAL_KINDS:
            if logical.value in node:
                make_condition_serializable(node[logical.value], visited)


def make_rules_serializable(rules: Any, visited: set[int] | None = None) -> None:
    """Walk a module rule list and make every condition-bearing field serializable."""

    if not isinstance(rules, (list, tuple)) or not rules:
        return
    if visited is None:
        visited = set()
    if id(rules) in visited:
        return
    visited.add(id(rules))

    for rule in rules:
        if not isinstance(rule, Mapping) or id(rule) in visited:
            continue
        visited.add(id(rule))

        for field in RULE_CONDITION_FIELDS:
            make_condition_serializable(rule.get(field), visited)
        # issuerLayer only exists on hosts with build layers enabled.
        if "issuerLayer" in rule:
            make_condition_serializable(rule["issuerLayer"], visited)

        for nested in NESTED_RULE_FIELDS:
            make_rules_serializable(rule.get(nested), visited)


def project_condition(node: Any, _ancestors: set[int] | None = None) -> Any:
    """Return a JSON-friendly copy of ``node`` using attached projections."""

    if node is None or isinstance(node, (str, int, float, bool)):
        return node
    if is_pattern(node):
        return serialized_projection(node) or pattern_text(node)

    ancestors = _ancestors if _ancestors is not None else set()
    marker = id(node)
    if marker in ancestors:
        return "[Circular]"

    if isinstance(node, (list, tuple, Mapping)):
        ancestors.add(marker)
        try:
            if isinstance(node, Mapping):
                return {
                    str(key): project_condition(value, ancestors)
                    for key, value in node.items()
                }
            return [project_condition(child, ancestors) for child in node]
        finally:
            ancestors.discard(marker)

    if callable(node):
        return f"[function {getattr(node, '__name__', type(node).__name__)}]"
    return str(node)


def json_default(value: Any) -> Any:
    """``json.dumps(default=...)`` hook rendering pattern leaves."""

    if is_pattern(value):
        return serialized_projection(value) or pattern_text(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


__all__ = [
    "ConditionKind",
    "NESTED_RULE_FIELDS",
    "PROJECTION_ATTR",
    "RULE_CONDITION_FIELDS",
    "classify_condition",
    "is_pattern",
    "json_default",
    "make_condition_serializable",
    "make_rules_serializable",
    "pattern_text",
    "project_condition",
    "serialized_projection",
]
