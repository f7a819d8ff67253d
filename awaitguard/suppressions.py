# awaitguard/suppressions.py
"""
Diagnostic suppressions.

Sources:
  1. Inline comments::

         with lock:  # awaitguard: ignore[may-block]
             await refresh()

         # awaitguard: ignore
         value = time.sleep(1)

     A trailing directive applies to its own line, a directive alone on a
     line applies to the next line.  Without a bracketed list every lint is
     suppressed.
  2. File directives: ``# awaitguard: ignore-file[may-block]`` anywhere in
     the file.
  3. File-pattern suppressions (programmatic, fnmatch patterns).
  4. Global suppressions (configuration / ``--suppress``).

Directive text is parsed with a parsimonious PEG grammar; malformed
directives are ignored.
"""

from __future__ import annotations

import io
import logging
import re
import tokenize
from collections import defaultdict
from dataclasses import dataclass
from fnmatch import fnmatch
from typing import Dict, Iterable, List, Optional, Set, Tuple

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from awaitguard.diagnostics import Diagnostic

logger = logging.getLogger(__name__)

ALL = "*"

DIRECTIVE_GRAMMAR = Grammar(r'''
    directive   = "awaitguard" _ ":" _ action codes? rest
    action      = "ignore-file" / "ignore"
    codes       = _ "[" _ code_list _ "]"
    code_list   = code (_ "," _ code)*
    code        = ~r"[A-Za-z][A-Za-z0-9_-]*"
    rest        = ~r"(?:[ \t].*|#.*)?"
    _           = ~r"[ \t]*"
''')

_DIRECTIVE_START = re.compile(r"awaitguard\s*:")


@dataclass(frozen=True)
class Directive:
    """A parsed suppression comment."""
    action: str                 # "ignore" | "ignore-file"
    codes: Tuple[str, ...]      # empty → every lint
    line: int = 0
    own_line: bool = False

    @property
    def ids(self) -> Set[str]:
        return set(self.codes) if self.codes else {ALL}


class _DirectiveVisitor(NodeVisitor):

    def visit_directive(self, node: Node, children: list) -> Directive:
        _, _, _, _, action, codes, _ = children
        found: Tuple[str, ...] = ()
        if isinstance(codes, list) and codes:
            found = tuple(codes[0])
        return Directive(action=action, codes=found)

    def visit_action(self, node: Node, children: list) -> str:
        return node.text

    def visit_codes(self, node: Node, children: list) -> List[str]:
        _, _, _, code_list, _, _ = children
        return code_list

    def visit_code_list(self, node: Node, children: list) -> List[str]:
        first, rest = children
        codes = [first]
        if isinstance(rest, list):
            codes.extend(item[3] for item in rest)
        return codes

    def visit_code(self, node: Node, children: list) -> str:
        return node.text

    def generic_visit(self, node: Node, children: list):
        return children or node


def parse_directive(comment: str) -> Optional[Directive]:
    """
    Parse the directive contained in a comment, if any.

    ``comment`` may include the leading ``#`` and unrelated text before
    the directive (``# noqa: E501  # awaitguard: ignore``).
    """
    match = _DIRECTIVE_START.search(comment)
    if match is None:
        return None
    text = comment[match.start():]
    try:
        node = DIRECTIVE_GRAMMAR.parse(text)
        return _DirectiveVisitor().visit(node)
    except (ParseError, VisitationError) as exc:
        logger.debug("ignoring malformed directive %r: %s", comment, exc)
        return None


def iter_directives(source: str) -> Iterable[Directive]:
    """Directives of a source file, with the line each one applies to."""
    readline = io.StringIO(source).readline
    try:
        for tok in tokenize.generate_tokens(readline):
            if tok.type != tokenize.COMMENT:
                continue
            directive = parse_directive(tok.string)
            if directive is None:
                continue
            own_line = not tok.line[:tok.start[1]].strip()
            line = tok.start[0] + 1 if own_line else tok.start[0]
            yield Directive(directive.action, directive.codes, line, own_line)
    except (tokenize.TokenError, SyntaxError) as exc:
        logger.debug("cannot tokenize for directives: %s", exc)


class SuppressionManager:
    """
    Manages diagnostic suppressions from multiple sources.

    Usage
    -----
    >>> sm = SuppressionManager()
    >>> sm.load_inline_suppressions(source, "app/handlers.py")
    >>> sm.add_file_suppression("may-block", "legacy/*")
    >>> sm.add_global_suppression("may-block")
    >>> kept = sm.filter_diagnostics(diagnostics)
    """

    def __init__(self) -> None:
        # (file, line) → lint ids suppressed on that line
        self._inline: Dict[Tuple[str, int], Set[str]] = defaultdict(set)
        # file pattern → lint ids
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        self._global: Set[str] = set()

    def copy(self) -> SuppressionManager:
        """A manager sharing file-level and global rules, without inline ones."""
        clone = SuppressionManager()
        for pattern, ids in self._file_level.items():
            clone._file_level[pattern] = set(ids)
        clone._global = set(self._global)
        return clone

    def load_inline_suppressions(self, source: str, filename: str) -> None:
        for directive in iter_directives(source):
            if directive.action == "ignore-file":
                self._file_level[filename].update(directive.ids)
            else:
                self._inline[(filename, directive.line)].update(directive.ids)

    def add_file_suppression(self, lint_id: str, file_pattern: str) -> None:
        """Suppress ``lint_id`` in files matching ``file_pattern``."""
        self._file_level[file_pattern].add(lint_id)

    def add_global_suppression(self, lint_id: str) -> None:
        self._global.add(lint_id)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        lint_id = diag.lint_id
        if lint_id in self._global or ALL in self._global:
            return True

        ids = self._inline.get((diag.span.file, diag.span.line), set())
        if lint_id in ids or ALL in ids:
            return True

        for pattern, ids in self._file_level.items():
            if lint_id in ids or ALL in ids:
                if pattern == diag.span.file or fnmatch(diag.span.file, pattern):
                    return True
        return False

    def filter_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
        """Return only non-suppressed diagnostics."""
        return [d for d in diagnostics if not self.is_suppressed(d)]


__all__ = [
    "DIRECTIVE_GRAMMAR",
    "Directive",
    "SuppressionManager",
    "iter_directives",
    "parse_directive",
]
