"""
awaitguard
==========

A lint for asynchronous Python: it reports values of known blocking types
(``time.sleep`` results, ``threading`` and ``multiprocessing`` locks, and
any path added by configuration) that are still alive when an ``async``
body suspends.

Layers
------
    hir          source → bodies, spans, generator kinds
    ty, typeck   nominal types and the values held across suspension points
    lint         lint declarations, passes, store and context
    may_block    the ``may-block`` lint
    driver       running passes over files, suppressions, results
    reporter     human / gcc / json / sarif output
    config       ``.awaitguard.sexp`` configuration
    trace        ``dump-interior`` S-expression trace
"""

__version__ = "0.1.0"

from awaitguard.diagnostics import Diagnostic, Severity
from awaitguard.driver import LintRunner, RunResults, default_store
from awaitguard.errors import AwaitGuardError, ConfigError, SourceError
from awaitguard.lint import Lint, LintCategory, LintContext, LintPass, LintStore
from awaitguard.may_block import MAY_BLOCK, MayBlock
from awaitguard.paths import BLOCKING_PRIMITIVES, BlockingPrimitiveRegistry

__all__ = [
    "AwaitGuardError",
    "BLOCKING_PRIMITIVES",
    "BlockingPrimitiveRegistry",
    "ConfigError",
    "Diagnostic",
    "Lint",
    "LintCategory",
    "LintContext",
    "LintPass",
    "LintRunner",
    "LintStore",
    "MAY_BLOCK",
    "MayBlock",
    "RunResults",
    "Severity",
    "SourceError",
    "__version__",
    "default_store",
]
