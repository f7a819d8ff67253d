# awaitguard/may_block.py
"""
``may-block``: blocking values held across a suspension point.

**What it does:** Checks asynchronous bodies for values of known blocking
types (``time.sleep`` results, ``threading`` locks, ...) that are still held
when the body suspends.

**Why is this bad?** While the task is parked at an ``await`` the event
loop runs other tasks on the same thread.  A thread lock held at that
point can be requested by one of those tasks, which then blocks the whole
loop; blocking calls in general stall every task sharing the loop.

Use an asyncio-aware primitive (``asyncio.Lock``, ``asyncio.sleep``), or
release the value before awaiting, either by closing the ``with`` block or
with ``del``.

**Example:**

.. code-block:: python

    import threading

    lock = threading.Lock()

    async def handler():
        with lock:
            await refresh()

Use instead:

.. code-block:: python

    import asyncio

    lock = asyncio.Lock()

    async def handler():
        async with lock:
            await refresh()
"""

from __future__ import annotations

from typing import Any, Dict, Sequence

from awaitguard.hir import Body, Span
from awaitguard.lint import Lint, LintCategory, LintContext, LintPass
from awaitguard.paths import BLOCKING_PRIMITIVES, BlockingPrimitiveRegistry, match_def_path
from awaitguard.typeck import GeneratorInteriorTypeCause

MAY_BLOCK = Lint(
    name="may-block",
    category=LintCategory.CORRECTNESS,
    description="Using blocking functions in async code can slow down the async runtime",
    explanation=__doc__ or "",
)

PRIMARY_MESSAGE = (
    "this blocking function can slow down the async runtime. consider using "
    "a non-blocking alternative from the async ecosystem of your runtime."
)
NOTE_MESSAGE = "these are all the await points this lock is held through"


class MayBlock(LintPass):
    name = "may-block"
    lints = (MAY_BLOCK,)

    def __init__(self, registry: BlockingPrimitiveRegistry = BLOCKING_PRIMITIVES) -> None:
        self.registry = registry

    def configure(self, options: Dict[str, Any]) -> None:
        self.registry = options.get("registry", self.registry)

    def check_body(self, cx: LintContext, body: Body) -> None:
        if body.generator_kind is None or not body.generator_kind.is_async:
            return
        def_id = cx.body_owner_def_id(body.id)
        typeck_results = cx.typeck(def_id)
        if typeck_results is None:
            return
        check_interior_types(
            cx, typeck_results.generator_interior_types, body.value_span, self.registry
        )


def check_interior_types(
    cx: LintContext,
    ty_causes: Sequence[GeneratorInteriorTypeCause],
    span: Span,
    registry: BlockingPrimitiveRegistry,
) -> None:
    for ty_cause in ty_causes:
        if is_blocking(cx, ty_cause, registry):
            cx.span_lint_and_note(
                MAY_BLOCK,
                ty_cause.span,
                PRIMARY_MESSAGE,
                ty_cause.scope_span or span,
                NOTE_MESSAGE,
            )


def is_blocking(
    cx: LintContext,
    ty_cause: GeneratorInteriorTypeCause,
    registry: BlockingPrimitiveRegistry,
) -> bool:
    path = cx.def_path(ty_cause.ty)
    if path is None:
        return False
    return match_def_path(path, registry)


__all__ = [
    "MAY_BLOCK",
    "MayBlock",
    "check_interior_types",
    "is_blocking",
]
