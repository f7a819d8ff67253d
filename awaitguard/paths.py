# awaitguard/paths.py
"""
Fully-qualified paths of primitives that block the calling thread.

Paths are tuples of name segments and are compared by exact equality:
``("time", "sleep")`` matches only ``time.sleep``, never ``mytime.sleep``
nor ``time.sleep_ns``.

Lock types are listed by their guard path, ``("threading", "Lock", "__enter__")``:
the value held inside ``with lock:``.  A lock object that is only bound to
a name does not block anything and does not match.

The default registry is built once at import time and never mutated.
Configuration extends it by building a new registry with
:meth:`BlockingPrimitiveRegistry.extend`.
"""

from __future__ import annotations

from typing import FrozenSet, Iterable, Iterator, Sequence, Tuple

from awaitguard.ty import GUARD_SEGMENT, Path, format_path, parse_path

THREAD_SLEEP: Path = ("time", "sleep")

THREADING_LOCK: Path = ("threading", "Lock")
THREADING_RLOCK: Path = ("threading", "RLock")
THREADING_CONDITION: Path = ("threading", "Condition")
THREADING_SEMAPHORE: Path = ("threading", "Semaphore")
THREADING_BOUNDED_SEMAPHORE: Path = ("threading", "BoundedSemaphore")
MULTIPROCESSING_LOCK: Path = ("multiprocessing", "Lock")
MULTIPROCESSING_RLOCK: Path = ("multiprocessing", "RLock")

LOCK_TYPES: Tuple[Path, ...] = (
    THREADING_LOCK,
    THREADING_RLOCK,
    THREADING_CONDITION,
    THREADING_SEMAPHORE,
    THREADING_BOUNDED_SEMAPHORE,
    MULTIPROCESSING_LOCK,
    MULTIPROCESSING_RLOCK,
)


def guard_path(path: Sequence[str]) -> Path:
    """Path of the guard held while a ``with`` block on a ``path`` instance runs."""
    return tuple(path) + (GUARD_SEGMENT,)


class BlockingPrimitiveRegistry:
    """Immutable set of blocking paths."""

    __slots__ = ("_paths",)

    def __init__(self, paths: Iterable[Sequence[str]] = ()) -> None:
        self._paths: FrozenSet[Path] = frozenset(tuple(p) for p in paths)

    @classmethod
    def from_dotted(cls, dotted: Iterable[str]) -> BlockingPrimitiveRegistry:
        """
        Build a registry from ``"a.b.c"`` strings.

        Raises
        ------
        ValueError
            On a malformed path.
        """
        return cls(parse_path(d) for d in dotted)

    def extend(self, paths: Iterable[Sequence[str]]) -> BlockingPrimitiveRegistry:
        return BlockingPrimitiveRegistry(list(self._paths) + [tuple(p) for p in paths])

    def __contains__(self, path: object) -> bool:
        return isinstance(path, tuple) and path in self._paths

    def __iter__(self) -> Iterator[Path]:
        return iter(sorted(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlockingPrimitiveRegistry):
            return NotImplemented
        return self._paths == other._paths

    def __hash__(self) -> int:
        return hash(self._paths)

    def dotted(self) -> Tuple[str, ...]:
        return tuple(format_path(p) for p in self)

    def __repr__(self) -> str:
        return f"<BlockingPrimitiveRegistry {list(self.dotted())}>"


BLOCKING_PRIMITIVES = BlockingPrimitiveRegistry(
    [THREAD_SLEEP] + [guard_path(lock) for lock in LOCK_TYPES]
)


def match_def_path(path: Sequence[str], registry: BlockingPrimitiveRegistry) -> bool:
    """Exact comparison of ``path`` against every registry entry."""
    return tuple(path) in registry


__all__ = [
    "BLOCKING_PRIMITIVES",
    "BlockingPrimitiveRegistry",
    "LOCK_TYPES",
    "MULTIPROCESSING_LOCK",
    "MULTIPROCESSING_RLOCK",
    "THREADING_BOUNDED_SEMAPHORE",
    "THREADING_CONDITION",
    "THREADING_LOCK",
    "THREADING_RLOCK",
    "THREADING_SEMAPHORE",
    "THREAD_SLEEP",
    "guard_path",
    "match_def_path",
]
