# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Reactive cells - push-based recomputation for field state.

This module provides the small dependency-tracking layer the field tree is
built on:

- Cell: a mutable observable value
- Computed: a cached value derived from cells (and other computeds)
- Reaction: a side-effecting consumer re-run when its dependencies change
- batch / action: group several writes into one notification pass

Dependencies are discovered at runtime: whatever a Computed or Reaction reads
while it runs becomes a source, and the source list is rebuilt on every run.

Example:
    >>> first = Cell('Ada')
    >>> last = Cell('Lovelace')
    >>> full = Computed(lambda: f"{first.get()} {last.get()}")
    >>> seen = []
    >>> dispose = autorun(lambda: seen.append(full.get()))
    >>> with batch():
    ...     first.set('Grace')
    ...     last.set('Hopper')
    >>> seen
    ['Ada Lovelace', 'Grace Hopper']
    >>> dispose()
"""

from __future__ import annotations

from contextlib import contextmanager
from functools import partial, wraps
from typing import Any, Callable, Iterator

_SCALARS = (str, int, float, bool, bytes, type(None))

# Upper bound on reaction runs in a single flush, catches write cycles.
MAX_REACTION_RUNS = 10000


class _Context:
    """Global tracking state (single logical thread)."""

    __slots__ = ('tracking', 'depth', 'pending', 'flushing')

    def __init__(self) -> None:
        self.tracking: list[_Derivation] = []
        self.depth = 0
        self.pending: list[Reaction] = []
        self.flushing = False


_context = _Context()


def _same(old: Any, new: Any) -> bool:
    if old is new:
        return True
    return type(old) is type(new) and isinstance(old, _SCALARS) and old == new


# ==================== Batching ====================

@contextmanager
def batch() -> Iterator[None]:
    """Defer reactions until the outermost batch exits.

    Example:
        >>> with batch():
        ...     cell_a.set(1)
        ...     cell_b.set(2)   # reactions see both writes, once
    """
    _context.depth += 1
    try:
        yield
    finally:
        _context.depth -= 1
        if _context.depth == 0:
            _flush()


def _flush() -> None:
    if _context.flushing:
        return
    _context.flushing = True
    runs = 0
    try:
        while _context.pending:
            reaction = _context.pending.pop(0)
            runs += 1
            if runs > MAX_REACTION_RUNS:
                raise RuntimeError(
                    f"Reaction cycle detected after {MAX_REACTION_RUNS} runs"
                )
            reaction.run()
    finally:
        _context.flushing = False


@contextmanager
def untracked() -> Iterator[None]:
    """Read observables without registering dependencies."""
    saved = _context.tracking
    _context.tracking = []
    try:
        yield
    finally:
        _context.tracking = saved


def action(func: Callable) -> Callable:
    """Decorator running the wrapped function inside a batch."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        with batch():
            return func(*args, **kwargs)

    return wrapper


# ==================== Observables ====================

class _Observable:
    __slots__ = ('_observers',)

    def __init__(self) -> None:
        self._observers: dict[_Derivation, None] = {}

    def _report_observed(self) -> None:
        if _context.tracking:
            derivation = _context.tracking[-1]
            self._observers[derivation] = None
            derivation._sources[self] = None

    def _report_changed(self) -> None:
        for observer in list(self._observers):
            observer._mark_stale()

    @property
    def observed(self) -> bool:
        """True if at least one computation depends on this value."""
        return bool(self._observers)


class _Derivation:
    __slots__ = ()

    _sources: dict[_Observable, None]

    def _clear_sources(self) -> None:
        for source in self._sources:
            source._observers.pop(self, None)
        self._sources = {}

    def _track(self, fn: Callable[[], Any]) -> Any:
        self._clear_sources()
        _context.tracking.append(self)
        try:
            return fn()
        finally:
            _context.tracking.pop()

    def _mark_stale(self) -> None:
        raise NotImplementedError


class Cell(_Observable):
    """A mutable observable value.

    Writing a value equal to the current one (same scalar, or the very same
    object) does not notify dependents.

    Example:
        >>> cell = Cell(1)
        >>> cell.get()
        1
        >>> cell.set(2)
    """

    __slots__ = ('_value',)

    def __init__(self, value: Any = None) -> None:
        super().__init__()
        self._value = value

    def __repr__(self) -> str:
        return f"Cell({self._value!r})"

    def get(self) -> Any:
        """Return the value, registering a dependency when tracked."""
        self._report_observed()
        return self._value

    def peek(self) -> Any:
        """Return the value without registering a dependency."""
        return self._value

    def set(self, value: Any) -> None:
        """Store a new value and notify dependents if it changed."""
        if _same(self._value, value):
            return
        self._value = value
        with batch():
            self._report_changed()

    def touch(self) -> None:
        """Notify dependents without changing the value.

        Used after in-place mutation of a container held by the cell.
        """
        with batch():
            self._report_changed()


class Computed(_Observable, _Derivation):
    """A cached value derived from other observables.

    The function is evaluated lazily on first read and again on the first
    read after any of its sources changed.
    """

    __slots__ = ('_fn', '_value', '_stale', '_sources')

    def __init__(self, fn: Callable[[], Any]) -> None:
        super().__init__()
        self._fn = fn
        self._value: Any = None
        self._stale = True
        self._sources: dict[_Observable, None] = {}

    def __repr__(self) -> str:
        state = 'stale' if self._stale else repr(self._value)
        return f"Computed({state})"

    def get(self) -> Any:
        self._report_observed()
        if self._stale:
            self._value = self._track(self._fn)
            self._stale = False
        return self._value

    def _mark_stale(self) -> None:
        if self._stale:
            return
        self._stale = True
        self._report_changed()


class Reaction(_Derivation):
    """A side effect re-run whenever something it read has changed."""

    __slots__ = ('_fn', '_sources', '_scheduled', '_disposed')

    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn
        self._sources: dict[_Observable, None] = {}
        self._scheduled = False
        self._disposed = False

    def run(self) -> None:
        """Run the effect now, rebuilding its dependency list."""
        self._scheduled = False
        if self._disposed:
            return
        self._track(self._fn)

    def dispose(self) -> None:
        """Stop reacting and release all sources."""
        self._disposed = True
        self._clear_sources()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _mark_stale(self) -> None:
        if self._scheduled or self._disposed:
            return
        self._scheduled = True
        _context.pending.append(self)


def autorun(fn: Callable[[], Any]) -> Callable[[], None]:
    """Run ``fn`` now and again after every change of what it read.

    Returns:
        A disposer that stops the reaction.
    """
    reaction = Reaction(fn)
    reaction.run()
    return reaction.dispose


class computed:
    """Descriptor exposing a method as a per-instance Computed.

    The owning class must provide a ``_computeds`` dict attribute.

    Example:
        >>> class Item:
        ...     def __init__(self):
        ...         self._computeds = {}
        ...         self._price = Cell(10)
        ...     @computed
        ...     def doubled(self):
        ...         return self._price.get() * 2
    """

    def __init__(
        self,
        fget: Callable[[Any], Any],
        fset: Callable[[Any, Any], None] | None = None,
    ) -> None:
        self.fget = fget
        self.fset = fset
        self._name = fget.__name__
        self.__doc__ = fget.__doc__

    def __set_name__(self, owner: type, name: str) -> None:
        self._name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        cache = instance._computeds
        cell = cache.get(self._name)
        if cell is None:
            cell = cache[self._name] = Computed(partial(self.fget, instance))
        return cell.get()

    def __set__(self, instance: Any, value: Any) -> None:
        if self.fset is None:
            raise AttributeError(f"can't set attribute '{self._name}'")
        self.fset(instance, value)

    def setter(self, fset: Callable[[Any, Any], None]) -> computed:
        return type(self)(self.fget, fset)
