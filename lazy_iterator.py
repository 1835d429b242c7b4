"""
Pull-based lazy iterator.

A ``LazyIterator`` wraps a single "next item" callable. Composition methods
(map, filter, take, skip, append, prepend) wrap that callable in another one
and return the same handle; nothing is read until a terminal method
(collect, first, reduce, join, ...) drains the chain.

Each pull returns an element, ``LazyIterator.Skip`` (slot suppressed, keep
going) or ``LazyIterator.End`` (no more elements, permanently).
"""

import functools
import logging
from collections.abc import Sequence
from typing import Any, Callable, Generic, Iterator, List, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Sentinel:
    """Identity-unique marker with a fixed label."""
    __slots__ = ("_label",)

    def __init__(self, label: str):
        self._label = label

    def __repr__(self) -> str:
        return self._label

    __str__ = __repr__


SKIP = _Sentinel("LazyIterator.Skip")
END = _Sentinel("LazyIterator.End")


# --------- pull stages ----------

class _Stage:
    """
    A pull callable that knows how to fork itself when its handle is cloned.

    Source cursors fork their position; composition stages fork their
    upstream but keep sharing their own progress with the original.
    """

    def __call__(self):
        raise NotImplementedError

    def fork(self) -> "_Stage":
        raise NotImplementedError


def _fork(next_item):
    # plain callables can't be copied, so clones share them
    if isinstance(next_item, _Stage):
        return next_item.fork()
    return next_item


class _Progress:
    """Mutable counters shared by every clone of a composition stage."""
    __slots__ = ("count", "done")

    def __init__(self):
        self.count = 0
        self.done = False


class _Cursor(_Stage):
    """
    Walks an indexable container, then returns END forever.

    The container is read live: the length is checked on every pull, and
    the cursor only becomes exhausted when a pull finds nothing left.
    """

    def __init__(self, items, position=0, exhausted=False):
        self._items = items
        self._position = position
        self._exhausted = exhausted

    def __call__(self):
        if self._exhausted or self._position >= len(self._items):
            self._exhausted = True
            return END

        item = self._items[self._position]
        self._position += 1

        # an END stored as data must not cut the sequence short
        if item is END:
            return SKIP
        return item

    def fork(self):
        return _Cursor(self._items, self._position, self._exhausted)


class _HandlePull(_Stage):
    """Pulls from another handle through its finished guard."""

    def __init__(self, handle: "LazyIterator"):
        self._handle = handle

    def __call__(self):
        return self._handle._pull()

    def fork(self):
        return _HandlePull(self._handle.clone())


class _Mapped(_Stage):
    def __init__(self, upstream, transform):
        self._upstream = upstream
        self._transform = transform

    def __call__(self):
        value = self._upstream()
        if value is END or value is SKIP:
            return value
        return self._transform(value)

    def fork(self):
        return _Mapped(_fork(self._upstream), self._transform)


class _Filtered(_Stage):
    def __init__(self, upstream, predicate):
        self._upstream = upstream
        self._predicate = predicate

    def __call__(self):
        value = self._upstream()
        if value is END or value is SKIP:
            return value
        return value if self._predicate(value) else SKIP

    def fork(self):
        return _Filtered(_fork(self._upstream), self._predicate)


class _Taken(_Stage):
    def __init__(self, upstream, amount, progress=None):
        self._upstream = upstream
        self._amount = amount
        self._progress = progress or _Progress()

    def __call__(self):
        if self._progress.count >= self._amount:
            return END

        value = self._upstream()
        if value is not END and value is not SKIP:
            self._progress.count += 1
        return value

    def fork(self):
        return _Taken(_fork(self._upstream), self._amount, self._progress)


class _Skipped(_Stage):
    def __init__(self, upstream, amount, progress=None):
        self._upstream = upstream
        self._amount = amount
        self._progress = progress or _Progress()

    def __call__(self):
        value = self._upstream()
        if value is END or value is SKIP:
            return value

        if self._progress.count < self._amount:
            self._progress.count += 1
            return SKIP
        return value

    def fork(self):
        return _Skipped(_fork(self._upstream), self._amount, self._progress)


class _Appended(_Stage):
    def __init__(self, upstream, tail, progress=None):
        self._upstream = upstream
        self._tail = tail
        self._progress = progress or _Progress()

    def __call__(self):
        if not self._progress.done:
            value = self._upstream()
            if value is not END:
                return value
            self._progress.done = True

        return self._tail()

    def fork(self):
        return _Appended(_fork(self._upstream), _fork(self._tail), self._progress)


class _Prepended(_Stage):
    def __init__(self, upstream, head, progress=None):
        self._upstream = upstream
        self._head = head
        self._progress = progress or _Progress()

    def __call__(self):
        if not self._progress.done:
            value = self._head()
            if value is not END:
                return value
            self._progress.done = True

        return self._upstream()

    def fork(self):
        return _Prepended(_fork(self._upstream), _fork(self._head), self._progress)


def _terminal(method):
    """Mark the handle finished once a terminal method returns or raises."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        finally:
            self._finished = True

    return wrapper


class LazyIterator(Generic[T]):
    """
    Combines sequence operations into a single pull chain and only applies
    them when the chain is processed.

    Composition methods mutate and return this handle. Terminal methods
    process it, after which no more elements can be read from it: every
    later terminal call returns the empty result.

    ``clone()`` forks the position in the underlying source, but the
    counters of take/skip/append/prepend stages applied before the clone
    are shared, so two clones of ``it.take(3)`` draw on the same three
    elements.

    Elements may be any value, ``None`` included, except ``LazyIterator.End``.
    """

    Skip = SKIP
    End = END

    def __init__(self, next_item: Callable[[], Any]):
        self._next_item = next_item
        self._finished = False

    # --------- sources ----------
    @classmethod
    def from_sequence(cls, items) -> "LazyIterator":
        """Creates an iterator over an ordered collection"""
        if not isinstance(items, Sequence):
            items = list(items)
        return cls(_Cursor(items))

    @classmethod
    def from_keys(cls, mapping) -> "LazyIterator":
        """Creates an iterator from the keys of a mapping"""
        return cls(_Cursor(list(mapping.keys())))

    @classmethod
    def from_values(cls, mapping) -> "LazyIterator":
        """Creates an iterator from the values of a mapping"""
        return cls(_Cursor(list(mapping.values())))

    @classmethod
    def from_set(cls, members) -> "LazyIterator":
        """Creates an iterator from a set, in its native iteration order"""
        return cls(_Cursor(tuple(members)))

    @classmethod
    def from_tuple(cls, *values) -> "LazyIterator":
        """Creates an iterator from the given values"""
        return cls(_Cursor(values))

    # --------- chainable operators (lazy) ----------
    def map(self, transform: Callable[[T], Any]) -> "LazyIterator":
        """
        Transform each element. ``transform`` may return ``LazyIterator.Skip``
        to drop an element.
        """
        self._next_item = _Mapped(self._next_item, transform)
        return self

    def filter(self, predicate: Callable[[T], bool]) -> "LazyIterator[T]":
        self._next_item = _Filtered(self._next_item, predicate)
        return self

    def take(self, amount: int) -> "LazyIterator[T]":
        """End the sequence after ``amount`` elements"""
        self._next_item = _Taken(self._next_item, amount)
        return self

    def skip(self, amount: int) -> "LazyIterator[T]":
        """Drop the first ``amount`` elements"""
        self._next_item = _Skipped(self._next_item, amount)
        return self

    def append(self, *values) -> "LazyIterator[T]":
        """
        Continue with ``values`` once this sequence ends. A single
        ``LazyIterator`` argument is drained instead of being appended as
        a value.
        """
        self._next_item = _Appended(self._next_item, self._splice_source(values))
        return self

    def prepend(self, *values) -> "LazyIterator[T]":
        """Yield ``values`` (or another iterator's elements) first"""
        self._next_item = _Prepended(self._next_item, self._splice_source(values))
        return self

    def sort(self, comparator: Optional[Callable[[T, T], int]] = None, *,
             key: Optional[Callable[[T], Any]] = None,
             reverse: bool = False) -> "LazyIterator[T]":
        """
        **Note:** This clones the iterator and collects it into a list to sort.

        ``comparator(a, b)`` returns a negative number, zero or a positive
        number, and takes precedence over ``key``. Returns a new iterator.

        The clone shares the counters of earlier take/skip/append/prepend
        stages, so sorting ``it.take(2)`` uses up its budget and ``it``
        collects nothing afterwards.
        """
        items = self.clone().collect()
        logger.debug("Materialized %d items for sort", len(items))

        if comparator is not None:
            key = functools.cmp_to_key(comparator)
        items.sort(key=key, reverse=reverse)
        return type(self).from_sequence(items)

    # --------- terminal methods (process the iterator) ----------
    @_terminal
    def first(self) -> Optional[T]:
        for value in self._values():
            return value
        return None

    @_terminal
    def last(self) -> Optional[T]:
        last_value = None
        for value in self._values():
            last_value = value
        return last_value

    @_terminal
    def at(self, index: int) -> Optional[T]:
        """Element at ``index``, counting only elements that weren't skipped"""
        if index < 0:
            return None

        for current_index, value in enumerate(self._values()):
            if current_index == index:
                return value
        return None

    @_terminal
    def index_of(self, value: T) -> int:
        for current_index, current_value in enumerate(self._values()):
            if current_value == value:
                return current_index
        return -1

    def includes(self, value: T) -> bool:
        return self.some(lambda item, _: item == value)

    @_terminal
    def some(self, predicate: Callable[[T, int], bool]) -> bool:
        """Whether ``predicate(value, index)`` holds for any element"""
        for index, value in enumerate(self._values()):
            if predicate(value, index):
                return True
        return False

    @_terminal
    def every(self, predicate: Callable[[T, int], bool]) -> bool:
        """Whether ``predicate(value, index)`` holds for all elements"""
        for index, value in enumerate(self._values()):
            if not predicate(value, index):
                return False
        return True

    def find(self, predicate: Callable[[T], bool]) -> Optional[T]:
        return self.filter(predicate).first()

    def find_last(self, predicate: Callable[[T], bool]) -> Optional[T]:
        return self.filter(predicate).last()

    @_terminal
    def reduce(self, reducer: Callable[[T, T], T]) -> Optional[T]:
        """Reduce from left to right, seeded with the first element"""
        values = self._values()
        accumulation = next(values, END)
        if accumulation is END:
            return None

        for value in values:
            accumulation = reducer(accumulation, value)
        return accumulation

    @_terminal
    def fold(self, reducer: Callable[[Any, T], Any], initial: Any) -> Any:
        accumulation = initial
        for value in self._values():
            accumulation = reducer(accumulation, value)
        return accumulation

    @_terminal
    def join(self, separator: str = ", ") -> str:
        return separator.join(str(value) for value in self._values())

    @_terminal
    def size(self) -> int:
        count = 0
        for _ in self._values():
            count += 1
        return count

    @_terminal
    def collect(self, visitor: Optional[Callable[[T], Any]] = None) -> Optional[List[T]]:
        """
        Collect the elements into a list, or hand each one to ``visitor``
        and return None without building a list.
        """
        if visitor is None:
            return list(self._values())

        for value in self._values():
            visitor(value)
        return None

    def collect_into_set(self) -> Set[T]:
        return set(self.collect())

    @_terminal
    def equals(self, other: "LazyIterator[T]") -> bool:
        """
        Pairwise comparison by position, lengths included. ``other`` is read
        through a clone and is not marked processed.
        """
        theirs = other.clone()._values()
        for value in self._values():
            their_value = next(theirs, END)
            if their_value is END or their_value != value:
                return False
        return next(theirs, END) is END

    def __iter__(self) -> Iterator[T]:
        try:
            yield from self._values()
        finally:
            self._finished = True

    # --------- handle utilities ----------
    def clone(self) -> "LazyIterator[T]":
        """@returns An identical iterator"""
        cloned = type(self)(_fork(self._next_item))
        cloned._finished = self._finished
        return cloned

    def get_iterator(self) -> Callable[[], Any]:
        """Pull callable of a fresh clone; this iterator is left untouched"""
        return _HandlePull(self.clone())

    def is_processed(self) -> bool:
        """Whether or not the iterator has been processed"""
        return self._finished

    # --------- helpers ----------
    def _pull(self):
        if self._finished:
            return END

        value = self._next_item()
        if value is END:
            self._finished = True
        return value

    def _values(self):
        while True:
            value = self._pull()
            if value is END:
                return
            if value is not SKIP:
                yield value

    @staticmethod
    def _splice_source(values):
        if len(values) == 1 and isinstance(values[0], LazyIterator):
            return values[0].get_iterator()
        return _Cursor(values)
