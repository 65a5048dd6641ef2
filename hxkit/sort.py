"""Insertion sort, binary search and a radix sort over 32-bit keys."""

from __future__ import annotations

import enum
import operator
import struct
from itertools import chain
from typing import Any, Callable, Generic, Iterator, MutableSequence, Sequence, TypeVar

T = TypeVar("T")
V = TypeVar("V")

RADIX_SORT_MIN_SIZE = 50

_MASK32 = 0xFFFFFFFF
_SIGN32 = 0x80000000
_RADIX_BITS = 8
_RADIX_BUCKETS = 1 << _RADIX_BITS


def insertion_sort(
    items: MutableSequence[T], less: Callable[[T, T], bool] = operator.lt
) -> None:
    """Sort ``items`` in place; ``less(a, b)`` is true when a orders before b."""
    for j in range(1, len(items)):
        value = items[j]
        if less(items[j - 1], value):
            continue
        i = j
        while i > 0 and not less(items[i - 1], value):
            items[i] = items[i - 1]
            i -= 1
        items[i] = value


def binary_search(
    items: Sequence[T], value: T, less: Callable[[T, T], bool] = operator.lt
) -> int | None:
    """Index of an element equal to ``value`` in sorted ``items``, or None."""
    low, high = 0, len(items) - 1
    while low <= high:
        mid = low + (high - low) // 2
        if not less(value, items[mid]):
            if not less(items[mid], value):
                return mid
            low = mid + 1
        else:
            high = mid - 1
    return None


class KeyKind(enum.Enum):
    """Key types accepted by the radix sort."""

    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    FLOAT = "float"


_INTEGER_RANGES = {
    KeyKind.UINT8: (0, 0xFF),
    KeyKind.UINT16: (0, 0xFFFF),
    KeyKind.UINT32: (0, _MASK32),
    KeyKind.INT8: (-0x80, 0x7F),
    KeyKind.INT16: (-0x8000, 0x7FFF),
    KeyKind.INT32: (-0x80000000, 0x7FFFFFFF),
}


def radix_key(key: Any, kind: KeyKind) -> int:
    """Map ``key`` to an unsigned 32-bit value with the same ordering."""
    kind = KeyKind(kind)
    if kind is KeyKind.FLOAT:
        try:
            (bits,) = struct.unpack("<I", struct.pack("<f", key))
        except OverflowError as exc:
            raise ValueError(f"key {key!r} does not fit a 32-bit float") from exc
        # Negative floats flip every bit, non-negative ones flip only the sign.
        return bits ^ _MASK32 if bits & _SIGN32 else bits ^ _SIGN32
    low, high = _INTEGER_RANGES[kind]
    key = operator.index(key)
    if not low <= key <= high:
        raise ValueError(f"key {key} out of range for {kind.value}")
    if low < 0:
        return (key & _MASK32) ^ _SIGN32
    return key


def _key_less(a: tuple[int, Any], b: tuple[int, Any]) -> bool:
    return a[0] < b[0]


def _distribute(pairs: list[tuple[int, V]], shift: int) -> list[tuple[int, V]]:
    buckets: list[list[tuple[int, V]]] = [[] for _ in range(_RADIX_BUCKETS)]
    for pair in pairs:
        buckets[(pair[0] >> shift) & (_RADIX_BUCKETS - 1)].append(pair)
    return list(chain.from_iterable(buckets))


class RadixSort(Generic[V]):
    """Sorts values by keys of one ``KeyKind``; iteration yields the values."""

    def __init__(self, kind: KeyKind) -> None:
        self.kind = KeyKind(kind)
        self._pairs: list[tuple[int, V]] = []

    def insert(self, key: Any, value: V) -> None:
        """Add ``value`` under ``key``."""
        self._pairs.append((radix_key(key, self.kind), value))

    def sort(self) -> None:
        """Order the stored values by ascending key."""
        if len(self._pairs) <= RADIX_SORT_MIN_SIZE:
            insertion_sort(self._pairs, _key_less)
            return
        pairs = _distribute(self._pairs, 0)
        pairs = _distribute(pairs, 8)
        if any(key >> 16 for key, _ in pairs):
            pairs = _distribute(pairs, 16)
            pairs = _distribute(pairs, 24)
        self._pairs[:] = pairs

    def clear(self) -> None:
        self._pairs.clear()

    def get(self, index: int) -> V:
        return self._pairs[index][1]

    def __getitem__(self, index: int) -> V:
        return self._pairs[index][1]

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[V]:
        return (value for _, value in self._pairs)