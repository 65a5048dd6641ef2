"""String and integer hashes used by hash table nodes."""

from __future__ import annotations

from typing import Union

_MASK32 = 0xFFFFFFFF
_FNV_PRIME = 0x01000193
_FNV_OFFSET = 0x811C9DC5
_INTEGER_MULTIPLIER = 0x61C88647
_LITERAL_HASH_LIMIT = 192

StrLike = Union[str, bytes]


def _char_values(s: StrLike) -> list[int]:
    """Bytes of ``s`` widened the way a signed char widens to 32 bits."""
    data = s.encode("utf-8") if isinstance(s, str) else bytes(s)
    return [b | 0xFFFFFF00 if b & 0x80 else b for b in data]


def string_literal_hash_debug(s: StrLike) -> int:
    """Run-time string literal hash over at most the first 192 characters."""
    x = 0
    for c in reversed(_char_values(s)[:_LITERAL_HASH_LIMIT]):
        x = ((_FNV_PRIME * x) & _MASK32) ^ c
    return x


def fnv1a_hash(s: StrLike) -> int:
    """32-bit FNV-1a hash of a string."""
    x = _FNV_OFFSET
    for c in _char_values(s):
        x ^= c
        x = (x * _FNV_PRIME) & _MASK32
    return x


def integer_hash(key: int) -> int:
    """Multiplicative hash of an integer truncated to 32 bits."""
    return ((key & _MASK32) * _INTEGER_MULTIPLIER) & _MASK32


class IntegerNode:
    """Hash table node keyed by an integer."""

    __slots__ = ("key",)

    def __init__(self, key: int) -> None:
        self.key = key

    def hash(self) -> int:
        return integer_hash(self.key)

    def key_equal(self, key: int, key_hash: int) -> bool:
        return self.key == key

    def __repr__(self) -> str:
        return f"IntegerNode({self.key!r})"


class StringNode:
    """Hash table node keyed by a string, caching its FNV-1a hash."""

    __slots__ = ("key", "_hash")

    def __init__(self, key: str, hash_value: int | None = None) -> None:
        self.key = key
        self._hash = fnv1a_hash(key) if hash_value is None else hash_value

    def hash(self) -> int:
        return self._hash

    def key_equal(self, key: str, key_hash: int) -> bool:
        return self._hash == key_hash and self.key == key

    def __repr__(self) -> str:
        return f"StringNode({self.key!r})"