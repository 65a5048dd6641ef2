"""System-wide allocators over a simulated address space.

Addresses are plain integers. Each allocator hands out aligned addresses
from its own range and keeps the counts the memory manager reports.
"""

from __future__ import annotations

import abc
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_ALIGNMENT_MASK = 7
"""Mask of low address bits that must be zero; enough to store a pointer."""

_HEADER_SIZE = 24


class MemoryManagerId(enum.IntEnum):
    """Selects one of the system-wide allocators."""

    CURRENT = -1
    HEAP = 0
    PERMANENT = 1
    TEMPORARY_STACK = 2
    SCRATCH_PAGE0 = 3
    SCRATCH_PAGE1 = 4
    SCRATCH_PAGE2 = 5
    SCRATCH_TEMP = 6
    SCRATCH_ALL = 7
    MAX = 8
    CONSOLE = 0


class AllocationError(RuntimeError):
    """An allocator was used in a way that corrupts its bookkeeping."""


class _ScopeLike(Protocol):
    previous_allocation_count: int
    previous_bytes_allocated: int


def _check_alignment_mask(alignment_mask: int) -> None:
    if alignment_mask < 0 or (alignment_mask + 1) & alignment_mask:
        raise ValueError(
            f"alignment mask {alignment_mask:#x} is not one less than a power of two"
        )


class Allocator(abc.ABC):
    """Common interface of the system-wide allocators."""

    def __init__(self, label: str) -> None:
        self.label = label

    def allocate(
        self, size: int, alignment_mask: int = DEFAULT_ALIGNMENT_MASK
    ) -> Optional[int]:
        """Return an aligned address for ``size`` bytes, or None when full."""
        if size < 0:
            raise ValueError(f"negative allocation size {size}")
        _check_alignment_mask(alignment_mask)
        # Zero-sized requests still get unique addresses.
        return self._on_alloc(max(size, 1), alignment_mask)

    def begin_scope(self, scope: _ScopeLike, new_id: MemoryManagerId) -> None:
        """Called when a scope makes this allocator current."""

    def end_scope(self, scope: _ScopeLike, old_id: MemoryManagerId) -> None:
        """Called when a scope that made this allocator current closes."""

    @abc.abstractmethod
    def allocation_count(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        """Number of live allocations."""

    @abc.abstractmethod
    def bytes_allocated(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        """Number of bytes currently allocated."""

    @abc.abstractmethod
    def high_water(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        """Largest number of bytes allocated at once."""

    @abc.abstractmethod
    def _on_alloc(self, size: int, alignment_mask: int) -> Optional[int]:
        """Allocate ``size`` (at least 1) bytes."""


class OsHeapAllocator(Allocator):
    """General heap: every block carries a header and alignment padding."""

    _next_address = 1 << 40
    _address_lock = threading.Lock()

    def __init__(self, label: str) -> None:
        super().__init__(label)
        self._sizes: dict[int, int] = {}
        self._bytes_allocated = 0
        self._high_water = 0

    def allocation_count(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        return len(self._sizes)

    def bytes_allocated(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        return self._bytes_allocated

    def high_water(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        return self._high_water

    def _on_alloc(self, size: int, alignment_mask: int) -> int:
        alignment_mask = max(alignment_mask, DEFAULT_ALIGNMENT_MASK)
        span = size + _HEADER_SIZE + alignment_mask
        with OsHeapAllocator._address_lock:
            actual = OsHeapAllocator._next_address
            OsHeapAllocator._next_address += span
        aligned = (actual + _HEADER_SIZE + alignment_mask) & ~alignment_mask
        self._sizes[aligned] = size
        self._bytes_allocated += size
        self._high_water = max(self._high_water, self._bytes_allocated)
        logger.debug(
            "%s: %d at %#x (count %d, bytes %d)",
            self.label, size, aligned, len(self._sizes), self._bytes_allocated,
        )
        return aligned

    def free(self, address: Optional[int]) -> None:
        """Return a block; None is ignored."""
        if address is None:
            return
        if not self._sizes:
            raise AllocationError(f"{self.label}: free with no live allocations")
        try:
            size = self._sizes.pop(address)
        except KeyError:
            raise AllocationError("heap free corrupt") from None
        self._bytes_allocated -= size
        logger.debug(
            "%s: -%d at %#x (count %d, bytes %d)",
            self.label, size, address, len(self._sizes), self._bytes_allocated,
        )


class StackAllocator(Allocator):
    """Bump allocator over a fixed range; space is never reused."""

    def __init__(self, base: int, size: int, label: str) -> None:
        super().__init__(label)
        if size < 0:
            raise ValueError(f"negative stack size {size}")
        self._begin = base
        self._end = base + size
        self._current = base
        self._allocation_count = 0

    def contains(self, address: Optional[int]) -> bool:
        return address is not None and self._begin <= address < self._end

    def allocation_count(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        return self._allocation_count

    def bytes_allocated(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        return self._current - self._begin

    def high_water(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        return self._current - self._begin

    def release(self) -> int:
        """Give up the backing range and return its base address."""
        base = self._begin
        self._begin = 0
        return base

    def _on_alloc(self, size: int, alignment_mask: int) -> Optional[int]:
        aligned = (self._current + alignment_mask) & ~alignment_mask
        if aligned + size > self._end:
            return None
        self._allocation_count += 1
        self._current = aligned + size
        return aligned

    def free(self, address: int) -> None:
        """Account for a freed block; the space itself is not reclaimed."""
        if not (
            self._allocation_count > 0 and self._begin <= address < self._current
        ):
            raise AllocationError(f"unexpected free: {self.label}")
        self._allocation_count -= 1


class TempStackAllocator(StackAllocator):
    """Stack allocator that rewinds to its previous depth when a scope closes."""

    def __init__(self, base: int, size: int, label: str) -> None:
        super().__init__(base, size, label)
        self._high_water = 0

    def high_water(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        self._high_water = max(self._high_water, self._current - self._begin)
        return self._high_water

    def end_scope(self, scope: _ScopeLike, old_id: MemoryManagerId) -> None:
        self.high_water()
        leaked = self._allocation_count - scope.previous_allocation_count
        if leaked:
            raise AllocationError(f"{self.label} leaked {leaked} allocations")
        previous_current = self._begin + scope.previous_bytes_allocated
        if previous_current > self._end:
            raise AllocationError("error resetting temp stack")
        self._allocation_count = scope.previous_allocation_count
        self._current = previous_current


@dataclass
class _Section:
    begin: int
    end: int
    current: Optional[int] = None
    allocation_count: int = 0
    high_water: int = 0

    @property
    def is_open(self) -> bool:
        return self.current is not None


_SCRATCH_SECTIONS = MemoryManagerId.SCRATCH_ALL - MemoryManagerId.SCRATCH_PAGE0 + 1


class ScratchpadAllocator(Allocator):
    """Three pages, a temp area and an "all" view; allocations may leak.

    Each section is reset when its scope closes. The "all" section spans the
    whole pad and may not be open together with any other section.
    """

    def __init__(self, base: int, page_size: int, temp_size: int, label: str) -> None:
        super().__init__(label)
        if page_size < 0 or temp_size < 0:
            raise ValueError("scratchpad section sizes must not be negative")
        sizes = (page_size, page_size, page_size, temp_size)
        self._sections: list[_Section] = []
        current = base
        for size in sizes:
            self._sections.append(_Section(current, current + size, high_water=current))
            current += size
        self._sections.append(_Section(base, current, high_water=base))
        self._current_section: int = 0

    def _section_index(self, id: MemoryManagerId) -> int:
        index = int(id) - MemoryManagerId.SCRATCH_PAGE0
        if not 0 <= index < _SCRATCH_SECTIONS:
            raise ValueError(f"{id!r} is not a scratchpad id")
        return index

    def begin_scope(self, scope: _ScopeLike, new_id: MemoryManagerId) -> None:
        index = self._section_index(new_id)
        section = self._sections[index]
        if section.is_open:
            raise AllocationError("reopening scratchpad allocator")
        all_index = _SCRATCH_SECTIONS - 1
        if index == all_index:
            if any(s.is_open for s in self._sections[:all_index]):
                raise AllocationError("scratchpad all is exclusive")
        elif self._sections[all_index].is_open:
            raise AllocationError("scratchpad all is exclusive")
        self._current_section = index
        section.current = section.begin
        section.allocation_count = 0

    def end_scope(self, scope: _ScopeLike, old_id: MemoryManagerId) -> None:
        if not 0 <= self._current_section < _SCRATCH_SECTIONS:
            raise AllocationError("no open scope for scratchpad allocator")
        section = self._sections[self._current_section]
        if section.current is None:
            raise AllocationError("no open scope for scratchpad allocator")
        section.high_water = max(section.high_water, section.current)
        section.current = None
        section.allocation_count = 0
        # The previous allocator may not be a scratchpad section at all.
        self._current_section = int(old_id) - MemoryManagerId.SCRATCH_PAGE0

    def contains(self, address: Optional[int]) -> bool:
        return (
            address is not None
            and self._sections[0].begin <= address < self._sections[-1].end
        )

    def allocation_count(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        return self._sections[self._section_index(id)].allocation_count

    def bytes_allocated(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        section = self._sections[self._section_index(id)]
        return section.current - section.begin if section.current is not None else 0

    def high_water(self, id: MemoryManagerId = MemoryManagerId.CURRENT) -> int:
        section = self._sections[self._section_index(id)]
        return section.high_water - section.begin

    def _on_alloc(self, size: int, alignment_mask: int) -> Optional[int]:
        index = self._current_section
        if not 0 <= index < _SCRATCH_SECTIONS or not self._sections[index].is_open:
            raise AllocationError(f"no open scope for scratchpad allocator {index}")
        section = self._sections[index]
        assert section.current is not None
        aligned = (section.current + alignment_mask) & ~alignment_mask
        if aligned + size > section.end:
            logger.warning(
                "%s overflow allocating %d bytes in section %d with %d bytes available",
                self.label, size, index, section.end - section.current,
            )
            return None
        section.allocation_count += 1
        section.current = aligned + size
        return aligned