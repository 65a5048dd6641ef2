"""Simulated memory manager, radix sort, hashing, profiling, file and task queue utilities."""

__version__ = "0.1.0"