"""Binary file access that raises on failure unless opened as fallible."""

from __future__ import annotations

import enum
import os
from typing import BinaryIO, Optional, Union

PathLike = Union[str, "os.PathLike[str]"]


class OpenMode(enum.IntFlag):
    """How a file is opened. ``FALLIBLE`` turns errors into a cleared ``good`` flag."""

    NONE = 0
    IN = 1
    OUT = 2
    FALLIBLE = 4


class File:
    """A binary file stream with line reading and text printing.

    Failures raise ``OSError`` (``EOFError`` for short reads) unless the file was
    opened with ``OpenMode.FALLIBLE``; either way ``good`` becomes false.
    """

    def __init__(
        self, mode: OpenMode = OpenMode.NONE, filename: Optional[PathLike] = None
    ) -> None:
        self._stream: Optional[BinaryIO] = None
        self._mode = OpenMode(mode)
        self._good = False
        self._eof = False
        if filename is not None:
            self.open(mode, filename)

    def open(self, mode: OpenMode, filename: PathLike) -> bool:
        """Open ``filename``; returns False only for a fallible open that failed."""
        self.close()
        mode = OpenMode(mode)
        self._mode = mode
        self._eof = False
        if mode & OpenMode.IN and mode & OpenMode.OUT:
            access = "r+b"
        elif mode & OpenMode.IN:
            access = "rb"
        elif mode & OpenMode.OUT:
            access = "wb"
        else:
            raise ValueError("open mode needs IN or OUT")
        try:
            self._stream = open(filename, access)
        except OSError:
            self._good = False
            if mode & OpenMode.FALLIBLE:
                return False
            raise
        self._good = True
        return True

    def close(self) -> None:
        """Close the stream if it is open."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        self._good = False
        self._eof = False

    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def good(self) -> bool:
        """False once any operation has failed."""
        return self._good

    @property
    def eof(self) -> bool:
        """True once the end of the file has been reached."""
        return self._eof

    @property
    def mode(self) -> OpenMode:
        return self._mode

    def clear(self) -> None:
        """Reset the error and end-of-file flags."""
        self._good = self._stream is not None
        self._eof = False

    def _fail(self, error: Exception) -> None:
        self._good = False
        if not self._mode & OpenMode.FALLIBLE:
            raise error

    def _require(self, needed: OpenMode) -> Optional[BinaryIO]:
        if self._stream is None or not self._mode & needed:
            self._fail(OSError(f"file not open for {needed.name.lower()}"))
            return None
        return self._stream

    def read(self, count: int) -> bytes:
        """Read exactly ``count`` bytes; a short read is an error."""
        stream = self._require(OpenMode.IN)
        if stream is None:
            return b""
        data = stream.read(count)
        if len(data) < count:
            self._eof = True
            self._fail(EOFError(f"read {len(data)} of {count} bytes"))
        return data

    def write(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""
        stream = self._require(OpenMode.OUT)
        if stream is None:
            return 0
        written = stream.write(data) or 0
        if written != len(data):
            self._fail(OSError(f"wrote {written} of {len(data)} bytes"))
        return written

    def get_line(self) -> Optional[str]:
        """Read a line ended by a newline or the end of file, without the newline.

        Returns None at the end of file; that is not treated as an error.
        """
        stream = self._require(OpenMode.IN)
        if stream is None:
            return None
        line = stream.readline()
        if not line:
            self._eof = True
            self._good = False
            return None
        if line.endswith(b"\n"):
            line = line[:-1]
        else:
            self._eof = True
        return line.decode("utf-8")

    def print(self, text: str) -> bool:
        """Write ``text`` encoded as UTF-8."""
        data = text.encode("utf-8")
        return self.write(data) == len(data)

    def __enter__(self) -> File:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()