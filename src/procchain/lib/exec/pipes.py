"""OS pipe connecting one stage's stdout to the next stage's stdin."""

from __future__ import annotations

import os


class PipeLink:
    """An ``os.pipe()`` pair shared by two adjacent stages.

    The upstream stage is the only writer and the downstream stage the only
    reader. The parent process holds a copy of each end until the owning
    child has been spawned; closing either end twice is a no-op.
    """

    def __init__(self, index: int) -> None:
        self.index = index
        self._read_fd, self._write_fd = os.pipe()
        self._read_closed = False
        self._write_closed = False

    def __repr__(self) -> str:
        return (
            f"PipeLink(index={self.index}, read_closed={self._read_closed}, "
            f"write_closed={self._write_closed})"
        )

    @property
    def read_fd(self) -> int:
        if self._read_closed:
            raise ValueError(f"read end of pipe {self.index} is closed")
        return self._read_fd

    @property
    def write_fd(self) -> int:
        if self._write_closed:
            raise ValueError(f"write end of pipe {self.index} is closed")
        return self._write_fd

    @property
    def read_closed(self) -> bool:
        return self._read_closed

    @property
    def write_closed(self) -> bool:
        return self._write_closed

    @property
    def closed(self) -> bool:
        return self._read_closed and self._write_closed

    def close_read(self) -> None:
        if self._read_closed:
            return
        self._read_closed = True
        os.close(self._read_fd)

    def close_write(self) -> None:
        if self._write_closed:
            return
        self._write_closed = True
        os.close(self._write_fd)

    def close(self) -> None:
        self.close_write()
        self.close_read()
