"""Readable byte sources for chunk transmission."""

import os
from pathlib import Path
from typing import Protocol, Union


class FileSource(Protocol):
    """Random-access source of upload bytes."""

    @property
    def size(self) -> int: ...

    def read(self, offset: int, length: int) -> bytes: ...


class LocalFileSource:
    """Reads byte ranges from a file on disk, opening it per read."""

    def __init__(self, path: Union[str, Path]):
        """
        Initialize local file source.

        Args:
            path: Path to the file to upload
        """
        self.path = Path(path)

    @property
    def size(self) -> int:
        return os.path.getsize(self.path)

    @property
    def name(self) -> str:
        return self.path.name

    def read(self, offset: int, length: int) -> bytes:
        """
        Read up to length bytes starting at offset.

        Args:
            offset: Absolute byte offset in the file
            length: Number of bytes to read

        Returns:
            Bytes read (shorter only at end of file)
        """
        with open(self.path, 'rb') as f:
            f.seek(offset)
            return f.read(length)


class BytesSource:
    """In-memory source, used for small payloads and tests."""

    def __init__(self, data: bytes):
        self._data = memoryview(data)

    @property
    def size(self) -> int:
        return len(self._data)

    def read(self, offset: int, length: int) -> bytes:
        return bytes(self._data[offset:offset + length])
