"""Data models for jsonframe."""

from dataclasses import dataclass
from enum import Enum


class AccessMode(str, Enum):
    """Which directions a JsonStream may transfer documents in."""

    READ_ONLY = "ReadOnly"
    WRITE_ONLY = "WriteOnly"
    READ_AND_WRITE = "ReadAndWrite"

    @property
    def can_read(self) -> bool:
        return self is not AccessMode.WRITE_ONLY

    @property
    def can_write(self) -> bool:
        return self is not AccessMode.READ_ONLY


@dataclass(frozen=True, slots=True)
class DocumentInfo:
    """Location of a single framed document in the stream.

    Attributes:
        offset: Byte offset of the size descriptor
        size: Length of the payload in bytes (descriptor excluded)
        document_size_length: Width of the size descriptor in bytes
    """

    offset: int
    size: int
    document_size_length: int

    @property
    def end(self) -> int:
        """Byte offset just past the payload."""
        return self.offset + self.document_size_length + self.size


@dataclass
class StreamInfo:
    """Summary of a framed file, as reported by ``jsonframe info``.

    Attributes:
        file_path: Absolute path to the file
        file_size: Size of the file in bytes
        document_count: Number of documents in the file
        payload_bytes: Sum of all payload sizes
        document_size_length: Width of the size descriptor used to scan
    """

    file_path: str
    file_size: int
    document_count: int
    payload_bytes: int
    document_size_length: int
