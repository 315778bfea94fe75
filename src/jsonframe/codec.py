"""Fixed-width size descriptors that frame each document.

A descriptor is the payload length rendered as ASCII decimal digits and
left-padded with ``0`` to exactly ``width`` bytes::

    >>> encode_size(7, 8)
    b'00000007'
    >>> decode_size(b'00000007', 8)
    7
"""

from __future__ import annotations

from .exceptions import InvalidArgumentError, InvalidDocumentSizeLengthError

DEFAULT_DOCUMENT_SIZE_LENGTH = 8


def max_document_size(width: int) -> int:
    """Largest payload length a descriptor of ``width`` bytes can hold."""
    return 10**width - 1


def encode_size(length: int, width: int = DEFAULT_DOCUMENT_SIZE_LENGTH) -> bytes:
    """Render a payload length as a fixed-width descriptor.

    Args:
        length: Payload length in bytes
        width: Descriptor width in bytes

    Returns:
        Exactly ``width`` ASCII bytes

    Raises:
        InvalidArgumentError: If width < 1, length is negative, or length
            needs more than ``width`` digits
    """
    if width < 1:
        raise InvalidArgumentError(
            "width", "Please reserve at least one byte to represent the size of the document."
        )
    if length < 0:
        raise InvalidArgumentError("length", "Document length cannot be negative.")

    digits = str(length)
    if len(digits) > width:
        raise InvalidArgumentError(
            "length",
            f"Document of {length} bytes does not fit a {width}-byte size descriptor "
            f"(max {max_document_size(width)}).",
        )
    return digits.rjust(width, "0").encode("ascii")


def decode_size(raw: bytes, width: int = DEFAULT_DOCUMENT_SIZE_LENGTH) -> int | None:
    """Parse a descriptor read from the stream.

    Args:
        raw: The bytes that could be read, at most ``width`` of them
        width: Descriptor width in bytes

    Returns:
        The payload length, or None if ``raw`` is empty (end of stream)

    Raises:
        InvalidDocumentSizeLengthError: If ``raw`` is shorter than ``width``
            or is not a decimal number
    """
    if not raw:
        return None

    if len(raw) < width:
        raise InvalidDocumentSizeLengthError(
            expected_document_size_length=width,
            read_document_size_length=len(raw),
        )

    try:
        # space padding is accepted in place of zero padding
        text = raw.decode("ascii").lstrip(" ")
        if not text.isdigit():
            raise ValueError(f"Not a decimal size descriptor: {raw!r}")
    except ValueError as e:
        raise InvalidDocumentSizeLengthError("Error interpreting document size.") from e

    return int(text)
