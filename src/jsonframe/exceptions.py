"""Custom exceptions for jsonframe."""


class JsonFrameError(Exception):
    """Base class for jsonframe errors.

    Every error raised by the framing layer inherits from this, so callers
    can catch stream failures with a single except. JSON decode errors
    raised while validating or parsing a payload are not wrapped and
    surface as ``json.JSONDecodeError``.
    """


class InvalidArgumentError(JsonFrameError, ValueError):
    """A required argument was missing or out of range.

    Raised before any I/O takes place: a ``None`` or empty payload, a
    ``None`` underlying stream, or a size descriptor width below one.

    Attributes:
        param_name: Name of the offending parameter
    """

    def __init__(self, param_name: str, message: str) -> None:
        self.param_name = param_name
        super().__init__(f"{message} (parameter: {param_name})")


class ForbiddenOperationError(JsonFrameError):
    """The operation is not allowed on this stream.

    Raised when reading from a write-only stream, writing to a read-only
    stream, or calling an async method on a stream built with
    ``JsonStream.open``.
    """


class StreamClosedError(JsonFrameError):
    """The stream was used after it had been closed."""

    def __init__(self) -> None:
        super().__init__("Operation on a closed JsonStream")


class InvalidDocumentSizeLengthError(JsonFrameError):
    """The size descriptor of the next document could not be read.

    Raised when fewer bytes than the descriptor width were available
    (a truncated header), or when the header bytes are not a decimal
    number. In the latter case both counts stay at 0 and the parse failure
    is chained as ``__cause__``.

    Attributes:
        expected_document_size_length: Descriptor width the stream expects
        read_document_size_length: Number of descriptor bytes actually read
    """

    def __init__(
        self,
        message: str | None = None,
        expected_document_size_length: int = 0,
        read_document_size_length: int = 0,
    ) -> None:
        self.expected_document_size_length = expected_document_size_length
        self.read_document_size_length = read_document_size_length
        if message is None:
            message = (
                f"The expected DocumentSizeLength value {expected_document_size_length} "
                f"is different from the read value {read_document_size_length}"
            )
        super().__init__(message)


class InvalidJsonDocumentError(JsonFrameError):
    """A document payload is shorter than its size descriptor declares.

    Attributes:
        position: Byte offset where the payload read started
    """

    def __init__(self, message: str, position: int = 0) -> None:
        self.position = position
        super().__init__(message)
