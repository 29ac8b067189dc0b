from typing import BinaryIO


class DiskCopyError(Exception):
    """Base class for errors reading or writing Disk Copy images."""


class InvalidArgument(DiskCopyError, ValueError):
    pass


class FormatError(DiskCopyError, ValueError):
    pass


class OddByteCountError(FormatError):
    """Checksums are computed over 16-bit words, so byte counts must be even."""


class PreconditionError(DiskCopyError):
    pass


class DiskCopyIOError(DiskCopyError, IOError):
    pass


class ChecksumMismatch(DiskCopyError):
    def __init__(self, message: str, computed: int, expected: int):
        super().__init__(message)
        self.computed = computed
        self.expected = expected


def seek(f: BinaryIO, offset: int, what: str):
    try:
        f.seek(offset)
    except OSError as e:
        raise DiskCopyIOError(f'Could not seek to {what} at byte {offset}: {e}') from e
