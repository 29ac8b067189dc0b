# Disk Copy 4.2 checksum, per the Apple file type note:
#   For each data word (big-endian):
#       Add the word to the checksum
#       Rotate the 32-bit checksum right one bit (wrapping bit 0 to bit 31)

from typing import BinaryIO

import endian
from errors import DiskCopyIOError, OddByteCountError


CHUNK_SIZE = 1024


def check_even(byte_count: int) -> None:
    if byte_count % 2 != 0:
        raise OddByteCountError(f'Data size {byte_count} is not an even number of bytes.')


class DiskCopyChecksum(object):
    def __init__(self, initial_sum: int = 0):
        self.sum = initial_sum & 0xffffffff

    def update(self, word: int) -> int:
        s = (self.sum + (word & 0xffff)) & 0xffffffff
        if s & 1:
            self.sum = 0x80000000 | ((s >> 1) & 0x7fffffff)
        else:
            self.sum = (s >> 1) & 0x7fffffff
        return self.sum

    def update_from_block(self, buffer: bytes) -> int:
        check_even(len(buffer))
        for word in endian.words(buffer):
            self.update(word)
        return self.sum

    def update_from_file(self, f: BinaryIO, byte_count: int) -> int:
        """
        Feed byte_count bytes read from the current position of f.

        :raises OddByteCountError: byte_count is odd; nothing is read.
        :raises DiskCopyIOError: f ran out of data or the read failed.
        """
        check_even(byte_count)

        bytes_read = 0
        while bytes_read < byte_count:
            chunk_size = min(byte_count - bytes_read, CHUNK_SIZE)
            try:
                chunk = f.read(chunk_size)
            except OSError as e:
                raise DiskCopyIOError(f'Failed to read {chunk_size} bytes after {bytes_read} bytes read: {e}') from e
            if len(chunk) != chunk_size:
                raise DiskCopyIOError(
                    f'Failed to read {chunk_size} bytes after {bytes_read} bytes read, '
                    f'{byte_count - bytes_read} bytes remaining')
            self.update_from_block(chunk)
            bytes_read += chunk_size

        return self.sum
