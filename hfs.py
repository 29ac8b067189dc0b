# Very basic support for HFS floppy volumes: just enough of the Master Directory Block to size a volume and name it.
# https://developer.apple.com/library/archive/documentation/mac/pdf/Files/File_Manager.pdf
# ^ See "Master Directory Blocks" in chapter 2, Data Organization on Volumes

from ctypes import BigEndianStructure, c_ubyte, c_uint16, c_uint32, sizeof
from datetime import datetime, timedelta
from typing import BinaryIO

from errors import DiskCopyIOError, FormatError, PreconditionError, seek


HFS_BLOCK_SIZE = 512
HFS_SIGNATURE = 0x4244  # "BD"
MDB_OFFSET = 1024  # Logical block 2, after the two boot blocks.
MDB_SIZE = 512
VOLUME_NAME_SIZE = 27

MAC_EPOCH = datetime(1904, 1, 1)


def mac_time(seconds: int) -> datetime:
    return MAC_EPOCH + timedelta(seconds=seconds)


class HFSMasterDirectoryBlock(BigEndianStructure):
    _pack_ = 1
    _fields_ = [
        ('drSigWord',   c_uint16),
        ('drCrDate',    c_uint32),
        ('drLsMod',     c_uint32),
        ('drAtrb',      c_uint16),
        ('drNmFls',     c_uint16),
        ('drVBMSt',     c_uint16),
        ('drAllocPtr',  c_uint16),
        ('drNmAlBlks',  c_uint16),

        # Size of an allocation block in bytes, always a multiple of 512.
        ('drAlBlkSiz',  c_uint32),
        ('drClpSiz',    c_uint32),

        # First 512 byte block of the allocation block area. Everything before it is boot blocks, the MDB and
        # the volume bitmap.
        ('drAlBlSt',    c_uint16),
        ('drNxtCNID',   c_uint32),
        ('drFreeBks',   c_uint16),

        # Str27
        ('drVNLen',     c_ubyte),
        ('drVN',        c_ubyte * VOLUME_NAME_SIZE),

        ('drVolBkUp',   c_uint32),
        ('drVSeqNum',   c_uint16),
        ('drWrCnt',     c_uint32),
        ('drXTClpSiz',  c_uint32),
        ('drCTClpSiz',  c_uint32),
        ('drNmRtDirs',  c_uint16),
        ('drFilCnt',    c_uint32),
        ('drDirCnt',    c_uint32),

        # Finder info, cache sizes and the extents/catalog file records. Not needed here.
        ('_rest',       c_ubyte * 420),
    ]

    def valid(self) -> int:
        """
        Checks for basic validity.

        :return: Declared size of the volume in 512 byte blocks.
        """
        if self.drSigWord != HFS_SIGNATURE:
            raise FormatError(f'Signature {self.drSigWord:x} did not match magic number {HFS_SIGNATURE:x}')

        if self.drAlBlkSiz % HFS_BLOCK_SIZE != 0:
            raise FormatError(
                f'Declared allocation size {self.drAlBlkSiz} not a multiple of block size {HFS_BLOCK_SIZE}')

        # Two blocks at the end of the volume are outside the allocation area:
        # a backup copy of the MDB, and one reserved by Apple.
        non_allocated_blocks = self.drAlBlSt + 2
        allocation_blocks = (self.drAlBlkSiz // HFS_BLOCK_SIZE) * self.drNmAlBlks
        return non_allocated_blocks + allocation_blocks

    def volume_name(self) -> str:
        # Should also check valid() before relying on this.
        if self.drVNLen > VOLUME_NAME_SIZE:
            raise PreconditionError(
                f'Declared volume name length {self.drVNLen} > maximum {VOLUME_NAME_SIZE}')
        return bytes(self.drVN[:self.drVNLen]).decode('mac_roman')

    def describe(self) -> str:
        name = bytes(self.drVN[:min(self.drVNLen, VOLUME_NAME_SIZE)]).decode('mac_roman')
        lines = [
            f'name[{self.drVNLen}]: {name}',
            f'created {mac_time(self.drCrDate)}, modified {mac_time(self.drLsMod)}',
            f'{self.drNmAlBlks} allocation blocks each {self.drAlBlkSiz} bytes',
            f'{self.drAlBlSt} first allocation block',
            f'{self.drFreeBks} free allocation blocks',
            f'{self.drFilCnt} files, {self.drDirCnt} directories',
        ]
        return '\n'.join(lines)


def read_mdb(f: BinaryIO) -> HFSMasterDirectoryBlock:
    """Seeks a raw volume image to its Master Directory Block and reads it."""
    seek(f, MDB_OFFSET, 'HFS Master Directory Block')

    mdb = HFSMasterDirectoryBlock()
    try:
        count = f.readinto(mdb)
    except OSError as e:
        raise DiskCopyIOError(f'Could not read HFS Master Directory Block: {e}') from e
    if count != MDB_SIZE:
        raise DiskCopyIOError(f'Could not read {MDB_SIZE} bytes of HFS Master Directory Block, got {count or 0}')
    return mdb


if sizeof(HFSMasterDirectoryBlock) != MDB_SIZE:
    raise ValueError('ASSERTION FAILED! sizeof(HFSMasterDirectoryBlock) != 512')
