# https://www.discferret.com/wiki/Apple_DiskCopy_4.2

from ctypes import BigEndianStructure, c_ubyte, c_uint32, c_uint16, sizeof
from typing import BinaryIO, Union

from checksum import DiskCopyChecksum
from errors import ChecksumMismatch, DiskCopyIOError, FormatError, InvalidArgument, seek


HEADER_LENGTH = 84
NAME_SIZE = 63
MAGIC_NUMBER = 0x0100
HFS_BLOCK_SIZE = 512

# Disk format code. 0 and 1 are GCR (Mac), 2 and 3 are MFM (PC).
DISK_FORMATS = {
    0: '400k',
    1: '800k',
    2: '720k',
    3: '1440k',
}

# For GCR disks the format byte is a copy of the 6 bit format nybble from the sector headers:
# low 5 bits are the interleave, bit 5 is set for two sided disks.
# For MFM disks the low 5 bits are the sector size in units of 256 bytes.
FORMAT_BYTES = {
    0x02: '400k (alternate)',
    0x12: '400k',  # Apple File Type Note
    0x22: '>400k',
    0x24: '800k Apple II',
}

# HFS block count -> (disk format code, format byte)
HFS_GEOMETRIES = {
    800: (0, 0x12),
    1600: (1, 0x22),
    1440: (2, 0x22),
    2880: (3, 0x22),
}


class DiskCopyImageHeader(BigEndianStructure):
    """
    The 84 byte header at the start of a Disk Copy 4.2 image.

    The header is followed by data_size bytes of sector data, then tag_size bytes of tag data
    (12 bytes per 512 byte sector, in sector order, often absent).
    """
    _pack_ = 1
    _fields_ = [
        ('name_length',   c_ubyte),
        ('name',          c_ubyte * NAME_SIZE),
        ('data_size',     c_uint32),
        ('tag_size',      c_uint32),
        ('data_checksum', c_uint32),
        ('tag_checksum',  c_uint32),
        ('disk_type',     c_ubyte),
        ('format',        c_ubyte),
        ('magic_number',  c_uint16),
    ]

    def __init__(self):
        super().__init__()
        self.magic_number = MAGIC_NUMBER

    @classmethod
    def from_bytes(cls, raw: bytes) -> 'DiskCopyImageHeader':
        if len(raw) != HEADER_LENGTH:
            raise DiskCopyIOError(f'Header must be {HEADER_LENGTH} bytes, got {len(raw)}')
        return cls.from_buffer_copy(raw)

    @classmethod
    def read_from(cls, f: BinaryIO) -> 'DiskCopyImageHeader':
        """Seeks to the start of f and reads the header, leaving f positioned at the start of the data."""
        seek(f, 0, 'DiskCopy header')
        header = cls()
        try:
            count = f.readinto(header)
        except OSError as e:
            raise DiskCopyIOError(f'Could not read {HEADER_LENGTH} byte DiskCopy header: {e}') from e
        if count != HEADER_LENGTH:
            raise DiskCopyIOError(f'Could not read {HEADER_LENGTH} bytes, only {count or 0} available')
        return header

    def write_to(self, f: BinaryIO):
        """Writes the header at the current position of f. Does NOT seek first."""
        try:
            count = f.write(bytes(self))
        except OSError as e:
            raise DiskCopyIOError(f'Could not write DiskCopy header: {e}') from e
        if count != HEADER_LENGTH:
            raise DiskCopyIOError(f'Could not write DiskCopy header, wrote {count} of {HEADER_LENGTH} bytes')

    @classmethod
    def create_for_hfs(cls, name: Union[str, bytes], data_block_count: int, data_checksum: int,
                       tag_byte_count: int = 0, tag_checksum: int = 0) -> 'DiskCopyImageHeader':
        """
        Create a header for an HFS floppy.

        :param name: Volume name, at most 63 bytes once encoded as Mac Roman.
        :param data_block_count: Size of the volume in 512 byte blocks. Must be a 400k, 800k, 720k or 1440k floppy.
        :param data_checksum: Checksum of the data region.
        """
        if isinstance(name, str):
            try:
                name = name.encode('mac_roman')
            except UnicodeEncodeError as e:
                raise InvalidArgument(f"name '{name}' can not be encoded as Mac Roman") from e

        if len(name) > NAME_SIZE:
            raise InvalidArgument(
                f"name '{name.decode('mac_roman')}' length {len(name)} is longer than the DC42 maximum {NAME_SIZE}")

        geometry = HFS_GEOMETRIES.get(data_block_count)
        if geometry is None:
            raise InvalidArgument(
                f'HFS data block count {data_block_count} is not a recognized floppy geometry')

        header = cls()
        header.name_length = len(name)
        header.name[:len(name)] = name
        header.data_size = data_block_count * HFS_BLOCK_SIZE
        header.tag_size = tag_byte_count
        header.data_checksum = data_checksum
        header.tag_checksum = tag_checksum
        header.disk_type, header.format = geometry
        return header

    def total_file_size(self) -> int:
        return HEADER_LENGTH + self.data_size + self.tag_size

    def validate(self) -> int:
        """Checks the header for validity and returns the total file size it describes."""
        if self.name_length > NAME_SIZE:
            raise FormatError(f'Invalid name length {self.name_length}')
        if self.disk_type not in DISK_FORMATS:
            raise FormatError(f'Unknown Disk Format Byte={self.disk_type}')
        if self.format not in FORMAT_BYTES:
            raise FormatError(f'Unknown Format Byte=0x{self.format:02x}')
        if self.magic_number != MAGIC_NUMBER:
            raise FormatError(f'Invalid Magic Number 0x{self.magic_number:x} != 0x{MAGIC_NUMBER:x}')
        if self.data_size % 2 != 0:
            raise FormatError(f'Data size {self.data_size} is not an even number of bytes.')
        return self.total_file_size()

    def verify_data_checksum(self, f: BinaryIO):
        self.validate()
        self._verify_region(f, HEADER_LENGTH, self.data_size, self.data_checksum, 'data')

    def verify_tag_checksum(self, f: BinaryIO):
        """As verify_data_checksum, but always succeeds without reading if there are no tags."""
        self.validate()
        if self.tag_size == 0:
            return
        self._verify_region(f, HEADER_LENGTH + self.data_size, self.tag_size, self.tag_checksum, 'tag')

    def _verify_region(self, f: BinaryIO, offset: int, size: int, expected: int, region: str):
        seek(f, offset, f'{region} region')
        computed = DiskCopyChecksum().update_from_file(f, size)
        if computed != expected:
            raise ChecksumMismatch(
                f'Computed {region} checksum {computed:08x} does not match header sum {expected:08x}',
                computed, expected)

    def read_data(self, f: BinaryIO, verify_checksum: bool = False) -> bytes:
        self.validate()
        seek(f, HEADER_LENGTH, 'data region')

        try:
            data = f.read(self.data_size)
        except OSError as e:
            raise DiskCopyIOError(f'Could not read {self.data_size} data bytes: {e}') from e
        if len(data) != self.data_size:
            raise DiskCopyIOError(f'Unexpected EOF, read {len(data)} of {self.data_size} data bytes')

        if verify_checksum:
            computed = DiskCopyChecksum().update_from_block(data)
            if computed != self.data_checksum:
                raise ChecksumMismatch(
                    f'Computed data checksum {computed:08x} does not match header sum {self.data_checksum:08x}',
                    computed, self.data_checksum)
        return data

    @property
    def image_name(self) -> bytes:
        return bytes(self.name[:min(self.name_length, NAME_SIZE)])

    @property
    def volume_name(self) -> str:
        return self.image_name.decode('mac_roman')

    def describe(self) -> str:
        lines = [
            f'name[{self.name_length}]: {self.volume_name}',
            f'0x{self.data_size:x} data bytes ({self.data_size >> 10} k)',
            f'0x{self.tag_size:x} tag bytes ({self.tag_size >> 10} k)',
            f'Data Checksum: {self.data_checksum:08x} Tag Checksum: {self.tag_checksum:08x}',
            f'Disk Format: {self.disk_type} ({DISK_FORMATS.get(self.disk_type, "<unknown>")})',
            f'Format Byte: 0x{self.format:02x} ({FORMAT_BYTES.get(self.format, "<unknown>")})',
            f'Private word: 0x{self.magic_number:x}',
        ]
        return '\n'.join(lines)


if sizeof(DiskCopyImageHeader) != HEADER_LENGTH:
    raise ValueError('ASSERTION FAILED! sizeof(DiskCopyImageHeader) != 84')
