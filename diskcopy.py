"""
diskcopy.py - convert between raw HFS floppy images and uncompressed Apple Disk Copy 4.2 (`DC42`) images.

Commands:
    create  : use data in --input-image to create --disk-copy
    extract : extract data from --disk-copy into --output-image
    verify  : validate basic structure and checksums of --disk-copy
    list    : list the files of the HFS volume inside --disk-copy
"""

import argparse
import sys
from typing import BinaryIO, List, Optional, Tuple

import machfs
from progress.bar import Bar

import hfs
from checksum import DiskCopyChecksum
from diskcopyimage import DiskCopyImageHeader, HFS_BLOCK_SIZE
from errors import ChecksumMismatch, DiskCopyError, DiskCopyIOError, FormatError, seek

EXIT_OK = 0
EXIT_BAD_ARGUMENTS = 1
EXIT_FAILURE = 2


def sizeof_fmt(num, suffix='B'):
    """https://stackoverflow.com/a/1094933/594760"""
    for unit in ['', 'Ki', 'Mi', 'Gi', 'Ti', 'Pi', 'Ei', 'Zi']:
        if abs(num) < 1024.0:
            return "%3.1f%s%s" % (num, unit, suffix)
        num /= 1024.0
    return "%.1f%s%s" % (num, 'Yi', suffix)


class CopyBar(Bar):
    suffix = '%(percent)d%% -- %(human_readable_bytes)s'

    @property
    def human_readable_bytes(self):
        return sizeof_fmt(self.index)


def copy_data(src: BinaryIO, dst: BinaryIO, byte_count: int, verbose: bool = False) -> int:
    """
    Copy byte_count bytes from the current position of src to the current position of dst, one 512 byte block
    at a time, computing the DiskCopy checksum of the copied bytes.

    On failure, whatever was already written to dst is incomplete and should be discarded.

    :return: The checksum of the copied data.
    """
    checksum = DiskCopyChecksum()
    bar = CopyBar('Copying', max=byte_count) if verbose else None

    copied = 0
    try:
        while copied < byte_count:
            block_size = min(byte_count - copied, HFS_BLOCK_SIZE)
            try:
                block = src.read(block_size)
            except OSError as e:
                raise DiskCopyIOError(f'Could not read {block_size} bytes of input after {copied}: {e}') from e
            if len(block) != block_size:
                raise DiskCopyIOError(
                    f'Could not read {block_size} bytes of input after {copied}, got {len(block)}')

            # Odd sized images are rejected before copying, and blocks are even, so this can't fail on parity.
            checksum.update_from_block(block)

            try:
                written = dst.write(block)
            except OSError as e:
                raise DiskCopyIOError(f'Could not write {block_size} bytes of output at {copied}: {e}') from e
            if written != block_size:
                raise DiskCopyIOError(f'Could not write {block_size} bytes of output at {copied}, wrote {written}')

            copied += block_size
            if bar:
                bar.next(block_size)
    finally:
        if bar:
            bar.finish()

    return checksum.sum


def create(input_image_path: str, disk_copy_path: str, verbose: bool = False) -> DiskCopyImageHeader:
    with open(input_image_path, 'rb') as f:
        mdb = hfs.read_mdb(f)
        print(f'Read HFS MDB:\n{mdb.describe()}')
        block_count = mdb.valid()
        volume_name = mdb.volume_name()
        print(f"HFS volume '{volume_name}' declared to be {block_count} disk blocks.")

        # The checksum goes in the header, so read the volume once to compute it before writing anything.
        seek(f, 0, 'start of HFS image')
        data_checksum = DiskCopyChecksum().update_from_file(f, block_count * HFS_BLOCK_SIZE)
        header = DiskCopyImageHeader.create_for_hfs(volume_name, block_count, data_checksum)

        seek(f, 0, 'start of HFS image')
        with open(disk_copy_path, 'wb') as of:
            header.write_to(of)
            copy_data(f, of, header.data_size, verbose=verbose)

    return header


def extract(disk_copy_path: str, output_image_path: str, ignore_checksum: bool = False,
            verbose: bool = False) -> int:
    """
    Copy the data region of a DiskCopy image to a raw image.

    :param ignore_checksum: Warn instead of failing when the data checksum does not match the header.
    :return: Number of data bytes written.
    """
    with open(disk_copy_path, 'rb') as f:
        header = DiskCopyImageHeader.read_from(f)
        header.validate()

        # read_from leaves f at the start of the data.
        with open(output_image_path, 'wb') as of:
            computed = copy_data(f, of, header.data_size, verbose=verbose)

    if computed != header.data_checksum:
        message = f'Disk Copy data checksum {computed:08x} does not match header {header.data_checksum:08x}'
        if not ignore_checksum:
            raise ChecksumMismatch(message, computed, header.data_checksum)
        print(f'Warning: {message}', file=sys.stderr)
        print('Ignoring mismatch because of --ignore-data-checksum', file=sys.stderr)

    return header.data_size


def verify(disk_copy_path: str) -> DiskCopyImageHeader:
    with open(disk_copy_path, 'rb') as f:
        header = DiskCopyImageHeader.read_from(f)
        print(f'Read header:\n{header.describe()}')
        header.verify_data_checksum(f)
        header.verify_tag_checksum(f)
    return header


def list_volume(disk_copy_path: str) -> List[Tuple[str, machfs.File]]:
    with open(disk_copy_path, 'rb') as f:
        header = DiskCopyImageHeader.read_from(f)
        data = header.read_data(f, verify_checksum=True)

    volume = machfs.Volume()
    try:
        volume.read(data)
    except Exception as e:
        raise FormatError(f'Issue reading file system from disk image at path: {disk_copy_path}: {e}') from e

    files = []
    for path_tuple, dirnames, filenames in volume.walk():
        current_folder = volume[path_tuple] if len(path_tuple) > 0 else volume
        for filename in filenames:
            files.append((':'.join(path_tuple + (filename,)), current_folder[filename]))
    return files


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_BAD_ARGUMENTS, f'{self.prog}: error: {message}\n')


def make_argparser() -> ArgumentParser:
    argparser = ArgumentParser(
        prog='diskcopy',
        description='Converts between raw HFS floppy images and uncompressed Apple Disk Copy 4.2 `DC42` images.')
    commands = argparser.add_subparsers(dest='command', metavar='command')
    commands.required = True

    create_parser = commands.add_parser('create', help='use data in --input-image to create --disk-copy')
    create_parser.add_argument('--input-image', required=True, help='Raw HFS disk image to encode')
    create_parser.add_argument('--disk-copy', required=True, help='Disk Copy 4.2 image to produce')
    create_parser.add_argument('--verbose', '-v', action='store_true')

    extract_parser = commands.add_parser('extract', help='extract data from --disk-copy into --output-image')
    extract_parser.add_argument('--disk-copy', required=True, help='Disk Copy 4.2 image to read')
    extract_parser.add_argument('--output-image', required=True, help='Raw HFS disk image to produce')
    extract_parser.add_argument(
        '--ignore-data-checksum', action='store_true',
        help='Extract data without regard for the data checksum validity')
    extract_parser.add_argument('--verbose', '-v', action='store_true')

    verify_parser = commands.add_parser('verify', help='validate basic structure and checksums of --disk-copy')
    verify_parser.add_argument('--disk-copy', required=True, help='Disk Copy 4.2 image to check')

    list_parser = commands.add_parser('list', help='list the files of the HFS volume inside --disk-copy')
    list_parser.add_argument('--disk-copy', required=True, help='Disk Copy 4.2 image to read')

    return argparser


def main(argv: Optional[List[str]] = None) -> int:
    args = make_argparser().parse_args(argv)

    try:
        if args.command == 'create':
            create(args.input_image, args.disk_copy, verbose=args.verbose)
        elif args.command == 'extract':
            byte_count = extract(args.disk_copy, args.output_image,
                                 ignore_checksum=args.ignore_data_checksum, verbose=args.verbose)
            print(f'Read {byte_count} bytes ({byte_count // HFS_BLOCK_SIZE} HFS blocks).', file=sys.stderr)
        elif args.command == 'verify':
            verify(args.disk_copy)
            print('OK')
        elif args.command == 'list':
            for path, file in list_volume(args.disk_copy):
                file_type = bytes(file.type).decode('mac_roman')
                creator = bytes(file.creator).decode('mac_roman')
                print(f'{file_type} {creator} {len(file.data):8d} {len(file.rsrc):8d} {path}')
    except (DiskCopyError, OSError) as e:
        print(e, file=sys.stderr)
        return EXIT_FAILURE

    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
