from contextlib import contextmanager, suppress
from itertools import takewhile
import argparse
import os
import sys
import tempfile
from tqdm import tqdm
from bitpack import BitPacker, BitUnpacker
from byteobj import ContainerHeader
from huffman import (
    ContainerError,
    EmptyInputError,
    FrequencyTable,
    build_tree,
    encoded_bit_length,
    find_codes,
    leaf_text,
    padding_bits,
    parse_tree,
    serialize_tree,
)

CHUNK_SIZE = 4096
DEFAULT_OUTPUT = "COMPRESSED.MZIP"


class IOFailure(OSError):
    pass


def iter_chunks(file, chunk_size=CHUNK_SIZE):
    chunk_iter = iter(lambda: file.read(chunk_size), b"")
    return takewhile(lambda chunk: chunk, chunk_iter)


def read_file_in_chunks(filename, chunk_size=CHUNK_SIZE):
    with open(filename, "rb") as file:
        yield from iter_chunks(file, chunk_size)


def progress_bar(filename, desc, progress):
    total = os.path.getsize(filename) if progress else None
    return tqdm(total=total, desc=desc, unit="B", unit_scale=True, ncols=70, disable=not progress)


@contextmanager
def atomic_output(filename):
    # written next to the target and renamed only once complete
    directory = os.path.dirname(os.path.abspath(filename))
    fd, tmp_name = tempfile.mkstemp(prefix=".mzip-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as out:
            yield out
        os.replace(tmp_name, filename)
    except BaseException:
        with suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def write_header(out, header):
    out.write(header.filename + b"\n")
    out.write(header.tree.encode("latin-1") + b"\n")
    out.write(f"{header.padding}\n".encode("ascii"))


def read_header(file):
    lines = [file.readline() for _ in range(3)]
    if not all(line.endswith(b"\n") for line in lines):
        raise ContainerError("container header is truncated")
    filename, tree, padding = (line[:-1] for line in lines)
    if len(padding) != 1 or padding not in b"01234567":
        raise ContainerError(f"padding must be a digit from 0 to 7, got {padding!r}")
    return ContainerHeader(filename, tree.decode("latin-1"), int(padding))


def count_frequencies(source, progress=False):
    with progress_bar(source, "count", progress) as bar:
        freqs = FrequencyTable()
        for chunk in read_file_in_chunks(source):
            freqs.update(chunk)
            bar.update(len(chunk))
    if not len(freqs):
        raise EmptyInputError(f"{source} is empty")
    return freqs


def compress_file(source, output=DEFAULT_OUTPUT, progress=False):
    """
    Writes the container for source to output: the source name, the tree
    line and the padding count, each on its own line, then the packed codes.
    Nothing is left at output if any step fails.
    :return: the ContainerHeader that was written
    """
    name = os.fsencode(source)
    if b"\n" in name:
        raise ContainerError("file names with a newline cannot be stored in the header")

    try:
        freqs = count_frequencies(source, progress)
        tree = build_tree(freqs)
        codes = find_codes(tree)
        total_bits = encoded_bit_length(freqs, codes)
        header = ContainerHeader(name, serialize_tree(tree), padding_bits(total_bits))

        packer = BitPacker(codes)
        with atomic_output(output) as out, progress_bar(source, "pack", progress) as bar:
            write_header(out, header)
            for chunk in read_file_in_chunks(source):
                out.write(packer.pack(chunk))
                bar.update(len(chunk))
            out.write(packer.flush())
            if packer.bit_count != total_bits:
                raise IOFailure(f"{source} changed while it was being compressed")
    except KeyError as e:
        raise IOFailure(f"{source} changed while it was being compressed") from e
    except IOFailure:
        raise
    except OSError as e:
        raise IOFailure(f"compressing {source} failed: {e}") from e
    return header


def decode_payload(file, unpacker, padding):
    chunk = file.read(CHUNK_SIZE)
    if not chunk and padding:
        raise ContainerError("padding given for an empty payload")
    while chunk:
        following = file.read(CHUNK_SIZE)
        # padding only applies to the last byte of the payload
        bit_count = None if following else len(chunk) * 8 - padding
        yield len(chunk), unpacker.unpack(chunk, bit_count)
        chunk = following
    if not unpacker.at_boundary:
        raise ContainerError("payload ends in the middle of a code")


def decompress_file(container, output=None, progress=False):
    """
    Inverse of compress_file. The name stored in the header is used when
    output is None.
    :return: the ContainerHeader that was read
    """
    try:
        with open(container, "rb") as file:
            header = read_header(file)
            unpacker = BitUnpacker(parse_tree(header.tree))
            if output is None and not header.filename:
                raise ContainerError("no output given and the header stores no file name")
            target = os.fsdecode(header.filename) if output is None else output
            with atomic_output(target) as out, progress_bar(container, "unpack", progress) as bar:
                for size, data in decode_payload(file, unpacker, header.padding):
                    out.write(data)
                    bar.update(size)
    except IOFailure:
        raise
    except OSError as e:
        raise IOFailure(f"decompressing {container} failed: {e}") from e
    return header


def print_codes(source):
    freqs = count_frequencies(source)
    codes = find_codes(build_tree(freqs))
    for symbol in sorted(codes, key=lambda s: (len(codes[s]), codes[s])):
        print(f"{symbol:3d} {leaf_text(symbol):>4} {freqs.get(symbol):>10} {codes[symbol]}")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="mzip", description="Huffman file compressor")
    commands = parser.add_subparsers(dest="command", required=True)

    compress = commands.add_parser("compress", help="compress SOURCE into a container")
    compress.add_argument("source")
    compress.add_argument("-o", "--output", default=DEFAULT_OUTPUT)
    compress.add_argument("-q", "--quiet", action="store_true")

    decompress = commands.add_parser("decompress", help="restore the file stored in CONTAINER")
    decompress.add_argument("container")
    decompress.add_argument("-o", "--output", help="defaults to the name stored in the header")
    decompress.add_argument("-q", "--quiet", action="store_true")

    codes = commands.add_parser("codes", help="print the code table for SOURCE")
    codes.add_argument("source")

    args = parser.parse_args(argv)
    try:
        if args.command == "compress":
            compress_file(args.source, args.output, progress=not args.quiet)
            if not args.quiet:
                before = os.path.getsize(args.source)
                after = os.path.getsize(args.output)
                print(f"Stats = original: {before} B, compressed: {after} B, ratio: {before / after:.3f}")
        elif args.command == "decompress":
            header = decompress_file(args.container, args.output, progress=not args.quiet)
            if not args.quiet:
                target = args.output or os.fsdecode(header.filename)
                print(f"restored {target} ({os.path.getsize(target)} B)")
        else:
            print_codes(args.source)
    except (EmptyInputError, ContainerError, OSError) as e:
        print(f"mzip: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
