"""
Командная строка для компрессора Хаффмана.
"""

import argparse
import sys
from archiver import Archiver
from errors import HuffmanError


def _printable(symbol: int) -> str:
    # байты 0x80-0xFF - не символы, печатаются как hex
    ch = chr(symbol)
    return repr(ch) if symbol < 0x80 and ch.isprintable() else f"0x{symbol:02x}"


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative: {value}")
    return number


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='Huffman file compressor',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py compress file.txt
  python main.py decompress file.txt.huf            # -> file_decompressed.txt
  python main.py roundtrip file.txt
  python main.py codes file.txt --limit 20
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Print progress details')

    subparsers = parser.add_subparsers(dest='command', help='Command')

    compress_parser = subparsers.add_parser('compress', help='Compress a file')
    compress_parser.add_argument('file', help='File to compress')
    compress_parser.add_argument('-o', '--output', help='Output path (default: FILE.huf)')

    decompress_parser = subparsers.add_parser('decompress', help='Decompress a file')
    decompress_parser.add_argument('file', help='Compressed file')
    decompress_parser.add_argument('-o', '--output', help='Output path')

    roundtrip_parser = subparsers.add_parser('roundtrip', help='Compress, decompress and compare')
    roundtrip_parser.add_argument('file', help='File to check')

    codes_parser = subparsers.add_parser('codes', help='Show the code table of a file')
    codes_parser.add_argument('file', help='File to analyse')
    codes_parser.add_argument('--limit', type=_non_negative_int, default=None, help='Show only N entries')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    archiver = Archiver(verbose=args.verbose)

    try:
        if args.command == 'compress':
            report = archiver.compress_file(args.file, args.output)
            print(f"{report.source} -> {report.destination}: "
                  f"{report.original_size} -> {report.compressed_size} bytes ({report.ratio:.1f}%)")

        elif args.command == 'decompress':
            report = archiver.decompress_file(args.file, args.output)
            print(f"{report.source} -> {report.destination}: {report.original_size} bytes")

        elif args.command == 'roundtrip':
            if not archiver.roundtrip_file(args.file):
                return 1
            print("Roundtrip OK")

        elif args.command == 'codes':
            entries = archiver.describe_file(args.file)
            if args.limit is not None:
                entries = entries[:args.limit]

            print(f"{'Symbol':<8} {'Frequency':>12} {'Code'}")
            print("-" * 40)
            for entry in entries:
                print(f"{_printable(entry.symbol):<8} {entry.frequency:>12} {entry.code}")

    except (HuffmanError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
