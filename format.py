"""
Определяет структуру сжатого файла Хаффмана и методы чтения/записи.
"""

import struct
import io
import zlib
from dataclasses import dataclass

from errors import CorruptHeaderError, TruncatedContentError


HUFFMAN_MAGIC = b'HUFF'
FORMAT_VERSION = 1

# magic, версия, резерв, исходный размер, crc32, биты дерева, биты данных
HEADER_STRUCT = struct.Struct('>4sBBQIHQ')
HEADER_SIZE = HEADER_STRUCT.size


def bytes_for_bits(bit_count: int) -> int:
    return (bit_count + 7) // 8


@dataclass
class CompressedArtifact:
    original_size: int = 0
    crc32: int = 0
    tree_bit_count: int = 0
    tree_data: bytes = b''
    content_bit_count: int = 0
    content_data: bytes = b''

    @property
    def is_empty(self) -> bool:
        return (self.original_size == 0 and self.tree_bit_count == 0
                and self.content_bit_count == 0)

    def to_bytes(self) -> bytes:
        if self.is_empty:
            return b''

        output = io.BytesIO()
        output.write(HEADER_STRUCT.pack(
            HUFFMAN_MAGIC,
            FORMAT_VERSION,
            0,
            self.original_size,
            self.crc32,
            self.tree_bit_count,
            self.content_bit_count,
        ))
        output.write(self.tree_data)
        output.write(self.content_data)
        return output.getvalue()

    @staticmethod
    def from_bytes(data: bytes) -> 'CompressedArtifact':
        if not data:
            return CompressedArtifact()

        if len(data) < HEADER_SIZE:
            raise CorruptHeaderError("Header too small")

        (magic, version, reserved, original_size, crc32,
         tree_bits, content_bits) = HEADER_STRUCT.unpack_from(data, 0)

        if magic != HUFFMAN_MAGIC:
            raise CorruptHeaderError("Invalid magic")
        if version != FORMAT_VERSION:
            raise CorruptHeaderError(f"Unsupported version: {version}")
        if reserved != 0:
            raise CorruptHeaderError("Reserved byte is not zero")
        if (tree_bits == 0) != (original_size == 0):
            raise CorruptHeaderError("Tree size does not match original size")

        pos = HEADER_SIZE
        tree_size = bytes_for_bits(tree_bits)
        if pos + tree_size > len(data):
            raise CorruptHeaderError("Corrupted header: cannot read tree")
        tree_data = data[pos:pos+tree_size]
        pos += tree_size

        content_size = bytes_for_bits(content_bits)
        if pos + content_size > len(data):
            raise TruncatedContentError(
                f"Expected {content_size} content bytes, "
                f"got {len(data) - pos}"
            )
        content_data = data[pos:pos+content_size]
        pos += content_size

        if pos != len(data):
            raise CorruptHeaderError(
                f"{len(data) - pos} unexpected bytes after content"
            )

        return CompressedArtifact(
            original_size=original_size,
            crc32=crc32,
            tree_bit_count=tree_bits,
            tree_data=tree_data,
            content_bit_count=content_bits,
            content_data=content_data,
        )


def calculate_crc32(data: bytes) -> int:
    return zlib.crc32(data) & 0xffffffff
