"""
Главный класс для сжатия и разжатия файлов.
"""

import os
import sys
from dataclasses import dataclass
from typing import List, Optional

from format import CompressedArtifact
from huffman import (FrequencyTable, build_tree, compress, count_frequencies,
                     decompress, derive_codes, merge_frequencies)


COMPRESSED_SUFFIX = '.huf'
DECOMPRESSED_SUFFIX = '_decompressed'
READ_CHUNK_SIZE = 64 * 1024


@dataclass
class CompressionReport:
    source: str
    destination: str
    original_size: int
    compressed_size: int

    @property
    def ratio(self) -> float:
        return (self.compressed_size / self.original_size * 100) if self.original_size > 0 else 0


@dataclass
class CodeEntry:
    symbol: int
    frequency: int
    code: str


def compressed_path(path: str) -> str:
    return path + COMPRESSED_SUFFIX


def decompressed_path(path: str) -> str:
    """doc.txt.huf -> doc_decompressed.txt, исходный файл не перезаписывается."""
    if path.endswith(COMPRESSED_SUFFIX) and len(path) > len(COMPRESSED_SUFFIX):
        path = path[:-len(COMPRESSED_SUFFIX)]
    base, ext = os.path.splitext(path)
    return f"{base}{DECOMPRESSED_SUFFIX}{ext}"


class Archiver:
    def __init__(self, verbose: bool = False, chunk_size: int = READ_CHUNK_SIZE):
        self.verbose = verbose
        self.chunk_size = chunk_size

    def _log(self, message: str):
        if self.verbose:
            print(message, file=sys.stderr)

    def read_frequencies(self, file_path: str) -> FrequencyTable:
        tables = []

        with open(file_path, 'rb') as f:
            while True:
                chunk = f.read(self.chunk_size)
                if not chunk:
                    break
                tables.append(count_frequencies(chunk))

        frequencies = merge_frequencies(tables)
        self._log(f"{file_path}: {len(frequencies)} distinct bytes in {len(tables)} chunks")
        return frequencies

    def read_file(self, file_path: str) -> bytes:
        """Читает источник один раз по частям, без повторного открытия."""
        chunks = []

        with open(file_path, 'rb') as f:
            while True:
                chunk = f.read(self.chunk_size)
                if not chunk:
                    break
                chunks.append(chunk)

        return b''.join(chunks)

    def compress_file(self, file_path: str,
                      output_path: Optional[str] = None) -> CompressionReport:
        if output_path is None:
            output_path = compressed_path(file_path)

        data = self.read_file(file_path)
        self._log(f"{file_path}: {len(data)} bytes read")

        artifact = compress(data)
        self._log(f"tree header: {artifact.tree_bit_count} bits, "
                  f"content: {artifact.content_bit_count} bits")

        compressed = artifact.to_bytes()
        with open(output_path, 'wb') as f:
            f.write(compressed)

        return CompressionReport(
            source=file_path,
            destination=output_path,
            original_size=len(data),
            compressed_size=len(compressed),
        )

    def decompress_file(self, file_path: str,
                        output_path: Optional[str] = None) -> CompressionReport:
        if output_path is None:
            output_path = decompressed_path(file_path)

        with open(file_path, 'rb') as f:
            compressed = f.read()

        artifact = CompressedArtifact.from_bytes(compressed)
        self._log(f"{file_path}: {artifact.original_size} bytes declared, "
                  f"tree header {artifact.tree_bit_count} bits")

        data = decompress(artifact)

        with open(output_path, 'wb') as f:
            f.write(data)

        return CompressionReport(
            source=file_path,
            destination=output_path,
            original_size=len(data),
            compressed_size=len(compressed),
        )

    def roundtrip_file(self, file_path: str) -> bool:
        """Сжимает файл, разжимает результат рядом и сравнивает с исходным."""
        packed = self.compress_file(file_path)
        print(f"Compressed {file_path} -> {packed.destination} ({packed.ratio:.1f}%)")

        unpacked = self.decompress_file(packed.destination)
        print(f"Decompressed {packed.destination} -> {unpacked.destination}")

        with open(file_path, 'rb') as f:
            original = f.read()
        with open(unpacked.destination, 'rb') as f:
            restored = f.read()

        if original != restored:
            print(f"Warning: {unpacked.destination} differs from {file_path}", file=sys.stderr)
            return False

        return True

    def describe_file(self, file_path: str) -> List[CodeEntry]:
        frequencies = self.read_frequencies(file_path)
        if not frequencies:
            return []

        codes = derive_codes(build_tree(frequencies))

        entries = [CodeEntry(symbol=symbol, frequency=freq, code=codes[symbol])
                   for symbol, freq in frequencies.items()]
        entries.sort(key=lambda e: (len(e.code), e.symbol))
        return entries
