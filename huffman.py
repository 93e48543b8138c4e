"""
Реализует кодирование Хаффмана по байтам.
Использует переменную длину кодов: частые значения кодируются короче.
Дерево кодов сохраняется в сжатый файл, поэтому распаковка
не зависит от состояния, оставшегося после сжатия.
"""

import heapq
import itertools
from collections import Counter
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from errors import ChecksumMismatchError, CorruptHeaderError, TruncatedContentError
from format import CompressedArtifact, calculate_crc32


SYMBOL_BITS = 8
MAX_TREE_DEPTH = 255

FrequencyTable = Mapping[int, int]
CodeTable = Dict[int, str]


class HuffmanNode:
    def __init__(self, symbol: Optional[int] = None, freq: int = 0,
                 left: Optional['HuffmanNode'] = None,
                 right: Optional['HuffmanNode'] = None):
        self.symbol = symbol
        self.freq = freq
        self.left = left
        self.right = right

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None

    def __repr__(self):
        if self.is_leaf:
            return f"Leaf({self.symbol:#04x}, freq={self.freq})"
        return f"Node(freq={self.freq}, {self.left!r}, {self.right!r})"


def tree_shape(node: HuffmanNode) -> Union[int, tuple]:
    """Форма дерева без весов: лист -> символ, узел -> (левое, правое)."""
    if node.is_leaf:
        return node.symbol
    return (tree_shape(node.left), tree_shape(node.right))


# ==============================================================================
# Частоты
# ==============================================================================

def count_frequencies(data: bytes) -> FrequencyTable:
    counts = Counter(data)
    return MappingProxyType({symbol: counts[symbol] for symbol in sorted(counts)})


def merge_frequencies(tables: Iterable[FrequencyTable]) -> FrequencyTable:
    """Складывает таблицы, посчитанные по частям одного потока."""
    total: Counter = Counter()
    for table in tables:
        total.update(table)
    return MappingProxyType({
        symbol: total[symbol] for symbol in sorted(total) if total[symbol] > 0
    })


# ==============================================================================
# Дерево и коды
# ==============================================================================

def build_tree(frequencies: FrequencyTable) -> HuffmanNode:
    """
    Строит дерево Хаффмана.

    Узлы с равным весом извлекаются в порядке добавления в кучу:
    листья добавляются по возрастанию символа, объединённые узлы
    получают следующий номер. Первый извлечённый узел становится
    левым потомком, второй - правым.
    """
    if not frequencies:
        raise ValueError("Cannot build a tree from an empty frequency table")

    sequence = itertools.count()
    heap: List[Tuple[int, int, HuffmanNode]] = []

    for symbol, freq in sorted(frequencies.items()):
        if not 0 <= symbol <= 0xFF:
            raise ValueError(f"Symbol out of byte range: {symbol}")
        if freq <= 0:
            raise ValueError(f"Non-positive frequency for symbol {symbol}: {freq}")
        heap.append((freq, next(sequence), HuffmanNode(symbol=symbol, freq=freq)))

    heapq.heapify(heap)

    while len(heap) > 1:
        left_freq, _, left = heapq.heappop(heap)
        right_freq, _, right = heapq.heappop(heap)

        parent = HuffmanNode(freq=left_freq + right_freq, left=left, right=right)
        heapq.heappush(heap, (parent.freq, next(sequence), parent))

    return heap[0][2]


def derive_codes(root: Optional[HuffmanNode]) -> CodeTable:
    if root is None:
        raise ValueError("Cannot derive codes from an empty tree")

    # у единственного листа нет пути, ему назначается код '0'
    if root.is_leaf:
        return {root.symbol: '0'}

    codes: CodeTable = {}

    def traverse(node: HuffmanNode, code: str):
        if node.is_leaf:
            codes[node.symbol] = code
            return

        traverse(node.left, code + '0')
        traverse(node.right, code + '1')

    traverse(root, '')
    return codes


# ==============================================================================
# Битовые потоки
# ==============================================================================

class BitStream:
    """Собирает биты и упаковывает их старшим битом вперёд."""

    def __init__(self):
        self.chunks: List[str] = []
        self.bit_count = 0

    def write_bit(self, bit: int):
        self.write_bits('1' if bit else '0')

    def write_bits(self, code: str):
        self.chunks.append(code)
        self.bit_count += len(code)

    def write_uint(self, value: int, width: int):
        self.write_bits(format(value, f'0{width}b'))

    def to_bytes(self) -> bytes:
        if not self.bit_count:
            return b''

        bits = ''.join(self.chunks)
        padding = (8 - len(bits) % 8) % 8
        bits += '0' * padding

        return int(bits, 2).to_bytes(len(bits) // 8, 'big')


class BitReader:
    def __init__(self, data: bytes, bit_count: int):
        if bit_count > len(data) * 8:
            raise EOFError(f"{bit_count} bits declared, {len(data) * 8} available")

        if data:
            self.bits = format(int.from_bytes(data, 'big'), f'0{len(data) * 8}b')[:bit_count]
        else:
            self.bits = ''
        self.position = 0

    @property
    def remaining(self) -> int:
        return len(self.bits) - self.position

    def read_bit(self) -> int:
        if self.position >= len(self.bits):
            raise EOFError("No bits left")
        bit = self.bits[self.position]
        self.position += 1
        return 1 if bit == '1' else 0

    def read_bits(self, width: int) -> int:
        if self.remaining < width:
            raise EOFError(f"Need {width} bits, {self.remaining} left")
        value = int(self.bits[self.position:self.position+width], 2)
        self.position += width
        return value


def encode_bits(data: bytes, codes: CodeTable) -> Tuple[bytes, int]:
    stream = BitStream()
    # KeyError здесь означает, что коды построены не по этим данным
    stream.write_bits(''.join(codes[symbol] for symbol in data))
    return stream.to_bytes(), stream.bit_count


def decode_bits(data: bytes, bit_count: int, root: HuffmanNode) -> bytes:
    try:
        reader = BitReader(data, bit_count)
    except EOFError as e:
        raise TruncatedContentError(str(e)) from None

    if root.is_leaf:
        return bytes([root.symbol]) * bit_count

    output = bytearray()
    node = root

    for bit in reader.bits:
        node = node.right if bit == '1' else node.left

        if node.is_leaf:
            output.append(node.symbol)
            node = root

    if node is not root:
        raise TruncatedContentError("Content ends in the middle of a code")

    return bytes(output)


# ==============================================================================
# Сериализация дерева
# ==============================================================================

def serialize_tree(root: HuffmanNode) -> Tuple[bytes, int]:
    """
    Прямой обход: 0 - внутренний узел, затем левое и правое поддеревья;
    1 - лист, затем 8 бит символа.
    """
    stream = BitStream()

    def traverse(node: HuffmanNode):
        if node.is_leaf:
            stream.write_bit(1)
            stream.write_uint(node.symbol, SYMBOL_BITS)
            return

        stream.write_bit(0)
        traverse(node.left)
        traverse(node.right)

    traverse(root)
    return stream.to_bytes(), stream.bit_count


def deserialize_tree(data: bytes, bit_count: int) -> HuffmanNode:
    if bit_count == 0:
        raise CorruptHeaderError("Empty tree header")

    try:
        reader = BitReader(data, bit_count)
    except EOFError as e:
        raise CorruptHeaderError(str(e)) from None

    seen = set()

    def read_node(depth: int) -> HuffmanNode:
        if depth > MAX_TREE_DEPTH:
            raise CorruptHeaderError("Tree is deeper than any byte alphabet allows")

        try:
            if reader.read_bit():
                symbol = reader.read_bits(SYMBOL_BITS)
            else:
                symbol = None
        except EOFError:
            raise CorruptHeaderError("Tree header ends in the middle of a node") from None

        if symbol is not None:
            if symbol in seen:
                raise CorruptHeaderError(f"Duplicate leaf for symbol {symbol}")
            seen.add(symbol)
            return HuffmanNode(symbol=symbol)

        left = read_node(depth + 1)
        right = read_node(depth + 1)
        return HuffmanNode(left=left, right=right)

    root = read_node(0)

    if reader.remaining:
        raise CorruptHeaderError(f"{reader.remaining} unused bits after tree")

    return root


# ==============================================================================
# Сжатие и распаковка
# ==============================================================================

def compress(data: bytes) -> CompressedArtifact:
    if not data:
        return CompressedArtifact()

    root = build_tree(count_frequencies(data))
    codes = derive_codes(root)

    tree_data, tree_bits = serialize_tree(root)
    content_data, content_bits = encode_bits(data, codes)

    return CompressedArtifact(
        original_size=len(data),
        crc32=calculate_crc32(data),
        tree_bit_count=tree_bits,
        tree_data=tree_data,
        content_bit_count=content_bits,
        content_data=content_data,
    )


def decompress(artifact: CompressedArtifact) -> bytes:
    if artifact.is_empty:
        return b''

    root = deserialize_tree(artifact.tree_data, artifact.tree_bit_count)
    data = decode_bits(artifact.content_data, artifact.content_bit_count, root)

    if len(data) != artifact.original_size:
        raise TruncatedContentError(
            f"Decoded {len(data)} bytes, expected {artifact.original_size}"
        )

    if calculate_crc32(data) != artifact.crc32:
        raise ChecksumMismatchError("CRC32 mismatch")

    return data


def compress_bytes(data: bytes) -> bytes:
    return compress(data).to_bytes()


def decompress_bytes(data: bytes) -> bytes:
    return decompress(CompressedArtifact.from_bytes(data))
