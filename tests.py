import unittest
import tempfile
import os
import io
import sys
import random
import dataclasses
import threading
from contextlib import redirect_stdout, redirect_stderr

from errors import (HuffmanError, CorruptHeaderError, TruncatedContentError,
                    ChecksumMismatchError)
from format import CompressedArtifact, HEADER_SIZE, HUFFMAN_MAGIC, calculate_crc32
from huffman import (HuffmanNode, BitStream, BitReader, tree_shape,
                     count_frequencies, merge_frequencies, build_tree, derive_codes,
                     encode_bits, decode_bits, serialize_tree, deserialize_tree,
                     compress, decompress, compress_bytes, decompress_bytes)
from archiver import Archiver, compressed_path, decompressed_path
from main import main, _printable


A, B, C, D = ord('a'), ord('b'), ord('c'), ord('d')


class TestFrequencies(unittest.TestCase):
    def test_counts(self):
        table = count_frequencies(b"aaabbc")
        self.assertEqual(dict(table), {A: 3, B: 2, C: 1})

    def test_empty(self):
        self.assertEqual(len(count_frequencies(b"")), 0)

    def test_sum_matches_length(self):
        data = b"The quick brown fox jumps over the lazy dog"
        self.assertEqual(sum(count_frequencies(data).values()), len(data))

    def test_keys_sorted(self):
        table = count_frequencies(b"zyxabc")
        self.assertEqual(list(table), sorted(table))

    def test_read_only(self):
        table = count_frequencies(b"abc")
        with self.assertRaises(TypeError):
            table[A] = 10

    def test_merge_matches_whole(self):
        data = b"Lorem ipsum dolor sit amet " * 20
        chunks = [data[i:i+7] for i in range(0, len(data), 7)]
        merged = merge_frequencies(count_frequencies(chunk) for chunk in chunks)
        self.assertEqual(dict(merged), dict(count_frequencies(data)))

    def test_merge_order_independent(self):
        first = count_frequencies(b"aab")
        second = count_frequencies(b"bcc")
        self.assertEqual(dict(merge_frequencies([first, second])),
                         dict(merge_frequencies([second, first])))


class TestTreeBuilder(unittest.TestCase):
    def test_aaabbc_shape(self):
        root = build_tree(count_frequencies(b"aaabbc"))
        # c и b сливаются в узел веса 3, лист a старше и извлекается первым
        self.assertEqual(tree_shape(root), (A, (C, B)))
        self.assertEqual(root.freq, 6)
        self.assertEqual(root.right.freq, 3)

    def test_equal_weights_fifo(self):
        root = build_tree(count_frequencies(b"abcd"))
        self.assertEqual(tree_shape(root), ((A, B), (C, D)))

    def test_leaf_before_merged_node(self):
        root = build_tree(count_frequencies(b"aabbc"))
        self.assertEqual(tree_shape(root), (B, (C, A)))

    def test_single_symbol(self):
        root = build_tree(count_frequencies(b"A" * 1000))
        self.assertTrue(root.is_leaf)
        self.assertEqual(root.symbol, ord('A'))
        self.assertEqual(root.freq, 1000)

    def test_empty_table(self):
        with self.assertRaises(ValueError):
            build_tree({})

    def test_invalid_entries(self):
        with self.assertRaises(ValueError):
            build_tree({A: 0})
        with self.assertRaises(ValueError):
            build_tree({256: 1})

    def test_no_node_with_one_child(self):
        random.seed(7)
        data = bytes(random.randint(0, 40) for _ in range(2000))
        root = build_tree(count_frequencies(data))

        def check(node):
            self.assertEqual(node.left is None, node.right is None)
            if not node.is_leaf:
                self.assertIsNone(node.symbol)
                self.assertEqual(node.freq, node.left.freq + node.right.freq)
                check(node.left)
                check(node.right)

        check(root)


class TestCodeTable(unittest.TestCase):
    def test_aaabbc_codes(self):
        codes = derive_codes(build_tree(count_frequencies(b"aaabbc")))
        self.assertEqual(codes, {A: '0', C: '10', B: '11'})

    def test_single_symbol_code(self):
        codes = derive_codes(build_tree(count_frequencies(b"AAAA")))
        self.assertEqual(codes, {ord('A'): '0'})

    def test_empty_tree(self):
        with self.assertRaises(ValueError):
            derive_codes(None)

    def test_prefix_free(self):
        random.seed(42)
        data = bytes(random.randint(0, 255) for _ in range(5000))
        codes = list(derive_codes(build_tree(count_frequencies(data))).values())

        for i, first in enumerate(codes):
            for second in codes[i+1:]:
                self.assertFalse(first.startswith(second))
                self.assertFalse(second.startswith(first))

    def test_weight_monotonicity(self):
        data = b"".join(bytes([symbol]) * (symbol * 3 + 1) for symbol in range(40))
        data += b"\xff" * 7 + b"\xfe" * 7
        frequencies = count_frequencies(data)
        codes = derive_codes(build_tree(frequencies))

        for x, fx in frequencies.items():
            for y, fy in frequencies.items():
                if fx > fy:
                    self.assertLessEqual(len(codes[x]), len(codes[y]))


class TestBitStream(unittest.TestCase):
    def test_msb_first_with_padding(self):
        stream = BitStream()
        stream.write_bits('101')
        self.assertEqual(stream.bit_count, 3)
        self.assertEqual(stream.to_bytes(), b'\xa0')

    def test_full_bytes(self):
        stream = BitStream()
        stream.write_uint(0x41, 8)
        stream.write_bit(1)
        self.assertEqual(stream.to_bytes(), b'\x41\x80')

    def test_empty(self):
        self.assertEqual(BitStream().to_bytes(), b'')

    def test_reader(self):
        reader = BitReader(b'\xa5', 6)
        self.assertEqual(reader.read_bit(), 1)
        self.assertEqual(reader.read_bits(3), 0b010)
        self.assertEqual(reader.remaining, 2)
        self.assertEqual(reader.read_bits(2), 0b01)
        with self.assertRaises(EOFError):
            reader.read_bit()

    def test_reader_declared_too_many_bits(self):
        with self.assertRaises(EOFError):
            BitReader(b'\x00', 9)


class TestBitstreamCoding(unittest.TestCase):
    def setUp(self):
        self.root = build_tree(count_frequencies(b"aaabbc"))
        self.codes = derive_codes(self.root)

    def test_encode_aaabbc(self):
        content, bit_count = encode_bits(b"aaabbc", self.codes)
        self.assertEqual(bit_count, 9)
        self.assertEqual(content, b'\x1f\x00')

    def test_decode_aaabbc(self):
        self.assertEqual(decode_bits(b'\x1f\x00', 9, self.root), b"aaabbc")

    def test_padding_ignored(self):
        self.assertEqual(decode_bits(b'\x1f\x7f', 9, self.root), b"aaabbc")

    def test_missing_code_is_invariant_violation(self):
        with self.assertRaises(KeyError):
            encode_bits(b"abcz", self.codes)

    def test_ends_mid_code(self):
        with self.assertRaises(TruncatedContentError):
            decode_bits(b'\x80', 1, self.root)

    def test_declared_bits_exceed_data(self):
        with self.assertRaises(TruncatedContentError):
            decode_bits(b'\x1f', 9, self.root)

    def test_single_leaf_one_bit_per_symbol(self):
        leaf = HuffmanNode(symbol=ord('A'))
        self.assertEqual(decode_bits(b'\x00\x00', 12, leaf), b"A" * 12)
        self.assertEqual(decode_bits(b'\xff', 3, leaf), b"AAA")


class TestTreeSerializer(unittest.TestCase):
    def test_aaabbc_bits(self):
        root = build_tree(count_frequencies(b"aaabbc"))
        tree_data, bit_count = serialize_tree(root)
        self.assertEqual(bit_count, 29)
        self.assertEqual(tree_data, b'\x58\x56\x3b\x10')

    def test_single_leaf(self):
        tree_data, bit_count = serialize_tree(HuffmanNode(symbol=ord('A')))
        self.assertEqual(bit_count, 9)
        self.assertEqual(tree_data, b'\xa0\x80')

    def test_restores_shape(self):
        data = bytes(range(256)) * 3 + b"hello world" * 10
        root = build_tree(count_frequencies(data))
        tree_data, bit_count = serialize_tree(root)
        self.assertEqual(bit_count, 10 * 256 - 1)
        restored = deserialize_tree(tree_data, bit_count)
        self.assertEqual(tree_shape(restored), tree_shape(root))

    def test_empty_header(self):
        with self.assertRaises(CorruptHeaderError):
            deserialize_tree(b'', 0)

    def test_truncated_header(self):
        root = build_tree(count_frequencies(b"aaabbc"))
        tree_data, _ = serialize_tree(root)
        with self.assertRaises(CorruptHeaderError):
            deserialize_tree(tree_data, 20)

    def test_unused_bits(self):
        with self.assertRaises(CorruptHeaderError):
            deserialize_tree(b'\xa0\x80', 10)

    def test_declared_bits_exceed_data(self):
        with self.assertRaises(CorruptHeaderError):
            deserialize_tree(b'\xa0', 9)

    def test_duplicate_leaf(self):
        stream = BitStream()
        stream.write_bit(0)
        for _ in range(2):
            stream.write_bit(1)
            stream.write_uint(ord('A'), 8)
        with self.assertRaises(CorruptHeaderError):
            deserialize_tree(stream.to_bytes(), stream.bit_count)

    def test_too_deep(self):
        with self.assertRaises(CorruptHeaderError):
            deserialize_tree(b'\x00' * 38, 300)


class TestContainer(unittest.TestCase):
    def test_empty_artifact(self):
        self.assertEqual(CompressedArtifact().to_bytes(), b'')
        self.assertTrue(CompressedArtifact.from_bytes(b'').is_empty)

    def test_layout(self):
        data = compress(b"aaabbc").to_bytes()
        self.assertEqual(HEADER_SIZE, 28)
        self.assertEqual(data[:4], HUFFMAN_MAGIC)
        self.assertEqual(len(data), HEADER_SIZE + 4 + 2)
        self.assertEqual(data[-2:], b'\x1f\x00')

    def test_parse_roundtrip(self):
        artifact = compress(b"The quick brown fox jumps over the lazy dog")
        self.assertEqual(CompressedArtifact.from_bytes(artifact.to_bytes()), artifact)

    def test_header_too_small(self):
        with self.assertRaises(CorruptHeaderError):
            CompressedArtifact.from_bytes(b'HUFF')

    def test_bad_magic(self):
        data = bytearray(compress(b"Hello World" * 50).to_bytes())
        data[0] ^= 0xFF
        with self.assertRaises(CorruptHeaderError):
            CompressedArtifact.from_bytes(bytes(data))

    def test_bad_version(self):
        data = bytearray(compress(b"Hello").to_bytes())
        data[4] = 2
        with self.assertRaises(CorruptHeaderError):
            CompressedArtifact.from_bytes(bytes(data))

    def test_missing_tree(self):
        artifact = dataclasses.replace(compress(b"Hello"), tree_bit_count=0, tree_data=b'')
        with self.assertRaises(CorruptHeaderError):
            CompressedArtifact.from_bytes(artifact.to_bytes())

    def test_truncated_content(self):
        data = compress(b"This is a test" * 100).to_bytes()
        with self.assertRaises(TruncatedContentError):
            CompressedArtifact.from_bytes(data[:-1])

    def test_trailing_bytes(self):
        data = compress(b"This is a test").to_bytes()
        with self.assertRaises(CorruptHeaderError):
            CompressedArtifact.from_bytes(data + b'\x00')


class TestCompression(unittest.TestCase):
    def assertRoundtrip(self, data: bytes):
        self.assertEqual(decompress(compress(data)), data)
        self.assertEqual(decompress_bytes(compress_bytes(data)), data)

    def test_empty(self):
        self.assertEqual(compress_bytes(b""), b"")
        self.assertRoundtrip(b"")

    def test_single_byte(self):
        self.assertRoundtrip(b"x")

    def test_two_symbols(self):
        self.assertRoundtrip(b"ab")
        self.assertRoundtrip(b"abababbbbbba")

    def test_all_bytes_once(self):
        self.assertRoundtrip(bytes(range(256)))

    def test_random_data(self):
        random.seed(1234)
        self.assertRoundtrip(bytes(random.getrandbits(8) for _ in range(10 * 1024)))

    def test_text(self):
        self.assertRoundtrip(b"Lorem ipsum dolor sit amet " * 200)

    def test_aaabbc(self):
        artifact = compress(b"aaabbc")
        self.assertEqual(artifact.original_size, 6)
        self.assertEqual(artifact.content_bit_count, 9)
        self.assertEqual(artifact.content_data, b'\x1f\x00')
        self.assertEqual(artifact.tree_bit_count, 29)
        self.assertEqual(decompress(artifact), b"aaabbc")

    def test_degenerate_alphabet(self):
        data = b"A" * 1000
        artifact = compress(data)
        self.assertEqual(artifact.tree_bit_count, 9)
        self.assertEqual(artifact.content_bit_count, 1000)
        self.assertTrue(deserialize_tree(artifact.tree_data, artifact.tree_bit_count).is_leaf)
        self.assertEqual(decompress(artifact), data)

    def test_deterministic(self):
        data = b"mississippi river banks" * 30
        self.assertEqual(compress_bytes(data), compress_bytes(data))

    def test_counts_its_own_frequencies(self):
        # таблица частот всегда считается по самим данным
        with self.assertRaises(TypeError):
            compress(b"ab", count_frequencies(b"abbbbc"))
        self.assertEqual(compress(b"ab").to_bytes(), compress_bytes(b"ab"))

    def test_truncated_stream(self):
        data = compress_bytes(b"This is a test" * 100)
        with self.assertRaises(TruncatedContentError):
            decompress_bytes(data[:-1])

    def test_corrupted_header(self):
        data = bytearray(compress_bytes(b"Hello World" * 50))
        data[0] ^= 0xFF
        with self.assertRaises(CorruptHeaderError):
            decompress_bytes(bytes(data))

    def test_size_mismatch(self):
        artifact = compress(b"Hello World")
        artifact = dataclasses.replace(artifact, original_size=artifact.original_size + 1)
        with self.assertRaises(TruncatedContentError):
            decompress(artifact)

    def test_checksum_mismatch(self):
        artifact = compress(b"Hello World")
        artifact = dataclasses.replace(artifact, crc32=artifact.crc32 ^ 1)
        with self.assertRaises(ChecksumMismatchError):
            decompress(artifact)

    def test_flipped_content_bit(self):
        data = b"abcdefgh" * 16
        artifact = compress(data)
        content = bytearray(artifact.content_data)
        content[3] ^= 0x10
        with self.assertRaises(HuffmanError):
            decompress(dataclasses.replace(artifact, content_data=bytes(content)))

    def test_crc_matches_original(self):
        data = b"checksum me"
        self.assertEqual(compress(data).crc32, calculate_crc32(data))


class TestArchiver(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.archiver = Archiver()

    def tearDown(self):
        import shutil
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def _write(self, name: str, data: bytes) -> str:
        path = os.path.join(self.temp_dir, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def test_paths(self):
        self.assertEqual(compressed_path("doc.txt"), "doc.txt.huf")
        self.assertEqual(decompressed_path("doc.txt.huf"), "doc_decompressed.txt")
        self.assertEqual(decompressed_path("doc.bin"), "doc_decompressed.bin")

    def test_default_decompress_keeps_original(self):
        data = b"keep the original file intact"
        path = self._write("original.txt", data)
        packed = self.archiver.compress_file(path)
        self._write("original.txt", b"edited after compression")

        unpacked = self.archiver.decompress_file(packed.destination)
        self.assertEqual(unpacked.destination, os.path.join(self.temp_dir, "original_decompressed.txt"))
        with open(path, 'rb') as f:
            self.assertEqual(f.read(), b"edited after compression")
        with open(unpacked.destination, 'rb') as f:
            self.assertEqual(f.read(), data)

    @unittest.skipUnless(hasattr(os, 'mkfifo'), "named pipes are not available")
    def test_compress_from_pipe(self):
        data = b"streamed through a pipe\n" * 500
        fifo = os.path.join(self.temp_dir, "input.fifo")
        os.mkfifo(fifo)

        def feed():
            with open(fifo, 'wb') as f:
                f.write(data)

        writer = threading.Thread(target=feed, daemon=True)
        writer.start()
        output = os.path.join(self.temp_dir, "pipe.huf")
        report = Archiver(chunk_size=1000).compress_file(fifo, output)
        writer.join(timeout=5)

        self.assertFalse(writer.is_alive())
        self.assertEqual(report.original_size, len(data))
        with open(output, 'rb') as f:
            self.assertEqual(decompress_bytes(f.read()), data)

    def test_chunked_frequencies(self):
        data = b"Hello World! " * 100
        path = self._write("test.txt", data)
        archiver = Archiver(chunk_size=7)
        self.assertEqual(dict(archiver.read_frequencies(path)), dict(count_frequencies(data)))

    def test_compress_decompress_file(self):
        data = b"Hello World! " * 100
        path = self._write("test.txt", data)

        report = self.archiver.compress_file(path)
        self.assertEqual(report.destination, path + ".huf")
        self.assertTrue(os.path.isfile(report.destination))
        self.assertEqual(report.original_size, len(data))
        self.assertLess(report.compressed_size, report.original_size)

        restored_path = os.path.join(self.temp_dir, "restored.txt")
        self.archiver.decompress_file(report.destination, restored_path)
        with open(restored_path, 'rb') as f:
            self.assertEqual(f.read(), data)

    def test_empty_file(self):
        path = self._write("empty.txt", b"")
        report = self.archiver.compress_file(path)
        self.assertEqual(report.compressed_size, 0)

        restored_path = os.path.join(self.temp_dir, "empty.out")
        self.archiver.decompress_file(report.destination, restored_path)
        with open(restored_path, 'rb') as f:
            self.assertEqual(f.read(), b"")

    def test_roundtrip_file(self):
        path = self._write("file1.txt", b"Content of file 1\n" * 50)
        with redirect_stdout(io.StringIO()):
            self.assertTrue(self.archiver.roundtrip_file(path))
        self.assertTrue(os.path.isfile(os.path.join(self.temp_dir, "file1_decompressed.txt")))

    def test_describe_file(self):
        path = self._write("codes.txt", b"aaabbc")
        entries = self.archiver.describe_file(path)
        self.assertEqual([(e.symbol, e.frequency, e.code) for e in entries],
                         [(A, 3, '0'), (B, 2, '11'), (C, 1, '10')])

    def test_describe_empty_file(self):
        path = self._write("empty.txt", b"")
        self.assertEqual(self.archiver.describe_file(path), [])

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            self.archiver.compress_file(os.path.join(self.temp_dir, "missing.txt"))

    def test_unwritable_output(self):
        path = self._write("test.txt", b"nowhere to go")
        missing_dir = os.path.join(self.temp_dir, "no", "such", "dir")

        with self.assertRaises(OSError):
            self.archiver.compress_file(path, os.path.join(missing_dir, "test.huf"))

        packed = self.archiver.compress_file(path)
        with self.assertRaises(OSError):
            self.archiver.decompress_file(packed.destination, os.path.join(missing_dir, "test.txt"))

    def test_corrupted_file(self):
        path = self._write("broken.huf", b"not a huffman file at all, really not")
        with self.assertRaises(CorruptHeaderError):
            self.archiver.decompress_file(path, os.path.join(self.temp_dir, "broken.out"))

    def test_verbose_goes_to_stderr(self):
        path = self._write("test.txt", b"verbose output")
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            Archiver(verbose=True).compress_file(path)
        self.assertEqual(stdout.getvalue(), "")
        self.assertIn("content:", stderr.getvalue())


class TestCommandLine(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.source = os.path.join(self.temp_dir, "input.txt")
        with open(self.source, 'wb') as f:
            f.write(b"command line input\n" * 20)

    def tearDown(self):
        import shutil
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def _run(self, *argv):
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(list(argv))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_compress_and_decompress(self):
        code, out, _ = self._run("compress", self.source)
        self.assertEqual(code, 0)
        self.assertIn("input.txt.huf", out)

        restored = os.path.join(self.temp_dir, "restored.txt")
        code, _, _ = self._run("decompress", self.source + ".huf", "-o", restored)
        self.assertEqual(code, 0)
        with open(restored, 'rb') as f, open(self.source, 'rb') as g:
            self.assertEqual(f.read(), g.read())

    def test_roundtrip(self):
        code, out, _ = self._run("roundtrip", self.source)
        self.assertEqual(code, 0)
        self.assertIn("Roundtrip OK", out)

    def test_codes(self):
        code, out, _ = self._run("codes", self.source, "--limit", "3")
        self.assertEqual(code, 0)
        self.assertEqual(len(out.strip().splitlines()), 2 + 3)

    def test_missing_file(self):
        code, _, err = self._run("decompress", os.path.join(self.temp_dir, "nope.huf"))
        self.assertEqual(code, 1)
        self.assertIn("Error:", err)

    def test_corrupted_file(self):
        broken = os.path.join(self.temp_dir, "broken.huf")
        with open(broken, 'wb') as f:
            f.write(b"garbage" * 10)
        code, _, err = self._run("decompress", broken, "-o", os.path.join(self.temp_dir, "x"))
        self.assertEqual(code, 1)
        self.assertIn("Error:", err)

    def test_unwritable_output(self):
        output = os.path.join(self.temp_dir, "missing", "out.huf")
        code, _, err = self._run("compress", self.source, "-o", output)
        self.assertEqual(code, 1)
        self.assertIn("Error:", err)

    def test_negative_limit_rejected(self):
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                main(["codes", self.source, "--limit", "-1"])
        self.assertEqual(ctx.exception.code, 2)

    def test_printable_symbols(self):
        self.assertEqual(_printable(ord('a')), "'a'")
        self.assertEqual(_printable(0x0a), "0x0a")
        self.assertEqual(_printable(0xe9), "0xe9")

    def test_no_command(self):
        code, out, _ = self._run()
        self.assertEqual(code, 0)
        self.assertIn("usage", out)


def run_tests():
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    suite.addTests(loader.loadTestsFromTestCase(TestFrequencies))
    suite.addTests(loader.loadTestsFromTestCase(TestTreeBuilder))
    suite.addTests(loader.loadTestsFromTestCase(TestCodeTable))
    suite.addTests(loader.loadTestsFromTestCase(TestBitStream))
    suite.addTests(loader.loadTestsFromTestCase(TestBitstreamCoding))
    suite.addTests(loader.loadTestsFromTestCase(TestTreeSerializer))
    suite.addTests(loader.loadTestsFromTestCase(TestContainer))
    suite.addTests(loader.loadTestsFromTestCase(TestCompression))
    suite.addTests(loader.loadTestsFromTestCase(TestArchiver))
    suite.addTests(loader.loadTestsFromTestCase(TestCommandLine))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return 0 if result.wasSuccessful() else 1


if __name__ == '__main__':
    sys.exit(run_tests())
