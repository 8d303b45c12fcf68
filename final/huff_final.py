#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
huff_final.py -- Byte-oriented Huffman compressor with canonical reconstruction.

This module contains the complete encode/decode pipeline of a lossless
Huffman coder for 8-bit symbols.  Data flows through a short chain of
small, deterministic stages:

    bytes -> histogram -> min-heap -> prefix tree -> code table
          -> packed bitstream -> container

The decoder never sees the tree itself.  Only the 256-entry histogram is
persisted, and the decoder rebuilds a tree identical to the encoder's by
running the very same heap with the very same tie-break rule.  Any change
to the queue ordering therefore changes the exact output bytes (never the
round-trip property).

### Container format

All integers are little endian.  The header has a fixed size of 1038
bytes (``struct`` format ``'<4sBQB256I'``):

* ``4s  magic``       -- ``b'HUFF'``.
* ``u8  version``     -- currently ``1``.
* ``u64 orig_len``    -- number of bytes in the original input.
* ``u8  pad_bits``    -- zero bits appended to complete the last byte (0-7).
* ``256 x u32 freq``  -- occurrence count of every byte value, in order.

The packed bitstream (MSB first) runs from the end of the header to the
end of the container.  An empty input produces a header-only container.

### Tie-break rule

The priority queue is a plain array-backed binary heap.  ``insert`` sifts
up while the parent is *strictly* heavier; ``extract_min`` sifts down and,
when both children weigh the same, descends into the LEFT child.  During
tree construction the first extracted node becomes the left child of the
merged node.  Leaves are inserted in byte-value order.

### Frequency counters

Three interchangeable counters share one contract (buffer in, 256 exact
counts out, no side effects): a scalar reference, a vectorised
``numpy.bincount`` counter, and a chunked counter that counts partitions
on a thread pool and merges the partial histograms by addition.

Usage:
    python3 huff_final.py input.bin              # -> input.bin.huff
    python3 huff_final.py -d input.bin.huff      # -> input.bin.out
    python3 huff_final.py --benchmark
"""

from __future__ import annotations

import functools
import os
import struct
import sys
import tempfile
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

MAGIC = b'HUFF'
VERSION = 1
ALPHABET_SIZE = 256
# 256 leaves plus 255 merges
MAX_NODES = 2 * ALPHABET_SIZE - 1
MAX_COUNT = 0xFFFFFFFF
DEFAULT_CHUNK_SIZE = 1 << 20

HEADER = struct.Struct('<4sBQB%dI' % ALPHABET_SIZE)

Code = Tuple[int, int]
FrequencyCounter = Callable[[bytes], List[int]]

# Stage messages (set by the CLI)
G_VERBOSE: bool = False

def _print_stage(label: str, msg: str) -> None:
    """Print a ``[label] msg`` line when verbose output is enabled."""
    if not G_VERBOSE:
        return
    print(f"[{label}] {msg}", flush=True)

###############################################################################
# Errors
###############################################################################

class HuffmanError(Exception):
    """Base class for every failure reported by this module.

    ``path`` names the file being processed when the error was raised by
    one of the file-level entry points, and is ``None`` otherwise.
    """
    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message

class FileAccessError(HuffmanError):
    """An input or output file could not be opened, read or written."""

class CorruptContainerError(HuffmanError, ValueError):
    """The container header or histogram fails structural validation."""

class TruncatedStreamError(HuffmanError, EOFError):
    """The bitstream ended before every declared symbol was decoded."""

###############################################################################
# Frequency counting
###############################################################################

def count_frequencies(data: bytes) -> List[int]:
    """Scalar reference counter: exact occurrence count of each byte value."""
    counts = Counter(data)
    return [counts.get(i, 0) for i in range(ALPHABET_SIZE)]

def _histogram(data) -> np.ndarray:
    return np.bincount(np.frombuffer(data, dtype=np.uint8), minlength=ALPHABET_SIZE)

def count_frequencies_fast(data: bytes) -> List[int]:
    """Vectorised counter built on ``numpy.bincount``.

    Drop-in replacement for :func:`count_frequencies`; both must always
    return the same 256 counts for the same buffer.
    """
    return _histogram(data).tolist()

def count_frequencies_chunked(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE,
                              workers: Optional[int] = None) -> List[int]:
    """Count ``data`` in independent chunks and merge the partial histograms.

    Each chunk of at most ``chunk_size`` bytes is counted on a thread pool
    of ``workers`` threads (``None`` lets the executor decide).  Counting
    is commutative and associative, so the merged result does not depend
    on chunk size, worker count or completion order.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    view = memoryview(data)
    chunks = [view[i:i + chunk_size] for i in range(0, len(view), chunk_size)]
    if not chunks:
        return [0] * ALPHABET_SIZE
    with ThreadPoolExecutor(max_workers=workers) as pool:
        partials = list(pool.map(_histogram, chunks))
    return np.sum(partials, axis=0).tolist()

COUNTERS = {
    'scalar': count_frequencies,
    'numpy': count_frequencies_fast,
    'chunked': count_frequencies_chunked,
}

###############################################################################
# Priority queue and tree construction
###############################################################################

class HuffNode:
    """Tree node.  Leaves carry a ``symbol``; internal nodes own two children."""
    __slots__ = ('weight', 'symbol', 'left', 'right')
    def __init__(self, weight: int, symbol: Optional[int] = None,
                 left: Optional[HuffNode] = None, right: Optional[HuffNode] = None) -> None:
        self.weight = weight
        self.symbol = symbol
        self.left = left
        self.right = right

    def is_leaf(self) -> bool:
        return self.symbol is not None

class PriorityQueue:
    """Array-backed binary min-heap of :class:`HuffNode` ordered by weight.

    The ordering on equal weights is fixed (see the module docstring) so
    that encoder and decoder build the same tree.  ``heapq`` is not used
    because its tie handling depends on comparing the nodes themselves.
    """
    __slots__ = ('nodes', 'capacity')
    def __init__(self, capacity: int = MAX_NODES) -> None:
        self.nodes: List[HuffNode] = []
        self.capacity = capacity

    def __len__(self) -> int:
        return len(self.nodes)

    def insert(self, node: HuffNode) -> None:
        nodes = self.nodes
        assert len(nodes) < self.capacity, "priority queue capacity exceeded"
        i = len(nodes)
        nodes.append(node)
        while i:
            parent = (i - 1) // 2
            if nodes[parent].weight <= node.weight:
                break
            nodes[i] = nodes[parent]
            i = parent
        nodes[i] = node

    def extract_min(self) -> HuffNode:
        nodes = self.nodes
        assert nodes, "extract_min on an empty queue"
        smallest = nodes[0]
        last = nodes.pop()
        size = len(nodes)
        if not size:
            return smallest
        nodes[0] = last
        i = 0
        while 2 * i + 1 < size:
            child = 2 * i + 1
            # right child only when strictly lighter
            if child + 1 < size and nodes[child + 1].weight < nodes[child].weight:
                child += 1
            if nodes[i].weight <= nodes[child].weight:
                break
            nodes[i], nodes[child] = nodes[child], nodes[i]
            i = child
        return smallest

def build_tree(frequencies: Sequence[int]) -> Optional[HuffNode]:
    """Build the Huffman tree for a 256-entry histogram.

    Returns ``None`` when every count is zero.  A histogram with a single
    distinct symbol yields a synthetic root whose left child is that leaf,
    so the symbol still receives a 1-bit code.
    """
    queue = PriorityQueue()
    for symbol, weight in enumerate(frequencies):
        if weight > 0:
            queue.insert(HuffNode(weight, symbol=symbol))
    if not queue:
        return None
    if len(queue) == 1:
        leaf = queue.extract_min()
        return HuffNode(leaf.weight, left=leaf)
    while len(queue) > 1:
        left = queue.extract_min()
        right = queue.extract_min()
        queue.insert(HuffNode(left.weight + right.weight, left=left, right=right))
    return queue.extract_min()

###############################################################################
# Code table
###############################################################################

def build_code_table(root: Optional[HuffNode]) -> List[Optional[Code]]:
    """Derive ``(length, bits)`` for every symbol present in the tree.

    The walk is iterative, so pathologically deep trees (codes up to 255
    bits) need neither recursion nor truncation.  Absent symbols map to
    ``None``.
    """
    table: List[Optional[Code]] = [None] * ALPHABET_SIZE
    if root is None:
        return table
    stack = [(root, 0, 0)]
    while stack:
        node, length, bits = stack.pop()
        if node.symbol is not None:
            table[node.symbol] = (length, bits)
            continue
        if node.right is not None:
            stack.append((node.right, length + 1, (bits << 1) | 1))
        if node.left is not None:
            stack.append((node.left, length + 1, bits << 1))
    return table

def format_code(code: Code) -> str:
    """Render a ``(length, bits)`` pair as a string of ``'0'``/``'1'``."""
    length, bits = code
    return format(bits, '0%db' % length) if length else ''

def is_prefix_free(table: Sequence[Optional[Code]]) -> bool:
    """True when no assigned code is a prefix of another assigned code."""
    codes = sorted(format_code(c) for c in table if c is not None)
    return all(not b.startswith(a) for a, b in zip(codes, codes[1:]))

def max_code_length(table: Sequence[Optional[Code]]) -> int:
    return max((c[0] for c in table if c is not None), default=0)

###############################################################################
# Bit packing
###############################################################################

class BitWriter:
    """MSB-first bit packer.

    Bits accumulate in an integer and leave it in whole bytes, so a partial
    byte is carried across calls.  :meth:`finalize` zero-pads the tail and
    returns the pad count alongside the bytes, because the pad is not
    implied by the byte length.
    """
    __slots__ = ("buf", "acc", "nbits", "bit_count")
    def __init__(self) -> None:
        self.buf = bytearray()
        self.acc = 0
        self.nbits = 0
        self.bit_count = 0

    def write_bits(self, bits: int, length: int) -> None:
        self.acc = (self.acc << length) | bits
        self.nbits += length
        self.bit_count += length
        if self.nbits >= 64:
            keep = self.nbits & 7
            self.buf += (self.acc >> keep).to_bytes(self.nbits >> 3, 'big')
            self.acc &= (1 << keep) - 1
            self.nbits = keep

    def write_bit(self, bit: int) -> None:
        self.write_bits(1 if bit else 0, 1)

    def finalize(self) -> Tuple[bytes, int]:
        pad = -self.nbits & 7
        if self.nbits:
            self.buf += (self.acc << pad).to_bytes((self.nbits + pad) >> 3, 'big')
            self.acc = 0
            self.nbits = 0
        return bytes(self.buf), pad

class BitReader:
    """Yield the first ``bit_count`` bits of ``data`` in written order."""
    __slots__ = ("data", "bit_count", "pos")
    def __init__(self, data: bytes, bit_count: Optional[int] = None) -> None:
        if bit_count is None:
            bit_count = len(data) * 8
        assert 0 <= bit_count <= len(data) * 8
        self.data = data
        self.bit_count = bit_count
        self.pos = 0

    @property
    def remaining(self) -> int:
        return self.bit_count - self.pos

    def read_bit(self) -> int:
        pos = self.pos
        if pos >= self.bit_count:
            raise TruncatedStreamError(f"bitstream exhausted after {pos} bits")
        self.pos = pos + 1
        return (self.data[pos >> 3] >> (7 - (pos & 7))) & 1

    def read_bits(self, n: int) -> int:
        v = 0
        for _ in range(n):
            v = (v << 1) | self.read_bit()
        return v

###############################################################################
# Container
###############################################################################

def compress(data: bytes, counter: Optional[FrequencyCounter] = None) -> bytes:
    """Compress ``data`` into a self-describing container.

    ``counter`` selects the frequency counter (default
    :func:`count_frequencies_fast`); any function honouring the counter
    contract gives byte-identical output.
    """
    frequencies = (counter or count_frequencies_fast)(data)
    if len(frequencies) != ALPHABET_SIZE or sum(frequencies) != len(data):
        raise ValueError("frequency counter returned an inconsistent histogram")
    if max(frequencies) > MAX_COUNT:
        raise ValueError("input too large: a byte count exceeds 32 bits")

    root = build_tree(frequencies)
    table = build_code_table(root)
    _print_stage('compress', f"{len(data)} bytes, "
                 f"{sum(1 for f in frequencies if f)} distinct symbols, "
                 f"max code length {max_code_length(table)}")

    writer = BitWriter()
    write_bits = writer.write_bits
    for byte in data:
        length, bits = table[byte]
        write_bits(bits, length)
    payload, pad_bits = writer.finalize()
    _print_stage('compress', f"{writer.bit_count} payload bits, {pad_bits} pad bits")

    header = HEADER.pack(MAGIC, VERSION, len(data), pad_bits, *frequencies)
    return header + payload

def read_header(blob: bytes) -> Tuple[int, int, List[int]]:
    """Parse and validate a container header.

    Returns ``(orig_len, pad_bits, frequencies)``.  Raises
    :class:`CorruptContainerError` when the header is short, carries the
    wrong marker or version, an impossible pad count, or a histogram that
    does not add up to ``orig_len``.
    """
    if len(blob) < HEADER.size:
        raise CorruptContainerError(
            f"truncated header: {len(blob)} bytes, need {HEADER.size}")
    fields = HEADER.unpack_from(blob, 0)
    magic, version, orig_len, pad_bits = fields[:4]
    frequencies = list(fields[4:])
    if magic != MAGIC:
        raise CorruptContainerError(f"bad magic {magic!r}")
    if version != VERSION:
        raise CorruptContainerError(f"unsupported version {version}")
    if pad_bits > 7:
        raise CorruptContainerError(f"invalid pad bit count {pad_bits}")
    if sum(frequencies) != orig_len:
        raise CorruptContainerError(
            f"histogram sums to {sum(frequencies)}, header declares {orig_len} bytes")
    if len(blob) == HEADER.size and pad_bits:
        raise CorruptContainerError("pad bits declared for an empty bitstream")
    return orig_len, pad_bits, frequencies

def decompress(blob: bytes) -> bytes:
    """Decompress a container produced by :func:`compress`.

    The tree is rebuilt from the stored histogram, then each symbol is
    recovered by walking from the root one bit at a time.  Raises
    :class:`TruncatedStreamError` when the bits run out early and
    :class:`CorruptContainerError` for malformed containers, including
    leftover bits once ``orig_len`` symbols have been produced.
    """
    orig_len, pad_bits, frequencies = read_header(blob)
    payload = blob[HEADER.size:]
    root = build_tree(frequencies)
    reader = BitReader(payload, len(payload) * 8 - pad_bits)
    _print_stage('decompress', f"{orig_len} symbols from {reader.bit_count} bits")

    out = bytearray()
    read_bit = reader.read_bit
    for _ in range(orig_len):
        node = root
        while node.symbol is None:
            node = node.right if read_bit() else node.left
            if node is None:
                raise CorruptContainerError(
                    f"bitstream addresses a missing branch at bit {reader.pos}")
        out.append(node.symbol)
    if reader.remaining:
        raise CorruptContainerError(f"{reader.remaining} unused bits after the last symbol")
    return bytes(out)

###############################################################################
# File entry points
###############################################################################

@dataclass(frozen=True)
class CompressionResult:
    """Summary of one file operation."""
    original_size: int
    compressed_size: int
    compression_ratio: float
    processing_time: float

    @property
    def throughput_mb_s(self) -> float:
        if self.processing_time <= 0:
            return 0.0
        return (self.original_size / (1024.0 * 1024.0)) / self.processing_time

def compression_ratio(original_size: int, compressed_size: int) -> float:
    """Space saving in percent; negative when the container is larger."""
    if not original_size:
        return 0.0
    return (1.0 - compressed_size / original_size) * 100.0

def _read_file(path: str) -> bytes:
    try:
        with open(path, 'rb') as f:
            return f.read()
    except OSError as e:
        raise FileAccessError(f"cannot read input: {e.strerror or e}", path=path) from e

def _write_file(path: str, blob: bytes) -> int:
    """Write ``blob`` to ``path`` via a temporary sibling; nothing is left on failure."""
    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp_path = tempfile.mkstemp(prefix='.' + os.path.basename(path) + '.',
                                        suffix='.tmp', dir=directory)
    except OSError as e:
        raise FileAccessError(f"cannot create output: {e.strerror or e}", path=path) from e
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(blob)
        os.replace(tmp_path, path)
    except BaseException as e:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        if isinstance(e, OSError):
            raise FileAccessError(f"cannot write output: {e.strerror or e}", path=path) from e
        raise
    return len(blob)

def compress_file(input_path: str, output_path: str,
                  counter: Optional[FrequencyCounter] = None) -> CompressionResult:
    """Compress ``input_path`` into ``output_path``.

    ``compressed_size`` is the number of bytes written to the container.
    """
    start = time.perf_counter()
    data = _read_file(input_path)
    blob = compress(data, counter=counter)
    written = _write_file(output_path, blob)
    return CompressionResult(
        original_size=len(data),
        compressed_size=written,
        compression_ratio=compression_ratio(len(data), written),
        processing_time=time.perf_counter() - start,
    )

def decompress_file(input_path: str, output_path: str) -> CompressionResult:
    """Decompress ``input_path`` into ``output_path``.

    Success is the returned result (``original_size`` is the restored
    length); corrupt or truncated containers raise before anything is
    written.
    """
    start = time.perf_counter()
    blob = _read_file(input_path)
    try:
        out = decompress(blob)
    except HuffmanError as e:
        e.path = input_path
        raise
    _write_file(output_path, out)
    return CompressionResult(
        original_size=len(out),
        compressed_size=len(blob),
        compression_ratio=compression_ratio(len(out), len(blob)),
        processing_time=time.perf_counter() - start,
    )

###############################################################################
# CLI
###############################################################################

def _print_result(title: str, path: str, result: CompressionResult) -> None:
    print(f"{title}: {path}")
    print(f"  Original Size: {result.original_size} bytes")
    print(f"  Compressed Size: {result.compressed_size} bytes")
    print(f"  Compression Ratio: {result.compression_ratio:.2f}%")
    print(f"  Processing Time: {result.processing_time:.6f} seconds")
    print(f"  Throughput: {result.throughput_mb_s:.2f} MB/s")

def main(argv: Optional[Sequence[str]] = None) -> int:
    import argparse
    global G_VERBOSE
    parser = argparse.ArgumentParser(description='Huffman byte compressor')
    parser.add_argument('input', nargs='?', help='Input file to compress or decompress')
    parser.add_argument('-d', '--decompress', action='store_true', help='Decompress')
    parser.add_argument('-o', '--output', help='Output file')
    parser.add_argument('--counter', choices=sorted(COUNTERS), default='numpy',
                        help='Frequency counter used when compressing (default numpy)')
    parser.add_argument('--workers', type=int, default=None,
                        help='Thread count for the chunked counter')
    parser.add_argument('--benchmark', action='store_true',
                        help='Write sample files, run the size sweep and counter benchmark')
    parser.add_argument('--verbose', action='store_true', help='Print per-stage details')
    args = parser.parse_args(argv)

    G_VERBOSE = bool(args.verbose)

    if args.workers is not None and args.counter != 'chunked':
        parser.error('--workers requires --counter chunked')

    if args.benchmark:
        import benchmark_compare
        benchmark_compare.create_test_environment()
        benchmark_compare.run_performance_benchmark()
        benchmark_compare.run_benchmarks()
        return 0

    if not args.input:
        parser.print_help()
        return 0

    try:
        if args.decompress:
            outname = args.output or (os.path.splitext(args.input)[0] + '.out')
            result = decompress_file(args.input, outname)
            _print_result('Decompressed', outname, result)
        else:
            counter = COUNTERS[args.counter]
            if args.workers is not None:
                counter = functools.partial(count_frequencies_chunked, workers=args.workers)
            outname = args.output or (args.input + '.huff')
            result = compress_file(args.input, outname, counter=counter)
            _print_result('Compressed', outname, result)
    except HuffmanError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0

if __name__ == '__main__':
    sys.exit(main())
