import heapq
from itertools import count
import numpy as np
from byteobj import HuffmanNode

# characters with a meaning in the tree line, written as \xHH when they are symbols
TREE_META = "() \\\n\r"
HEX_DIGITS = "0123456789abcdef"


class EmptyInputError(ValueError):
    pass


class ContainerError(ValueError):
    pass


class FrequencyTable:
    def __init__(self):
        self.counts = np.zeros(256, dtype=np.int64)

    @classmethod
    def from_chunks(cls, chunks):
        table = cls()
        for chunk in chunks:
            table.update(chunk)
        return table

    def increment(self, symbol):
        self.counts[symbol] += 1

    def update(self, chunk):
        self.counts += np.bincount(np.frombuffer(chunk, dtype=np.uint8), minlength=256)

    def get(self, symbol):
        # None for symbols never seen, there are no zero entries
        freq = int(self.counts[symbol])
        return freq if freq else None

    def items(self):
        return [(symbol, int(self.counts[symbol])) for symbol in self]

    def total(self):
        return int(self.counts.sum())

    def __len__(self):
        return int(np.count_nonzero(self.counts))

    def __iter__(self):
        return (int(symbol) for symbol in np.flatnonzero(self.counts))

    def __repr__(self):
        return f"FrequencyTable({dict(self.items())})"


class PriorityQueue:
    """Ascending by frequency. Equal frequencies leave in insertion order."""

    def __init__(self):
        self.heap = []
        self.order = count()

    def insert(self, node):
        heapq.heappush(self.heap, (node.freq, next(self.order), node))

    def remove_min(self):
        if not self.heap:
            return None
        return heapq.heappop(self.heap)[2]

    def peek_min(self):
        if not self.heap:
            return None
        return self.heap[0][2]

    def __len__(self):
        return len(self.heap)


def build_tree(freqs):
    """
    Merges the two lightest subtrees until one is left and returns it.
    :param freqs: FrequencyTable or any symbol -> count mapping
    :return: root HuffmanNode, a lone leaf when only one symbol occurs
    """
    leaves = [(symbol, freq) for symbol, freq in sorted(freqs.items()) if freq]
    if not leaves:
        raise EmptyInputError("cannot build a Huffman tree from empty input")

    queue = PriorityQueue()
    for symbol, freq in leaves:
        queue.insert(HuffmanNode(bytes([symbol]), freq))
    while len(queue) > 1:
        first = queue.remove_min()
        second = queue.remove_min()
        queue.insert(HuffmanNode(first.symbols + second.symbols, first.freq + second.freq, first, second))
    return queue.peek_min()


def find_codes(tree):
    bit_conversion = {}
    if tree.is_leaf:
        # a lone leaf still needs one bit per occurrence
        bit_conversion[tree.symbol] = "0"
        return bit_conversion

    def dfs(root, path):
        if root.is_leaf:
            bit_conversion[root.symbol] = "".join(path)
        else:
            dfs(root.left, path + ["0"])
            dfs(root.right, path + ["1"])

    dfs(tree, [])
    return bit_conversion


def encoded_bit_length(freqs, codes):
    return sum(freq * len(codes[symbol]) for symbol, freq in freqs.items())


def padding_bits(total_bits):
    return (8 - total_bits % 8) % 8


def count_nodes(tree):
    leaves = internal = 0
    stack = [tree]
    while stack:
        node = stack.pop()
        if node.is_leaf:
            leaves += 1
        else:
            internal += 1
            stack.extend((node.left, node.right))
    return leaves, internal


def leaf_text(symbol):
    char = chr(symbol)
    if char in TREE_META:
        return f"\\x{symbol:02x}"
    return char


def serialize_tree(tree):
    if tree.is_leaf:
        return f"({leaf_text(tree.symbol)})"

    def rep(node):
        if node.is_leaf:
            return leaf_text(node.symbol)
        return f"({rep(node.left)} {rep(node.right)})"

    return rep(tree)


def parse_tree(text):
    """
    Rebuilds the tree shape written by serialize_tree. Frequencies are not
    part of the tree line, so every node comes back with freq 0.
    """
    pos = 0

    def fail(reason):
        raise ContainerError(f"bad tree at column {pos}: {reason}")

    def expect(char):
        nonlocal pos
        if text[pos:pos + 1] != char:
            fail(f"expected {char!r}")
        pos += 1

    def leaf():
        nonlocal pos
        if text.startswith("\\x", pos):
            digits = text[pos + 2:pos + 4]
            if len(digits) != 2 or any(d not in HEX_DIGITS for d in digits):
                fail("bad escape")
            pos += 4
            return HuffmanNode(bytes([int(digits, 16)]), 0)
        char = text[pos:pos + 1]
        if not char or char in TREE_META or ord(char) > 0xFF:
            fail("expected a symbol")
        pos += 1
        return HuffmanNode(bytes([ord(char)]), 0)

    def subtree():
        nonlocal pos
        if text[pos:pos + 1] != "(":
            return leaf()
        pos += 1
        left = subtree()
        expect(" ")
        right = subtree()
        expect(")")
        return HuffmanNode(left.symbols + right.symbols, 0, left, right)

    if text.startswith("(") and text.endswith(")") and len(text) in (3, 6):
        # lone leaf, "(x)" or "(\xHH)"
        pos = 1
        root = leaf()
        if pos == len(text) - 1:
            return root
        pos = 0

    root = subtree()
    if root.is_leaf:
        fail("a lone symbol must be wrapped in parentheses")
    if pos != len(text):
        fail("trailing characters")
    if len(set(root.symbols)) != len(root.symbols):
        fail("symbol appears twice")
    return root
