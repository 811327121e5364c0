import numpy as np
from huffman import ContainerError


class BitPacker:
    """
    Packs Huffman codes MSB-first into bytes, one symbol at a time.

    encoded[:index] holds finished bytes, encoded[index] the byte being
    filled, of which sub_index leading bits are already used.
    """

    def __init__(self, codes):
        self.codes = {symbol: (int(code, 2), len(code)) for symbol, code in codes.items()}
        # a code is at most len(codes) - 1 bits long, so it never spans more
        # than len(codes) // 8 + 1 bytes from any starting offset
        self.size = -(-len(codes) // 8) + 2
        self.encoded = bytearray(self.size)
        self.index = 0
        self.sub_index = 0
        self.bit_count = 0

    @property
    def pending_bits(self):
        return self.sub_index

    def add_to_encoded(self, symbol):
        """Writes the code of symbol and returns how many bytes are finished."""
        code, length = self.codes[symbol]
        if self.index + length // 8 + 2 > len(self.encoded):
            self.encoded.extend(bytes(length // 8 + 2))
        right_len = 8 - self.sub_index

        if length <= right_len:
            self.encoded[self.index] |= code << (right_len - length)
            if length == right_len:
                self.index += 1
        else:
            shift = length - right_len
            self.encoded[self.index] |= code >> shift
            self.index += 1
            shift -= 8
            while shift >= 0:
                self.encoded[self.index] = (code >> shift) & 0xFF
                self.index += 1
                shift -= 8
            remaining = shift + 8
            if remaining:
                self.encoded[self.index] = (code << (8 - remaining)) & 0xFF

        self.sub_index = (self.sub_index + length) % 8
        self.bit_count += length
        return self.index

    def take_completed_bytes(self):
        # the partial byte moves to the front of a fresh buffer
        done = bytes(self.encoded[:self.index])
        carry = self.encoded[self.index]
        self.encoded = bytearray(self.size)
        self.encoded[0] = carry
        self.index = 0
        return done

    def pack(self, data):
        out = bytearray()
        for symbol in data:
            if self.add_to_encoded(symbol):
                out += self.take_completed_bytes()
        return bytes(out)

    def flush(self):
        """Returns what is left, the last byte included even if all its bits are 0."""
        done = self.take_completed_bytes()
        if self.sub_index:
            done += bytes(self.encoded[:1])
        self.encoded = bytearray(self.size)
        self.sub_index = 0
        return done


class BitUnpacker:
    def __init__(self, tree):
        self.tree = tree
        self.node = tree

    @property
    def at_boundary(self):
        return self.node is self.tree

    def unpack(self, chunk, bit_count=None):
        """
        Walks the bits of chunk from the current node, emitting a symbol at
        every leaf. Decoding state carries over to the next call.
        :param bit_count: number of leading bits to use, None for all
        """
        bits = np.unpackbits(np.frombuffer(chunk, dtype=np.uint8), count=bit_count)
        root = self.tree
        if root.is_leaf:
            if bits.any():
                raise ContainerError("single symbol payload holds a 1 bit")
            return bytes([root.symbol]) * len(bits)

        out = bytearray()
        node = self.node
        for bit in bits.tolist():
            node = node.right if bit else node.left
            if node.left is None:
                out.append(node.symbols[0])
                node = root
        self.node = node
        return bytes(out)
