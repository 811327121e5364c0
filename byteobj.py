class HuffmanNode:
    def __init__(self, symbols: bytes, freq: int, left=None, right=None):
        # leaves carry one symbol, internal nodes the concatenation of their leaves
        self.symbols = symbols
        self.freq = freq
        self.left = left
        self.right = right

    @property
    def is_leaf(self):
        return self.left is None and self.right is None

    @property
    def symbol(self):
        if not self.is_leaf:
            raise ValueError("only a leaf represents a single symbol")
        return self.symbols[0]

    def __repr__(self):
        return f"[{self.symbols!r}], {self.freq}"


class ContainerHeader:
    def __init__(self, filename: bytes, tree: str, padding: int):
        self.filename = filename
        self.tree = tree
        self.padding = padding

    def __str__(self):
        return f"[{self.filename!r}], {self.tree}, {self.padding}"
