"""Token-window chunking for post text.

Splits normalized text into overlapping windows measured in the same
tokens the embedding model uses, so a 600-token window is 600 tokens to
the provider too.
"""

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 600
DEFAULT_OVERLAP = 100
DEFAULT_ENCODING_MODEL = "text-embedding-3-small"
FALLBACK_ENCODING = "cl100k_base"


class Encoding(Protocol):
    """The subset of a tiktoken ``Encoding`` the chunker relies on."""

    def encode(self, text: str) -> List[int]: ...

    def decode(self, tokens: Sequence[int]) -> str: ...


def load_encoding(model_name: str = DEFAULT_ENCODING_MODEL) -> Encoding:
    """Tokenizer matching ``model_name``; ``cl100k_base`` for unknown models."""
    try:
        return tiktoken.encoding_for_model(model_name)
    except KeyError:
        logger.warning(f"No tokenizer registered for {model_name!r}, using {FALLBACK_ENCODING}")
        return tiktoken.get_encoding(FALLBACK_ENCODING)


def window_bounds(token_count: int, window_size: int, overlap: int) -> List[Tuple[int, int]]:
    """Half-open ``(start, end)`` token offsets of every window.

    The last window always ends at ``token_count``.
    """
    if overlap < 0 or overlap >= window_size:
        raise ValueError(f"overlap must be in [0, {window_size}), got {overlap}")

    bounds = []
    start = 0
    while start < token_count:
        end = min(start + window_size, token_count)
        bounds.append((start, end))
        if end == token_count:
            break
        start = end - overlap
    return bounds


class TokenChunker:
    """Overlapping fixed-size token windows over a document."""

    def __init__(self,
                 window_size: int = DEFAULT_WINDOW_SIZE,
                 overlap: int = DEFAULT_OVERLAP,
                 model_name: str = DEFAULT_ENCODING_MODEL,
                 encoding: Optional[Encoding] = None):
        """Initialize chunker.

        Args:
            window_size: Tokens per window
            overlap: Tokens repeated at the start of each following window
            model_name: Embedding model whose tokenizer defines a token
            encoding: Pre-built tokenizer; loaded from ``model_name`` when omitted
        """
        if window_size <= 0:
            raise ValueError("window_size must be positive")
        if overlap < 0 or overlap >= window_size:
            raise ValueError(f"overlap ({overlap}) must be smaller than window_size ({window_size})")

        self.window_size = window_size
        self.overlap = overlap
        self.model_name = model_name
        self._encoding = encoding

    @property
    def encoding(self) -> Encoding:
        if self._encoding is None:
            self._encoding = load_encoding(self.model_name)
        return self._encoding

    def count_tokens(self, text: str) -> int:
        return len(self.encoding.encode(text))

    def window_bounds(self, token_count: int) -> List[Tuple[int, int]]:
        return window_bounds(token_count, self.window_size, self.overlap)

    def chunk(self, text: str) -> List[str]:
        """Split ``text`` into trimmed, non-empty windows in document order."""
        tokens = self.encoding.encode(text or "")
        chunks = []
        for start, end in self.window_bounds(len(tokens)):
            window = self.encoding.decode(tokens[start:end]).strip()
            if window:
                chunks.append(window)
        logger.debug(f"Chunked {len(tokens)} tokens into {len(chunks)} windows")
        return chunks
