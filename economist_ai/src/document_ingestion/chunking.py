from typing import List

from langchain_text_splitters import RecursiveCharacterTextSplitter

from economist_ai.logger import GLOBAL_LOGGER as log


class TextChunker:
    """Overlapping fixed-size character windows for embedding."""

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200):
        if chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
        )

    def split(self, text: str) -> List[str]:
        if not text or not text.strip():
            return []
        chunks = [c for c in self.splitter.split_text(text) if c.strip()]
        # splitter drops whitespace-only pieces; keep at least the original text
        if not chunks:
            chunks = [text.strip()]
        log.debug(
            "Text split | chars=%d | chunks=%d | size=%d | overlap=%d",
            len(text),
            len(chunks),
            self.chunk_size,
            self.chunk_overlap,
        )
        return chunks
