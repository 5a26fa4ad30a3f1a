from shared.exceptions import ConfigurationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import TextChunk


class TextChunker:
    """Splits text into overlapping fixed-size character windows.

    Windows start every chunk_size - overlap characters. The last window is
    the first one that reaches the end of the text, so no trailing window is
    ever fully contained in its predecessor and adjacent windows always share
    exactly `overlap` characters.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200):
        if chunk_size <= 0:
            raise ConfigurationError(f"Chunk size must be positive, got {chunk_size}.", key="CHUNK_SIZE")
        if overlap < 0:
            raise ConfigurationError(f"Chunk overlap must not be negative, got {overlap}.", key="CHUNK_OVERLAP")
        if overlap >= chunk_size:
            raise ConfigurationError(
                f"Chunk overlap ({overlap}) must be smaller than chunk size ({chunk_size}).",
                key="CHUNK_OVERLAP",
            )
        self.chunk_size = chunk_size
        self.overlap = overlap

    @classmethod
    def from_config(cls, helper_config: HelperConfig) -> "TextChunker":
        return cls(
            chunk_size=int(helper_config.get_number_val("CHUNK_SIZE", default=1000)),
            overlap=int(helper_config.get_number_val("CHUNK_OVERLAP", default=200)),
        )

    @property
    def stride(self) -> int:
        return self.chunk_size - self.overlap

    def split(self, text: str) -> list[TextChunk]:
        """Split text into ordered, overlapping chunks.

        Args:
            text (str): The full text. Empty text yields no chunks.

        Returns:
            list[TextChunk]: Chunks with consecutive indexes starting at 0.
        """
        if not text:
            return []
        chunks: list[TextChunk] = []
        start = 0
        while True:
            end = min(start + self.chunk_size, len(text))
            chunks.append(TextChunk(content=text[start:end], index=len(chunks), start=start))
            if end >= len(text):
                break
            start += self.stride
        return chunks
