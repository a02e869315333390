"""Incremental UTF-8 decoding of network chunks."""
import codecs


class ChunkDecoder:
    """
    Decode raw byte chunks in arrival order.

    A multi-byte character split across two chunks is held back until the
    rest of it arrives. Malformed bytes become U+FFFD; decoding never raises.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    def decode(self, chunk: bytes) -> str:
        """Decode one chunk, carrying incomplete trailing bytes forward."""
        return self._decoder.decode(chunk, final=False)

    def flush(self) -> str:
        """Decode whatever is still held back at end of stream."""
        return self._decoder.decode(b"", final=True)

    def reset(self) -> None:
        self._decoder.reset()
