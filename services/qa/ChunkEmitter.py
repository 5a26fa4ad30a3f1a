import inspect
from typing import Awaitable, Callable

ChunkCallback = Callable[[str, bool], Awaitable[None] | None]


class ChunkEmitter:
    """Guards the streaming callback contract.

    The wrapped callback receives zero or more (text, False) calls with
    non-empty text, then exactly one (text, True) call. Nothing is forwarded
    after the terminal call, whatever happens upstream.
    """

    def __init__(self, on_chunk: ChunkCallback):
        self._on_chunk = on_chunk
        self._completed = False
        self._parts: list[str] = []

    @classmethod
    def wrap(cls, on_chunk: "ChunkCallback | ChunkEmitter") -> "ChunkEmitter":
        """Return on_chunk itself if it already is an emitter, so nested stages share one guard."""
        if isinstance(on_chunk, ChunkEmitter):
            return on_chunk
        return cls(on_chunk)

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def text(self) -> str:
        """Everything forwarded so far, terminal text included."""
        return "".join(self._parts)

    async def emit(self, text: str) -> None:
        if self._completed or not text:
            return
        self._parts.append(text)
        await self._call(text, False)

    async def complete(self, text: str = "") -> None:
        if self._completed:
            return
        self._completed = True
        if text:
            self._parts.append(text)
        await self._call(text, True)

    async def _call(self, text: str, is_complete: bool) -> None:
        result = self._on_chunk(text, is_complete)
        if inspect.isawaitable(result):
            await result
