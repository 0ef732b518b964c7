"""Stream multiplexer: fan stdout and stderr into one ordered chunk sequence."""

from __future__ import annotations

import asyncio
import codecs
import logging
from typing import AsyncIterator, Protocol

from devrunner.schemas import ChunkOrigin, OutputChunk

logger = logging.getLogger(__name__)

STDERR_PREFIX = "[stderr] "

# Bytes requested per read
DEFAULT_READ_SIZE = 4096

_EOF = object()


class ChildProcess(Protocol):
    """What the multiplexer needs from a running child."""

    stdout: asyncio.StreamReader
    stderr: asyncio.StreamReader

    async def wait(self) -> int: ...


def exit_trailer(exit_code: int) -> str:
    """Text of the synthetic final chunk."""
    return f"\n[Process exited with code {exit_code}]\n"


class StreamMultiplexer:
    """Drain a child's stdout and stderr concurrently into OutputChunks.

    Each stream gets its own reader task with its own incremental decoder, so
    a multi-byte character split across reads is decoded intact. Chunks are
    emitted in the order reads complete. Within one stream that is production
    order; across the two streams it is arrival order only.

    Once both streams hit EOF the exit status is awaited and a final
    ``[Process exited with code N]`` chunk is emitted.
    """

    def __init__(self, process: ChildProcess, read_size: int = DEFAULT_READ_SIZE):
        self._process = process
        self._read_size = read_size
        self.exit_code: int | None = None

    async def _drain(
        self,
        stream: asyncio.StreamReader,
        origin: ChunkOrigin,
        queue: asyncio.Queue,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        prefix = STDERR_PREFIX if origin == ChunkOrigin.STDERR else ""
        try:
            while True:
                data = await stream.read(self._read_size)
                text = decoder.decode(data, final=not data)
                if text:
                    await queue.put(OutputChunk(origin=origin, text=prefix + text))
                if not data:
                    break
        except Exception as e:
            logger.error(f"Error reading {origin.value}: {e}")
            await queue.put(OutputChunk.system(f"\n[Error: reading {origin.value}: {e}]\n"))
        finally:
            queue.put_nowait(_EOF)

    async def chunks(self) -> AsyncIterator[OutputChunk]:
        """Yield output chunks until the process has exited.

        Closing the generator early cancels the reader tasks.
        """
        queue: asyncio.Queue = asyncio.Queue()
        readers = [
            asyncio.create_task(self._drain(self._process.stdout, ChunkOrigin.STDOUT, queue)),
            asyncio.create_task(self._drain(self._process.stderr, ChunkOrigin.STDERR, queue)),
        ]

        try:
            open_streams = len(readers)
            while open_streams:
                item = await queue.get()
                if item is _EOF:
                    open_streams -= 1
                    continue
                yield item

            self.exit_code = await self._process.wait()
            yield OutputChunk.system(exit_trailer(self.exit_code))
        finally:
            for task in readers:
                if not task.done():
                    task.cancel()
