"""
Handles streaming a binary HTTP response body to disk.
"""

import asyncio
import logging
import os
from pathlib import Path

import aiofiles
import aiohttp

log = logging.getLogger(__name__)


class Downloader:
    """
    Writes a response body to a file in fixed-size chunks.

    The body goes to a hidden `.part` sibling first and is renamed into place
    only when complete, so a file at `destination` is never a truncated body.
    """

    CHUNK_SIZE = 262144  # 256 KB

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        self.chunk_size = chunk_size

    async def save_response(
        self, response: aiohttp.ClientResponse, destination: Path
    ) -> int:
        """
        Streams the body of `response` into `destination`.

        Returns:
            The number of bytes written.
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(f".{destination.name}.part")
        bytes_written = 0
        try:
            async with aiofiles.open(partial, "wb") as f:
                async for chunk in response.content.iter_chunked(self.chunk_size):
                    await f.write(chunk)
                    bytes_written += len(chunk)
            await asyncio.to_thread(os.replace, partial, destination)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        log.debug(f"Wrote {bytes_written} bytes to '{destination.name}'.")
        return bytes_written
