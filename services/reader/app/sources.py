"""Census archive locators and the line reader that streams them."""

import asyncio
import gzip
import zlib
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence

import aiohttp
import structlog

from shared.utils.errors import SourceFetchError


logger = structlog.get_logger(__name__)

CENSUS_URL_TEMPLATE = "https://www2.census.gov/programs-surveys/cps/datasets/{year}/basic/{month}{yy}pub.dat.gz"

# Census files are plain ASCII; latin-1 never fails to decode
ENCODING = "latin-1"


@dataclass(frozen=True)
class SourceLocator:
    """Where one archive lives and the year its records belong to."""
    location: str
    year: int

    @property
    def is_remote(self) -> bool:
        return self.location.startswith(("http://", "https://"))

    @property
    def is_compressed(self) -> bool:
        return self.location.endswith(".gz")


def census_url(year: int, month: str, template: str = CENSUS_URL_TEMPLATE) -> str:
    """URL of the CPS basic monthly file, e.g. ``.../2019/basic/jan19pub.dat.gz``."""
    return template.format(year=year, month=month, yy=str(year)[2:])


def build_locators(
    years: Sequence[int],
    months: Sequence[str],
    from_file: Optional[str] = None,
    template: str = CENSUS_URL_TEMPLATE,
) -> List[SourceLocator]:
    """A single file locator, or one URL per year/month in year-major order."""
    if from_file:
        return [SourceLocator(location=from_file, year=years[0])]
    return [
        SourceLocator(location=census_url(year, month, template), year=year)
        for year in years
        for month in months
    ]


def _decode(raw: bytes) -> str:
    return raw.rstrip(b"\r").decode(ENCODING)


class GzipStream:
    """Incremental inflater for concatenated gzip members, like ``gzip.open``."""

    def __init__(self):
        self._member = zlib.decompressobj(16 + zlib.MAX_WBITS)

    @property
    def eof(self) -> bool:
        return self._member.eof

    def decompress(self, data: bytes) -> bytes:
        out = []
        while data:
            if self._member.eof:
                # Zero padding may follow the last member
                data = data.lstrip(b"\x00")
                if not data:
                    break
                self._member = zlib.decompressobj(16 + zlib.MAX_WBITS)
            out.append(self._member.decompress(data))
            data = self._member.unused_data if self._member.eof else b""
        return b"".join(out)

    def flush(self) -> bytes:
        return self._member.flush()


class SourceReader:
    """Streams the lines of a local or remote archive, decompressing gzip on the fly."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 300.0,
        chunk_size: int = 64 * 1024,
    ):
        self.session = session
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._owns_session = session is None

    async def __aenter__(self) -> "SourceReader":
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            self.session = None

    def iter_lines(self, locator: SourceLocator) -> AsyncIterator[str]:
        if locator.is_remote:
            return self._iter_remote(locator)
        return self._iter_file(locator)

    async def _iter_remote(self, locator: SourceLocator) -> AsyncIterator[str]:
        url = locator.location
        if self.session is None:
            raise SourceFetchError("Reader is not open", source=url)

        logger.info("Getting archive", url=url)
        decompressor = GzipStream() if locator.is_compressed else None
        pending = b""
        try:
            async with self.session.get(url) as resp:
                if resp.status != 200:
                    raise SourceFetchError("Unexpected status getting archive", source=url, status=resp.status)
                async for chunk in resp.content.iter_chunked(self.chunk_size):
                    data = decompressor.decompress(chunk) if decompressor else chunk
                    lines = (pending + data).split(b"\n")
                    pending = lines.pop()
                    for raw in lines:
                        yield _decode(raw)
                if decompressor:
                    pending += decompressor.flush()
                    if not decompressor.eof:
                        raise SourceFetchError("Truncated gzip stream", source=url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceFetchError(f"Error getting archive: {e}", source=url) from e
        except zlib.error as e:
            raise SourceFetchError(f"Error decompressing archive: {e}", source=url) from e

        for raw in pending.split(b"\n"):
            if raw:
                yield _decode(raw)

    async def _iter_file(self, locator: SourceLocator) -> AsyncIterator[str]:
        path = locator.location
        logger.info("Opening archive", path=path)
        opener = gzip.open if locator.is_compressed else open
        try:
            handle = await asyncio.to_thread(opener, path, "rb")
            try:
                while True:
                    # Reads and inflation run off the event loop, a chunk at a time
                    lines = await asyncio.to_thread(handle.readlines, self.chunk_size)
                    if not lines:
                        break
                    for raw in lines:
                        yield _decode(raw.rstrip(b"\n"))
            finally:
                handle.close()
        except (OSError, EOFError, zlib.error) as e:
            raise SourceFetchError(f"Error reading archive: {e}", source=path) from e
