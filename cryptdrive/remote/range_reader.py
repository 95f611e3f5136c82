import typing
import logging
import aiohttp

from cryptdrive.error import RemoteHTTPError, UnsupportedLinkError
from cryptdrive.remote.link import Link, RangeReaderLink, SeekableLink, URLLink, Closers
from cryptdrive.stream.reader import AsyncReader, BytesReader, NonClosingReader, LimitedReader, discard

log = logging.getLogger(__name__)


def range_header(offset: int, length: int) -> str:
    if length < 0:
        return f"bytes={offset}-"
    return f"bytes={offset}-{offset + length - 1}"


def check_link(link: Link):
    if isinstance(link, (RangeReaderLink, SeekableLink)):
        return
    if isinstance(link, URLLink) and link.url:
        return
    raise UnsupportedLinkError(link)


class HTTPResponseReader(AsyncReader):
    def __init__(self, response: aiohttp.ClientResponse):
        self.response = response

    async def read(self, n: int = -1) -> bytes:
        return await self.response.content.read(n)

    async def close(self):
        self.response.release()


class RemoteRangeReader:
    """
    Serves "ciphertext bytes [offset, offset+length) by absolute offset" from
    whichever read capability the remote link has. Resources it acquires are added
    to `closers` and live until the whole read operation is closed.
    """

    def __init__(self, link: Link, remote_size: int, closers: typing.Optional[Closers] = None,
                 session: typing.Optional[aiohttp.ClientSession] = None):
        check_link(link)
        self.link = link
        self.remote_size = remote_size
        self.closers = closers if closers is not None else Closers()
        self._session = session
        self._owns_session = session is None

    async def __call__(self, offset: int, length: int) -> AsyncReader:
        return await self.read_range(offset, length)

    async def read_range(self, offset: int, length: int) -> AsyncReader:
        if 0 <= length and offset + length >= self.remote_size:
            length = -1
        if offset >= self.remote_size:
            # nothing past the end, and servers answer such ranges with 416
            return BytesReader(b'')
        if isinstance(self.link, RangeReaderLink):
            reader = await self.link.read_range(offset, length)
            self.closers.add(self.link)
            return reader
        if isinstance(self.link, SeekableLink):
            # the handle is shared by every range and closed once at the end
            self.closers.add(self.link)
            await self.link.reader.seek(offset)
            return NonClosingReader(self.link.reader)
        return await self._read_http_range(offset, length)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self.closers.add(self)
        return self._session

    async def _read_http_range(self, offset: int, length: int) -> AsyncReader:
        headers = dict(self.link.headers)
        headers['Range'] = range_header(offset, length)
        session = await self._get_session()
        response = await session.get(self.link.url, headers=headers)
        if response.status == 206 or (response.status == 200 and offset == 0 and length < 0):
            return HTTPResponseReader(response)
        if response.status != 200:
            response.release()
            raise RemoteHTTPError(self.link.url, response.status)
        log.warning("remote http server doesn't support range requests, expect low performance (%s)",
                    self.link.url)
        reader = HTTPResponseReader(response)
        try:
            await discard(reader, offset)
        except BaseException:
            await reader.close()
            raise
        if length < 0:
            return reader
        return LimitedReader(reader, length)

    async def close(self):
        if self._owns_session and self._session is not None:
            session, self._session = self._session, None
            await session.close()
