import typing
import logging

from cryptdrive.stream.reader import AsyncReader

log = logging.getLogger(__name__)


class SeekableReader(AsyncReader):
    async def seek(self, offset: int) -> int:
        raise NotImplementedError()


class Closers:
    """Resources acquired while serving one read operation, released together."""

    def __init__(self):
        self._closers: typing.List[typing.Any] = []

    def add(self, *closers):
        for closer in closers:
            if closer is not None and closer not in self._closers:
                self._closers.append(closer)

    def __len__(self):
        return len(self._closers)

    async def close(self):
        errors = []
        while self._closers:
            closer = self._closers.pop()
            try:
                await closer.close()
            except Exception as err:
                log.warning("failed to close %s: %s", closer, err)
                errors.append(err)
        if errors:
            raise errors[0]


class Link:
    """
    How the content of a remote object can be read. Each subclass exposes exactly
    one read capability.
    """
    __slots__ = ['headers', 'expiration']

    def __init__(self, headers: typing.Optional[typing.Dict[str, str]] = None,
                 expiration: typing.Optional[float] = None):
        self.headers = headers or {}
        self.expiration = expiration

    async def close(self):
        pass


class RangeReaderLink(Link):
    __slots__ = ['range_reader', 'closers']

    def __init__(self, range_reader: typing.Callable[[int, int], typing.Awaitable[AsyncReader]],
                 closers: typing.Optional[Closers] = None, **kwargs):
        super().__init__(**kwargs)
        self.range_reader = range_reader
        self.closers = closers or Closers()

    async def read_range(self, offset: int, length: int = -1) -> AsyncReader:
        return await self.range_reader(offset, length)

    async def close(self):
        await self.closers.close()


class SeekableLink(Link):
    __slots__ = ['reader']

    def __init__(self, reader: SeekableReader, **kwargs):
        super().__init__(**kwargs)
        self.reader = reader

    async def close(self):
        await self.reader.close()


class URLLink(Link):
    __slots__ = ['url']

    def __init__(self, url: str, **kwargs):
        super().__init__(**kwargs)
        self.url = url
