import typing

READ_SIZE = 64 * 1024


class AsyncReader:
    """
    Pull interface every byte stream in the overlay implements: read() returns at
    most n bytes (everything when n < 0) and b'' at the end of the stream.
    """

    async def read(self, n: int = -1) -> bytes:
        raise NotImplementedError()

    async def close(self):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        data = await self.read(READ_SIZE)
        if not data:
            raise StopAsyncIteration
        return data


class BytesReader(AsyncReader):
    def __init__(self, data: bytes):
        self._data = memoryview(data)
        self._position = 0
        self.closed = False

    async def read(self, n: int = -1) -> bytes:
        if n < 0:
            n = len(self._data) - self._position
        data = bytes(self._data[self._position:self._position + n])
        self._position += len(data)
        return data

    async def close(self):
        self.closed = True


class NonClosingReader(AsyncReader):
    """Shares a handle without taking ownership of it."""

    def __init__(self, reader: AsyncReader):
        self.reader = reader

    async def read(self, n: int = -1) -> bytes:
        return await self.reader.read(n)


class LimitedReader(AsyncReader):
    def __init__(self, reader: AsyncReader, limit: int):
        self.reader = reader
        self.remaining = limit

    async def read(self, n: int = -1) -> bytes:
        if self.remaining <= 0:
            return b''
        if n < 0 or n > self.remaining:
            n = self.remaining
        data = await self.reader.read(n)
        self.remaining -= len(data)
        return data

    async def close(self):
        await self.reader.close()


async def read_exactly(reader: AsyncReader, size: int) -> bytes:
    """Reads until `size` bytes or the end of the stream, whichever comes first."""
    chunks: typing.List[bytes] = []
    remaining = size
    while remaining > 0:
        data = await reader.read(remaining)
        if not data:
            break
        chunks.append(data)
        remaining -= len(data)
    return b''.join(chunks)


async def read_all(reader: AsyncReader) -> bytes:
    return b''.join([data async for data in reader])


async def discard(reader: AsyncReader, count: int) -> int:
    discarded = 0
    while discarded < count:
        data = await reader.read(min(READ_SIZE, count - discarded))
        if not data:
            break
        discarded += len(data)
    return discarded
