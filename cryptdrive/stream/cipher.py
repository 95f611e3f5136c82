import os
import struct
import typing
import logging
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.backends import default_backend

from cryptdrive.error import EncryptedHeaderError, CorruptedChunkError, ChunkTooShortError
from cryptdrive.stream import FILE_MAGIC, FILE_NONCE_SIZE, HEADER_SIZE, BLOCK_DATA_SIZE, BLOCK_OVERHEAD, BLOCK_SIZE
from cryptdrive.stream.reader import AsyncReader, BytesReader, read_exactly
from cryptdrive.stream.sizes import underlying_range

log = logging.getLogger(__name__)

# fetch(offset, length) -> reader positioned at the absolute ciphertext offset, length -1 reads to the end
RangeFetcher = typing.Callable[[int, int], typing.Awaitable[AsyncReader]]


def get_file_key(data_key: bytes, file_nonce: bytes) -> bytes:
    h = hmac.HMAC(data_key, hashes.SHA256(), backend=default_backend())
    h.update(file_nonce)
    return h.finalize()


def _chunk_nonce(chunk_index: int) -> bytes:
    return chunk_index.to_bytes(12, 'little')


def _chunk_aad(chunk_index: int) -> bytes:
    return struct.pack('>Q', chunk_index)


def encrypt_chunk(file_key: bytes, chunk_index: int, plaintext: bytes) -> bytes:
    return ChaCha20Poly1305(file_key).encrypt(_chunk_nonce(chunk_index), plaintext, _chunk_aad(chunk_index))


def decrypt_chunk(file_key: bytes, chunk_index: int, ciphertext: bytes) -> bytes:
    if len(ciphertext) <= BLOCK_OVERHEAD:
        raise ChunkTooShortError(chunk_index, len(ciphertext))
    try:
        return ChaCha20Poly1305(file_key).decrypt(
            _chunk_nonce(chunk_index), ciphertext, _chunk_aad(chunk_index)
        )
    except InvalidTag:
        raise CorruptedChunkError(chunk_index)


def parse_header(header: bytes) -> bytes:
    if len(header) < HEADER_SIZE:
        raise EncryptedHeaderError(f"expected {HEADER_SIZE} bytes, got {len(header)}")
    if header[:len(FILE_MAGIC)] != FILE_MAGIC:
        raise EncryptedHeaderError()
    return header[len(FILE_MAGIC):HEADER_SIZE]


class EncryptingReader(AsyncReader):
    """
    Lazily turns a plaintext reader into `[header][chunk_0][chunk_1]...`, pulling one
    block of plaintext at a time
    """

    def __init__(self, source: AsyncReader, data_key: bytes, file_nonce: typing.Optional[bytes] = None):
        self.source = source
        self.file_nonce = file_nonce or os.urandom(FILE_NONCE_SIZE)
        assert len(self.file_nonce) == FILE_NONCE_SIZE
        self._file_key = get_file_key(data_key, self.file_nonce)
        self._buffer = bytearray(FILE_MAGIC + self.file_nonce)
        self._chunk_index = 0
        self._finished = False

    async def _encrypt_next_chunk(self):
        plaintext = await read_exactly(self.source, BLOCK_DATA_SIZE)
        if not plaintext:
            self._finished = True
            return
        self._buffer.extend(encrypt_chunk(self._file_key, self._chunk_index, plaintext))
        self._chunk_index += 1
        if len(plaintext) < BLOCK_DATA_SIZE:
            self._finished = True

    async def read(self, n: int = -1) -> bytes:
        while not self._finished and (n < 0 or len(self._buffer) < n):
            await self._encrypt_next_chunk()
        if n < 0 or n > len(self._buffer):
            n = len(self._buffer)
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    async def close(self):
        await self.source.close()


class DecryptingReader(AsyncReader):
    """
    Decrypts whole chunks from a ciphertext reader positioned at the start of chunk
    `chunk_index`, drops `discard` leading bytes and stops after `limit` bytes.
    """

    def __init__(self, reader: AsyncReader, file_key: bytes, chunk_index: int = 0, discard: int = 0,
                 limit: int = -1):
        self.reader = reader
        self.chunk_index = chunk_index
        self._file_key = file_key
        self._discard = discard
        self._remaining = limit
        self._buffer = bytearray()
        self._eof = limit == 0
        self._closed = False

    async def _decrypt_next_chunk(self):
        ciphertext = await read_exactly(self.reader, BLOCK_SIZE)
        if not ciphertext:
            self._eof = True
            return
        plaintext = decrypt_chunk(self._file_key, self.chunk_index, ciphertext)
        self.chunk_index += 1
        if len(ciphertext) < BLOCK_SIZE:
            self._eof = True
        if self._discard:
            plaintext, self._discard = plaintext[self._discard:], 0
        if self._remaining >= 0:
            plaintext = plaintext[:self._remaining]
            self._remaining -= len(plaintext)
            if not self._remaining:
                self._eof = True
        self._buffer.extend(plaintext)

    async def read(self, n: int = -1) -> bytes:
        while not self._eof and (n < 0 or len(self._buffer) < n):
            await self._decrypt_next_chunk()
        if n < 0 or n > len(self._buffer):
            n = len(self._buffer)
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    async def close(self):
        if not self._closed:
            self._closed = True
            await self.reader.close()


class DataCipher:
    __slots__ = ['_data_key']

    def __init__(self, data_key: bytes):
        self._data_key = data_key

    def encrypt_data(self, source: AsyncReader, file_nonce: typing.Optional[bytes] = None) -> EncryptingReader:
        return EncryptingReader(source, self._data_key, file_nonce)

    async def decrypt_data(self, reader: AsyncReader) -> DecryptingReader:
        """Decrypts a whole ciphertext stream read from its start."""
        try:
            file_nonce = parse_header(await read_exactly(reader, HEADER_SIZE))
        except Exception:
            await reader.close()
            raise
        return DecryptingReader(reader, get_file_key(self._data_key, file_nonce))

    async def decrypt_data_seek(self, fetch: RangeFetcher, offset: int = 0, length: int = -1) -> DecryptingReader:
        if offset < 0:
            raise ValueError(f"offset must not be negative: {offset}")
        header_reader = await fetch(0, HEADER_SIZE)
        try:
            header = await read_exactly(header_reader, HEADER_SIZE)
        finally:
            await header_reader.close()
        file_key = get_file_key(self._data_key, parse_header(header))
        if length == 0:
            return DecryptingReader(BytesReader(b''), file_key, limit=0)
        underlying_offset, underlying_length, chunk_index, discard = underlying_range(offset, length)
        log.debug("decrypt range %i+%i from ciphertext %i+%i (chunk %i, skip %i)", offset, length,
                  underlying_offset, underlying_length, chunk_index, discard)
        reader = await fetch(underlying_offset, underlying_length)
        return DecryptingReader(reader, file_key, chunk_index, discard, length)
