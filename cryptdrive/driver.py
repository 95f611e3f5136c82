import typing
import logging

from cryptdrive.cipher import Cipher
from cryptdrive.conf import Config
from cryptdrive.error import (
    DecodeError, ObjectNotFoundError, InvalidSuffixError, InvalidNameEncryptionModeError, MissingPasswordError,
    RemoteStorageNotFoundError
)
from cryptdrive.crypto.names import NAME_ENCRYPTION_MODES, is_valid_suffix
from cryptdrive.model import RemoteObject, LogicalObject, FileStream, root_object
from cryptdrive.remote.link import RangeReaderLink, Closers
from cryptdrive.remote.range_reader import RemoteRangeReader
from cryptdrive.remote.storage import Storage, StorageRegistry
from cryptdrive.resolver import PathResolver
from cryptdrive.stream.reader import AsyncReader
from cryptdrive.utils import fix_path, join_path, path_equal

log = logging.getLogger(__name__)


class CryptDriver:
    """
    Encrypted overlay over a remote storage: contents are encrypted with the chunked
    stream cipher and names mapped through the name cipher on the way out, and
    reversed on the way back.
    """

    def __init__(self, conf: Config, registry: StorageRegistry):
        self.conf = conf
        self.registry = registry
        self.cipher: typing.Optional[Cipher] = None
        self.resolver: typing.Optional[PathResolver] = None

    async def init(self):
        self.conf.obscure_credentials()
        if not is_valid_suffix(self.conf.encrypted_suffix):
            raise InvalidSuffixError(self.conf.encrypted_suffix)
        if self.conf.filename_encryption not in NAME_ENCRYPTION_MODES:
            raise InvalidNameEncryptionModeError(self.conf.filename_encryption)
        if not self.conf.remote_path:
            raise RemoteStorageNotFoundError(self.conf.remote_path)
        # raises RemoteStorageNotFoundError when nothing is mounted there
        self.registry.get_storage(self.conf.remote_path)
        password = self.conf.revealed_password
        if not password:
            raise MissingPasswordError()
        self.cipher = Cipher.from_password(
            password, self.conf.revealed_salt, self.conf.filename_encryption,
            self.conf.directory_name_encryption, self.conf.encrypted_suffix
        )
        self.resolver = PathResolver(self.cipher, self.conf.remote_path)
        log.info("encrypted overlay ready on %s (file names: %s, directory names encrypted: %s)",
                 self.conf.remote_path, self.conf.filename_encryption, self.conf.directory_name_encryption)

    def _actual_remote_path(self, path: str, is_dir: bool) -> typing.Tuple[Storage, str]:
        return self.registry.get_storage_and_actual_path(self.resolver.to_remote_path(path, is_dir))

    def _to_logical_object(self, dir_path: str, obj: RemoteObject) -> LogicalObject:
        if obj.is_dir:
            name, size = self.cipher.decrypt_dir_name(obj.name), 0
        else:
            size = self.cipher.decrypted_size(obj.size)
            name = self.cipher.decrypt_file_name(obj.name)
        return LogicalObject(
            name=name, size=size, modified=obj.modified, is_dir=obj.is_dir,
            path=join_path(dir_path, name), thumbnail=obj.thumbnail
        )

    async def list(self, path: str) -> typing.List[LogicalObject]:
        storage, remote_path = self._actual_remote_path(path, True)
        objects = []
        for obj in await storage.list(remote_path):
            try:
                objects.append(self._to_logical_object(path, obj))
            except DecodeError as err:
                log.debug("skipping %s in %s: %s", obj.name, remote_path, err)
        return objects

    async def get(self, path: str) -> LogicalObject:
        if path_equal(path, '/'):
            return root_object()
        remote_obj, error = None, None
        for remote_path, _ in self.resolver.resolve(path):
            storage, actual_path = self.registry.get_storage_and_actual_path(remote_path)
            try:
                remote_obj = await storage.get(actual_path)
                break
            except ObjectNotFoundError as err:
                error = err
        if remote_obj is None:
            raise error
        return self._to_logical_object_lenient(path, remote_obj)

    def _to_logical_object_lenient(self, path: str, obj: RemoteObject) -> LogicalObject:
        name, size = obj.name, obj.size if not obj.is_dir else 0
        try:
            if obj.is_dir:
                name = self.cipher.decrypt_dir_name(obj.name)
            else:
                name = self.cipher.decrypt_file_name(obj.name)
        except DecodeError as err:
            log.warning("failed to decrypt name for %s, using the remote name: %s", path, err)
        if not obj.is_dir:
            try:
                size = self.cipher.decrypted_size(obj.size)
            except DecodeError as err:
                log.warning("failed to decrypt size for %s, using the remote size: %s", path, err)
        return LogicalObject(
            name=name, size=size, modified=obj.modified, is_dir=obj.is_dir, path=fix_path(path),
            thumbnail=obj.thumbnail
        )

    async def link(self, file: LogicalObject) -> RangeReaderLink:
        """
        Link whose range reader returns plaintext for any [offset, offset+length)
        of the file. Close the link to release what the remote handed out.
        """
        storage, remote_path = self._actual_remote_path(file.path, False)
        remote_link, remote_obj = await storage.link(remote_path)
        closers = Closers()
        closers.add(remote_link)
        try:
            fetch = RemoteRangeReader(remote_link, remote_obj.size, closers)
        except Exception:
            await closers.close()
            raise

        async def range_reader(offset: int, length: int = -1) -> AsyncReader:
            return await self.cipher.decrypt_data_seek(fetch, offset, length)

        return RangeReaderLink(
            range_reader, closers, headers=remote_link.headers, expiration=remote_link.expiration
        )

    async def open(self, path: str, offset: int = 0, length: int = -1) -> 'LinkedReader':
        link = await self.link(LogicalObject(name=path.rstrip('/').rsplit('/', 1)[-1], path=path))
        try:
            reader = await link.read_range(offset, length)
        except BaseException:
            await link.close()
            raise
        return LinkedReader(reader, link)

    async def make_dir(self, parent_dir: LogicalObject, dir_name: str):
        storage, remote_dir = self._actual_remote_path(parent_dir.path, True)
        await storage.make_dir(join_path(remote_dir, self.cipher.encrypt_dir_name(dir_name)))

    async def move(self, src_obj: LogicalObject, dst_dir: LogicalObject):
        storage, src_path = self._actual_remote_path(src_obj.path, src_obj.is_dir)
        _, dst_path = self._actual_remote_path(dst_dir.path, dst_dir.is_dir)
        await storage.move(src_path, dst_path)

    async def rename(self, src_obj: LogicalObject, new_name: str):
        storage, remote_path = self._actual_remote_path(src_obj.path, src_obj.is_dir)
        if src_obj.is_dir:
            new_encrypted_name = self.cipher.encrypt_dir_name(new_name)
        else:
            new_encrypted_name = self.cipher.encrypt_file_name(new_name)
        await storage.rename(remote_path, new_encrypted_name)

    async def copy(self, src_obj: LogicalObject, dst_dir: LogicalObject):
        storage, src_path = self._actual_remote_path(src_obj.path, src_obj.is_dir)
        _, dst_path = self._actual_remote_path(dst_dir.path, dst_dir.is_dir)
        await storage.copy(src_path, dst_path)

    async def remove(self, obj: LogicalObject):
        storage, remote_path = self._actual_remote_path(obj.path, obj.is_dir)
        await storage.remove(remote_path)

    async def put(self, dst_dir: LogicalObject, stream: FileStream) -> RemoteObject:
        storage, remote_dir = self._actual_remote_path(dst_dir.path, True)
        encrypted = self.cipher.encrypt_data(stream.reader)
        stream_out = FileStream(
            name=self.cipher.encrypt_file_name(stream.name),
            size=self.cipher.encrypted_size(stream.size),
            reader=encrypted,
            modified=stream.modified,
            mimetype='application/octet-stream'
        )
        try:
            return await storage.put(remote_dir, stream_out)
        finally:
            await encrypted.close()


class LinkedReader(AsyncReader):
    """Plaintext reader that releases its link when closed."""

    def __init__(self, reader: AsyncReader, link: RangeReaderLink):
        self.reader = reader
        self.link = link

    async def read(self, n: int = -1) -> bytes:
        return await self.reader.read(n)

    async def close(self):
        try:
            await self.reader.close()
        finally:
            await self.link.close()
