import os
import shutil
import typing
import asyncio
import logging

from cryptdrive.error import ObjectNotFoundError, NotADirectoryRemoteError, ObjectAlreadyExistsError
from cryptdrive.model import RemoteObject, FileStream
from cryptdrive.remote.link import SeekableLink, SeekableReader
from cryptdrive.remote.storage import Storage
from cryptdrive.utils import fix_path, join_path

log = logging.getLogger(__name__)


class LocalFileReader(SeekableReader):
    def __init__(self, file_path: str):
        self.file_path = file_path
        self._handle = open(file_path, 'rb')

    async def read(self, n: int = -1) -> bytes:
        return await asyncio.get_event_loop().run_in_executor(None, self._handle.read, n)

    async def seek(self, offset: int) -> int:
        return await asyncio.get_event_loop().run_in_executor(None, self._handle.seek, offset)

    async def close(self):
        self._handle.close()

    @property
    def closed(self) -> bool:
        return self._handle.closed


def _write_stream_chunk(handle: typing.BinaryIO, data: bytes):
    handle.write(data)


def _copy(src: str, dst: str):
    if os.path.isdir(src):
        shutil.copytree(src, dst)
    else:
        shutil.copy2(src, dst)


def _remove(path: str):
    if os.path.isdir(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


class LocalStorage(Storage):
    """Storage backed by a directory on the local filesystem."""

    def __init__(self, root_dir: str):
        self.root_dir = os.path.abspath(os.path.expanduser(root_dir))

    def _full_path(self, path: str) -> str:
        segments = [segment for segment in fix_path(path).split('/') if segment]
        return os.path.join(self.root_dir, *segments)

    def _to_object(self, path: str, stat: os.stat_result, is_dir: bool) -> RemoteObject:
        return RemoteObject(
            name=os.path.basename(path.rstrip('/')), size=0 if is_dir else stat.st_size,
            modified=stat.st_mtime, is_dir=is_dir, path=fix_path(path)
        )

    def _existing(self, path: str) -> str:
        full_path = self._full_path(path)
        if not os.path.exists(full_path):
            raise ObjectNotFoundError(path)
        return full_path

    def _directory(self, path: str) -> str:
        full_path = self._existing(path)
        if not os.path.isdir(full_path):
            raise NotADirectoryRemoteError(path)
        return full_path

    async def list(self, path: str) -> typing.List[RemoteObject]:
        full_path = self._directory(path)
        objects = []
        with os.scandir(full_path) as entries:
            for entry in entries:
                is_dir = entry.is_dir()
                objects.append(self._to_object(join_path(path, entry.name), entry.stat(), is_dir))
        return sorted(objects, key=lambda obj: (not obj.is_dir, obj.name))

    async def get(self, path: str) -> RemoteObject:
        full_path = self._full_path(path)
        try:
            stat = os.stat(full_path)
        except FileNotFoundError:
            raise ObjectNotFoundError(path)
        return self._to_object(path, stat, os.path.isdir(full_path))

    async def link(self, path: str) -> typing.Tuple[SeekableLink, RemoteObject]:
        obj = await self.get(path)
        if obj.is_dir:
            raise ObjectNotFoundError(path)
        return SeekableLink(LocalFileReader(self._full_path(path))), obj

    async def put(self, dir_path: str, stream: FileStream) -> RemoteObject:
        full_dir = self._directory(dir_path)
        destination = os.path.join(full_dir, stream.name)
        temp_path = destination + '.part'
        loop = asyncio.get_event_loop()
        written = 0
        try:
            with open(temp_path, 'wb') as handle:
                async for data in stream.reader:
                    await loop.run_in_executor(None, _write_stream_chunk, handle, data)
                    written += len(data)
            os.replace(temp_path, destination)
        except BaseException:
            if os.path.isfile(temp_path):
                os.remove(temp_path)
            raise
        if stream.size >= 0 and written != stream.size:
            log.warning("wrote %i bytes for %s, expected %i", written, stream.name, stream.size)
        os.utime(destination, (stream.modified, stream.modified))
        return await self.get(join_path(dir_path, stream.name))

    async def make_dir(self, path: str):
        full_path = self._full_path(path)
        if os.path.isfile(full_path):
            raise ObjectAlreadyExistsError(path)
        os.makedirs(full_path, exist_ok=True)

    async def move(self, src_path: str, dst_dir_path: str):
        src = self._existing(src_path)
        dst_dir = self._directory(dst_dir_path)
        destination = os.path.join(dst_dir, os.path.basename(src))
        if os.path.exists(destination):
            raise ObjectAlreadyExistsError(join_path(dst_dir_path, os.path.basename(src)))
        await asyncio.get_event_loop().run_in_executor(None, shutil.move, src, destination)

    async def rename(self, src_path: str, new_name: str):
        src = self._existing(src_path)
        destination = os.path.join(os.path.dirname(src), new_name)
        if os.path.exists(destination):
            raise ObjectAlreadyExistsError(new_name)
        os.rename(src, destination)

    async def copy(self, src_path: str, dst_dir_path: str):
        src = self._existing(src_path)
        dst_dir = self._directory(dst_dir_path)
        destination = os.path.join(dst_dir, os.path.basename(src))
        if os.path.exists(destination):
            raise ObjectAlreadyExistsError(join_path(dst_dir_path, os.path.basename(src)))
        await asyncio.get_event_loop().run_in_executor(None, _copy, src, destination)

    async def remove(self, path: str):
        full_path = self._existing(path)
        if full_path == self.root_dir:
            raise ValueError("refusing to remove the storage root")
        await asyncio.get_event_loop().run_in_executor(None, _remove, full_path)
