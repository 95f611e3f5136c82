import typing
import logging

from cryptdrive.error import RemoteStorageNotFoundError
from cryptdrive.model import RemoteObject, FileStream
from cryptdrive.remote.link import Link
from cryptdrive.utils import fix_path, is_sub_path

log = logging.getLogger(__name__)


class Storage:
    """
    Path addressed object store the overlay writes through. Paths are absolute
    within the storage.
    """

    async def list(self, path: str) -> typing.List[RemoteObject]:
        raise NotImplementedError()

    async def get(self, path: str) -> RemoteObject:
        """Raises ObjectNotFoundError when nothing exists at `path`."""
        raise NotImplementedError()

    async def link(self, path: str) -> typing.Tuple[Link, RemoteObject]:
        raise NotImplementedError()

    async def put(self, dir_path: str, stream: FileStream) -> RemoteObject:
        raise NotImplementedError()

    async def make_dir(self, path: str):
        raise NotImplementedError()

    async def move(self, src_path: str, dst_dir_path: str):
        raise NotImplementedError()

    async def rename(self, src_path: str, new_name: str):
        raise NotImplementedError()

    async def copy(self, src_path: str, dst_dir_path: str):
        raise NotImplementedError()

    async def remove(self, path: str):
        raise NotImplementedError()


class StorageRegistry:
    """Mount table, a global path belongs to the storage with the longest matching mount path."""

    def __init__(self):
        self._storages: typing.Dict[str, Storage] = {}

    def mount(self, mount_path: str, storage: Storage):
        mount_path = fix_path(mount_path)
        if mount_path in self._storages:
            log.warning("replacing storage mounted at %s", mount_path)
        self._storages[mount_path] = storage

    def unmount(self, mount_path: str):
        self._storages.pop(fix_path(mount_path), None)

    @property
    def mount_paths(self) -> typing.List[str]:
        return sorted(self._storages)

    def _find_mount_path(self, path: str) -> str:
        matches = [mount_path for mount_path in self._storages if is_sub_path(mount_path, path)]
        if not matches:
            raise RemoteStorageNotFoundError(path)
        return max(matches, key=len)

    def get_storage(self, path: str) -> Storage:
        return self._storages[self._find_mount_path(path)]

    def get_storage_and_actual_path(self, path: str) -> typing.Tuple[Storage, str]:
        path = fix_path(path)
        mount_path = self._find_mount_path(path)
        return self._storages[mount_path], fix_path(path[len(mount_path.rstrip('/')):])
