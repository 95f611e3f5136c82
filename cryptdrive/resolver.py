import typing

from cryptdrive.cipher import Cipher
from cryptdrive.utils import fix_path, join_path, split_path


def guess_path(path: str) -> typing.Tuple[bool, bool]:
    """
    Best guess of whether a logical path is a directory, from its shape.

    Returns (is_dir, second_try): a trailing slash confirms a directory, otherwise a
    final segment without a dot is tried as a directory first and as a file after,
    one with a dot the other way around.
    """
    if path.endswith('/'):
        return True, False
    if '.' not in path[path.rfind('/') + 1:]:
        return True, True
    return False, True


def candidate_types(path: str) -> typing.List[bool]:
    is_dir, second_try = guess_path(path)
    if second_try:
        return [is_dir, not is_dir]
    return [is_dir]


class PathResolver:
    __slots__ = ['cipher', 'remote_path']

    def __init__(self, cipher: Cipher, remote_path: str):
        self.cipher = cipher
        self.remote_path = fix_path(remote_path)

    def to_remote_path(self, path: str, is_dir: bool) -> str:
        path = fix_path(path)
        if is_dir and not path.endswith('/'):
            path += '/'
        dir_path, name = split_path(path)
        remote_dir = self.cipher.encrypt_dir_name(dir_path)
        remote_name = self.cipher.encrypt_file_name(name) if name.strip() else ''
        return join_path(self.remote_path, remote_dir, remote_name)

    def resolve(self, path: str) -> typing.List[typing.Tuple[str, bool]]:
        """Ordered (remote path, is_dir) candidates to query for a logical path, at most two."""
        return [(self.to_remote_path(path, is_dir), is_dir) for is_dir in candidate_types(path)]
