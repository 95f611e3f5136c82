import time
import typing

from cryptdrive.stream.reader import AsyncReader

ROOT_NAME = "Root"


class RemoteObject(typing.NamedTuple):
    """An object as the remote storage reports it, names and sizes are ciphertext."""
    name: str
    size: int = 0
    modified: float = 0.0
    is_dir: bool = False
    path: str = ''
    thumbnail: typing.Optional[str] = None


class LogicalObject(typing.NamedTuple):
    """Plaintext view of a remote object, built per request."""
    name: str
    size: int = 0
    modified: float = 0.0
    is_dir: bool = False
    path: str = ''
    thumbnail: typing.Optional[str] = None

    def as_dict(self) -> typing.Dict:
        return {
            'name': self.name,
            'path': self.path,
            'size': self.size,
            'modified': self.modified,
            'is_dir': self.is_dir,
            'thumbnail': self.thumbnail,
        }


def root_object() -> LogicalObject:
    return LogicalObject(name=ROOT_NAME, is_dir=True, path='/')


class FileStream:
    __slots__ = [
        'name',
        'size',
        'modified',
        'reader',
        'mimetype',
    ]

    def __init__(self, name: str, size: int, reader: AsyncReader, modified: typing.Optional[float] = None,
                 mimetype: str = 'application/octet-stream'):
        self.name = name
        self.size = size
        self.reader = reader
        self.modified = modified if modified is not None else time.time()
        self.mimetype = mimetype

    def __repr__(self):
        return f"FileStream(name={self.name!r}, size={self.size})"
