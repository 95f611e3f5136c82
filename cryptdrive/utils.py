import os
import pathlib
import posixpath
import typing


def fix_path(path: str) -> str:
    """Absolute, normalized posix path; '' and '.' map to '/'."""
    path = posixpath.normpath('/' + (path or '').replace('\\', '/'))
    # normpath keeps a leading '//'
    return '/' + path.lstrip('/')


def path_equal(first: str, second: str) -> bool:
    return fix_path(first) == fix_path(second)


def join_path(*parts: str) -> str:
    """Joins path pieces like go's path.Join, a piece starting with '/' does not reset the result."""
    segments = [segment for part in parts for segment in (part or '').split('/') if segment]
    return fix_path('/'.join(segments))


def split_path(path: str) -> typing.Tuple[str, str]:
    head, _, tail = path.rpartition('/')
    return head + '/', tail


def is_sub_path(parent: str, path: str) -> bool:
    parent, path = fix_path(parent), fix_path(path)
    return parent == '/' or path == parent or path.startswith(parent + '/')


def ensure_directory_exists(path: str):
    if not os.path.isdir(path):
        pathlib.Path(path).mkdir(parents=True, exist_ok=True)
