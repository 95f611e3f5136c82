import os
import sys
import json
import asyncio
import logging
import logging.handlers
import argparse

from cryptdrive import __version__
from cryptdrive.conf import Config
from cryptdrive.crypto.crypt import obscure, reveal
from cryptdrive.driver import CryptDriver
from cryptdrive.error import BaseError
from cryptdrive.model import FileStream, LogicalObject
from cryptdrive.remote.local import LocalStorage, LocalFileReader
from cryptdrive.remote.storage import StorageRegistry
from cryptdrive.utils import ensure_directory_exists, fix_path, split_path

log = logging.getLogger('cryptdrive')
log.addHandler(logging.NullHandler())


def get_argument_parser():
    parser = argparse.ArgumentParser(
        prog='cryptdrive', description="Encrypted overlay over a local directory."
    )
    parser.add_argument('--version', action='version', version=f"cryptdrive {__version__}")
    parser.add_argument('--verbose', action='store_true', help='Enable debug output.')
    parser.add_argument('--quiet', action='store_true', help='Disable log output to the console.')
    Config.contribute_to_argparse(parser)
    sub = parser.add_subparsers(dest='command', metavar='COMMAND')

    ls = sub.add_parser('ls', help='List a directory.')
    ls.add_argument('path', nargs='?', default='/')
    stat = sub.add_parser('stat', help='Show a file or directory.')
    stat.add_argument('path')
    cat = sub.add_parser('cat', help='Write (part of) a file to stdout.')
    cat.add_argument('path')
    cat.add_argument('--offset', type=int, default=0)
    cat.add_argument('--length', type=int, default=-1)
    put = sub.add_parser('put', help='Upload a local file into a directory.')
    put.add_argument('file')
    put.add_argument('dir', nargs='?', default='/')
    mkdir = sub.add_parser('mkdir', help='Create a directory.')
    mkdir.add_argument('path')
    rm = sub.add_parser('rm', help='Remove a file or directory.')
    rm.add_argument('path')
    mv = sub.add_parser('mv', help='Move a file or directory into another directory.')
    mv.add_argument('src')
    mv.add_argument('dst_dir')
    cp = sub.add_parser('cp', help='Copy a file or directory into another directory.')
    cp.add_argument('src')
    cp.add_argument('dst_dir')
    rename = sub.add_parser('rename', help='Rename a file or directory.')
    rename.add_argument('path')
    rename.add_argument('new_name')
    obscure_parser = sub.add_parser('obscure', help='Obscure a password for the config file.')
    obscure_parser.add_argument('value')
    reveal_parser = sub.add_parser('reveal', help='Reveal an obscured password.')
    reveal_parser.add_argument('value')
    return parser


def setup_logging(args, conf: Config):
    default_formatter = logging.Formatter("%(asctime)s %(levelname)-8s %(name)s:%(lineno)d: %(message)s")
    if os.path.isdir(conf.data_dir):
        file_handler = logging.handlers.RotatingFileHandler(
            conf.log_file_path, maxBytes=2097152, backupCount=5
        )
        file_handler.setFormatter(default_formatter)
        log.addHandler(file_handler)
    if not args.quiet:
        handler = logging.StreamHandler()
        handler.setFormatter(default_formatter)
        log.addHandler(handler)
    logging.getLogger('aiohttp').setLevel(logging.CRITICAL)
    log.setLevel(logging.DEBUG if args.verbose else logging.INFO)


def print_json(obj):
    print(json.dumps(obj, indent=2, sort_keys=True))


async def start_driver(conf: Config) -> CryptDriver:
    if not conf.local_storage_dir:
        raise BaseError("--local-storage-dir is required")
    registry = StorageRegistry()
    registry.mount('/', LocalStorage(conf.local_storage_dir))
    if not conf.remote_path:
        conf.remote_path = '/'
    driver = CryptDriver(conf, registry)
    await driver.init()
    return driver


async def execute_command(args, conf: Config):
    driver = await start_driver(conf)
    if args.command == 'ls':
        print_json([obj.as_dict() for obj in await driver.list(args.path)])
    elif args.command == 'stat':
        print_json((await driver.get(args.path)).as_dict())
    elif args.command == 'cat':
        async with await driver.open(args.path, args.offset, args.length) as reader:
            async for data in reader:
                sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    elif args.command == 'put':
        reader = LocalFileReader(args.file)
        stream = FileStream(
            os.path.basename(args.file), os.path.getsize(args.file), reader, os.path.getmtime(args.file)
        )
        await driver.put(LogicalObject(name=split_path(fix_path(args.dir))[1], path=args.dir, is_dir=True), stream)
    elif args.command == 'mkdir':
        parent, name = split_path(fix_path(args.path))
        await driver.make_dir(LogicalObject(name=split_path(parent)[1], path=parent, is_dir=True), name)
    elif args.command == 'rm':
        await driver.remove(await driver.get(args.path))
    elif args.command == 'mv':
        await driver.move(await driver.get(args.src), await driver.get(args.dst_dir))
    elif args.command == 'cp':
        await driver.copy(await driver.get(args.src), await driver.get(args.dst_dir))
    elif args.command == 'rename':
        await driver.rename(await driver.get(args.path), args.new_name)


def main(argv=None):
    argv = argv or sys.argv[1:]
    parser = get_argument_parser()
    args = parser.parse_args(argv)

    if args.command == 'obscure':
        print(obscure(args.value))
        return 0
    if args.command == 'reveal':
        print(reveal(args.value))
        return 0
    if args.command is None:
        parser.print_help()
        return 1

    conf = Config.create_from_arguments(args)
    ensure_directory_exists(conf.data_dir)
    setup_logging(args, conf)
    try:
        asyncio.run(execute_command(args, conf))
    except BaseError as err:
        log.error("%s", err)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
