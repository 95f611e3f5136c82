import os

from cryptdrive.conf import Config
from cryptdrive.crypto.crypt import OBFUSCATED_PREFIX, is_obscured
from cryptdrive.driver import CryptDriver
from cryptdrive.error import (
    ObjectNotFoundError, InvalidSuffixError, InvalidNameEncryptionModeError, MissingPasswordError,
    RemoteStorageNotFoundError, UnsupportedLinkError
)
from cryptdrive.model import FileStream, LogicalObject, ROOT_NAME
from cryptdrive.remote.storage import StorageRegistry
from cryptdrive.stream import HEADER_SIZE, BLOCK_DATA_SIZE, BLOCK_SIZE
from cryptdrive.stream.reader import BytesReader, read_all
from cryptdrive.stream.sizes import encrypted_size
from cryptdrive.testcase import CryptDriveTestCase
from tests.mocks import MemoryStorage, FileServer

DATA = os.urandom(3 * BLOCK_DATA_SIZE + 100)
ROOT = LogicalObject(name=ROOT_NAME, is_dir=True, path='/')


class DriverTestCase(CryptDriveTestCase):
    link_kind = 'range'
    filename_encryption = 'standard'
    directory_name_encryption = True

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.storage = MemoryStorage(self.link_kind)
        await self.storage.make_dir('/enc')
        self.registry = StorageRegistry()
        self.registry.mount('/', self.storage)
        self.conf = self.make_config(
            remote_path='/enc', filename_encryption=self.filename_encryption,
            directory_name_encryption=self.directory_name_encryption
        )
        self.driver = CryptDriver(self.conf, self.registry)
        await self.driver.init()

    async def put(self, dir_path: str, name: str, data: bytes = DATA):
        dst_dir = LogicalObject(name=dir_path.rstrip('/').rsplit('/', 1)[-1], is_dir=True, path=dir_path)
        return await self.driver.put(dst_dir, FileStream(name, len(data), BytesReader(data)))

    async def read_range(self, path: str, offset: int, length: int) -> bytes:
        link = await self.driver.link(await self.driver.get(path))
        try:
            reader = await link.read_range(offset, length)
            try:
                return await read_all(reader)
            finally:
                await reader.close()
        finally:
            await link.close()


class TestDriverGet(DriverTestCase):
    async def test_root_is_synthesized(self):
        root = await self.driver.get('/')
        self.assertEqual(root.name, ROOT_NAME)
        self.assertTrue(root.is_dir)
        self.assertEqual(root.size, 0)
        self.assertEqual(self.storage.get_calls, [])

    async def test_get_file(self):
        remote = await self.put('/', 'hello.txt')
        self.assertEqual(remote.size, encrypted_size(len(DATA)))
        self.assertTrue(remote.name.endswith('.bin'))
        self.assertNotIn('hello', remote.name)
        self.storage.get_calls.clear()
        obj = await self.driver.get('/hello.txt')
        self.assertEqual(obj.name, 'hello.txt')
        self.assertEqual(obj.path, '/hello.txt')
        self.assertEqual(obj.size, len(DATA))
        self.assertFalse(obj.is_dir)
        self.assertEqual(len(self.storage.get_calls), 1)

    async def test_directory_with_a_dot(self):
        await self.driver.make_dir(ROOT, 'notes.d')
        obj = await self.driver.get('/notes.d')
        self.assertTrue(obj.is_dir)
        self.assertEqual(obj.name, 'notes.d')
        self.assertEqual(len(self.storage.get_calls), 2)

    async def test_file_without_a_dot(self):
        await self.put('/', 'README', b'read me')
        obj = await self.driver.get('/README')
        self.assertFalse(obj.is_dir)
        self.assertEqual(obj.size, 7)
        self.assertEqual(len(self.storage.get_calls), 2)

    async def test_missing_raises_second_error(self):
        with self.assertRaises(ObjectNotFoundError) as err:
            await self.driver.get('/missing')
        self.assertEqual(err.exception.path, self.driver.resolver.to_remote_path('/missing', False))
        self.assertEqual(len(self.storage.get_calls), 2)

    async def test_lenient_about_bad_sizes(self):
        remote_name = self.driver.cipher.encrypt_file_name('plain.txt')
        self.storage.files[f'/enc/{remote_name}'] = b'not encrypted'
        with self.assertLogs('cryptdrive.driver', 'WARNING'):
            obj = await self.driver.get('/plain.txt')
        self.assertEqual(obj.name, 'plain.txt')
        self.assertEqual(obj.size, len(b'not encrypted'))
        self.assertEqual(obj.path, '/plain.txt')

    async def test_names_are_hidden(self):
        await self.driver.make_dir(ROOT, 'docs')
        await self.put('/docs', 'a.txt', b'a')
        self.assertEqual(len(self.storage.files), 1)
        for path in list(self.storage.dirs) + list(self.storage.files):
            self.assertNotIn('docs', path)
            self.assertNotIn('a.txt', path)


class TestDriverList(DriverTestCase):
    async def test_list_decrypts(self):
        await self.put('/', 'b.txt', b'b' * 10)
        await self.driver.make_dir(ROOT, 'docs')
        await self.put('/docs', 'a.txt', b'a' * 20)
        listed = {obj.name: obj for obj in await self.driver.list('/')}
        self.assertEqual(set(listed), {'b.txt', 'docs'})
        self.assertEqual(listed['b.txt'].size, 10)
        self.assertEqual(listed['b.txt'].path, '/b.txt')
        self.assertTrue(listed['docs'].is_dir)
        self.assertEqual(listed['docs'].size, 0)
        listed = await self.driver.list('/docs')
        self.assertEqual([(obj.name, obj.path, obj.size) for obj in listed], [('a.txt', '/docs/a.txt', 20)])

    async def test_skips_foreign_entries(self):
        await self.put('/', 'mine.txt', b'mine')
        remote_name = self.driver.cipher.encrypt_file_name('short.txt')
        self.storage.files[f'/enc/{remote_name}'] = b'too short'
        self.storage.files['/enc/README'] = b'plain'
        self.storage.files['/enc/zzzz.bin'] = b'x' * 100
        await self.storage.make_dir('/enc/plain-dir')
        self.assertEqual([obj.name for obj in await self.driver.list('/')], ['mine.txt'])

    async def test_thumbnails(self):
        remote = await self.put('/', 'photo.jpg', b'jpeg')
        self.storage.thumbnails[remote.path] = 'https://thumbs.example/photo.jpg'
        listed = await self.driver.list('/')
        self.assertEqual(listed[0].thumbnail, 'https://thumbs.example/photo.jpg')


class LinkTestsMixin:
    async def test_ranges(self):
        await self.put('/', 'data.bin')
        for offset, length in [
                (0, -1), (0, 1), (BLOCK_DATA_SIZE - 1, 2), (BLOCK_DATA_SIZE, BLOCK_DATA_SIZE),
                (len(DATA) - 50, -1), (len(DATA) - 50, 50), (123, 2 * BLOCK_DATA_SIZE + 7), (len(DATA), -1)]:
            expected = DATA[offset:] if length < 0 else DATA[offset:offset + length]
            self.assertEqual(await self.read_range('/data.bin', offset, length), expected, (offset, length))

    async def test_empty_file(self):
        await self.put('/', 'empty.bin', b'')
        self.assertEqual(await self.read_range('/empty.bin', 0, -1), b'')
        self.assertEqual(await self.read_range('/empty.bin', 0, 10), b'')

    async def test_reads_at_end_of_whole_chunks(self):
        data = DATA[:2 * BLOCK_DATA_SIZE]
        await self.put('/', 'chunks.bin', data)
        self.assertEqual(await self.read_range('/chunks.bin', len(data), -1), b'')
        self.assertEqual(await self.read_range('/chunks.bin', len(data), 10), b'')
        self.assertEqual(await self.read_range('/chunks.bin', len(data) - 5, -1), data[-5:])
        self.assertEqual(await self.read_range('/chunks.bin', BLOCK_DATA_SIZE, -1), data[BLOCK_DATA_SIZE:])

    async def test_open(self):
        await self.put('/', 'data.bin')
        async with await self.driver.open('/data.bin', 1000, 500) as reader:
            self.assertEqual(await read_all(reader), DATA[1000:1500])


class TestRangeLink(LinkTestsMixin, DriverTestCase):
    async def test_only_needed_chunks_are_fetched(self):
        await self.put('/', 'data.bin')
        self.assertEqual(await self.read_range('/data.bin', BLOCK_DATA_SIZE + 10, 5), DATA[BLOCK_DATA_SIZE + 10:][:5])
        self.assertEqual(self.storage.range_calls, [(0, HEADER_SIZE), (HEADER_SIZE + BLOCK_SIZE, BLOCK_SIZE)])

    async def test_link_carries_remote_headers(self):
        await self.put('/', 'data.bin')
        link = await self.driver.link(await self.driver.get('/data.bin'))
        self.assertEqual(link.headers, {'X-Remote': 'memory'})
        self.assertEqual(link.expiration, 60.0)
        await link.close()
        self.assertEqual(self.storage.closers[0].close_count, 1)


class TestSeekableLink(LinkTestsMixin, DriverTestCase):
    link_kind = 'seekable'

    async def test_handle_closed_once(self):
        await self.put('/', 'data.bin')
        link = await self.driver.link(await self.driver.get('/data.bin'))
        for offset in (0, BLOCK_DATA_SIZE * 2, 10):
            reader = await link.read_range(offset, 10)
            self.assertEqual(await read_all(reader), DATA[offset:offset + 10])
            await reader.close()
        handle = self.storage.links[0].reader
        self.assertEqual(handle.close_count, 0)
        await link.close()
        self.assertEqual(handle.close_count, 1)


class TestURLLink(LinkTestsMixin, DriverTestCase):
    link_kind = 'url'

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.server = FileServer(self.storage)
        await self.server.start()
        self.addAsyncCleanup(self.server.stop)

    async def test_range_requests(self):
        await self.put('/', 'data.bin')
        self.assertEqual(await self.read_range('/data.bin', 10, 10), DATA[10:20])
        self.assertEqual(
            [request['Range'] for request in self.server.requests],
            [f'bytes=0-{HEADER_SIZE - 1}', f'bytes={HEADER_SIZE}-{HEADER_SIZE + BLOCK_SIZE - 1}']
        )

    async def test_nothing_requested_past_the_end(self):
        await self.put('/', 'empty.bin', b'')
        self.assertEqual(await self.read_range('/empty.bin', 0, -1), b'')
        self.assertEqual([request['Range'] for request in self.server.requests], ['bytes=0-'])


class TestURLLinkWithoutRangeSupport(LinkTestsMixin, DriverTestCase):
    link_kind = 'url'

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.server = FileServer(self.storage, support_range=False)
        await self.server.start()
        self.addAsyncCleanup(self.server.stop)


class TestNoReadCapability(DriverTestCase):
    link_kind = 'none'

    async def test_unsupported(self):
        await self.put('/', 'data.bin')
        with self.assertRaises(UnsupportedLinkError):
            await self.driver.link(await self.driver.get('/data.bin'))


class TestDriverMutations(DriverTestCase):
    async def test_make_dir(self):
        await self.driver.make_dir(ROOT, 'docs')
        docs = await self.driver.get('/docs')
        await self.driver.make_dir(docs, 'sub')
        self.assertEqual([(obj.name, obj.is_dir) for obj in await self.driver.list('/docs')], [('sub', True)])

    async def test_rename_file(self):
        await self.put('/', 'hello.txt', b'hello')
        await self.driver.rename(await self.driver.get('/hello.txt'), 'bye.txt')
        self.assertEqual((await self.driver.get('/bye.txt')).size, 5)
        with self.assertRaises(ObjectNotFoundError):
            await self.driver.get('/hello.txt')

    async def test_rename_directory(self):
        await self.driver.make_dir(ROOT, 'docs')
        await self.put('/docs', 'a.txt', b'a')
        await self.driver.rename(await self.driver.get('/docs'), 'papers')
        self.assertEqual([obj.path for obj in await self.driver.list('/papers')], ['/papers/a.txt'])
        self.assertEqual(await self.read_range('/papers/a.txt', 0, -1), b'a')

    async def test_move(self):
        await self.driver.make_dir(ROOT, 'docs')
        await self.put('/', 'a.txt', b'a')
        await self.driver.move(await self.driver.get('/a.txt'), await self.driver.get('/docs'))
        self.assertEqual([obj.name for obj in await self.driver.list('/')], ['docs'])
        self.assertEqual(await self.read_range('/docs/a.txt', 0, -1), b'a')

    async def test_copy(self):
        await self.driver.make_dir(ROOT, 'docs')
        await self.put('/', 'a.txt', b'a')
        await self.driver.copy(await self.driver.get('/a.txt'), await self.driver.get('/docs'))
        self.assertEqual(await self.read_range('/docs/a.txt', 0, -1), b'a')
        self.assertEqual(await self.read_range('/a.txt', 0, -1), b'a')

    async def test_remove(self):
        await self.driver.make_dir(ROOT, 'docs')
        await self.put('/docs', 'a.txt', b'a')
        await self.driver.remove(await self.driver.get('/docs'))
        self.assertEqual(await self.driver.list('/'), [])
        self.assertEqual(self.storage.files, {})


class TestObfuscatedNames(TestDriverMutations):
    filename_encryption = 'obfuscate'


class TestPlainNames(TestDriverMutations):
    filename_encryption = 'off'
    directory_name_encryption = False

    async def test_names_are_visible(self):
        await self.driver.make_dir(ROOT, 'docs')
        await self.put('/docs', 'a.txt', b'a')
        self.assertIn('/enc/docs/a.txt.bin', self.storage.files)
        self.assertNotEqual(self.storage.files['/enc/docs/a.txt.bin'], b'a')


class TestDriverInit(CryptDriveTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.registry = StorageRegistry()
        self.registry.mount('/remote', MemoryStorage())

    def write_config(self, text: str) -> str:
        path = os.path.join(self.temp_dir, 'cryptdrive.yml')
        with open(path, 'w') as config_file:
            config_file.write(text)
        return path

    async def test_credentials_are_obscured(self):
        config_path = self.write_config("password: hunter2\nsalt: pepper\n")
        conf = Config(data_dir=self.temp_dir, config=config_path, remote_path='/remote')
        conf.set_persisted()
        self.assertEqual(conf.password, 'hunter2')
        await CryptDriver(conf, self.registry).init()
        self.assertTrue(conf.password.startswith(OBFUSCATED_PREFIX))
        self.assertTrue(is_obscured(conf.salt))
        self.assertEqual(conf.revealed_password, 'hunter2')
        self.assertEqual(conf.revealed_salt, 'pepper')
        with open(config_path) as config_file:
            saved = config_file.read()
        self.assertNotIn('hunter2', saved)
        self.assertIn(OBFUSCATED_PREFIX, saved)

    async def test_already_obscured_credentials_give_same_keys(self):
        driver = CryptDriver(self.make_config(remote_path='/remote'), self.registry)
        await driver.init()
        again = CryptDriver(self.make_config(remote_path='/remote', password=driver.conf.password), self.registry)
        await again.init()
        ciphertext = await read_all(driver.cipher.encrypt_data(BytesReader(b'secret')))
        self.assertEqual(await read_all(await again.cipher.decrypt_data(BytesReader(ciphertext))), b'secret')

    async def test_invalid_suffix(self):
        config_path = self.write_config("encrypted_suffix: bin\n")
        conf = self.make_config(config=config_path, remote_path='/remote')
        conf.set_persisted()
        with self.assertRaises(InvalidSuffixError):
            await CryptDriver(conf, self.registry).init()

    async def test_invalid_mode(self):
        config_path = self.write_config("filename_encryption: rot13\n")
        conf = self.make_config(config=config_path, remote_path='/remote')
        conf.set_persisted()
        with self.assertRaises(InvalidNameEncryptionModeError):
            await CryptDriver(conf, self.registry).init()

    async def test_missing_remote(self):
        driver = CryptDriver(self.make_config(remote_path='/elsewhere'), self.registry)
        with self.assertRaises(RemoteStorageNotFoundError):
            await driver.init()
        self.assertIsNone(driver.cipher)
        self.assertIsNone(driver.resolver)
        with self.assertRaises(RemoteStorageNotFoundError):
            await CryptDriver(self.make_config(remote_path=''), self.registry).init()

    async def test_missing_password(self):
        with self.assertRaises(MissingPasswordError):
            await CryptDriver(self.make_config(remote_path='/remote', password=''), self.registry).init()
