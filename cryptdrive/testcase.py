import time
import shutil
import asyncio
import tempfile
import unittest

from cryptdrive.conf import Config


class AsyncioTestCase(unittest.IsolatedAsyncioTestCase):

    LOOP_SLOW_CALLBACK_DURATION = 0.2
    TIMEOUT = 120.0

    maxDiff = None

    async def asyncSetUp(self):  # pylint: disable=C0103
        self.loop = asyncio.get_running_loop()  # pylint: disable=W0201
        self.loop.slow_callback_duration = self.LOOP_SLOW_CALLBACK_DURATION
        self.add_timeout()

    def cancel(self):
        for task in asyncio.all_tasks(self.loop):
            if not task.done():
                task.print_stack()
                task.cancel()

    def add_timeout(self):
        if self.TIMEOUT:
            self.loop.call_later(self.TIMEOUT, self.check_timeout, time.time())

    def check_timeout(self, started):
        if time.time() - started >= self.TIMEOUT:
            self.cancel()
        else:
            self.loop.call_later(self.TIMEOUT, self.check_timeout, started)


class CryptDriveTestCase(AsyncioTestCase):
    """Provides a scratch directory and a config that never touches the user's data dir."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.temp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.temp_dir, True)

    def make_config(self, **kwargs) -> Config:
        kwargs.setdefault('data_dir', self.temp_dir)
        kwargs.setdefault('config', '')
        kwargs.setdefault('password', 'hunter2')
        kwargs.setdefault('salt', 'pepper')
        kwargs.setdefault('remote_path', '/')
        return Config(**kwargs)
