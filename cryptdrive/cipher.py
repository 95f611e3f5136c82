import typing

from cryptdrive.crypto.crypt import derive_keys
from cryptdrive.crypto.names import NameCipher, NAME_ENCRYPTION_OFF
from cryptdrive.stream.cipher import DataCipher, EncryptingReader, DecryptingReader, RangeFetcher
from cryptdrive.stream.reader import AsyncReader
from cryptdrive.stream.sizes import encrypted_size, decrypted_size


class Cipher:
    """
    Everything the overlay needs to translate between plaintext and the remote: name
    mapping, size mapping and the chunked stream cipher. Built once and shared
    read-only by all operations.
    """
    __slots__ = ['names', 'data']

    def __init__(self, names: NameCipher, data: DataCipher):
        self.names = names
        self.data = data

    @classmethod
    def from_password(cls, password: str, salt: str = '', name_encryption: str = NAME_ENCRYPTION_OFF,
                      dir_name_encryption: bool = False, suffix: str = '.bin') -> 'Cipher':
        keys = derive_keys(password, salt)
        return cls(NameCipher(name_encryption, keys.name_key, dir_name_encryption, suffix), DataCipher(keys.data_key))

    def encrypt_file_name(self, name: str) -> str:
        return self.names.encrypt_file_name(name)

    def decrypt_file_name(self, name: str) -> str:
        return self.names.decrypt_file_name(name)

    def encrypt_dir_name(self, name: str) -> str:
        return self.names.encrypt_dir_name(name)

    def decrypt_dir_name(self, name: str) -> str:
        return self.names.decrypt_dir_name(name)

    @staticmethod
    def encrypted_size(size: int) -> int:
        return encrypted_size(size)

    @staticmethod
    def decrypted_size(size: int) -> int:
        return decrypted_size(size)

    def encrypt_data(self, source: AsyncReader, file_nonce: typing.Optional[bytes] = None) -> EncryptingReader:
        return self.data.encrypt_data(source, file_nonce)

    async def decrypt_data(self, reader: AsyncReader) -> DecryptingReader:
        return await self.data.decrypt_data(reader)

    async def decrypt_data_seek(self, fetch: RangeFetcher, offset: int = 0, length: int = -1) -> DecryptingReader:
        return await self.data.decrypt_data_seek(fetch, offset, length)
