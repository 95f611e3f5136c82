import os
import base64
import typing
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.primitives.ciphers import Cipher, modes
from cryptography.hazmat.primitives.ciphers.algorithms import AES
from cryptography.hazmat.backends import default_backend

from cryptdrive.error import CipherCreationError

OBFUSCATED_PREFIX = "___Obfuscated___"

# used when the user doesn't supply a salt
DEFAULT_SALT = bytes([
    0xa8, 0x0d, 0xf4, 0x3a, 0x8f, 0xbd, 0x03, 0x08, 0xa7, 0xca, 0xb8, 0x3e, 0x58, 0x1f, 0x86, 0xb1
])

DATA_KEY_SIZE = 32
NAME_KEY_SIZE = 64

# fixed key, obscuring only keeps secrets from being stored verbatim
OBSCURE_KEY = bytes([
    0x9c, 0x93, 0x5b, 0x48, 0x73, 0x0a, 0x55, 0x4d, 0x6b, 0xfd, 0x7c, 0x63, 0xc8, 0x86, 0xa9, 0x2b,
    0xd3, 0x90, 0x19, 0x8e, 0xb8, 0x12, 0x8a, 0xfb, 0xf4, 0xde, 0x16, 0x2b, 0x8b, 0x95, 0xf6, 0x38,
])


class CipherKeys(typing.NamedTuple):
    data_key: bytes
    name_key: bytes


def scrypt(passphrase, salt, scrypt_n=1<<14, scrypt_r=8, scrypt_p=1, length=32):
    kdf = Scrypt(salt, length=length, n=scrypt_n, r=scrypt_r, p=scrypt_p, backend=default_backend())
    return kdf.derive(passphrase)


def derive_keys(password: str, salt: str = '') -> CipherKeys:
    if not password:
        raise CipherCreationError("password is empty")
    salt_bytes = salt.encode() if salt else DEFAULT_SALT
    key = scrypt(password.encode(), salt_bytes, length=DATA_KEY_SIZE + NAME_KEY_SIZE)
    return CipherKeys(key[:DATA_KEY_SIZE], key[DATA_KEY_SIZE:])


def _crypt(data: bytes, init_vector: bytes) -> bytes:
    cryptor = Cipher(AES(OBSCURE_KEY), modes.CTR(init_vector), default_backend()).encryptor()
    return cryptor.update(data) + cryptor.finalize()


def obscure(value: str) -> str:
    init_vector = os.urandom(16)
    encrypted = init_vector + _crypt(value.encode(), init_vector)
    return base64.urlsafe_b64encode(encrypted).decode().rstrip('=')


def reveal(value: str) -> str:
    try:
        data = base64.urlsafe_b64decode(value + '=' * (-len(value) % 4))
    except ValueError:
        raise ValueError("obscured value is not valid base64")
    if len(data) < 16:
        raise ValueError("obscured value is too short")
    init_vector, data = data[:16], data[16:]
    try:
        return _crypt(data, init_vector).decode()
    except UnicodeDecodeError:
        raise ValueError("obscured value did not reveal to text")


def is_obscured(value: str) -> bool:
    return value.startswith(OBFUSCATED_PREFIX)


def obscure_setting(value: str) -> str:
    """Idempotently turn a plaintext setting into its at-rest form."""
    if not value or is_obscured(value):
        return value
    return OBFUSCATED_PREFIX + obscure(value)


def reveal_setting(value: str) -> str:
    if not value or not is_obscured(value):
        return value
    return reveal(value[len(OBFUSCATED_PREFIX):])
