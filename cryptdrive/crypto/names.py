import re
import base64
import binascii
import logging
import typing
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESSIV

from cryptdrive.error import InvalidEncryptedNameError, InvalidNameEncryptionModeError, InvalidSuffixError

log = logging.getLogger(__name__)

NAME_ENCRYPTION_OFF = 'off'
NAME_ENCRYPTION_STANDARD = 'standard'
NAME_ENCRYPTION_OBFUSCATE = 'obfuscate'
NAME_ENCRYPTION_MODES = [NAME_ENCRYPTION_OFF, NAME_ENCRYPTION_STANDARD, NAME_ENCRYPTION_OBFUSCATE]

RE_SUFFIX = re.compile(r'^\.[A-Za-z0-9_-]{2,}$')
RE_BASE32 = re.compile(r'^[A-Za-z2-7]+$')
RE_OBFUSCATED = re.compile(r'^([0-9]{1,3})\.(.*)$', re.DOTALL)


def is_valid_suffix(suffix: str) -> bool:
    return bool(RE_SUFFIX.match(suffix or ''))


def base32_encode(data: bytes) -> str:
    return base64.b32encode(data).decode().rstrip('=').lower()


def base32_decode(text: str) -> bytes:
    if not RE_BASE32.match(text):
        raise ValueError("invalid base32 characters")
    text = text.upper()
    try:
        return base64.b32decode(text + '=' * (-len(text) % 8))
    except binascii.Error as err:
        raise ValueError(str(err))


def _rotate(text: str, shift: int) -> str:
    rotated = []
    for char in text:
        if '0' <= char <= '9':
            rotated.append(chr(ord('0') + (ord(char) - ord('0') + shift) % 10))
        elif 'a' <= char <= 'z':
            rotated.append(chr(ord('a') + (ord(char) - ord('a') + shift) % 26))
        elif 'A' <= char <= 'Z':
            rotated.append(chr(ord('A') + (ord(char) - ord('A') + shift) % 26))
        else:
            rotated.append(char)
    return ''.join(rotated)


class NameCipher:
    """
    Deterministic, reversible mapping of single path segments.

    File names and directory names are encrypted the same way, file names get the
    encrypted suffix appended and directory names are only encrypted when
    `dir_name_encryption` is set.
    """
    __slots__ = [
        'mode',
        'dir_name_encryption',
        'suffix',
        '_siv',
        '_key_shift',
    ]

    def __init__(self, mode: str, name_key: bytes, dir_name_encryption: bool = False, suffix: str = '.bin'):
        if mode not in NAME_ENCRYPTION_MODES:
            raise InvalidNameEncryptionModeError(mode)
        if not is_valid_suffix(suffix):
            raise InvalidSuffixError(suffix)
        self.mode = mode
        self.dir_name_encryption = dir_name_encryption
        self.suffix = suffix
        self._siv = AESSIV(name_key)
        self._key_shift = sum(name_key)

    def _encrypt_standard(self, segment: str) -> str:
        return base32_encode(self._siv.encrypt(segment.encode(), None))

    def _decrypt_standard(self, segment: str) -> str:
        try:
            decoded = base32_decode(segment)
        except ValueError:
            raise InvalidEncryptedNameError(segment, "not valid base32")
        try:
            return self._siv.decrypt(decoded, None).decode()
        except (InvalidTag, ValueError):
            raise InvalidEncryptedNameError(segment, "not encrypted with this key")

    def _obfuscate(self, segment: str) -> str:
        seed = sum(map(ord, segment)) % 256
        return f"{seed}.{_rotate(segment, seed + self._key_shift)}"

    def _deobfuscate(self, segment: str) -> str:
        match = RE_OBFUSCATED.match(segment)
        if not match:
            raise InvalidEncryptedNameError(segment, "not an obfuscated name")
        seed = int(match.group(1))
        if match.group(1) != str(seed):
            raise InvalidEncryptedNameError(segment, "not an obfuscated name")
        # the checksum is one byte, so about 1 in 256 foreign names still passes
        plaintext = _rotate(match.group(2), -(seed + self._key_shift))
        if sum(map(ord, plaintext)) % 256 != seed:
            raise InvalidEncryptedNameError(segment, "not obfuscated with this key")
        return plaintext

    def encrypt_segment(self, segment: str) -> str:
        if not segment or self.mode == NAME_ENCRYPTION_OFF:
            return segment
        if self.mode == NAME_ENCRYPTION_STANDARD:
            return self._encrypt_standard(segment)
        return self._obfuscate(segment)

    def decrypt_segment(self, segment: str) -> str:
        if not segment or self.mode == NAME_ENCRYPTION_OFF:
            return segment
        if self.mode == NAME_ENCRYPTION_STANDARD:
            return self._decrypt_standard(segment)
        return self._deobfuscate(segment)

    def encrypt_file_name(self, name: str) -> str:
        return self.encrypt_segment(name) + self.suffix

    def decrypt_file_name(self, name: str) -> str:
        if len(name) <= len(self.suffix) or not name.endswith(self.suffix):
            raise InvalidEncryptedNameError(name, f"missing the '{self.suffix}' suffix")
        return self.decrypt_segment(name[:-len(self.suffix)])

    def _map_dir_path(self, path: str, fn: typing.Callable[[str], str]) -> str:
        if not self.dir_name_encryption:
            return path
        return '/'.join(fn(segment) for segment in path.split('/'))

    def encrypt_dir_name(self, path: str) -> str:
        """Encrypts every segment of a directory path, keeping the separators."""
        return self._map_dir_path(path, self.encrypt_segment)

    def decrypt_dir_name(self, path: str) -> str:
        return self._map_dir_path(path, self.decrypt_segment)
