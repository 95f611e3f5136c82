from .base import BaseError


class ConfigurationError(BaseError):
    """
    Configuration errors, the overlay never starts.
    """


class ConfigWriteError(ConfigurationError):
    """
    When writing the config fails, such as due to permission issues.
    """

    def __init__(self, path):
        self.path = path
        super().__init__(f"Cannot write configuration file '{path}'.")


class ConfigReadError(ConfigurationError):
    """
    Can't open the config file user provided via command line args.
    """

    def __init__(self, path):
        self.path = path
        super().__init__(f"Cannot find provided configuration file '{path}'.")


class ConfigParseError(ConfigurationError):
    """
    Includes the syntax error / line number to help user fix it.
    """

    def __init__(self, path):
        self.path = path
        super().__init__(f"Failed to parse the configuration file '{path}'.")


class InvalidSuffixError(ConfigurationError):

    def __init__(self, suffix):
        self.suffix = suffix
        super().__init__(
            f"Encrypted suffix '{suffix}' is not valid, it must be a dot followed by "
            f"two or more letters, digits, '-' or '_'."
        )


class InvalidNameEncryptionModeError(ConfigurationError):

    def __init__(self, mode):
        self.mode = mode
        super().__init__(f"Unknown file name encryption mode '{mode}'.")


class MissingPasswordError(ConfigurationError):

    def __init__(self):
        super().__init__("A password is required to initialize the encrypted overlay.")


class RemoteStorageNotFoundError(ConfigurationError):

    def __init__(self, path):
        self.path = path
        super().__init__(f"Can't find remote storage for '{path}'.")


class CipherCreationError(ConfigurationError):

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Failed to create cipher: {reason}")


class DecodeError(BaseError, ValueError):
    """
    Entry is not a member of the overlay, listings skip it.
    """


class InvalidEncryptedNameError(DecodeError):

    def __init__(self, name, reason='not a valid encrypted name'):
        self.name = name
        self.reason = reason
        super().__init__(f"'{name}' is {reason}.")


class InvalidEncryptedSizeError(DecodeError):

    def __init__(self, size, reason):
        self.size = size
        self.reason = reason
        super().__init__(f"Encrypted size {size} is invalid: {reason}.")


class EncryptedFileTooShortError(InvalidEncryptedSizeError):

    def __init__(self, size):
        super().__init__(size, "file is too short to be encrypted")


class EncryptedFileBadSizeError(InvalidEncryptedSizeError):

    def __init__(self, size):
        super().__init__(size, "trailing chunk is too short")


class RemoteError(BaseError):
    """
    Errors reported by the remote storage, passed through to the caller.
    """


class ObjectNotFoundError(RemoteError, FileNotFoundError):

    def __init__(self, path):
        self.path = path
        super().__init__(f"Object '{path}' not found.")


class ObjectAlreadyExistsError(RemoteError, FileExistsError):

    def __init__(self, path):
        self.path = path
        super().__init__(f"Object '{path}' already exists.")


class NotADirectoryRemoteError(RemoteError, NotADirectoryError):

    def __init__(self, path):
        self.path = path
        super().__init__(f"'{path}' is not a directory.")


class RemoteHTTPError(RemoteError):

    def __init__(self, url, status):
        self.url = url
        self.status = status
        super().__init__(f"Remote storage HTTP request to {url} failed with status {status}.")


class IntegrityError(BaseError):
    """
    Ciphertext failed verification, the data was tampered with or corrupted.
    """


class EncryptedHeaderError(IntegrityError):

    def __init__(self, reason='bad magic'):
        self.reason = reason
        super().__init__(f"Encrypted file has a malformed header: {reason}.")


class CorruptedChunkError(IntegrityError):

    def __init__(self, chunk_index):
        self.chunk_index = chunk_index
        super().__init__(f"Failed to authenticate encrypted chunk {chunk_index}.")


class ChunkTooShortError(IntegrityError):

    def __init__(self, chunk_index, length):
        self.chunk_index = chunk_index
        self.length = length
        super().__init__(f"Encrypted chunk {chunk_index} is too short ({length} bytes).")


class CapabilityError(BaseError):
    """
    The remote can't serve the random access reads the overlay needs.
    """


class UnsupportedLinkError(CapabilityError):

    def __init__(self, link):
        self.link = link
        super().__init__(
            f"Remote link {type(link).__name__} exposes no range reader, seekable reader "
            f"or URL, the remote storage driver needs to be enhanced to support encryption."
        )
