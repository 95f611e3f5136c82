from cryptdrive.error import EncryptedFileTooShortError, EncryptedFileBadSizeError
from cryptdrive.stream import HEADER_SIZE, BLOCK_DATA_SIZE, BLOCK_OVERHEAD, BLOCK_SIZE


def encrypted_size(size: int) -> int:
    if size < 0:
        raise ValueError(f"size must not be negative: {size}")
    blocks, residue = divmod(size, BLOCK_DATA_SIZE)
    encrypted = HEADER_SIZE + blocks * BLOCK_SIZE
    if residue:
        encrypted += BLOCK_OVERHEAD + residue
    return encrypted


def decrypted_size(size: int) -> int:
    """
    Inverse of encrypted_size, raises an InvalidEncryptedSizeError for sizes no
    encrypted file can have
    """
    size -= HEADER_SIZE
    if size < 0:
        raise EncryptedFileTooShortError(size + HEADER_SIZE)
    blocks, residue = divmod(size, BLOCK_SIZE)
    decrypted = blocks * BLOCK_DATA_SIZE
    if residue:
        residue -= BLOCK_OVERHEAD
        if residue <= 0:
            raise EncryptedFileBadSizeError(size + HEADER_SIZE)
        decrypted += residue
    return decrypted


def underlying_range(offset: int, length: int):
    """
    Maps a plaintext range to (ciphertext offset, ciphertext length, first chunk,
    bytes to discard from the first chunk). A length of -1 reads to the end.
    """
    chunk, discard = divmod(offset, BLOCK_DATA_SIZE)
    underlying_offset = HEADER_SIZE + chunk * BLOCK_SIZE
    if length < 0:
        return underlying_offset, -1, chunk, discard
    last_chunk = -(-(offset + length) // BLOCK_DATA_SIZE)
    chunks_to_read = max(1, last_chunk - chunk)
    return underlying_offset, chunks_to_read * BLOCK_SIZE, chunk, discard
