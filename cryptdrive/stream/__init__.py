FILE_MAGIC = b"CRYPTDR\x00"
FILE_NONCE_SIZE = 24
HEADER_SIZE = len(FILE_MAGIC) + FILE_NONCE_SIZE

# plaintext bytes per chunk and the poly1305 tag added to each
BLOCK_DATA_SIZE = 64 * 1024
BLOCK_OVERHEAD = 16
BLOCK_SIZE = BLOCK_DATA_SIZE + BLOCK_OVERHEAD
