# Magic and version
STREAM_MAGIC = b"ARTPACK\x00"  # 8 bytes: "ARTPACK\0"

VERSION_MAJOR = 1
VERSION_MINOR = 0


# Record constants
REC_SYNC = bytes([0xD2, 0x41, 0x52, 0x54])  # 0xD2 'A' 'R' 'T'

RTYPE_ENTRY = 0
RTYPE_END = 1

# Record flags
RFLAG_CONTENT_TAG = 1 << 0

CONTENT_TAG_SIZE = 16


# Entry kinds
KIND_FILE = 0
KIND_DIR = 1
KIND_OTHER = 2


DEFAULT_CHUNK_SIZE = 1_048_576  # 1 MiB
DEFAULT_LEVEL = 3
DEFAULT_WORKERS = 5

# Filesystem modes applied on output
ARCHIVE_MODE = 0o777
PARENT_DIR_MODE = 0o755
