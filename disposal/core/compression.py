"""
Compression utilities for disposal

Auto-detects and handles the formats APT leaves in its lists directory:
- plain (default for /var/lib/apt/lists)
- gzip
- xz/lzma
- bzip2
- zstd (Acquire::CompressionTypes::Order with zst)
"""

from pathlib import Path
from typing import Union

# Magic bytes for format detection
MAGIC_ZSTD = b'\x28\xb5\x2f\xfd'
MAGIC_GZIP = b'\x1f\x8b'
MAGIC_XZ = b'\xfd7zXZ\x00'
MAGIC_BZ2 = b'BZh'
MAGIC_LZ4 = b'\x04\x22\x4d\x18'

# Suffixes of index files we know how to read
SUPPORTED_SUFFIXES = ('', '.gz', '.xz', '.bz2', '.zst')


def detect_format(data: bytes) -> str:
    """Detect compression format from magic bytes.

    Args:
        data: First 8+ bytes of the file

    Returns:
        Format name: 'zstd', 'gzip', 'xz', 'bzip2', 'lz4' or 'plain'
    """
    if data[:4] == MAGIC_ZSTD:
        return 'zstd'
    elif data[:2] == MAGIC_GZIP:
        return 'gzip'
    elif data[:6] == MAGIC_XZ:
        return 'xz'
    elif data[:3] == MAGIC_BZ2:
        return 'bzip2'
    elif data[:4] == MAGIC_LZ4:
        return 'lz4'
    else:
        return 'plain'


def decompress(filename: Union[str, Path], encoding: str = 'utf-8') -> str:
    """Decompress a file and return as string.

    Args:
        filename: Path to a possibly compressed file
        encoding: Text encoding (default: utf-8)

    Returns:
        Decompressed content as string

    Raises:
        ValueError: If the file uses a format we cannot read (lz4)
    """
    path = Path(filename)

    with open(path, 'rb') as f:
        magic = f.read(8)
        f.seek(0)
        fmt = detect_format(magic)

        if fmt == 'zstd':
            import zstandard as zstd
            dctx = zstd.ZstdDecompressor()
            with dctx.stream_reader(f) as reader:
                return reader.read().decode(encoding, errors='replace')

        elif fmt == 'gzip':
            import gzip
            with gzip.open(f, 'rt', encoding=encoding, errors='replace') as gz:
                return gz.read()

        elif fmt == 'xz':
            import lzma
            with lzma.open(f, 'rt', encoding=encoding, errors='replace') as xz:
                return xz.read()

        elif fmt == 'bzip2':
            import bz2
            with bz2.open(f, 'rt', encoding=encoding, errors='replace') as bz:
                return bz.read()

        elif fmt == 'lz4':
            raise ValueError(f"lz4 compressed index not supported: {path}")

        else:
            return f.read().decode(encoding, errors='replace')
