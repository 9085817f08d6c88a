"""Streaming content hashing for local files."""

import hashlib
import logging

logger = logging.getLogger(__name__)


def md5_file(path: str, chunk_size: int = 1024 * 1024) -> str:
    """Calculate the hex MD5 of a file without loading it into memory."""
    logger.info(f"Calculating MD5 of {path}...")
    hash_md5 = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hash_md5.update(chunk)
    digest = hash_md5.hexdigest()
    logger.debug(f"MD5 of {path}: {digest}")
    return digest
