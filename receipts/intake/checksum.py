"""Content checksums used to deduplicate ingested files."""

import hashlib
from pathlib import Path

CHUNK_SIZE = 64 * 1024


class ChecksumStore:
    """Computes content digests of files.

    The digest depends only on the file's bytes, never on its name or
    location, so the same document dropped twice under different names
    hashes identically.
    """

    def __init__(self, algorithm: str = "sha256") -> None:
        """Initialize with a hashlib algorithm name.

        Raises:
            ValueError: If hashlib does not support the algorithm
        """
        hashlib.new(algorithm)
        self.algorithm = algorithm

    def checksum(self, path: Path) -> str:
        """Hash the full contents of a file.

        Args:
            path: File to hash

        Returns:
            Lowercase hex digest

        Raises:
            OSError: If the file cannot be read
        """
        digest = hashlib.new(self.algorithm)
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()
