"""
SHA-256 helpers for archived signed results.
"""

import hashlib


class HashingService:
    """Service for file hashing."""

    @staticmethod
    def compute_file_sha256(file_obj):
        """
        Compute SHA256 hash of a file object.

        Args:
            file_obj: Django FieldFile or file-like object

        Returns:
            str: Hexadecimal SHA256 hash
        """
        sha256_hash = hashlib.sha256()

        current_pos = file_obj.tell() if hasattr(file_obj, 'tell') else 0
        file_obj.seek(0)
        for byte_block in iter(lambda: file_obj.read(4096), b""):
            sha256_hash.update(byte_block)
        file_obj.seek(current_pos)

        return sha256_hash.hexdigest()


# Singleton instance
_hashing_service = None


def get_hashing_service() -> HashingService:
    """Get singleton instance of hashing service."""
    global _hashing_service
    if _hashing_service is None:
        _hashing_service = HashingService()
    return _hashing_service
