"""
Per-file signature field layout, last write wins.
"""

import logging

from ..models import FileMetadata

logger = logging.getLogger(__name__)


class MetadataStore:
    """Service for file metadata persistence."""

    @staticmethod
    def store_metadata(user, file, metadata):
        """
        Store the metadata of a host file, replacing any previous value.

        Args:
            user: user writing the metadata
            file: files.HostFile
            metadata: dict
        """
        FileMetadata.objects.update_or_create(
            file_id=str(file.id),
            defaults={'user': user, 'metadata': metadata},
        )
        logger.debug(f"Stored metadata for file {file.id}")

    @staticmethod
    def get_metadata(user, file):
        """
        Returns:
            dict or None: the stored metadata, None if nothing was stored
        """
        entry = FileMetadata.objects.filter(file_id=str(file.id)).first()
        if entry is None:
            return None
        return entry.metadata


# Singleton instance
_metadata_store = None


def get_metadata_store() -> MetadataStore:
    """Get singleton instance of the metadata store."""
    global _metadata_store
    if _metadata_store is None:
        _metadata_store = MetadataStore()
    return _metadata_store
