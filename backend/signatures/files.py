"""
Access to host files shared for signature.

The signing core only needs to look up a file of a user, check it may be
read and updated, and read its bytes. The resolver is selected with the
ESIG_FILE_RESOLVER setting so a host can plug in its own file store.
"""

import logging
import mimetypes
import posixpath
from dataclasses import dataclass, field
from typing import Callable, Optional

from django.conf import settings
from django.core.files.storage import default_storage
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


@dataclass
class HostFile:
    """A file of the host application."""
    id: str
    name: str
    mime_type: Optional[str]
    opener: Callable[[], bytes] = field(repr=False)
    readable: bool = True
    updatable: bool = True

    def read(self) -> bytes:
        return self.opener()

    @property
    def is_accessible(self) -> bool:
        return self.readable and self.updatable


class FileResolver:
    """Interface of host file lookups."""

    def resolve(self, user, file_id) -> Optional[HostFile]:
        """Return the file `file_id` as seen by `user`, None if unknown."""
        raise NotImplementedError


class StorageFileResolver(FileResolver):
    """
    Files stored in the default storage below
    {ESIG_FILES_ROOT}/{username}/{file_id}.
    """

    def __init__(self, storage=None, root=None):
        self.storage = storage or default_storage
        self.root = root if root is not None else getattr(settings, 'ESIG_FILES_ROOT', 'files')

    def _path(self, user, file_id):
        file_id = str(file_id)
        if not file_id or '/' in file_id or '\\' in file_id or file_id in ('.', '..'):
            return None
        return posixpath.join(self.root, user.get_username(), file_id)

    def resolve(self, user, file_id):
        if user is None:
            return None
        path = self._path(user, file_id)
        if path is None or not self.storage.exists(path):
            return None

        def opener():
            with self.storage.open(path, 'rb') as fp:
                return fp.read()

        mime_type, _ = mimetypes.guess_type(path)
        return HostFile(
            id=str(file_id),
            name=posixpath.basename(path),
            mime_type=mime_type,
            opener=opener,
        )


_resolver = None


def get_file_resolver() -> FileResolver:
    """Get the configured file resolver."""
    global _resolver
    if _resolver is None:
        path = getattr(settings, 'ESIG_FILE_RESOLVER', 'signatures.files.StorageFileResolver')
        _resolver = import_string(path)()
        logger.debug(f"Using file resolver {path}")
    return _resolver
