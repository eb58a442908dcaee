import logging
from typing import Dict, Iterable, List, Optional

from intake.models.photo import PhotoBlob

logger = logging.getLogger(__name__)


def release_preview(blob: PhotoBlob) -> None:
    """Delete the preview file of a blob, if it has one."""
    if blob.preview_path is None:
        return
    try:
        blob.preview_path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to delete preview {blob.preview_path}: {e}")


class PhotoBlobStore:
    """
    Session-only store of photo bytes and preview handles, keyed by photo id.

    Nothing here is persisted. After a restart the drafts still reference the
    photo ids but the store is empty, which is how dangling photos are found.
    """

    def __init__(self):
        self._blobs: Dict[str, PhotoBlob] = {}

    def put(self, photo_id: str, blob: PhotoBlob) -> None:
        self._blobs[photo_id] = blob

    def get(self, photo_id: str) -> Optional[PhotoBlob]:
        return self._blobs.get(photo_id)

    def has(self, photo_id: str) -> bool:
        return photo_id in self._blobs

    def missing(self, photo_ids: Iterable[str]) -> List[str]:
        return [pid for pid in photo_ids if pid not in self._blobs]

    def release(self, photo_id: str) -> bool:
        blob = self._blobs.pop(photo_id, None)
        if blob is None:
            return False
        release_preview(blob)
        return True

    def release_all(self) -> int:
        count = 0
        for photo_id in list(self._blobs):
            if self.release(photo_id):
                count += 1
        return count

    def __len__(self) -> int:
        return len(self._blobs)
