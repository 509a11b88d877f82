"""
Auction image storage.

Images live in a Supabase Storage bucket; auctions only keep the opaque object
path. Upload happens outside this subsystem, so the only operation needed here
is deletion of a replaced or orphaned image.
"""

from __future__ import annotations

import os
from typing import Any, Protocol

from domain.errors import DependencyError

_IMAGE_BUCKET: str = os.getenv("AUCTION_IMAGE_BUCKET", "auction-images")


class ImageStore(Protocol):
    def delete(self, image_ref: str) -> None: ...


class SupabaseImageStore:
    def __init__(self, client: Any, bucket: str = _IMAGE_BUCKET) -> None:
        self._client = client
        self._bucket = bucket

    def delete(self, image_ref: str) -> None:
        try:
            self._client.storage.from_(self._bucket).remove([image_ref])
        except Exception as e:
            raise DependencyError(f"Failed to delete image {image_ref}: {e}") from e


__all__ = ["ImageStore", "SupabaseImageStore"]
