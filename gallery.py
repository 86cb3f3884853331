"""
Listing of previously generated images for the Images tab.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

from api_client import ApiError, PlaygroundClient
from schemas import R2Image

logger = logging.getLogger(__name__)

EMPTY_GALLERY_MESSAGE = "No images yet."


class GalleryLoader:
    def __init__(self, client: PlaygroundClient):
        self.client = client
        self.images: List[R2Image] = []

    def load(self) -> List[R2Image]:
        """Fetch the stored images in the order the store returns them."""
        try:
            self.images = self.client.list_images()
        except ApiError as exc:
            logger.error(f"Failed to load image list: {exc}")
            self.images = []
        else:
            logger.info(f"Loaded {len(self.images)} stored images")
        return self.images

    @property
    def is_empty(self) -> bool:
        return not self.images

    def display_url(self, image: R2Image) -> str:
        return self.client.image_url(image.key)

    def gallery_items(self) -> List[Tuple[str, str]]:
        """``(display_url, caption)`` pairs for an image grid."""
        return [(self.display_url(image), image.key) for image in self.images]
