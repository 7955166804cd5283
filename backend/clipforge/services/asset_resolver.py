from __future__ import annotations
"""Asset resolver: picks the image a video job starts from.

Strategies are tried in priority order; on failure, the next one is used:
  1. user-supplied image URL (no upload encoding issues)
  2. user-uploaded file
  3. a random example image, then the rest of the pool in order

Returning None is not fatal: the orchestrator falls back to a text-only job
when the task has a prompt.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable

from clipforge.models.task import InputImage
from clipforge.services.providers.runway import RunwayClient

logger = logging.getLogger(__name__)

SOURCE_URL = "url"
SOURCE_FILE = "file"
SOURCE_EXAMPLE = "example"

EXAMPLE_IMAGES: tuple[str, ...] = (
    "https://images.unsplash.com/photo-1682687982501-1e58ab814714",  # landscape
    "https://images.unsplash.com/photo-1575936123452-b67c3203c357",  # city
    "https://images.unsplash.com/photo-1566275529824-cca6d008f3da",  # nature
    "https://images.unsplash.com/photo-1595433707802-6b2626ef1c91",  # animal
    "https://images.unsplash.com/photo-1511300636408-a63a89df3482",  # beach
)


@dataclass(frozen=True)
class ResolvedAsset:
    asset_id: str
    source: str
    image_url: str | None = None


class AssetResolver:
    """Runs the fallback strategy chain against the provider client."""

    def __init__(
        self,
        client: RunwayClient,
        example_images: tuple[str, ...] | list[str] = EXAMPLE_IMAGES,
        rng: random.Random | None = None,
    ) -> None:
        self._client = client
        self.example_images = tuple(example_images)
        self._rng = rng or random.Random()

    async def resolve(
        self,
        *,
        image_url: str | None,
        image: InputImage | None,
        log: Callable[[str], None],
    ) -> ResolvedAsset | None:
        if image_url:
            try:
                log(f"Trying the provided image URL: {image_url}")
                asset_id = await self._client.upload_image_from_url(image_url)
                log(f"Image uploaded from URL. Asset ID: {asset_id}")
                return ResolvedAsset(asset_id=asset_id, source=SOURCE_URL, image_url=image_url)
            except Exception as e:
                log(f"Could not use the image URL: {e}")

        if image is not None:
            try:
                log("Uploading the user image...")
                log(f"File type: {image.content_type}, size: {image.size} bytes")
                asset_id = await self._client.upload_image(image.data, image.content_type)
                log(f"Image uploaded. Asset ID: {asset_id}")
                return ResolvedAsset(asset_id=asset_id, source=SOURCE_FILE)
            except Exception as e:
                log(f"Could not upload the user image: {e}")

        return await self._resolve_example(log)

    async def _resolve_example(self, log: Callable[[str], None]) -> ResolvedAsset | None:
        if not self.example_images:
            return None

        first = self._rng.choice(self.example_images)
        candidates = [first] + [url for url in self.example_images if url != first]

        for index, url in enumerate(candidates):
            if index == 0:
                log(f"Using an example image as fallback: {url}")
            else:
                log(f"Trying another example image: {url}")
            try:
                asset_id = await self._client.upload_image_from_url(url)
            except Exception as e:
                log(f"Could not use example image: {e}")
                continue
            log(f"Example image uploaded. Asset ID: {asset_id}")
            return ResolvedAsset(asset_id=asset_id, source=SOURCE_EXAMPLE, image_url=url)

        logger.warning("All %d example images failed to upload", len(candidates))
        return None
