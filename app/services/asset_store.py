"""
Poster image storage backed by Cloudinary
"""

import io
import logging
import os
from urllib.parse import urlparse

import cloudinary
import cloudinary.uploader

from app.core.config import settings

logger = logging.getLogger(__name__)


class AssetStore:
    """Stores event posters and returns their public URLs"""

    @staticmethod
    def _configure():
        cloudinary.config(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            secure=True,
        )

    @staticmethod
    def public_id_from_url(url: str) -> str | None:
        """Map a delivery URL back to the ``<folder>/<name>`` public id"""
        filename = os.path.basename(urlparse(url).path)
        stem = os.path.splitext(filename)[0]
        if not stem:
            return None
        return f"{settings.POSTER_FOLDER}/{stem}"

    @staticmethod
    def store(content: bytes, filename: str) -> str:
        AssetStore._configure()
        result = cloudinary.uploader.upload(
            io.BytesIO(content),
            folder=settings.POSTER_FOLDER,
            resource_type="image",
            filename=filename,
            use_filename=True,
            unique_filename=True,
            overwrite=False,
            transformation=[{"width": 800, "height": 600, "crop": "limit"}],
        )
        logger.info(f"Poster uploaded: {result['public_id']}")
        return result["secure_url"]

    @staticmethod
    def delete(url: str) -> bool:
        public_id = AssetStore.public_id_from_url(url)
        if not public_id:
            return False
        AssetStore._configure()
        result = cloudinary.uploader.destroy(public_id, resource_type="image")
        released = result.get("result") == "ok"
        if not released:
            logger.warning(f"Poster {public_id} was not released: {result.get('result')}")
        return released
