"""
Avatar Blob Store using Cloudinary

DESIGN DECISION: Avatars live in Cloudinary, addressed as
"{bucket}/{file_id}". The profile only stores the delivery URL, so the
blob store stays a write-once collaborator.

This service handles:
1. Checking the upload is a real image of an accepted format and size
2. Uploading it under a caller-chosen file id
3. Building the (square, face-cropped) delivery URL
"""

from io import BytesIO
from typing import Optional

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from cloudinary import CloudinaryImage
from PIL import Image, UnidentifiedImageError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finance_tracker.config import AppSettings, CloudinarySettings, get_settings


AVATAR_SIZE_PX = 256


class BlobStoreError(Exception):
    """Base exception for blob store errors."""
    pass


class InvalidAvatarError(BlobStoreError):
    """Upload is not an acceptable avatar image."""
    pass


class AvatarUploadError(BlobStoreError):
    """Failed to upload the file to Cloudinary."""
    pass


class CloudinaryAvatarStore:
    """
    Blob store for profile avatars.

    Flow:
    1. Receive raw image bytes
    2. Inspect them locally (size, decodability, format)
    3. Upload to the avatar bucket
    4. Hand back the file id; URLs are built from it on demand
    """

    def __init__(
        self,
        settings: Optional[CloudinarySettings] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._settings = settings or get_settings().cloudinary
        self._app_settings = app_settings or get_settings().app
        self._configured = False

    @property
    def default_bucket(self) -> str:
        return self._settings.avatars_bucket

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def inspect_avatar(self, data: bytes) -> str:
        """
        Check avatar bytes before any upload.

        Returns:
            The detected image format (lowercase)

        Raises:
            InvalidAvatarError: If the file is empty, too big, not an
                image, or of an unsupported format
        """
        if not data:
            raise InvalidAvatarError("Avatar file is empty")
        if len(data) > self._app_settings.max_avatar_size_bytes:
            raise InvalidAvatarError(
                f"Avatar is larger than {self._app_settings.max_avatar_size_mb} MB"
            )

        try:
            with Image.open(BytesIO(data)) as img:
                img.verify()
                image_format = (img.format or "").lower()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise InvalidAvatarError(f"Avatar is not a readable image: {e}")

        if image_format not in self._app_settings.supported_formats_list:
            raise InvalidAvatarError(
                f"Unsupported avatar format: {image_format}. "
                f"Allowed: {self._app_settings.supported_formats_list}"
            )
        return image_format

    @retry(
        retry=retry_if_exception_type(cloudinary.exceptions.Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _upload(self, data: bytes, bucket: str, file_id: str) -> dict:
        return cloudinary.uploader.upload(
            data,
            public_id=file_id,
            folder=bucket,
            resource_type="image",
            overwrite=True,
        )

    async def upload(self, bucket: str, file_id: str, data: bytes) -> str:
        """
        Upload an avatar.

        Returns:
            The file id the avatar was stored under

        Raises:
            InvalidAvatarError: If the bytes are not an acceptable image
            AvatarUploadError: If Cloudinary rejects the upload
        """
        self.inspect_avatar(data)
        self._configure()

        try:
            result = self._upload(data, bucket, file_id)
        except cloudinary.exceptions.Error as e:
            raise AvatarUploadError(f"Cloudinary error: {e}")

        if not result.get("public_id"):
            raise AvatarUploadError("No public id returned from Cloudinary")
        return file_id

    def file_url(self, bucket: str, file_id: str) -> str:
        """Delivery URL for a stored avatar, cropped square around the face."""
        self._configure()
        return CloudinaryImage(f"{bucket}/{file_id}").build_url(
            width=AVATAR_SIZE_PX,
            height=AVATAR_SIZE_PX,
            crop="thumb",
            gravity="face",
            fetch_format="auto",
        )
