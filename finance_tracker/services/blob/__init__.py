"""Blob store (avatar) services package."""

from finance_tracker.services.blob.cloudinary_store import (
    AvatarUploadError,
    BlobStoreError,
    CloudinaryAvatarStore,
    InvalidAvatarError,
)

__all__ = [
    "AvatarUploadError",
    "BlobStoreError",
    "CloudinaryAvatarStore",
    "InvalidAvatarError",
]
