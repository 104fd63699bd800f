"""Tests for the identity provider and the avatar store (no network)."""

import asyncio
from io import BytesIO

import pytest
from PIL import Image

from finance_tracker.config.settings import AppSettings, CloudinarySettings
from finance_tracker.services.blob import CloudinaryAvatarStore, InvalidAvatarError
from finance_tracker.services.identity import (
    AccountExistsError,
    DocumentStoreIdentityProvider,
    InvalidCredentialsError,
    NotAuthenticatedError,
    verify_password,
)


def image_bytes(fmt: str = "PNG", size=(8, 8)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color=(200, 30, 30)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def avatar_store():
    return CloudinaryAvatarStore(
        settings=CloudinarySettings(cloud_name="demo", api_key="key", api_secret="secret"),
        app_settings=AppSettings(max_avatar_size_mb=1, supported_avatar_formats="png,jpeg"),
    )


class TestIdentityProvider:
    """Accounts kept in the document store."""

    def test_signup_and_login(self, store):
        async def scenario():
            identity = DocumentStoreIdentityProvider(store)
            user = await identity.create_account("Ann@Example.com", "s3cret!", "Ann")
            assert user.email == "ann@example.com"
            assert await identity.get_current_user() is None

            session_user = await identity.create_session("ann@example.com", "s3cret!")
            assert session_user.id == user.id
            assert (await identity.get_current_user()).name == "Ann"

            await identity.delete_session()
            assert await identity.get_current_user() is None

        asyncio.run(scenario())

    def test_password_is_hashed(self, store):
        async def scenario():
            identity = DocumentStoreIdentityProvider(store)
            user = await identity.create_account("a@b.io", "pw-123456", "A")
            account = await store.get("accounts", user.id)
            assert account["passwordHash"] != "pw-123456"
            assert verify_password("pw-123456", account["passwordHash"])

        asyncio.run(scenario())

    def test_duplicate_email_rejected(self, store):
        async def scenario():
            identity = DocumentStoreIdentityProvider(store)
            await identity.create_account("a@b.io", "pw-123456")
            with pytest.raises(AccountExistsError):
                await identity.create_account("A@B.io", "other-pw")

        asyncio.run(scenario())

    def test_wrong_password_rejected(self, store):
        async def scenario():
            identity = DocumentStoreIdentityProvider(store)
            await identity.create_account("a@b.io", "pw-123456")
            with pytest.raises(InvalidCredentialsError):
                await identity.create_session("a@b.io", "nope")
            with pytest.raises(InvalidCredentialsError):
                await identity.create_session("who@b.io", "pw-123456")

        asyncio.run(scenario())

    def test_logout_without_session(self, store):
        async def scenario():
            with pytest.raises(NotAuthenticatedError):
                await DocumentStoreIdentityProvider(store).delete_session()

        asyncio.run(scenario())


class TestAvatarInspection:
    """Avatar bytes are checked locally before upload."""

    def test_png_accepted(self, avatar_store):
        assert avatar_store.inspect_avatar(image_bytes("PNG")) == "png"

    def test_empty_rejected(self, avatar_store):
        with pytest.raises(InvalidAvatarError):
            avatar_store.inspect_avatar(b"")

    def test_not_an_image_rejected(self, avatar_store):
        with pytest.raises(InvalidAvatarError):
            avatar_store.inspect_avatar(b"definitely not an image")

    def test_unsupported_format_rejected(self, avatar_store):
        with pytest.raises(InvalidAvatarError):
            avatar_store.inspect_avatar(image_bytes("GIF"))

    def test_too_large_rejected(self, avatar_store):
        with pytest.raises(InvalidAvatarError):
            avatar_store.inspect_avatar(b"\0" * (1024 * 1024 + 1))

    def test_upload_rejects_before_network(self, avatar_store):
        with pytest.raises(InvalidAvatarError):
            asyncio.run(avatar_store.upload("avatars", "f1", b"junk"))

    def test_file_url(self, avatar_store):
        url = avatar_store.file_url("avatars", "f1")
        assert "demo" in url
        assert "avatars/f1" in url
        assert avatar_store.default_bucket == "avatars"
