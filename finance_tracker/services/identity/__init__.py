"""Identity provider package."""

from finance_tracker.services.identity.provider import (
    AccountExistsError,
    DocumentStoreIdentityProvider,
    IdentityError,
    IdentityProviderInterface,
    InvalidCredentialsError,
    NotAuthenticatedError,
    User,
    get_password_hash,
    verify_password,
)

__all__ = [
    "AccountExistsError",
    "DocumentStoreIdentityProvider",
    "IdentityError",
    "IdentityProviderInterface",
    "InvalidCredentialsError",
    "NotAuthenticatedError",
    "User",
    "get_password_hash",
    "verify_password",
]
