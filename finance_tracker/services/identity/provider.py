"""
Identity Provider

DESIGN DECISION: Authentication is delegated. The rest of the app only
knows the contract below (create a session, ask who is logged in, end
the session) and never touches password material.

The shipped implementation keeps accounts in the document store's
"accounts" collection with passlib password hashes, and holds one
current session per provider instance.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from passlib.context import CryptContext
from pydantic import BaseModel, Field

from finance_tracker.models.finance import new_document_id
from finance_tracker.services.storage.interface import (
    ID_KEY,
    DocumentStoreInterface,
    Equal,
    Permission,
)
from finance_tracker.services.storage.repositories import ACCOUNTS


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


class User(BaseModel):
    """The identity provider's view of a user."""

    id: str
    email: str
    name: str = ""


class IdentityError(Exception):
    """Base exception for identity operations."""
    pass


class InvalidCredentialsError(IdentityError):
    """Email/password pair doesn't match an account."""
    pass


class AccountExistsError(IdentityError):
    """An account with this email already exists."""
    pass


class NotAuthenticatedError(IdentityError):
    """No active session."""
    pass


class IdentityProviderInterface(ABC):
    """Contract with the hosted identity provider."""

    @abstractmethod
    async def create_account(self, email: str, password: str, name: str = "") -> User:
        """
        Register a new account.

        Raises:
            AccountExistsError: If the email is taken
        """
        pass

    @abstractmethod
    async def create_session(self, email: str, password: str) -> User:
        """
        Log in and make the account the current user.

        Raises:
            InvalidCredentialsError: If the credentials don't match
        """
        pass

    @abstractmethod
    async def get_current_user(self) -> Optional[User]:
        """The logged-in user, or None."""
        pass

    @abstractmethod
    async def delete_session(self) -> None:
        """
        End the current session.

        Raises:
            NotAuthenticatedError: If no session is active
        """
        pass


class DocumentStoreIdentityProvider(IdentityProviderInterface):
    """Accounts stored as documents, one active session per instance."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store
        self._current: Optional[User] = None

    async def _find_account(self, email: str) -> Optional[dict]:
        page = await self._store.query(ACCOUNTS, [Equal("email", email.lower())], limit=1)
        return page.documents[0] if page.documents else None

    async def create_account(self, email: str, password: str, name: str = "") -> User:
        email = email.strip().lower()
        if await self._find_account(email):
            raise AccountExistsError("Email already registered")

        user_id = new_document_id()
        await self._store.create(
            ACCOUNTS,
            user_id,
            {
                "email": email,
                "name": name,
                "passwordHash": get_password_hash(password),
                "createdAt": datetime.utcnow().isoformat(),
            },
            permissions=Permission.owner(user_id),
        )
        return User(id=user_id, email=email, name=name)

    async def create_session(self, email: str, password: str) -> User:
        account = await self._find_account(email.strip())
        if account is None or not verify_password(password, account["passwordHash"]):
            raise InvalidCredentialsError("Invalid email or password")

        self._current = User(
            id=account[ID_KEY],
            email=account["email"],
            name=account.get("name") or "",
        )
        return self._current

    async def get_current_user(self) -> Optional[User]:
        return self._current

    async def delete_session(self) -> None:
        if self._current is None:
            raise NotAuthenticatedError("No active session")
        self._current = None
