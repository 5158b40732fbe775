"""
Identity provider backed by the document store.

Accounts (email + password hash) live in their own collection, separate from
the ``users`` profile documents the repositories manage. Sign-in issues a
signed session token; the provider keeps the last session locally so
callers can read it without a round trip.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict
from pydantic.networks import validate_email
from pymongo.database import Database

from .database import create_document, find_document
from .errors import AuthError, NotFoundError
from .settings import Settings

logger = logging.getLogger(__name__)

ACCOUNTS_COLLECTION = "accounts"
MIN_PASSWORD_LENGTH = 6

EMAIL_IN_USE = "The email address is already in use by another account."
EMAIL_MALFORMED = "The email address is badly formatted."
WEAK_PASSWORD = f"The given password is invalid. Password should be at least {MIN_PASSWORD_LENGTH} characters"
NO_USER_RECORD = "There is no user record corresponding to this identifier. The user may have been deleted."
WRONG_PASSWORD = "The password is invalid or the user does not have a password."
BAD_TOKEN = "The supplied auth credential is malformed or has expired."


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    uid: str
    email: str
    display_name: str = ""
    id_token: str = ""


class IdentityProvider:
    """Email/password accounts with signed session tokens."""

    def __init__(self, db: Database, settings: Settings):
        self._db = db
        self._settings = settings
        self._pwd_context = CryptContext(schemes=settings.password_schemes, deprecated="auto")
        self._current: Optional[Session] = None

    @property
    def current_session(self) -> Optional[Session]:
        return self._current

    def issue_token(self, uid: str) -> str:
        expire = datetime.now(timezone.utc) + timedelta(minutes=self._settings.access_token_expire_minutes)
        return jwt.encode({"sub": uid, "exp": expire}, self._settings.jwt_secret, algorithm=self._settings.jwt_algorithm)

    def _session(self, account: dict) -> Session:
        uid = str(account["_id"])
        return Session(
            uid=uid,
            email=account["email"],
            display_name=account.get("display_name", ""),
            id_token=self.issue_token(uid),
        )

    @staticmethod
    def _normalize_email(email: str) -> str:
        email = email.strip().lower()
        try:
            validate_email(email)
        except ValueError:
            raise AuthError(EMAIL_MALFORMED)
        return email

    def create_account(self, email: str, password: str, display_name: str = "") -> Session:
        email = self._normalize_email(email)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(WEAK_PASSWORD)
        if self._db[ACCOUNTS_COLLECTION].find_one({"email": email}):
            raise AuthError(EMAIL_IN_USE)
        uid = create_document(
            self._db,
            ACCOUNTS_COLLECTION,
            {"email": email, "password_hash": self._pwd_context.hash(password), "display_name": display_name},
        )
        logger.info("Created account %s", uid)
        self._current = self._session(find_document(self._db, ACCOUNTS_COLLECTION, uid))
        return self._current

    def sign_in(self, email: str, password: str) -> Session:
        email = self._normalize_email(email)
        account = self._db[ACCOUNTS_COLLECTION].find_one({"email": email})
        if not account:
            raise AuthError(NO_USER_RECORD)
        try:
            verified = self._pwd_context.verify(password, account.get("password_hash", ""))
        except ValueError:
            # hash from a scheme this provider is not configured for
            verified = False
        if not verified:
            raise AuthError(WRONG_PASSWORD)
        self._current = self._session(account)
        return self._current

    def sign_out(self) -> None:
        self._current = None

    def verify_token(self, token: str) -> Session:
        """Resolve a session token without touching the local session."""
        try:
            payload = jwt.decode(token, self._settings.jwt_secret, algorithms=[self._settings.jwt_algorithm])
        except JWTError:
            raise AuthError(BAD_TOKEN)
        uid = payload.get("sub")
        if not uid:
            raise AuthError(BAD_TOKEN)
        try:
            account = find_document(self._db, ACCOUNTS_COLLECTION, uid)
        except NotFoundError:
            raise AuthError(NO_USER_RECORD)
        return Session(uid=uid, email=account["email"], display_name=account.get("display_name", ""), id_token=token)
