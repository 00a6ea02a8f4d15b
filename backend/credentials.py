import logging
from datetime import datetime, timezone
from typing import Dict, Optional

import bcrypt
from flask_jwt_extended import create_access_token

from errors import (
    DuplicateRecord,
    DuplicateUser,
    InvalidCredentials,
    InvalidPassword,
    MissingFields,
)
from storage import USERS, DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_BCRYPT_ROUNDS = 10
DEFAULT_USER_ROLE = "user"
# bcrypt only looks at the first 72 bytes; newer releases refuse anything longer
MAX_PASSWORD_BYTES = 72


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> bytes:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))


def verify_password(password: str, stored_hash) -> bool:
    if isinstance(stored_hash, str):
        stored_hash = stored_hash.encode("utf-8")
    if not isinstance(stored_hash, bytes) or not stored_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored_hash)
    except ValueError:
        # malformed salt or an over-long password
        return False


def register_user(
    store: DocumentStore,
    name: Optional[str],
    email: Optional[str],
    password: Optional[str],
    rounds: int = DEFAULT_BCRYPT_ROUNDS,
) -> str:
    """Create a user record and return its id.

    Email uniqueness is enforced by the unique index on ``users.email``; the
    insert itself is the only check, so two concurrent registrations cannot
    both succeed.
    """
    email = normalize_email(email)
    password = str(password or "")
    if not email or not password:
        raise MissingFields("Email", "password")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InvalidPassword()

    user_document = {
        "name": str(name or "").strip(),
        "email": email,
        "password": hash_password(password, rounds),
        "role": DEFAULT_USER_ROLE,
        "createdAt": datetime.now(timezone.utc),
    }

    try:
        user_id = store.insert_one(USERS, user_document)
    except DuplicateRecord as exc:
        raise DuplicateUser() from exc

    logger.info("Registered user %s", user_id)
    return user_id


def authenticate_user(store: DocumentStore, email: Optional[str], password: Optional[str]) -> Dict:
    email = normalize_email(email)
    password = str(password or "")
    if not email or not password:
        raise MissingFields("Email", "password")

    user = store.find_one(USERS, {"email": email})
    if not user or not verify_password(password, user.get("password")):
        raise InvalidCredentials()
    return user


def token_claims(user_document: Dict) -> Dict[str, Optional[str]]:
    return {
        "email": user_document.get("email"),
        "name": user_document.get("name", "") or "",
        "role": user_document.get("role"),
    }


def issue_token(user_document: Dict) -> str:
    # expiry comes from JWT_ACCESS_TOKEN_EXPIRES on the app config
    return create_access_token(
        identity=user_document["email"], additional_claims=token_claims(user_document)
    )
