# session tokens and the credential service
import re
import time
import logging
from typing import Any, Dict, Optional, Tuple

import jwt

from .config import Settings
from .credit_ledger import CreditLedger
from .errors import (
    AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationFailedError
)
from .models import Identity, Permissions, UserRecord
from .users import UserRepository, new_user_record, verify_password

logger = logging.getLogger(__name__)

_BEARER = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an Authorization header"""
    match = _BEARER.match((authorization or "").strip())
    if not match or not match.group(1).strip():
        raise AuthenticationError()
    return match.group(1).strip()


# stateless signed session tokens (HS256 JWT)
class SessionTokens:
    algorithm = "HS256"

    def __init__(self, secret: str, ttl_seconds: int = 3600):
        self.secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, username: str, permissions: Permissions) -> str:
        now = int(time.time())
        payload = {
            "username": username,
            "permissions": permissions.model_dump(),
            "iat": now,
            "exp": now + self.ttl_seconds,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Identity:
        """Decode a token; every failure is the same AuthenticationError"""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.debug("Rejected expired token")
            raise AuthenticationError(cause=e)
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected invalid token: {e}")
            raise AuthenticationError(cause=e)

        username = payload.get("username")
        if not isinstance(username, str) or not username:
            raise AuthenticationError()
        return Identity(username=username, permissions=Permissions.from_raw(payload.get("permissions")))


# login, registration and request authentication
class AuthService:
    def __init__(self, users: UserRepository, tokens: SessionTokens, ledger: CreditLedger):
        self.users = users
        self.tokens = tokens
        self.ledger = ledger

    def register(self, username: str, email: str, password: str) -> Tuple[str, UserRecord]:
        username = username.strip()
        email = email.strip()
        if not username or not email or not password:
            raise ValidationFailedError("username, email and password required")
        if self.users.get(username) is not None:
            raise ConflictError("user already exists")

        user = self.users.add(new_user_record(username, email, password))
        logger.info(f"Registered user {username}")
        return self.tokens.issue(user.username, user.permissions), user

    def login(self, username: str, password: str) -> Tuple[str, UserRecord]:
        user = self.users.get(username)
        if user is None or not verify_password(password, user.password_hash):
            logger.info(f"Failed login for {username}")
            raise AuthenticationError("invalid credentials")
        return self.tokens.issue(user.username, user.permissions), user

    def authenticate(self, authorization: Optional[str]) -> Identity:
        return self.tokens.verify(bearer_token(authorization))

    def authenticate_token(self, token: Optional[str]) -> Identity:
        if not token:
            raise AuthenticationError()
        return self.tokens.verify(token)

    def require_admin(self, identity: Identity) -> Identity:
        if not identity.permissions.sudo:
            raise AuthorizationError()
        return identity

    def me(self, identity: Identity) -> Dict[str, Any]:
        """Fresh stored view of the caller, monthly reset applied"""
        self.ledger.ensure_monthly_reset(identity.username)
        user = self.users.get(identity.username)
        if user is None:
            raise NotFoundError("user not found")
        return user.public()

    def list_users(self):
        return [
            {
                "username": u.username,
                "permissions": u.permissions.model_dump(),
                "omnitokens": u.omnitokens,
                "omnicoins": u.omnicoins,
            }
            for u in self.users.list()
        ]

    def update_permissions(self, username: str, changes: Dict[str, Any]):
        if not self.users.update_permissions(username, changes):
            raise NotFoundError("user not found")

    def bootstrap_admin(self, settings: Settings) -> Optional[UserRecord]:
        """Create the configured initial admin if it does not exist yet"""
        if not settings.init_admin_user or not settings.init_admin_pass:
            return None
        existing = self.users.get(settings.init_admin_user)
        if existing is not None:
            return existing

        user = new_user_record(
            settings.init_admin_user,
            settings.init_admin_email or f"{settings.init_admin_user}@example.com",
            settings.init_admin_pass,
            permissions=Permissions(sudo=settings.init_admin_sudo),
        )
        try:
            user = self.users.add(user)
        except ConflictError:
            # created concurrently by another worker
            return self.users.get(settings.init_admin_user)
        logger.info(f"✓ Bootstrapped initial user {user.username} (sudo={user.permissions.sudo})")
        return user
