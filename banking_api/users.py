"""
Users, Roles & Permissions Module

The identity store behind login: users with a single role, salted one-way
password hashes, and the closed role -> permission mapping checked at the
authorization boundary.
"""

import hashlib
import hmac
import secrets
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .audit import AuditEventType, AuditTrail
from .errors import DuplicateUserError, UnauthenticatedError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


class Role(Enum):
    """User roles carried in the token's role claim"""
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"


class Permission(Enum):
    """Operations gated at the API boundary"""
    TRANSFER_FUNDS = "transfer_funds"
    VIEW_OWN_STATEMENT = "view_own_statement"
    VIEW_OWN_ACCOUNT = "view_own_account"
    CREATE_ACCOUNT = "create_account"
    LIST_ACCOUNTS = "list_accounts"
    MANAGE_USERS = "manage_users"


ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.ADMIN: frozenset({
        Permission.CREATE_ACCOUNT,
        Permission.LIST_ACCOUNTS,
        Permission.MANAGE_USERS,
    }),
    Role.CUSTOMER: frozenset({
        Permission.TRANSFER_FUNDS,
        Permission.VIEW_OWN_STATEMENT,
        Permission.VIEW_OWN_ACCOUNT,
    }),
}

# Every role must be mapped; a new Role without permissions fails at import
if set(ROLE_PERMISSIONS) != set(Role):
    raise RuntimeError("ROLE_PERMISSIONS must cover every Role")


def role_has_permission(role: Role, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS[role]


class PasswordHasher(ABC):
    """Pluggable one-way password hash"""

    @abstractmethod
    def generate_salt(self) -> str:
        pass

    @abstractmethod
    def hash(self, password: str, salt: str) -> str:
        pass

    def verify(self, password: str, salt: str, expected_hash: str) -> bool:
        return hmac.compare_digest(self.hash(password, salt), expected_hash)


class ScryptPasswordHasher(PasswordHasher):
    """Salted scrypt, the default hasher"""

    def __init__(self, n: int = 16384, r: int = 8, p: int = 1):
        self.n = n
        self.r = r
        self.p = p

    def generate_salt(self) -> str:
        return secrets.token_hex(16)

    def hash(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=self.n, r=self.r, p=self.p
        ).hex()


@dataclass
class User(StorageRecord):
    """System user with one role"""
    username: str
    role: Role
    password_hash: str
    password_salt: str

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['role'] = self.role.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        data = dict(data)
        data['role'] = Role(data['role'])
        return super().from_dict(data)

    def has_permission(self, permission: Permission) -> bool:
        return role_has_permission(self.role, permission)


class UserManager:
    """Creates users and verifies their credentials"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 hasher: Optional[PasswordHasher] = None):
        self.storage = storage
        self.audit = audit_trail
        self.hasher = hasher or ScryptPasswordHasher()
        self.users_table = "users"
        self.logger = get_logger("banking.users")

    def create_user(self, username: str, password: str, role: Role,
                    created_by: Optional[str] = None) -> User:
        """
        Create a user

        Raises:
            ValueError: If the username or password is blank
            DuplicateUserError: If the username is taken
        """
        if not username or not username.strip():
            raise ValueError("Username is required")
        if not password:
            raise ValueError("Password is required")
        if self.find_by_username(username):
            raise DuplicateUserError(f"Username {username} already exists")

        now = datetime.now(timezone.utc)
        salt = self.hasher.generate_salt()
        user = User(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            username=username,
            role=role,
            password_hash=self.hasher.hash(password, salt),
            password_salt=salt
        )
        self.storage.save(self.users_table, user.id, user.to_dict())

        self.audit.log_event(
            event_type=AuditEventType.USER_CREATED,
            entity_type="user",
            entity_id=username,
            user_id=created_by,
            metadata={"role": role}
        )
        log_action(self.logger, "info", f"User created: {username}",
                   user_id=created_by, action="create_user",
                   resource=f"user:{username}", extra={"role": role.value})
        return user

    def find_by_username(self, username: str) -> Optional[User]:
        users = self.storage.find(self.users_table, {"username": username})
        if users:
            return User.from_dict(users[0])
        return None

    def list_users(self) -> List[User]:
        return [User.from_dict(data) for data in self.storage.load_all(self.users_table)]

    def count_users(self) -> int:
        return self.storage.count(self.users_table)

    def authenticate(self, username: str, password: str) -> User:
        """
        Verify a username/password pair

        Raises:
            UnauthenticatedError: On an unknown user or a wrong password,
                without saying which
        """
        user = self.find_by_username(username)
        if user is None or not self.hasher.verify(password, user.password_salt, user.password_hash):
            self.audit.log_event(
                event_type=AuditEventType.LOGIN_FAILED,
                entity_type="user",
                entity_id=username,
                metadata={"reason": "unknown_user" if user is None else "bad_password"}
            )
            log_action(self.logger, "warning", "Authentication failed",
                       action="login_failed", resource="auth",
                       extra={"username": username})
            raise UnauthenticatedError("Invalid username or password")

        self.audit.log_event(
            event_type=AuditEventType.LOGIN_SUCCESS,
            entity_type="user",
            entity_id=username,
            user_id=username
        )
        log_action(self.logger, "info", "User authenticated successfully",
                   user_id=username, action="login", resource="auth")
        return user
