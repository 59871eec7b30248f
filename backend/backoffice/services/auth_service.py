# Overview: Service-layer operations for CMS user accounts and password hashing.

"""
CMS Authentication Service

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, mixed case, digit and special character required
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import CmsUser, Role, UserRole
from ..permissions import DEFAULT_ROLES
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash (timing-safe via bcrypt.checkpw)."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    email: str | None,
    password: str,
    role_key: str | None = None,
    *,
    first_name: str | None = None,
    last_name: str | None = None,
) -> CmsUser:
    """
    Create a CMS user with a bcrypt password hash and (optionally) a primary role.

    Raises:
        ValueError: If the username/email is taken or the role does not exist
        PasswordValidationError: If the password is too weak
    """
    filters = [CmsUser.username == username]
    if email:
        filters.append(CmsUser.email == email)
    existing = db.session.query(CmsUser).filter(db.or_(*filters)).first()
    if existing:
        raise ValueError("Username or email already exists")

    user = CmsUser(
        username=username,
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.flush()

    if role_key:
        assign_role(user.id, role_key, commit=False)

    db.session.commit()
    return user


def authenticate(username: str, password: str) -> CmsUser | None:
    """
    Authenticate a CMS user by username or email.

    Returns the user if credentials are valid and the account is active,
    None otherwise. Updates last_login_at on success.
    """
    user = db.session.query(CmsUser).filter(
        db.or_(CmsUser.username == username, CmsUser.email == username),
        CmsUser.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def assign_role(user_id: int, role_key: str, *, primary: bool = True, commit: bool = True) -> UserRole:
    """
    Assign role to user.

    Assigning a primary role demotes any previous primary role of the user.
    """
    role = db.session.query(Role).filter_by(role_key=role_key).first()
    if not role:
        raise ValueError(f"Role {role_key} not found")

    if primary:
        db.session.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role_id != role.id,
        ).update({UserRole.is_primary: False}, synchronize_session=False)

    user_role = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if user_role:
        user_role.is_primary = primary
    else:
        user_role = UserRole(user_id=user_id, role_id=role.id, is_primary=primary)
        db.session.add(user_role)

    if commit:
        db.session.commit()
    return user_role


def create_default_roles() -> int:
    """Create the standard roles if they don't exist. Returns count created."""
    created = 0
    for role_key, name, desc in DEFAULT_ROLES:
        existing = db.session.query(Role).filter_by(role_key=role_key).first()
        if not existing:
            db.session.add(Role(role_key=role_key, name=name, description=desc))
            created += 1

    db.session.commit()
    return created
