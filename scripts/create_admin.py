#!/usr/bin/env python3
"""
Script to create (or repair) the admin account.

Reads ADMIN_EMAIL / ADMIN_PASSWORD from the environment, prompting for
whatever is missing. Re-running it for an existing email resets that
account to an unlocked, active admin with the given password.
"""
import os
import sys
from getpass import getpass
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import Database
from database.models import User, UserRole
from auth.security import get_password_hash, validate_password
from core.exceptions import CounselingError
from core.utils import utcnow
from core.validators import normalize_email
from services.auth_service import AuthService
import config


def ensure_admin(db, email: str, password: str, first_name: str = "Admin", last_name: str = "User") -> User:
    """Create the admin account, or reset an existing account with that email to admin."""
    email = normalize_email(email)
    user = AuthService.get_user_by_email(db, email)
    if user is None:
        return AuthService.create_user(
            db,
            email=email,
            password=password,
            role=UserRole.ADMIN,
            first_name=first_name,
            last_name=last_name,
        )

    is_valid, error_message = validate_password(password)
    if not is_valid:
        raise ValueError(error_message)

    user.role = UserRole.ADMIN
    user.username = email
    user.hashed_password = get_password_hash(password)
    user.password_changed_at = utcnow()
    user.is_active = True
    user.deactivated_at = None
    user.is_locked = False
    user.failed_login_attempts = 0
    user.lockout_until = None
    user.student_id = None
    db.commit()
    db.refresh(user)
    return user


def create_admin():
    """Create an admin user."""
    # Initialize database
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()

    print("Creating admin user...")
    print("=" * 50)

    email = os.getenv("ADMIN_EMAIL") or input("Email: ").strip()
    password = os.getenv("ADMIN_PASSWORD") or getpass("Password: ").strip()

    if not email or not password:
        print("Error: Email and password are required")
        sys.exit(1)

    try:
        with config.db.get_session() as db:
            user = ensure_admin(db, email, password)
            print(f"\n✓ Admin user ready!")
            print(f"  Email: {user.email}")
            print(f"  Role: {user.role.value}")
    except (ValueError, CounselingError) as e:
        print(f"\n✗ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    create_admin()
