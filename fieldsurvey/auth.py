import logging
from typing import Optional

import bcrypt

from .errors import ValidationError
from .models import User

logger = logging.getLogger(__name__)


class AuthManager:
    """Handles authentication and password management"""

    def __init__(self, config, db):
        self.config = config
        self.db = db

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt"""
        try:
            salt = bcrypt.gensalt(rounds=self.config.BCRYPT_ROUNDS)
            return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')
        except Exception as e:
            logger.error(f"Error hashing password: {str(e)}")
            raise

    def verify_password(self, stored_hash: Optional[str], provided_password: Optional[str]) -> bool:
        """Verify a password against its hash"""
        if not stored_hash or provided_password is None:
            return False
        try:
            return bcrypt.checkpw(provided_password.encode('utf-8'), stored_hash.encode('utf-8'))
        except ValueError as e:
            # hash is corrupt or not a bcrypt hash
            logger.error(f"BCrypt hash format error: {str(e)}")
            return False

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user when the credentials match, otherwise None"""
        username = (username or '').strip()
        if not username or not password:
            raise ValidationError("Please enter both username and password.")

        user = self.db.find_user(username)
        if user and self.verify_password(user.password_hash, password):
            logger.info(f"Login Successful for user: {username} with role: {user.role.value}")
            return user

        logger.warning(f"Login Failed: Invalid credentials for user: {username}")
        return None

    def check_new_password(self, current: str, new: str, confirm: str) -> None:
        """Password policy for self-service password changes"""
        if not current or not new or not confirm:
            raise ValidationError("All password fields are required.")
        if len(new) < self.config.MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"New password must be at least {self.config.MIN_PASSWORD_LENGTH} characters long."
            )
        if new != confirm:
            raise ValidationError("New password and confirmation do not match.")
        if new == current:
            raise ValidationError("New password cannot be the same as the current password.")
