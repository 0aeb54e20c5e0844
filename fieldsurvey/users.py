import logging
from typing import List, Optional

from .auth import AuthManager
from .database import DatabaseManager
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Role, User
from .policy import Action, Actor, UserResource, require

logger = logging.getLogger(__name__)


class UserService:
    """User management (Administrators) and profile self-service (everyone)"""

    def __init__(self, db: DatabaseManager, auth: AuthManager, config):
        self.db = db
        self.auth = auth
        self.config = config

    def list_users(self, actor: Actor) -> List[User]:
        require(actor, Action.EDIT_USER, config=self.config)
        return self.db.list_users()

    def add_user(self, actor: Actor, username: str, password: str, role: Role) -> User:
        username = (username or '').strip()
        if not username:
            raise ValidationError("Username cannot be empty.")
        if not password:
            raise ValidationError("Password cannot be empty when adding a new user.")

        require(actor, Action.ADD_USER, UserResource(
            username=username, new_role=role, admin_count=self._admin_count(role)
        ), config=self.config)

        if self.db.username_taken(username):
            raise ConflictError(
                f"The username '{username}' is already taken. Please choose a different one."
            )

        if not self.db.add_user(username, self.auth.hash_password(password), role):
            raise ValidationError("Failed to create user due to a database issue.")
        return User(username, role)

    def edit_user(self, actor: Actor, original_username: str, new_username: str, role: Role,
                  password: Optional[str] = None) -> User:
        new_username = (new_username or '').strip()
        if not new_username:
            raise ValidationError("Username cannot be empty.")

        existing = self.db.find_user(original_username)
        if existing is None:
            raise NotFoundError(f"Update failed: User not found with username {original_username}")

        require(actor, Action.EDIT_USER, UserResource(
            username=existing.username,
            role=existing.role,
            new_role=role,
            new_username=new_username,
            admin_count=self._admin_count(role, existing.role),
        ), config=self.config)

        if (original_username.lower() != new_username.lower()
                and self.db.username_taken(new_username)):
            raise ConflictError(
                f"Update Failed: The new username '{new_username}' is already in use by another user."
            )

        password_hash = None
        if password and password.strip():
            password_hash = self.auth.hash_password(password)

        if not self.db.update_user(original_username, new_username, role, password_hash):
            raise NotFoundError(f"Update failed: User not found with username {original_username}")
        return User(new_username, role)

    def delete_user(self, actor: Actor, username: str) -> None:
        existing = self.db.find_user(username)
        if existing is None:
            raise NotFoundError(f"User {username} not found.")
        require(actor, Action.DELETE_USER, UserResource(username=existing.username, role=existing.role),
                config=self.config)
        if not self.db.delete_user(username):
            raise NotFoundError(f"User {username} could not be deleted.")

    def _admin_count(self, new_role: Role, current_role: Optional[Role] = None) -> int:
        # only promotions are capped
        if new_role is Role.ADMINISTRATOR and current_role is not Role.ADMINISTRATOR:
            return self.db.count_administrators()
        return 0

    # =========================================================================
    # PROFILE SETTINGS
    # =========================================================================

    def _confirm_password(self, username: str, password: str) -> User:
        user = self.db.find_user(username)
        if user is None:
            raise NotFoundError("Could not retrieve user profile data.")
        if not self.auth.verify_password(user.password_hash, password):
            raise ValidationError("Current password confirmation failed. Update aborted.")
        return user

    def change_username(self, actor: Actor, new_username: str, current_password: str) -> Actor:
        """Rename the logged-in user; returns the actor under the new name"""
        new_username = (new_username or '').strip()
        require(actor, Action.UPDATE_PROFILE,
                UserResource(username=actor.username, new_username=new_username or None),
                config=self.config)

        if not new_username or new_username == actor.username:
            raise ValidationError("New username cannot be empty or the same as the current one.")
        if not current_password:
            raise ValidationError("You must confirm your current password to change your username.")

        self._confirm_password(actor.username, current_password)

        if (new_username.lower() != actor.username.lower()
                and self.db.username_taken(new_username)):
            raise ConflictError(f"Username '{new_username}' is already taken. Please choose another.")

        if not self.db.update_username(actor.username, new_username):
            raise ValidationError("Failed to update username due to a database error.")
        return Actor(new_username, actor.role)

    def change_password(self, actor: Actor, current_password: str, new_password: str,
                        confirm_password: str) -> None:
        require(actor, Action.UPDATE_PROFILE, UserResource(username=actor.username))
        self.auth.check_new_password(current_password, new_password, confirm_password)
        self._confirm_password(actor.username, current_password)
        if not self.db.update_password(actor.username, self.auth.hash_password(new_password)):
            raise ValidationError("Failed to update password due to a database error.")

    def ensure_seed_admin(self) -> bool:
        """Create the built-in administrator on an empty installation"""
        username = self.config.SEED_ADMIN_USERNAME
        if self.db.find_user(username) is not None:
            return False
        if self.db.count_administrators() >= self.config.MAX_ADMINS:
            logger.warning(f"Seed account '{username}' missing but the Administrator limit is reached")
            return False
        self.db.add_user(username, self.auth.hash_password(self.config.SEED_ADMIN_PASSWORD),
                         Role.ADMINISTRATOR)
        logger.info(f"Seed administrator '{username}' created")
        return True
