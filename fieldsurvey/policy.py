"""Role-based access rules.

Every page asks this module before it touches the database. ``decide`` is a
total function: it never raises and always explains a refusal, ``require``
turns a refusal into an AccessDeniedError.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from .config import Config
from .errors import AccessDeniedError
from .models import Role, Survey, SurveyStatus, User

logger = logging.getLogger(__name__)


class Action(str, Enum):
    CREATE_SURVEY = 'create survey'
    EDIT_SURVEY = 'edit survey'
    DELETE_SURVEY = 'delete survey'
    MANAGE_QUESTIONS = 'manage questions'
    VIEW_SURVEY = 'view survey'
    VIEW_REPORT = 'view report'
    SUBMIT_RESPONSE = 'submit response'
    ADD_USER = 'add user'
    EDIT_USER = 'edit user'
    DELETE_USER = 'delete user'
    UPDATE_PROFILE = 'update profile'


SURVEY_OWNER_ACTIONS = (
    Action.EDIT_SURVEY, Action.DELETE_SURVEY, Action.MANAGE_QUESTIONS, Action.VIEW_SURVEY
)
USER_ACTIONS = (Action.ADD_USER, Action.EDIT_USER, Action.DELETE_USER)


@dataclass(frozen=True)
class Actor:
    username: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> 'Actor':
        return cls(user.username, user.role)


@dataclass(frozen=True)
class SurveyResource:
    creator: Optional[str] = None
    status: Optional[SurveyStatus] = None

    @classmethod
    def from_survey(cls, survey: Survey) -> 'SurveyResource':
        return cls(survey.creator, survey.status)


@dataclass(frozen=True)
class UserResource:
    """A user account targeted by a management action.

    ``new_role`` is the role being assigned (add/edit), ``new_username`` the
    name it is being renamed to, ``admin_count`` the number of Administrators
    currently stored.
    """
    username: Optional[str] = None
    role: Optional[Role] = None
    new_role: Optional[Role] = None
    new_username: Optional[str] = None
    admin_count: int = 0


Resource = Union[SurveyResource, UserResource, None]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ''

    def __bool__(self):
        return self.allowed


ALLOW = Decision(True)


def _deny(reason: str) -> Decision:
    return Decision(False, reason)


def _decide_admin(actor: Actor, action: Action, resource: Resource, config) -> Decision:
    if not isinstance(resource, UserResource):
        return ALLOW

    target = resource
    is_self = target.username is not None and target.username == actor.username

    if action is Action.DELETE_USER:
        if is_self:
            return _deny("You cannot delete your own account.")
        if target.username == config.SEED_ADMIN_USERNAME:
            return _deny(f"The built-in '{config.SEED_ADMIN_USERNAME}' account cannot be deleted.")
        return ALLOW

    if action in (Action.ADD_USER, Action.EDIT_USER):
        if (action is Action.EDIT_USER and is_self
                and target.role is Role.ADMINISTRATOR
                and target.new_role is not None
                and target.new_role is not Role.ADMINISTRATOR):
            return _deny(
                "You cannot demote yourself from the Administrator role. "
                "Another Administrator must perform this action."
            )
        promoting = (target.new_role is Role.ADMINISTRATOR
                     and target.role is not Role.ADMINISTRATOR)
        if promoting and target.admin_count >= config.MAX_ADMINS:
            return _deny(
                f"The maximum limit of {config.MAX_ADMINS} Administrators has been reached."
            )
    return ALLOW


def _decide_creator(actor: Actor, action: Action, resource: Resource) -> Decision:
    if action is Action.CREATE_SURVEY:
        return ALLOW

    if action in SURVEY_OWNER_ACTIONS:
        # exact match, unlike report visibility below
        if isinstance(resource, SurveyResource) and resource.creator == actor.username:
            return ALLOW
        return _deny("Survey Creators can only modify surveys they created.")

    if action is Action.VIEW_REPORT:
        if resource is None:
            return ALLOW
        if (isinstance(resource, SurveyResource) and resource.creator
                and resource.creator.lower() == actor.username.lower()):
            return ALLOW
        return _deny("Survey Creators can only view reports for their own surveys.")

    if action is Action.UPDATE_PROFILE:
        return _decide_profile(actor, resource)

    if action in USER_ACTIONS:
        return _deny("Only Administrators can manage users.")

    return _deny(f"Survey Creators cannot {action.value}.")


def _decide_data_entry(actor: Actor, action: Action, resource: Resource) -> Decision:
    if action is Action.SUBMIT_RESPONSE:
        if isinstance(resource, SurveyResource) and resource.status is SurveyStatus.ACTIVE:
            return ALLOW
        return _deny("Responses can only be submitted to Active surveys.")

    if action is Action.UPDATE_PROFILE:
        return _decide_profile(actor, resource)

    if action in USER_ACTIONS:
        return _deny("Only Administrators can manage users.")

    return _deny(f"Data Entry users cannot {action.value}.")


def _decide_profile(actor: Actor, resource: Resource) -> Decision:
    if isinstance(resource, UserResource) and resource.username == actor.username:
        return ALLOW
    return _deny("You can only change your own profile.")


def _renames_seed_account(action: Action, resource: Resource, config) -> bool:
    return (action in (Action.EDIT_USER, Action.UPDATE_PROFILE)
            and isinstance(resource, UserResource)
            and resource.username == config.SEED_ADMIN_USERNAME
            and resource.new_username is not None
            and resource.new_username != resource.username)


def decide(actor: Optional[Actor], action: Action, resource: Resource = None,
           config=Config) -> Decision:
    """Structured allow/deny for ``actor`` performing ``action`` on ``resource``"""
    if actor is None or actor.role is None:
        return _deny("Please log in first.")

    if _renames_seed_account(action, resource, config):
        return _deny(f"The built-in '{config.SEED_ADMIN_USERNAME}' account cannot be renamed.")

    if actor.role is Role.ADMINISTRATOR:
        return _decide_admin(actor, action, resource, config)
    if actor.role is Role.SURVEY_CREATOR:
        return _decide_creator(actor, action, resource)
    if actor.role is Role.DATA_ENTRY:
        return _decide_data_entry(actor, action, resource)
    return _deny(f"Unknown role {actor.role}.")


def can_perform(actor: Optional[Actor], action: Action, resource: Resource = None,
                config=Config) -> bool:
    return decide(actor, action, resource, config).allowed


def require(actor: Optional[Actor], action: Action, resource: Resource = None,
            config=Config) -> None:
    decision = decide(actor, action, resource, config)
    if not decision:
        username = actor.username if actor else 'anonymous'
        logger.warning(f"Denied '{action.value}' for {username}: {decision.reason}")
        raise AccessDeniedError(decision.reason)


def report_filter(actor: Actor) -> Optional[Dict]:
    """Mongo filter selecting the surveys whose reports ``actor`` may list.

    Survey Creators match their own surveys case-insensitively. Returns None
    for roles that have no report access.
    """
    if actor.role is Role.ADMINISTRATOR:
        return {}
    if actor.role is Role.SURVEY_CREATOR:
        return {'creator': {'$regex': f'^{re.escape(actor.username)}$', '$options': 'i'}}
    return None
