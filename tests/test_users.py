import pytest

from fieldsurvey.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from fieldsurvey.models import Role
from fieldsurvey.policy import Actor

from .conftest import PASSWORD


def test_seed_admin_created_once(db, user_service):
    assert user_service.ensure_seed_admin() is True
    assert user_service.ensure_seed_admin() is False
    assert db.find_user('admin').role is Role.ADMINISTRATOR


def test_seed_admin_can_log_in(seeded, auth):
    user = auth.authenticate('admin', 'admin123')
    assert user is not None
    assert user.role is Role.ADMINISTRATOR


def test_authenticate_rejects_bad_credentials(seeded, auth):
    assert auth.authenticate('alice', 'wrong') is None
    assert auth.authenticate('nobody', PASSWORD) is None
    with pytest.raises(ValidationError, match='both username and password'):
        auth.authenticate('alice', '')


def test_malformed_hash_never_verifies(auth):
    assert auth.verify_password('not-a-bcrypt-hash', 'anything') is False
    assert auth.verify_password(None, 'anything') is False


def test_add_user(seeded, user_service, admin, auth):
    user = user_service.add_user(admin, 'erin', 'pa55word', Role.DATA_ENTRY)
    assert user.username == 'erin'
    assert auth.authenticate('erin', 'pa55word').role is Role.DATA_ENTRY


def test_usernames_are_unique_ignoring_case(seeded, user_service, admin):
    with pytest.raises(ConflictError, match="'Admin' is already taken"):
        user_service.add_user(admin, 'Admin', 'pa55word', Role.DATA_ENTRY)
    with pytest.raises(ConflictError):
        user_service.add_user(admin, 'ALICE', 'pa55word', Role.SURVEY_CREATOR)


def test_add_user_requires_name_and_password(seeded, user_service, admin):
    with pytest.raises(ValidationError, match='Username cannot be empty'):
        user_service.add_user(admin, '  ', 'pa55word', Role.DATA_ENTRY)
    with pytest.raises(ValidationError, match='Password cannot be empty'):
        user_service.add_user(admin, 'erin', '', Role.DATA_ENTRY)


def test_only_admins_manage_users(seeded, user_service, alice, dana):
    with pytest.raises(AccessDeniedError):
        user_service.add_user(alice, 'erin', 'pa55word', Role.DATA_ENTRY)
    with pytest.raises(AccessDeniedError):
        user_service.list_users(dana)


def test_fourth_administrator_is_refused(seeded, user_service, admin, db):
    user_service.add_user(admin, 'root', 'pa55word', Role.ADMINISTRATOR)
    user_service.add_user(admin, 'chief', 'pa55word', Role.ADMINISTRATOR)
    assert db.count_administrators() == 3

    with pytest.raises(AccessDeniedError, match='maximum limit of 3'):
        user_service.add_user(admin, 'extra', 'pa55word', Role.ADMINISTRATOR)
    with pytest.raises(AccessDeniedError):
        user_service.edit_user(admin, 'dana', 'dana', Role.ADMINISTRATOR)

    assert db.count_administrators() == 3
    assert db.find_user('extra') is None
    assert db.find_user('dana').role is Role.DATA_ENTRY


def test_edit_user_rename_and_role(seeded, user_service, admin, db):
    user_service.edit_user(admin, 'dana', 'dana2', Role.SURVEY_CREATOR)
    assert db.find_user('dana') is None
    assert db.find_user('dana2').role is Role.SURVEY_CREATOR


def test_edit_user_optional_password(seeded, user_service, admin, auth):
    user_service.edit_user(admin, 'dana', 'dana', Role.DATA_ENTRY, password='newpass1')
    assert auth.authenticate('dana', 'newpass1') is not None

    user_service.edit_user(admin, 'dana', 'dana', Role.DATA_ENTRY, password='  ')
    assert auth.authenticate('dana', 'newpass1') is not None


def test_edit_user_rename_collision(seeded, user_service, admin):
    with pytest.raises(ConflictError, match='already in use'):
        user_service.edit_user(admin, 'dana', 'Bob', Role.DATA_ENTRY)


def test_edit_user_case_only_rename_is_allowed(seeded, user_service, admin, db):
    user_service.edit_user(admin, 'dana', 'Dana', Role.DATA_ENTRY)
    assert db.find_user('Dana') is not None


def test_edit_unknown_user(seeded, user_service, admin):
    with pytest.raises(NotFoundError):
        user_service.edit_user(admin, 'ghost', 'ghost', Role.DATA_ENTRY)


def test_admin_cannot_demote_self(seeded, user_service, admin, db):
    with pytest.raises(AccessDeniedError, match='cannot demote yourself'):
        user_service.edit_user(admin, 'admin', 'admin', Role.SURVEY_CREATOR)
    assert db.find_user('admin').role is Role.ADMINISTRATOR


def test_delete_user_rules(seeded, user_service, admin, db):
    root = Actor('root', Role.ADMINISTRATOR)
    user_service.add_user(admin, 'root', 'pa55word', Role.ADMINISTRATOR)

    with pytest.raises(AccessDeniedError, match='your own account'):
        user_service.delete_user(root, 'root')
    with pytest.raises(AccessDeniedError, match="built-in 'admin' account"):
        user_service.delete_user(root, 'admin')

    user_service.delete_user(root, 'dana')
    assert db.find_user('dana') is None
    with pytest.raises(NotFoundError):
        user_service.delete_user(root, 'dana')


def test_seed_account_cannot_be_renamed_then_deleted(seeded, user_service, admin, db):
    root = Actor('root', Role.ADMINISTRATOR)
    user_service.add_user(admin, 'root', 'pa55word', Role.ADMINISTRATOR)

    with pytest.raises(AccessDeniedError, match="built-in 'admin' account cannot be renamed"):
        user_service.edit_user(root, 'admin', 'legacy', Role.ADMINISTRATOR)
    with pytest.raises(AccessDeniedError, match='cannot be renamed'):
        user_service.change_username(admin, 'legacy', 'admin123')
    assert db.find_user('legacy') is None

    with pytest.raises(AccessDeniedError, match="built-in 'admin' account"):
        user_service.delete_user(root, 'admin')
    assert db.find_user('admin') is not None

    # other edits of the seed account still go through
    user_service.edit_user(root, 'admin', 'admin', Role.ADMINISTRATOR, password='n3wpass')


class TestProfileSettings:
    def test_change_username(self, seeded, user_service, dana, auth):
        renamed = user_service.change_username(dana, 'dana.k', PASSWORD)
        assert renamed == Actor('dana.k', Role.DATA_ENTRY)
        assert auth.authenticate('dana.k', PASSWORD) is not None
        assert auth.authenticate('dana', PASSWORD) is None

    def test_change_username_needs_current_password(self, seeded, user_service, dana, db):
        with pytest.raises(ValidationError, match='confirmation failed'):
            user_service.change_username(dana, 'dana.k', 'wrong')
        with pytest.raises(ValidationError, match='confirm your current password'):
            user_service.change_username(dana, 'dana.k', '')
        assert db.find_user('dana') is not None

    def test_change_username_collision(self, seeded, user_service, dana):
        with pytest.raises(ConflictError):
            user_service.change_username(dana, 'ALICE', PASSWORD)
        with pytest.raises(ValidationError, match='same as the current one'):
            user_service.change_username(dana, 'dana', PASSWORD)

    @pytest.mark.parametrize('current, new, confirm, message', [
        ('', 'newpass1', 'newpass1', 'All password fields are required'),
        (PASSWORD, 'short', 'short', 'at least 6 characters'),
        (PASSWORD, 'newpass1', 'newpass2', 'do not match'),
        (PASSWORD, PASSWORD, PASSWORD, 'cannot be the same'),
        ('wrong-current', 'newpass1', 'newpass1', 'confirmation failed'),
    ])
    def test_change_password_policy(self, seeded, user_service, dana, current, new, confirm, message):
        with pytest.raises(ValidationError, match=message):
            user_service.change_password(dana, current, new, confirm)

    def test_change_password(self, seeded, user_service, dana, auth):
        user_service.change_password(dana, PASSWORD, 'newpass1', 'newpass1')
        assert auth.authenticate('dana', 'newpass1') is not None
        assert auth.authenticate('dana', PASSWORD) is None
