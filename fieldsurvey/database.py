import logging
import re
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.errors import ConnectionFailure, DuplicateKeyError, OperationFailure, PyMongoError

from .errors import ConflictError, DatabaseConnectionError, SchemaError
from .models import Question, Response, Role, Survey, SurveyStatus, User

logger = logging.getLogger(__name__)


def _object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def _decode_all(docs, decode) -> List:
    """Decode a cursor, skipping documents whose stored values are unreadable"""
    decoded = []
    for doc in docs:
        try:
            decoded.append(decode(doc))
        except SchemaError as e:
            logger.warning(f"Skipping document {doc.get('_id')}: {e.message}")
    return decoded


def username_pattern(username: str) -> Dict:
    """Case-insensitive exact-match filter value for a username"""
    return {'$regex': f'^{re.escape(username)}$', '$options': 'i'}


class DatabaseManager:
    """Handles all database operations.

    Constructed once by the application entry point and passed to every
    service. The client is created on first use and released by ``close``.
    """

    def __init__(self, uri: str, database_name: str, client_factory=MongoClient):
        self.uri = uri
        self.database_name = database_name
        self.client_factory = client_factory
        self._client = None

    @property
    def client(self):
        if self._client is None:
            try:
                self._client = self.client_factory(self.uri)
                logger.info(f"MongoDB client created for database {self.database_name}")
            except PyMongoError as e:
                logger.error(f"Error connecting to MongoDB: {str(e)}")
                raise DatabaseConnectionError(
                    "Database connection failed. Please check that MongoDB is running."
                ) from e
        return self._client

    @property
    def db(self):
        return self.client[self.database_name]

    @property
    def users(self):
        return self.db['users']

    @property
    def surveys(self):
        return self.db['surveys']

    @property
    def responses(self):
        return self.db['responses']

    def close(self):
        """Release the client; the next call reconnects"""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("MongoDB client closed")

    @contextmanager
    def operation(self, description: str):
        """Turn driver connection failures into DatabaseConnectionError"""
        try:
            yield
        except ConnectionFailure as e:
            logger.error(f"Database unreachable while {description}: {str(e)}")
            raise DatabaseConnectionError(
                "Database connection failed. Please check that MongoDB is running."
            ) from e

    def init_database(self):
        """Create the indexes the application relies on"""
        with self.operation("initializing the database"):
            self.users.create_index([('username', ASCENDING)], unique=True)
            self.surveys.create_index([('name', ASCENDING)], unique=True)
            self.surveys.create_index([('creator', ASCENDING)])
            self.responses.create_index([('survey_id', ASCENDING)])
            logger.info("Database initialized successfully")

    # =========================================================================
    # USERS
    # =========================================================================

    def find_user(self, username: str) -> Optional[User]:
        with self.operation(f"finding user {username}"):
            try:
                doc = self.users.find_one({'username': username})
            except OperationFailure as e:
                logger.error(f"Error fetching user {username}: {str(e)}")
                return None
        return User.from_document(doc) if doc else None

    def username_taken(self, username: str) -> bool:
        """Whether any user already has this name, ignoring case"""
        with self.operation("checking for a duplicate username"):
            try:
                return self.users.count_documents({'username': username_pattern(username)}) > 0
            except OperationFailure as e:
                logger.error(f"Error checking for duplicate username: {str(e)}")
                # block the write rather than risk a duplicate
                return True

    def count_administrators(self) -> int:
        with self.operation("counting administrators"):
            return self.users.count_documents({'role': Role.ADMINISTRATOR.value})

    def list_users(self) -> List[User]:
        with self.operation("loading users"):
            try:
                return _decode_all(self.users.find().sort('username', ASCENDING), User.from_document)
            except OperationFailure as e:
                logger.error(f"Error loading user data: {str(e)}")
                return []

    def add_user(self, username: str, password_hash: str, role: Role) -> bool:
        with self.operation(f"creating user {username}"):
            try:
                self.users.insert_one({
                    'username': username,
                    'password': password_hash,
                    'role': role.value,
                })
                logger.info(f"User {username} created successfully")
                return True
            except DuplicateKeyError:
                logger.warning(f"User creation failed - username exists: {username}")
                raise ConflictError(f"The username '{username}' is already taken.")
            except OperationFailure as e:
                logger.error(f"Error creating user {username}: {str(e)}")
                return False

    def update_user(self, original_username: str, new_username: str, role: Role,
                    password_hash: Optional[str] = None) -> bool:
        changes = {'username': new_username, 'role': role.value}
        if password_hash:
            changes['password'] = password_hash

        with self.operation(f"updating user {original_username}"):
            try:
                result = self.users.update_one({'username': original_username}, {'$set': changes})
            except DuplicateKeyError:
                logger.warning(f"User update failed - username exists: {new_username}")
                raise ConflictError(f"The new username '{new_username}' is already in use by another user.")
            except OperationFailure as e:
                logger.error(f"Error updating user {original_username}: {str(e)}")
                return False

        if result.matched_count == 0:
            logger.warning(f"User update failed: no user named {original_username}")
            return False
        logger.info(f"User {original_username} updated ({new_username}, {role.value})")
        return True

    def delete_user(self, username: str) -> bool:
        with self.operation(f"deleting user {username}"):
            try:
                result = self.users.delete_one({'username': username})
            except OperationFailure as e:
                logger.error(f"Error deleting user {username}: {str(e)}")
                return False
        if result.deleted_count == 0:
            logger.warning(f"User deletion failed: no user named {username}")
            return False
        logger.info(f"User {username} deleted")
        return True

    def update_username(self, old_username: str, new_username: str) -> bool:
        with self.operation("updating a username"):
            try:
                result = self.users.update_one({'username': old_username},
                                               {'$set': {'username': new_username}})
            except DuplicateKeyError:
                raise ConflictError(f"Username '{new_username}' is already taken.")
            except OperationFailure as e:
                logger.error(f"Database update error (Username): {str(e)}")
                return False
        if result.modified_count > 0:
            logger.info(f"Username update successful for: {old_username} -> {new_username}")
            return True
        logger.warning("Username update failed: User not found or no change.")
        return False

    def update_password(self, username: str, password_hash: str) -> bool:
        with self.operation("updating a password"):
            try:
                result = self.users.update_one({'username': username},
                                               {'$set': {'password': password_hash}})
            except OperationFailure as e:
                logger.error(f"Database update error (Password): {str(e)}")
                return False
        if result.modified_count > 0:
            logger.info(f"Password update successful for user: {username}")
            return True
        logger.warning("Password update failed: User not found.")
        return False

    # =========================================================================
    # SURVEYS
    # =========================================================================

    def add_survey(self, survey: Survey) -> Optional[str]:
        """Insert a new survey and return its id"""
        doc = survey.to_document()
        doc.pop('_id', None)
        if doc.get('dateCreated') is None:
            doc['dateCreated'] = datetime.now()

        with self.operation(f"creating survey {survey.name}"):
            try:
                result = self.surveys.insert_one(doc)
            except DuplicateKeyError:
                logger.warning(f"Survey creation failed - survey exists: {survey.name}")
                raise ConflictError(f"A survey named '{survey.name}' already exists.")
            except OperationFailure as e:
                logger.error(f"Error creating survey {survey.name}: {str(e)}")
                return None
        logger.info(f"Survey {survey.name} created successfully")
        return str(result.inserted_id)

    def get_survey(self, survey_id) -> Optional[Survey]:
        oid = _object_id(survey_id)
        if oid is None:
            return None
        with self.operation(f"loading survey {survey_id}"):
            try:
                doc = self.surveys.find_one({'_id': oid})
            except OperationFailure as e:
                logger.error(f"Error loading survey {survey_id}: {str(e)}")
                return None
        return Survey.from_document(doc) if doc else None

    def find_survey_by_name(self, name: str) -> Optional[Survey]:
        with self.operation(f"finding survey {name}"):
            doc = self.surveys.find_one({'name': name})
        return Survey.from_document(doc) if doc else None

    def list_surveys(self, query: Optional[Dict] = None) -> List[Survey]:
        with self.operation("loading surveys"):
            try:
                cursor = self.surveys.find(query or {}).sort('dateCreated', ASCENDING)
                return _decode_all(cursor, Survey.from_document)
            except OperationFailure as e:
                logger.error(f"Error loading survey data: {str(e)}")
                return []

    def update_survey(self, survey_id, name: str, status: SurveyStatus) -> bool:
        """Rename a survey and/or change its status; the creator is never touched"""
        oid = _object_id(survey_id)
        if oid is None:
            return False
        with self.operation(f"updating survey {survey_id}"):
            try:
                result = self.surveys.update_one(
                    {'_id': oid}, {'$set': {'name': name, 'status': status.value}}
                )
            except DuplicateKeyError:
                raise ConflictError(f"A survey named '{name}' already exists.")
            except OperationFailure as e:
                logger.error(f"MongoDB Update Error: {str(e)}")
                return False
        if result.matched_count == 0:
            logger.warning(f"Survey update failed: survey {survey_id} not found")
            return False
        logger.info(f"Survey updated successfully: {name} ({status.value})")
        return True

    def set_survey_status(self, survey_id, status: SurveyStatus) -> bool:
        oid = _object_id(survey_id)
        if oid is None:
            return False
        with self.operation(f"changing status of survey {survey_id}"):
            result = self.surveys.update_one({'_id': oid}, {'$set': {'status': status.value}})
        if result.matched_count == 0:
            logger.warning(f"Status change failed: survey {survey_id} not found")
            return False
        logger.info(f"Survey {survey_id} status set to {status.value}")
        return True

    def delete_survey(self, survey_id) -> bool:
        """Delete a survey with its questions; stored responses are kept"""
        oid = _object_id(survey_id)
        if oid is None:
            return False
        with self.operation(f"deleting survey {survey_id}"):
            try:
                result = self.surveys.delete_one({'_id': oid})
            except OperationFailure as e:
                logger.error(f"Error deleting survey {survey_id}: {str(e)}")
                return False
        if result.deleted_count == 0:
            logger.warning(f"Survey deletion failed: survey {survey_id} not found")
            return False
        logger.info(f"Survey {survey_id} deleted")
        return True

    def save_questions(self, survey_id, questions: List[Question]) -> bool:
        """Replace a survey's questions, keeping numQuestions in step"""
        oid = _object_id(survey_id)
        if oid is None:
            return False
        docs = [q.to_document() for q in questions]
        with self.operation(f"saving questions for survey {survey_id}"):
            try:
                result = self.surveys.update_one(
                    {'_id': oid}, {'$set': {'questions': docs, 'numQuestions': len(docs)}}
                )
            except OperationFailure as e:
                logger.error(f"Error saving questions for survey {survey_id}: {str(e)}")
                return False
        if result.matched_count == 0:
            logger.warning(f"Question save failed: survey {survey_id} not found")
            return False
        logger.info(f"Saved {len(docs)} questions for survey {survey_id}")
        return True

    # =========================================================================
    # RESPONSES
    # =========================================================================

    def insert_response(self, response: Response) -> Optional[str]:
        doc = response.to_document()
        if doc.get('timestamp') is None:
            doc['timestamp'] = datetime.now()
        with self.operation("saving a survey response"):
            try:
                result = self.responses.insert_one(doc)
            except OperationFailure as e:
                logger.error(f"MongoDB Error saving survey response: {str(e)}")
                return None
        logger.info(f"Response saved for survey {response.survey_id} by {response.user_id}")
        return str(result.inserted_id)

    def responses_for_survey(self, survey: Survey) -> List[Response]:
        """All responses to ``survey``, answers typed by its current questions"""
        oid = _object_id(survey.id)
        if oid is None:
            return []
        with self.operation(f"loading responses for survey {survey.id}"):
            try:
                cursor = self.responses.find({'survey_id': oid}).sort('timestamp', ASCENDING)
                return [Response.from_document(doc, survey) for doc in cursor]
            except OperationFailure as e:
                logger.error(f"Error loading responses for survey {survey.id}: {str(e)}")
                return []

    def response_counts(self) -> Dict[str, int]:
        """Number of stored responses per survey id"""
        pipeline = [{'$group': {'_id': '$survey_id', 'count': {'$sum': 1}}}]
        counts = {}
        with self.operation("calculating response counts"):
            try:
                for doc in self.responses.aggregate(pipeline):
                    if isinstance(doc.get('_id'), ObjectId):
                        counts[str(doc['_id'])] = doc['count']
            except OperationFailure as e:
                logger.error(f"Error calculating response counts: {str(e)}")
        return counts
