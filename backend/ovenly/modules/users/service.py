"""
Ovenly Backend: User Service
===============================

What:  Creates and lists user documents in the "users" collection.
How:   Every collection access goes through db_connection.collection(); the
       stored password is always hash_string(password), and documents leave
       this module reduced to their public fields with "id" as a string.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from pymongo.errors import DuplicateKeyError, PyMongoError

from ovenly.database import db_connection
from ovenly.exceptions import ConflictError, DatabaseError
from ovenly.modules.users.schemas import CreateUserRequest
from ovenly.shared.hashing import hash_string

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"

USER_PUBLIC_FIELDS = (
    "id",
    "name",
    "email",
    "role",
    "incomes",
    "expenses",
    "goals",
    "balance",
    "currency",
    "totalIncomes",
    "totalExpenses",
    "createdAt",
    "updatedAt",
)


def to_public(document: Dict[str, Any]) -> Dict[str, Any]:
    user = {"id": str(document["_id"]), **document}
    public = {key: user[key] for key in USER_PUBLIC_FIELDS if key in user}
    for key in ("createdAt", "updatedAt"):
        if isinstance(public.get(key), datetime):
            public[key] = public[key].isoformat()
    return public


class UserService:
    async def create_user(self, data: CreateUserRequest) -> Dict[str, Any]:
        """
        Insert a new user.

        Raises:
            ConflictError: A user with this email already exists
            DatabaseError: The insert failed
        """
        users = db_connection.collection(USERS_COLLECTION)
        if await users.find_one({"email": data.email}) is not None:
            raise ConflictError(message="User already exists", context={"email": data.email})

        now = datetime.now(timezone.utc)
        document = {
            **data.model_dump(),
            "password": hash_string(data.password),
            "accessToken": "",
            "refreshToken": "",
            "incomes": [],
            "expenses": [],
            "goals": [],
            "createdAt": now,
            "updatedAt": now,
        }

        try:
            result = await users.insert_one(document)
        except DuplicateKeyError as e:
            raise ConflictError(message="User already exists", context={"email": data.email}) from e
        except PyMongoError as e:
            raise DatabaseError(context={"operation": "insert_user", "error": str(e)}) from e

        document["_id"] = result.inserted_id
        logger.info("User created: %s", document["_id"])
        return to_public(document)

    async def list_users(self) -> List[Dict[str, Any]]:
        users = db_connection.collection(USERS_COLLECTION)
        try:
            documents = await users.find({}).to_list(length=None)
        except PyMongoError as e:
            raise DatabaseError(context={"operation": "list_users", "error": str(e)}) from e
        return [to_public(doc) for doc in documents]


# Singleton instance
user_service = UserService()
