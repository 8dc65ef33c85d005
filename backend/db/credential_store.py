"""Persistence of account identity, password hash and the active refresh token.

Two backends implement the same contract: ``MongoCredentialStore`` (motor,
``users`` collection) and ``SQLCredentialStore`` (SQLAlchemy async,
``accounts`` table). ``USE_MONGO`` picks one at startup.

Every write that the session lifecycle depends on is a single-document /
single-row update, so the store is the only source of truth for which
refresh token is currently valid.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional
import logging

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.errors import Conflict
from core.security import verify_password_async
from db.models.user import Account as AccountModel
from schemas.user_schema import AccountInDB
from utils.db import safe_commit

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("full_name", "email", "avatar", "cover_image")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class CredentialStore(ABC):
    """Contract consumed by the session lifecycle and account handlers."""

    @abstractmethod
    async def find_by_username_or_email(self, identifier: str) -> Optional[AccountInDB]:
        ...

    @abstractmethod
    async def find_by_id(self, account_id: str) -> Optional[AccountInDB]:
        ...

    @abstractmethod
    async def exists(self, username: str, email: str) -> bool:
        """True when any account already uses the username or the email."""

    @abstractmethod
    async def create(self, fields: dict) -> AccountInDB:
        """Insert a new account; raises Conflict on a duplicate username/email."""

    @abstractmethod
    async def update_refresh_token(self, account_id: str, token: Optional[str]) -> bool:
        ...

    @abstractmethod
    async def rotate_refresh_token(self, account_id: str, expected: str, new_token: str) -> bool:
        """Replace ``expected`` with ``new_token`` only if ``expected`` is still stored."""

    @abstractmethod
    async def update_password_hash(self, account_id: str, password_hash: str) -> bool:
        ...

    @abstractmethod
    async def update_profile(self, account_id: str, fields: dict) -> Optional[AccountInDB]:
        ...

    @abstractmethod
    async def _get_password_hash(self, account_id: str) -> Optional[str]:
        ...

    async def verify_password(self, account_id: str, candidate: str) -> bool:
        """Salted bcrypt comparison of ``candidate`` against the stored hash."""
        password_hash = await self._get_password_hash(account_id)
        if not password_hash:
            return False
        return await verify_password_async(candidate, password_hash)

    @staticmethod
    def _profile_updates(fields: dict) -> dict:
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported profile fields: {sorted(unknown)}")
        return dict(fields)


class MongoCredentialStore(CredentialStore):
    def __init__(self, db):
        self._users = db.users

    @staticmethod
    def _object_id(account_id: str) -> Optional[ObjectId]:
        try:
            return ObjectId(str(account_id))
        except (InvalidId, TypeError):
            return None

    @staticmethod
    def _to_account(doc: Optional[dict]) -> Optional[AccountInDB]:
        if not doc:
            return None
        return AccountInDB(
            id=str(doc["_id"]),
            username=doc.get("username", ""),
            email=doc.get("email", ""),
            full_name=doc.get("full_name", ""),
            avatar=doc.get("avatar", ""),
            cover_image=doc.get("cover_image") or "",
            password_hash=doc.get("password_hash", ""),
            refresh_token=doc.get("refresh_token"),
            created_at=_iso(doc.get("created_at")),
            updated_at=_iso(doc.get("updated_at")),
        )

    async def find_by_username_or_email(self, identifier: str) -> Optional[AccountInDB]:
        doc = await self._users.find_one({"$or": [{"username": identifier}, {"email": identifier}]})
        return self._to_account(doc)

    async def find_by_id(self, account_id: str) -> Optional[AccountInDB]:
        oid = self._object_id(account_id)
        if oid is None:
            return None
        return self._to_account(await self._users.find_one({"_id": oid}))

    async def exists(self, username: str, email: str) -> bool:
        doc = await self._users.find_one({"$or": [{"username": username}, {"email": email}]}, {"_id": 1})
        return doc is not None

    async def create(self, fields: dict) -> AccountInDB:
        now = _utcnow().isoformat()
        doc = {
            "username": fields["username"],
            "email": fields["email"],
            "full_name": fields["full_name"],
            "avatar": fields["avatar"],
            "cover_image": fields.get("cover_image") or "",
            "password_hash": fields["password_hash"],
            "refresh_token": None,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self._users.insert_one(doc)
        except DuplicateKeyError as e:
            raise Conflict() from e
        doc["_id"] = result.inserted_id
        return self._to_account(doc)

    async def _set(self, account_id: str, values: dict) -> bool:
        oid = self._object_id(account_id)
        if oid is None:
            return False
        values = dict(values, updated_at=_utcnow().isoformat())
        result = await self._users.update_one({"_id": oid}, {"$set": values})
        return result.matched_count == 1

    async def update_refresh_token(self, account_id: str, token: Optional[str]) -> bool:
        return await self._set(account_id, {"refresh_token": token})

    async def rotate_refresh_token(self, account_id: str, expected: str, new_token: str) -> bool:
        oid = self._object_id(account_id)
        if oid is None or not expected:
            return False
        doc = await self._users.find_one_and_update(
            {"_id": oid, "refresh_token": expected},
            {"$set": {"refresh_token": new_token, "updated_at": _utcnow().isoformat()}},
            projection={"_id": 1},
        )
        return doc is not None

    async def update_password_hash(self, account_id: str, password_hash: str) -> bool:
        return await self._set(account_id, {"password_hash": password_hash})

    async def update_profile(self, account_id: str, fields: dict) -> Optional[AccountInDB]:
        oid = self._object_id(account_id)
        if oid is None:
            return None
        values = self._profile_updates(fields)
        values["updated_at"] = _utcnow().isoformat()
        try:
            doc = await self._users.find_one_and_update(
                {"_id": oid},
                {"$set": values},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise Conflict("Email is already in use") from e
        return self._to_account(doc)

    async def _get_password_hash(self, account_id: str) -> Optional[str]:
        oid = self._object_id(account_id)
        if oid is None:
            return None
        doc = await self._users.find_one({"_id": oid}, {"password_hash": 1})
        return (doc or {}).get("password_hash")


class SQLCredentialStore(CredentialStore):
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_account(row: Optional[AccountModel]) -> Optional[AccountInDB]:
        if row is None:
            return None
        return AccountInDB(
            id=row.id,
            username=row.username,
            email=row.email,
            full_name=row.full_name,
            avatar=row.avatar,
            cover_image=row.cover_image or "",
            password_hash=row.password_hash,
            refresh_token=row.refresh_token,
            created_at=_iso(row.created_at),
            updated_at=_iso(row.updated_at),
        )

    async def _first(self, stmt) -> Optional[AccountInDB]:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return self._to_account(result.scalars().first())

    async def find_by_username_or_email(self, identifier: str) -> Optional[AccountInDB]:
        return await self._first(
            select(AccountModel).where(or_(AccountModel.username == identifier, AccountModel.email == identifier))
        )

    async def find_by_id(self, account_id: str) -> Optional[AccountInDB]:
        return await self._first(select(AccountModel).where(AccountModel.id == str(account_id)))

    async def exists(self, username: str, email: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AccountModel.id).where(or_(AccountModel.username == username, AccountModel.email == email))
            )
            return result.first() is not None

    async def create(self, fields: dict) -> AccountInDB:
        async with self._session_factory() as session:
            row = AccountModel(
                username=fields["username"],
                email=fields["email"],
                full_name=fields["full_name"],
                avatar=fields["avatar"],
                cover_image=fields.get("cover_image") or "",
                password_hash=fields["password_hash"],
            )
            session.add(row)
            await safe_commit(session)
            return self._to_account(row)

    async def _update(self, account_id: str, values: dict, *conditions) -> bool:
        values = dict(values, updated_at=_utcnow())
        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    update(AccountModel)
                    .where(AccountModel.id == str(account_id), *conditions)
                    .values(**values)
                )
            except IntegrityError as e:
                await session.rollback()
                raise Conflict("Email is already in use") from e
            await safe_commit(session)
            return result.rowcount == 1

    async def update_refresh_token(self, account_id: str, token: Optional[str]) -> bool:
        return await self._update(account_id, {"refresh_token": token})

    async def rotate_refresh_token(self, account_id: str, expected: str, new_token: str) -> bool:
        if not expected:
            return False
        return await self._update(account_id, {"refresh_token": new_token}, AccountModel.refresh_token == expected)

    async def update_password_hash(self, account_id: str, password_hash: str) -> bool:
        return await self._update(account_id, {"password_hash": password_hash})

    async def update_profile(self, account_id: str, fields: dict) -> Optional[AccountInDB]:
        values = self._profile_updates(fields)
        if not await self._update(account_id, values):
            return None
        return await self.find_by_id(account_id)

    async def _get_password_hash(self, account_id: str) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AccountModel.password_hash).where(AccountModel.id == str(account_id))
            )
            return result.scalar_one_or_none()


def build_credential_store(settings) -> CredentialStore:
    """Pick the store backend the settings ask for."""
    if settings.USE_MONGO:
        from db.mongodb import get_mongo_db
        db = get_mongo_db()
        if db is None:
            raise RuntimeError("USE_MONGO=true but MongoDB is not configured")
        logger.info("Using MongoDB credential store")
        return MongoCredentialStore(db)
    from db.session import get_session_factory
    logger.info("Using SQL credential store")
    return SQLCredentialStore(get_session_factory())
