"""
User repository for the Library Service.

Covers account CRUD for the admin endpoints plus provisioning of accounts the
first time the external auth service vouches for an identity.
"""

import logging

from sqlalchemy import and_, or_, select

from ..models.user import User as UserModel
from ..models.user import UserCreate, UserRole, UserSearchParams, UserUpdate
from .repository import (
    BaseRepository,
    ConflictError,
    DuplicateError,
    PaginatedResponse,
    PaginationParams,
    guarded_flush,
    guarded_query,
)
from .schema import Checkout as CheckoutDB
from .schema import User as UserDB
from .schema import UserRoleEnum

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[UserDB, UserModel]):
    """Repository for user accounts."""

    def __init__(self, session, default_max_checkouts: int = 5):
        super().__init__(session)
        self.default_max_checkouts = default_max_checkouts

    @property
    def model_class(self):
        return UserDB

    @property
    def response_schema(self):
        return UserModel

    def _get_db_by_email(self, email: str) -> UserDB | None:
        query = select(UserDB).where(UserDB.email == email.strip().lower())
        return guarded_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get user by email",
        )

    def get_by_email(self, email: str) -> UserModel | None:
        db_user = self._get_db_by_email(email)
        return self._to_response_model(db_user) if db_user else None

    def create(self, data: UserCreate) -> UserModel:
        """
        Create a user account.

        Raises:
            DuplicateError: If the e-mail is already registered
        """
        email = str(data.email).strip().lower()
        if self._get_db_by_email(email) is not None:
            raise DuplicateError(f"User with email {email} already exists")

        db_user = UserDB(
            email=email,
            name=data.name,
            role=UserRoleEnum((data.role or UserRole.USER).value),
            is_active=True,
            max_checkouts=(
                data.max_checkouts if data.max_checkouts is not None else self.default_max_checkouts
            ),
        )
        self._save(db_user, "create user")
        logger.info("Created user %s (%s)", db_user.id, db_user.role.value)
        return self._to_response_model(db_user)

    def provision(self, user_id: str, email: str, name: str) -> UserDB:
        """
        Return the user vouched for by the auth service, creating it on first sight.

        Lookup is by id first, then by e-mail so that an account created by an
        admin is linked rather than duplicated.
        """
        db_user = guarded_query(
            self.session, lambda s: s.get(UserDB, user_id), "Failed to get user by ID"
        )
        if db_user is None:
            db_user = self._get_db_by_email(email)
        if db_user is not None:
            return db_user

        db_user = UserDB(
            id=user_id,
            email=email.strip().lower(),
            name=name or email,
            role=UserRoleEnum.USER,
            is_active=True,
            max_checkouts=self.default_max_checkouts,
        )
        self._save(db_user, "provision user")
        logger.info("Provisioned user %s on first sign-in", user_id)
        return db_user

    def search(
        self, search_params: UserSearchParams, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[UserModel]:
        query = select(UserDB)
        filters = []

        if search_params.query:
            search_term = f"%{search_params.query}%"
            filters.append(or_(UserDB.name.ilike(search_term), UserDB.email.ilike(search_term)))

        if search_params.role is not None:
            filters.append(UserDB.role == UserRoleEnum(search_params.role.value))

        if search_params.is_active is not None:
            filters.append(UserDB.is_active == search_params.is_active)

        if filters:
            query = query.where(and_(*filters))

        query = query.order_by(UserDB.created_at.desc(), UserDB.id)
        return self._paginate(query, pagination)

    def update(self, user_id: str, data: UserUpdate) -> UserModel:
        """
        Apply the fields present in ``data``.

        Raises:
            NotFoundError: If the user does not exist
        """
        db_user = self.get_entity(user_id)
        for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
            if field == "role":
                value = UserRoleEnum(value.value if isinstance(value, UserRole) else value)
            setattr(db_user, field, value)

        guarded_flush(self.session, "update user")
        self.session.refresh(db_user)
        return self._to_response_model(db_user)

    def delete(self, user_id: str) -> None:
        """
        Delete a user without loan history.

        Raises:
            NotFoundError: If the user does not exist
            ConflictError: If any checkout references the user
        """
        db_user = self.get_entity(user_id)
        if self._has_checkouts(CheckoutDB.user_id == user_id):
            raise ConflictError(f"User {user_id} has checkouts; deactivate the account instead")

        self.session.delete(db_user)
        guarded_flush(self.session, "delete user")
        logger.info("Deleted user %s", user_id)
