"""
Entity Services

Accounts, categories and budgets are plain ownership-scoped CRUD with no
cross-entity invariant. One service class covers all three; the only
per-kind differences are the input models and, for accounts, the
configured default currency.

Ownership is structural: every key is built from the caller's userId, so
an entity owned by someone else is simply absent (NotFound).
"""

from typing import Any, Generic, Optional, TypeVar, Union
from uuid import UUID

import structlog
from pydantic import BaseModel

from trackmyexpense.audit import AuditLogger
from trackmyexpense.config import AppSettings
from trackmyexpense.errors import NotFoundError
from trackmyexpense.models.audit import AuditEventBuilder
from trackmyexpense.models.finance import (
    Account,
    AccountCreate,
    AccountUpdate,
    Budget,
    BudgetCreate,
    BudgetUpdate,
    Category,
    CategoryCreate,
    CategoryUpdate,
    OwnedEntity,
)
from trackmyexpense.repositories.owned import EntityRepository
from trackmyexpense.validation import validate_input


logger = structlog.get_logger(__name__)

EntityT = TypeVar("EntityT", bound=OwnedEntity)


class EntityService(Generic[EntityT]):
    """
    CRUD for one owned entity kind.

    Inputs may be model instances or raw dicts (camelCase or snake_case);
    raw input is validated before any store call.
    """

    def __init__(
        self,
        repository: EntityRepository[EntityT],
        entity_type: str,
        create_model: type[BaseModel],
        update_model: type[BaseModel],
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._repository = repository
        self._entity_type = entity_type
        self._create_model = create_model
        self._update_model = update_model
        self._audit_logger = audit_logger

    @property
    def entity_type(self) -> str:
        return self._entity_type

    async def list(self, user_id: str) -> list[EntityT]:
        return await self._repository.list(user_id)

    async def get(self, user_id: str, entity_id: str) -> EntityT:
        entity = await self._repository.get(user_id, entity_id)
        if entity is None:
            raise NotFoundError(self._entity_type, entity_id)
        return entity

    async def create(
        self,
        user_id: str,
        data: Union[BaseModel, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> EntityT:
        payload = self._prepare_create(validate_input(self._create_model, data))
        entity = await self._repository.create(user_id, payload)
        logger.info(
            "entity_created",
            entity_type=self._entity_type,
            user_id=user_id,
            sort_key=entity.sort_key,
        )
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.entity_created(
                    user_id, self._entity_type, entity.sort_key, correlation_id
                )
            )
        return entity

    async def update(
        self,
        user_id: str,
        entity_id: str,
        changes: Union[BaseModel, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> EntityT:
        """
        Apply a typed field delta.

        Raises NotFoundError if the entity is not in the caller's partition;
        nothing is written in that case.
        """
        delta = validate_input(self._update_model, changes)
        await self.get(user_id, entity_id)
        entity = await self._repository.update(user_id, entity_id, delta)
        if entity is None:
            # Deleted between the ownership check and the write
            raise NotFoundError(self._entity_type, entity_id)
        if self._audit_logger:
            fields = sorted(delta.model_dump(exclude_unset=True, exclude_none=True))
            await self._audit_logger.log(
                AuditEventBuilder.entity_updated(
                    user_id, self._entity_type, entity.sort_key, fields, correlation_id
                )
            )
        return entity

    async def delete(
        self,
        user_id: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        entity = await self.get(user_id, entity_id)
        await self._repository.delete(user_id, entity_id)
        logger.info(
            "entity_deleted",
            entity_type=self._entity_type,
            user_id=user_id,
            sort_key=entity.sort_key,
        )
        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.entity_deleted(
                    user_id, self._entity_type, entity.sort_key, correlation_id
                )
            )

    def _prepare_create(self, data: BaseModel) -> BaseModel:
        return data


class AccountService(EntityService[Account]):
    """Account CRUD; accounts created without a currency get the default."""

    def __init__(
        self,
        repository: EntityRepository[Account],
        app_settings: Optional[AppSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(repository, "account", AccountCreate, AccountUpdate, audit_logger)
        self._default_currency = (app_settings or AppSettings()).default_currency

    def _prepare_create(self, data: BaseModel) -> BaseModel:
        if "currency" in data.model_fields_set:
            return data
        return data.model_copy(update={"currency": self._default_currency})


def category_service(
    repository: EntityRepository[Category],
    audit_logger: Optional[AuditLogger] = None,
) -> EntityService[Category]:
    return EntityService(repository, "category", CategoryCreate, CategoryUpdate, audit_logger)


def budget_service(
    repository: EntityRepository[Budget],
    audit_logger: Optional[AuditLogger] = None,
) -> EntityService[Budget]:
    return EntityService(repository, "budget", BudgetCreate, BudgetUpdate, audit_logger)
