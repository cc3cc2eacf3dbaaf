"""Persistence accessor over the SQLAlchemy session.

WHAT:
    Filtered CRUD keyed by model class and a filter mapping, plus one named
    method per cross-table lookup the use-cases need.

WHY:
    Use-cases stay small and read the same way for every table: select,
    insert, update, upsert, delete. Each write commits on its own; callers that
    make several related writes tolerate partial completion.

FILTERS:
    {"shop": "a.myshopify.com"}          equality (None means IS NULL)
    {"status__in": ["active", "paused"]}  membership
    {"created_at__gt": cutoff}            greater-than

USAGE:
    repo = Repository(db)
    domain = repo.select_one(EmailDomain, {"shop": shop, "id": domain_id})
    repo.update(EmailDomain, {"status": DomainStatusEnum.active}, {"id": domain.id})
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from oce_app.models import (
    TENANT_MODELS,
    EmailAccount,
    EmailConversation,
    OutreachCampaign,
    WarmupStatusEnum,
)
from oce_app.utils.ids import parse_uuid

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

ACTIVE_WARMUP_STATUSES = (WarmupStatusEnum.active, WarmupStatusEnum.completed)


class Repository:
    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # QUERY BUILDING
    # =========================================================================

    def _query(self, model: Type[ModelT], filters: Optional[Mapping[str, Any]] = None) -> Query:
        query = self.db.query(model)
        for key, value in (filters or {}).items():
            field, _, op = key.partition("__")
            column = getattr(model, field)
            if op == "":
                query = query.filter(column.is_(None) if value is None else column == value)
            elif op == "in":
                query = query.filter(column.in_(list(value)))
            elif op == "gt":
                query = query.filter(column > value)
            else:
                raise ValueError(f"Unsupported filter operator: {op}")
        return query

    @staticmethod
    def _order(model, order_by: Optional[str]):
        if not order_by:
            return None
        if order_by.startswith("-"):
            return getattr(model, order_by[1:]).desc()
        return getattr(model, order_by).asc()

    # =========================================================================
    # READS
    # =========================================================================

    def select_many(
        self,
        model: Type[ModelT],
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[ModelT]:
        query = self._query(model, filters)
        ordering = self._order(model, order_by)
        if ordering is not None:
            query = query.order_by(ordering)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def select_one(self, model: Type[ModelT], filters: Mapping[str, Any]) -> Optional[ModelT]:
        return self._query(model, filters).first()

    def count(self, model: Type[ModelT], filters: Optional[Mapping[str, Any]] = None) -> int:
        return self._query(model, filters).count()

    # =========================================================================
    # WRITES (each commits)
    # =========================================================================

    def insert(self, model: Type[ModelT], values: Mapping[str, Any]) -> ModelT:
        row = model(**values)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update(
        self,
        model: Type[ModelT],
        patch: Mapping[str, Any],
        filters: Mapping[str, Any],
    ) -> Optional[ModelT]:
        """Apply `patch` to every matching row; return the first one (or None)."""
        rows = self._query(model, filters).all()
        for row in rows:
            for key, value in patch.items():
                setattr(row, key, value)
        if rows:
            self.db.commit()
            self.db.refresh(rows[0])
            return rows[0]
        return None

    def upsert(
        self,
        model: Type[ModelT],
        values: Mapping[str, Any],
        conflict_keys: Sequence[str],
    ) -> ModelT:
        """Insert, or update the row matching `conflict_keys`. Last write wins."""
        key_filter = {key: values[key] for key in conflict_keys}
        existing = self.select_one(model, key_filter)
        if existing is not None:
            return self.update(model, values, key_filter)
        try:
            return self.insert(model, values)
        except IntegrityError:
            # Concurrent insert for the same key won the race
            self.db.rollback()
            return self.update(model, values, key_filter)

    def get_or_create(
        self,
        model: Type[ModelT],
        filters: Mapping[str, Any],
        defaults: Optional[Mapping[str, Any]] = None,
    ) -> ModelT:
        existing = self.select_one(model, filters)
        if existing is not None:
            return existing
        try:
            return self.insert(model, {**(defaults or {}), **filters})
        except IntegrityError:
            self.db.rollback()
            return self.select_one(model, filters)

    def delete(self, model: Type[ModelT], filters: Mapping[str, Any]) -> int:
        deleted = self._query(model, filters).delete(synchronize_session=False)
        self.db.commit()
        return deleted

    # =========================================================================
    # NAMED LOOKUPS
    # =========================================================================

    def find_account_by_email(self, email: str) -> Optional[EmailAccount]:
        """Resolve a mailbox (and therefore its shop) from an address, case-insensitively."""
        return (
            self.db.query(EmailAccount)
            .filter(func.lower(EmailAccount.email) == (email or "").strip().lower())
            .first()
        )

    def find_campaign_by_vendor_id(self, shop: str, smartlead_campaign_id: Any) -> Optional[OutreachCampaign]:
        if smartlead_campaign_id in (None, ""):
            return None
        return self.select_one(OutreachCampaign, {
            "shop": shop,
            "smartlead_campaign_id": str(smartlead_campaign_id),
        })

    def accounts_for_domain(self, shop: str, domain_id: Any) -> List[EmailAccount]:
        return self.select_many(EmailAccount, {"shop": shop, "domain_id": domain_id}, order_by="created_at")

    def accounts_by_ids(self, shop: str, ids: Iterable[Any]) -> List[EmailAccount]:
        ids = [account_id for account_id in (parse_uuid(value) for value in ids) if account_id]
        if not ids:
            return []
        return self.select_many(EmailAccount, {"shop": shop, "id__in": ids}, order_by="created_at")

    def account_counts_by_domain(self, shop: str) -> Dict[Any, Tuple[int, int]]:
        """Return {domain_id: (account_count, active_account_count)} for a shop."""
        counts: Dict[Any, Tuple[int, int]] = {}
        for account in self.select_many(EmailAccount, {"shop": shop}):
            total, active = counts.get(account.domain_id, (0, 0))
            counts[account.domain_id] = (
                total + 1,
                active + (1 if account.warmup_status in ACTIVE_WARMUP_STATUSES else 0),
            )
        return counts

    def conversation_counts_by_campaign(self, shop: str) -> List[Tuple[Any, int]]:
        """Return [(campaign_id or None, conversation_count)] for a shop."""
        return (
            self.db.query(EmailConversation.campaign_id, func.count(EmailConversation.id))
            .filter(EmailConversation.shop == shop)
            .group_by(EmailConversation.campaign_id)
            .all()
        )

    # =========================================================================
    # OFFBOARDING
    # =========================================================================

    def purge_tenant(self, shop: str) -> Dict[str, int]:
        """Delete every row owned by `shop`, children before parents."""
        counts: Dict[str, int] = {}
        for model in TENANT_MODELS:
            counts[model.__tablename__] = (
                self.db.query(model)
                .filter(model.shop == shop)
                .delete(synchronize_session=False)
            )
        self.db.commit()
        logger.info("[TENANT] Purged data for %s: %s", shop, counts)
        return counts
