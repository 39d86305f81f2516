"""Tenant store: the only code that touches Company/Campaign/Participation rows.

Callers get pydantic copies (``CompanyOut``, ``CampaignOut``,
``ParticipationOut``), never the ORM rows. Check-then-write sequences
(slug uniqueness, campaign ceiling, mint counters) must run inside
``store.locked(scope)``; the database unique constraints are the backstop
when several processes share one database.
"""

import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .models import Campaign, Company, Participation, utcnow
from .schemas import AccessType, CampaignOut, CampaignStatus, CompanyOut, ParticipationOut

logger = logging.getLogger(__name__)

COMPANIES_SCOPE = "companies"
UNIQUE_VIOLATION = "23505"  # postgres SQLSTATE


class ScopeLock:
    """Mutex for one scope; the registry forgets it once nobody references it."""

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info):
        self._lock.release()


_scope_locks: "weakref.WeakValueDictionary[str, ScopeLock]" = weakref.WeakValueDictionary()
_scope_locks_guard = threading.Lock()


def scope_lock(scope: str) -> ScopeLock:
    with _scope_locks_guard:
        lock = _scope_locks.get(scope)
        if lock is None:
            lock = _scope_locks[scope] = ScopeLock()
        return lock


def tenant_scope(company_id: str) -> str:
    return f"company:{company_id}"


class StoreConflict(Exception):
    """A write violated a uniqueness constraint."""


def _is_unique_violation(exc: IntegrityError) -> bool:
    code = getattr(exc.orig, "pgcode", None)
    return code == UNIQUE_VIOLATION or "UNIQUE constraint failed" in str(exc.orig)


def _company_out(row: Company) -> CompanyOut:
    return CompanyOut.model_validate(row.model_dump())


def _campaign_out(row: Campaign, company_name: Optional[str] = None) -> CampaignOut:
    data = row.model_dump()
    data.pop("access_type", None)
    data["company_name"] = company_name
    return CampaignOut.model_validate(data)


def _participation_out(row: Participation) -> ParticipationOut:
    return ParticipationOut.model_validate(row.model_dump())


def _search_clause(columns, search: str):
    term = search.lower()
    return or_(*[func.lower(column).contains(term, autoescape=True) for column in columns])


class TenantStore:
    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def locked(self, scope: str):
        with scope_lock(scope):
            # rows loaded before the lock was taken may be stale
            self.session.expire_all()
            yield self

    def _commit(self):
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if not _is_unique_violation(exc):
                raise
            logger.warning("Uniqueness violation on commit: %s", exc.orig)
            raise StoreConflict(str(exc.orig)) from exc

    def _paginate(self, statement, page: int, limit: int):
        total = self.session.exec(select(func.count()).select_from(statement.subquery())).one()
        rows = self.session.exec(statement.offset((page - 1) * limit).limit(limit)).all()
        return rows, total

    # ----------------- Companies -----------------
    def find_companies(self, search: str = "", page: int = 1, limit: int = 10) -> Tuple[List[CompanyOut], int]:
        statement = select(Company).order_by(Company.created_at, Company.id)
        if search:
            statement = statement.where(_search_clause([Company.name, Company.description], search))
        rows, total = self._paginate(statement, page, limit)
        return [_company_out(r) for r in rows], total

    def all_companies(self) -> List[CompanyOut]:
        return [_company_out(r) for r in self.session.exec(select(Company)).all()]

    def find_company(self, company_id: str) -> Optional[CompanyOut]:
        row = self.session.get(Company, company_id)
        return _company_out(row) if row else None

    def find_company_by_slug(self, slug: str) -> Optional[CompanyOut]:
        row = self.session.exec(select(Company).where(Company.slug == slug)).first()
        return _company_out(row) if row else None

    def company_slug_exists(self, slug: str) -> bool:
        return self.session.exec(select(Company.id).where(Company.slug == slug)).first() is not None

    def company_names(self, company_ids: Iterable[str]) -> Dict[str, str]:
        ids = list(set(company_ids))
        if not ids:
            return {}
        rows = self.session.exec(select(Company.id, Company.name).where(Company.id.in_(ids))).all()
        return {company_id: name for company_id, name in rows}

    def insert_company(self, fields: dict) -> CompanyOut:
        row = Company(**fields)
        self.session.add(row)
        self._commit()
        self.session.refresh(row)
        return _company_out(row)

    def update_company(self, company_id: str, changes: dict) -> Optional[CompanyOut]:
        row = self.session.get(Company, company_id)
        if row is None:
            return None
        for key, value in changes.items():
            setattr(row, key, value)
        row.updated_at = utcnow()
        self.session.add(row)
        self._commit()
        self.session.refresh(row)
        return _company_out(row)

    def delete_company(self, company_id: str) -> bool:
        """Delete a company together with its campaigns and their participations."""
        row = self.session.get(Company, company_id)
        if row is None:
            return False
        # children first so the foreign keys hold at every statement
        removed = self.count_campaigns(company_id)
        campaign_ids = select(Campaign.id).where(Campaign.company_id == company_id)
        self._delete_rows(delete(Participation).where(Participation.campaign_id.in_(campaign_ids)))
        self._delete_rows(delete(Campaign).where(Campaign.company_id == company_id))
        self.session.delete(row)
        self._commit()
        logger.info("Deleted company %s with %d campaigns", company_id, removed)
        return True

    # ----------------- Campaigns -----------------
    def find_campaigns(
        self,
        company_id: Optional[str] = None,
        full_access_ids: Optional[Iterable[str]] = None,
        public_ids: Iterable[str] = (),
        campaign_type: Optional[str] = None,
        status: Optional[str] = None,
        search: str = "",
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[CampaignOut], int]:
        """List campaigns.

        ``full_access_ids=None`` means no visibility restriction. Otherwise a
        campaign is returned when its company is in ``full_access_ids``, or
        when its company is in ``public_ids`` and the campaign is ACTIVE with
        PUBLIC access.
        """
        statement = select(Campaign).order_by(Campaign.created_at, Campaign.id)
        if company_id:
            statement = statement.where(Campaign.company_id == company_id)
        if full_access_ids is not None:
            public_clause = and_(
                Campaign.company_id.in_(list(public_ids)),
                Campaign.status == CampaignStatus.ACTIVE.value,
                Campaign.access_type == AccessType.PUBLIC.value,
            )
            statement = statement.where(or_(Campaign.company_id.in_(list(full_access_ids)), public_clause))
        if campaign_type:
            statement = statement.where(Campaign.type == campaign_type)
        if status:
            statement = statement.where(Campaign.status == status)
        if search:
            statement = statement.where(_search_clause([Campaign.name, Campaign.description], search))

        rows, total = self._paginate(statement, page, limit)
        names = self.company_names(r.company_id for r in rows)
        return [_campaign_out(r, names.get(r.company_id)) for r in rows], total

    def company_campaigns(self, company_id: str) -> List[CampaignOut]:
        rows = self.session.exec(
            select(Campaign).where(Campaign.company_id == company_id).order_by(Campaign.created_at, Campaign.id)
        ).all()
        names = self.company_names([company_id])
        return [_campaign_out(r, names.get(company_id)) for r in rows]

    def find_campaign(self, campaign_id: str) -> Optional[CampaignOut]:
        row = self.session.get(Campaign, campaign_id)
        if row is None:
            return None
        return _campaign_out(row, self.company_names([row.company_id]).get(row.company_id))

    def campaign_slug_exists(self, company_id: str, slug: str, exclude_id: Optional[str] = None) -> bool:
        statement = select(Campaign.id).where(Campaign.company_id == company_id, Campaign.slug == slug)
        if exclude_id:
            statement = statement.where(Campaign.id != exclude_id)
        return self.session.exec(statement).first() is not None

    def count_campaigns(self, company_id: str) -> int:
        return self.session.exec(
            select(func.count()).select_from(Campaign).where(Campaign.company_id == company_id)
        ).one()

    def insert_campaign(self, fields: dict) -> CampaignOut:
        fields = dict(fields)
        fields["access_type"] = fields["access_control"]["accessType"]
        row = Campaign(**fields)
        self.session.add(row)
        self._commit()
        self.session.refresh(row)
        return _campaign_out(row, self.company_names([row.company_id]).get(row.company_id))

    def update_campaign(self, campaign_id: str, changes: dict) -> Optional[CampaignOut]:
        row = self.session.get(Campaign, campaign_id)
        if row is None:
            return None
        for key, value in changes.items():
            setattr(row, key, value)
        if "access_control" in changes:
            row.access_type = changes["access_control"]["accessType"]
        row.updated_at = utcnow()
        self.session.add(row)
        self._commit()
        self.session.refresh(row)
        return _campaign_out(row, self.company_names([row.company_id]).get(row.company_id))

    def delete_campaign(self, campaign_id: str) -> bool:
        row = self.session.get(Campaign, campaign_id)
        if row is None:
            return False
        self._delete_rows(delete(Participation).where(Participation.campaign_id == campaign_id))
        self.session.delete(row)
        self._commit()
        return True

    # ----------------- Participation -----------------
    def _participation_row(self, campaign_id: str, wallet_address: str) -> Optional[Participation]:
        return self.session.exec(
            select(Participation).where(
                Participation.campaign_id == campaign_id,
                Participation.wallet_address == wallet_address.lower(),
            )
        ).first()

    def _delete_rows(self, statement):
        self.session.execute(statement.execution_options(synchronize_session="fetch"))

    def find_participation(self, campaign_id: str, wallet_address: str) -> Optional[ParticipationOut]:
        row = self._participation_row(campaign_id, wallet_address)
        return _participation_out(row) if row else None

    def save_participation(self, campaign_id: str, wallet_address: str, changes: dict) -> ParticipationOut:
        row = self._participation_row(campaign_id, wallet_address)
        if row is None:
            row = Participation(campaign_id=campaign_id, wallet_address=wallet_address.lower())
        for key, value in changes.items():
            setattr(row, key, value)
        row.updated_at = utcnow()
        self.session.add(row)
        self._commit()
        self.session.refresh(row)
        return _participation_out(row)

    def redeem_code(self, campaign_id: str, wallet_address: str, access_control: dict, code: str) -> ParticipationOut:
        """Store the bumped code counters and the wallet's redeemed code in one transaction."""
        campaign = self.session.get(Campaign, campaign_id)
        participation = self._participation_row(campaign_id, wallet_address)
        if participation is None:
            participation = Participation(campaign_id=campaign_id, wallet_address=wallet_address.lower())
        now = utcnow()
        campaign.access_control = access_control
        campaign.access_type = access_control["accessType"]
        campaign.updated_at = now
        participation.code_used = code
        participation.updated_at = now
        self.session.add(campaign)
        self.session.add(participation)
        self._commit()
        self.session.refresh(participation)
        return _participation_out(participation)

    def record_mint(self, campaign_id: str, wallet_address: str, token_id: int) -> Tuple[CampaignOut, ParticipationOut]:
        """Bump the campaign and wallet counters in one transaction."""
        campaign = self.session.get(Campaign, campaign_id)
        participation = self._participation_row(campaign_id, wallet_address)
        if participation is None:
            participation = Participation(campaign_id=campaign_id, wallet_address=wallet_address.lower())
        now = utcnow()
        campaign.total_minted += 1
        campaign.updated_at = now
        participation.minted_count += 1
        participation.minted_token_ids = list(participation.minted_token_ids or []) + [token_id]
        participation.last_minted_at = now
        participation.updated_at = now
        self.session.add(campaign)
        self.session.add(participation)
        self._commit()
        self.session.refresh(campaign)
        self.session.refresh(participation)
        return (
            _campaign_out(campaign, self.company_names([campaign.company_id]).get(campaign.company_id)),
            _participation_out(participation),
        )
