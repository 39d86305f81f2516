# crefy/models.py
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def datetime_column(nullable: bool = False) -> Column:
    # plain DateTime so naive UTC values bind as-is
    return Column(DateTime(timezone=False), nullable=nullable)


def new_id() -> str:
    return uuid.uuid4().hex


class Company(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    slug: str = Field(index=True, unique=True)
    description: str = ""
    logo: Optional[str] = None
    website: Optional[str] = None
    branding: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    admin_address: str
    contact_email: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())


class Campaign(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("company_id", "slug", name="uq_campaign_company_slug"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    company_id: str = Field(foreign_key="company.id", index=True)
    name: str
    slug: str = Field(index=True)
    description: str
    type: str = Field(index=True)
    status: str = Field(index=True)
    start_date: datetime = Field(sa_column=datetime_column())
    end_date: Optional[datetime] = Field(default=None, sa_column=datetime_column(nullable=True))

    contract_address: str
    contract_network: str
    contract_abi: Optional[Any] = Field(default=None, sa_column=Column(JSON))

    nft_config: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    access_control: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    # mirror of access_control["accessType"] so visibility can be filtered in SQL
    access_type: str = Field(index=True)

    featured_image: Optional[str] = None
    banner_image: Optional[str] = None
    gallery_images: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))

    total_minted: int = 0
    mint_limit: int
    mint_limit_per_wallet: int
    created_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())


class Participation(SQLModel, table=True):
    """
    One row per campaign per wallet. Holds the verification state and mint
    counters the access control evaluator reads.
    """
    __table_args__ = (UniqueConstraint("campaign_id", "wallet_address", name="uq_participation_wallet"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    campaign_id: str = Field(foreign_key="campaign.id", index=True)
    wallet_address: str = Field(index=True)  # stored lowercased
    minted_count: int = 0
    minted_token_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    last_minted_at: Optional[datetime] = Field(default=None, sa_column=datetime_column(nullable=True))
    email: Optional[str] = None
    email_verified: bool = False
    code_used: Optional[str] = None
    joined_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())


class AdminUser(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())


class WalletUser(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    wallet_address: str = Field(index=True, unique=True)
    username: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())


class Memory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    creator_wallet: str = Field(index=True)
    title: str
    description: Optional[str] = None
    qr_code: Optional[str] = Field(default=None, unique=True)
    image_url: Optional[str] = None
    is_redeemable: bool = True
    max_mints: int = 1
    current_mints: int = 0
    status: str = "active"  # active | expired
    created_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())


class UserMemory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    memory_id: int = Field(foreign_key="memory.id", index=True)
    owner_wallet: str = Field(index=True)
    token_id: int
    status: str = "minted"  # minted | redeemed | expired
    tx_hash: str
    minted_at: datetime = Field(default_factory=utcnow, sa_column=datetime_column())
    redeemed_at: Optional[datetime] = Field(default=None, sa_column=datetime_column(nullable=True))
