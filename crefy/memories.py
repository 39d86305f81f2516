# crefy/memories.py
"""QR-code collectibles ("memories") a wallet creates, others mint and the
creator later redeems. Minting is simulated: the token id is a millisecond
timestamp and no transaction is sent."""
import logging
import time
from typing import List, Union

from sqlalchemy import func
from sqlmodel import Session, select

from .errors import DomainError, guarded, not_found, validation_error
from .models import Memory, UserMemory, utcnow
from .schemas import (
    CreatedMemory,
    MemoryCreate,
    MemoryDetail,
    MemoryMint,
    MemoryMinter,
    MemoryMintOut,
    MemoryOut,
    MemoryRedeem,
    MemoryRedeemOut,
    MintedMemory,
    OwnedMemory,
    validate_payload,
)
from .store import scope_lock

logger = logging.getLogger(__name__)

QR_PREFIX = "memory:"


def _memory_from_qr(session: Session, qr_code: str):
    raw_id = qr_code[len(QR_PREFIX):]
    if not raw_id.isdigit():
        return None
    return session.get(Memory, int(raw_id))


# ----------------- Create -----------------
@guarded("creating memory")
def create_memory(session: Session, wallet: str, payload) -> Union[MemoryOut, DomainError]:
    data, errors = validate_payload(MemoryCreate, payload)
    if errors:
        return validation_error("Invalid memory data", errors)
    if not data.title:
        return validation_error("Title is required")

    memory = Memory(
        creator_wallet=wallet.lower(),
        title=data.title,
        description=data.description,
        image_url=data.image_url,
        is_redeemable=data.is_redeemable,
        max_mints=data.max_mints or 1,
    )
    session.add(memory)
    session.commit()
    session.refresh(memory)

    # the QR payload needs the generated id
    memory.qr_code = f"{QR_PREFIX}{memory.id}"
    session.add(memory)
    session.commit()
    session.refresh(memory)
    logger.info("Memory %s created by %s", memory.id, memory.creator_wallet)
    return MemoryOut.model_validate(memory.model_dump())


# ----------------- Mint -----------------
@guarded("minting memory")
def mint_memory(session: Session, wallet: str, payload) -> Union[MemoryMintOut, DomainError]:
    data, errors = validate_payload(MemoryMint, payload)
    if errors:
        return validation_error("Invalid mint request", errors)
    if not data.qr_code:
        return validation_error("QR code is required")
    if not data.qr_code.startswith(QR_PREFIX):
        return validation_error("Invalid memory QR code")

    owner = wallet.lower()
    memory = _memory_from_qr(session, data.qr_code)
    if memory is None:
        return not_found("Memory not found")

    with scope_lock(f"memory:{memory.id}"):
        session.refresh(memory)
        already = session.exec(
            select(UserMemory).where(UserMemory.memory_id == memory.id, UserMemory.owner_wallet == owner)
        ).first()
        if already:
            return validation_error("Already minted this memory")
        if memory.status != "active":
            return validation_error("Memory has expired")
        if memory.current_mints >= memory.max_mints:
            return validation_error("Memory has reached its mint limit")

        token_id = int(time.time() * 1000)
        record = UserMemory(
            memory_id=memory.id,
            owner_wallet=owner,
            token_id=token_id,
            tx_hash=f"simulated-tx-{token_id}",
        )
        memory.current_mints += 1
        session.add(record)
        session.add(memory)
        session.commit()
        session.refresh(memory)

    logger.info("Memory %s minted by %s as token %s", memory.id, owner, token_id)
    return MemoryMintOut(memory=MintedMemory(id=memory.id, title=memory.title, image_url=memory.image_url, token_id=token_id))


# ----------------- Redeem -----------------
@guarded("redeeming memory")
def redeem_memory(session: Session, creator_wallet: str, memory_id: int, payload) -> Union[MemoryRedeemOut, DomainError]:
    data, errors = validate_payload(MemoryRedeem, payload)
    if errors:
        return validation_error("Invalid redeem request", errors)

    memory = session.exec(
        select(Memory).where(Memory.id == memory_id, Memory.creator_wallet == creator_wallet.lower())
    ).first()
    if memory is None:
        return not_found("Memory not found or not owned by you")
    if not memory.is_redeemable:
        return validation_error("Memory is not redeemable")

    record = session.exec(
        select(UserMemory).where(
            UserMemory.memory_id == memory_id,
            UserMemory.owner_wallet == data.minter_wallet.lower(),
            UserMemory.status == "minted",
        )
    ).first()
    if record is None:
        return validation_error("No mint record found or already redeemed")

    record.status = "redeemed"
    record.redeemed_at = utcnow()
    session.add(record)
    session.commit()
    logger.info("Memory %s redeemed for %s", memory_id, record.owner_wallet)
    return MemoryRedeemOut(memory_id=memory_id, status=record.status)


# ----------------- Queries -----------------
@guarded("fetching user memories")
def owned_memories(session: Session, wallet: str) -> List[OwnedMemory]:
    rows = session.exec(
        select(UserMemory, Memory)
        .where(UserMemory.memory_id == Memory.id, UserMemory.owner_wallet == wallet.lower())
        .order_by(UserMemory.minted_at.desc())
    ).all()
    return [
        OwnedMemory(
            id=memory.id,
            title=memory.title,
            description=memory.description,
            image_url=memory.image_url,
            status=record.status,
            minted_at=record.minted_at,
            redeemed_at=record.redeemed_at,
        )
        for record, memory in rows
    ]


@guarded("fetching created memories")
def created_memories(session: Session, wallet: str) -> List[CreatedMemory]:
    memories = session.exec(
        select(Memory).where(Memory.creator_wallet == wallet.lower()).order_by(Memory.created_at.desc())
    ).all()
    stats = {}
    if memories:
        counts = session.exec(
            select(UserMemory.memory_id, UserMemory.status, func.count())
            .where(UserMemory.memory_id.in_([m.id for m in memories]))
            .group_by(UserMemory.memory_id, UserMemory.status)
        ).all()
        for memory_id, status, count in counts:
            stats.setdefault(memory_id, {})[status] = count
    return [CreatedMemory(**m.model_dump(), stats=stats.get(m.id, {})) for m in memories]


@guarded("fetching memory")
def memory_detail(session: Session, wallet: str, memory_id: int) -> Union[MemoryDetail, DomainError]:
    memory = session.get(Memory, memory_id)
    if memory is None:
        return not_found("Memory not found")
    record = session.exec(
        select(UserMemory).where(UserMemory.memory_id == memory_id, UserMemory.owner_wallet == wallet.lower())
    ).first()
    return MemoryDetail(**memory.model_dump(), user_status=record.status if record else None)


@guarded("fetching memory minters")
def memory_minters(session: Session, creator_wallet: str, memory_id: int) -> Union[List[MemoryMinter], DomainError]:
    memory = session.exec(
        select(Memory).where(Memory.id == memory_id, Memory.creator_wallet == creator_wallet.lower())
    ).first()
    if memory is None:
        return not_found("Memory not found or not owned by you")
    records = session.exec(
        select(UserMemory).where(UserMemory.memory_id == memory_id).order_by(UserMemory.minted_at.desc())
    ).all()
    return [MemoryMinter.model_validate(r.model_dump()) for r in records]
