"""Mint eligibility.

``evaluate_mint`` checks the rules in a fixed order and stops at the first
one that fails, so the returned reason is always the earliest blocker.
``can_mint`` is the boolean view of the same decision.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .schemas import AccessType, CampaignOut, CampaignStatus


class MintDenial(str, Enum):
    CAMPAIGN_NOT_ACTIVE = "CAMPAIGN_NOT_ACTIVE"
    WALLET_LIMIT_REACHED = "WALLET_LIMIT_REACHED"
    MINT_LIMIT_REACHED = "MINT_LIMIT_REACHED"
    WRONG_NETWORK = "WRONG_NETWORK"
    NOT_ALLOWLISTED = "NOT_ALLOWLISTED"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    CODE_NOT_VERIFIED = "CODE_NOT_VERIFIED"


@dataclass(frozen=True)
class VerificationState:
    """What is known about the caller when deciding eligibility."""
    minted_count: int = 0
    network: Optional[str] = None
    email_verified: bool = False
    code_verified: bool = False


@dataclass(frozen=True)
class MintDecision:
    allowed: bool
    reason: Optional[MintDenial] = None


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    """Addresses compare case-insensitively everywhere (checksum casing is cosmetic)."""
    if not left or not right:
        return False
    return left.lower() == right.lower()


def _networks_match(expected: str, actual: Optional[str]) -> bool:
    return bool(actual) and expected.strip().lower() == actual.strip().lower()


def evaluate_mint(campaign: CampaignOut, wallet_address: str, state: VerificationState) -> MintDecision:
    if campaign.status != CampaignStatus.ACTIVE:
        return MintDecision(False, MintDenial.CAMPAIGN_NOT_ACTIVE)
    if state.minted_count >= campaign.mint_limit_per_wallet:
        return MintDecision(False, MintDenial.WALLET_LIMIT_REACHED)
    if campaign.total_minted >= campaign.mint_limit:
        return MintDecision(False, MintDenial.MINT_LIMIT_REACHED)
    if not _networks_match(campaign.contract_network, state.network):
        return MintDecision(False, MintDenial.WRONG_NETWORK)

    access = campaign.access_control
    if access.access_type == AccessType.ALLOWLIST:
        allowlist = access.allowlist or []
        if not any(same_address(entry, wallet_address) for entry in allowlist):
            return MintDecision(False, MintDenial.NOT_ALLOWLISTED)
    if access.requires_email and not state.email_verified:
        return MintDecision(False, MintDenial.EMAIL_NOT_VERIFIED)
    if access.requires_code and not state.code_verified:
        return MintDecision(False, MintDenial.CODE_NOT_VERIFIED)

    return MintDecision(True)


def can_mint(campaign: CampaignOut, wallet_address: str, state: VerificationState) -> bool:
    return evaluate_mint(campaign, wallet_address, state).allowed
