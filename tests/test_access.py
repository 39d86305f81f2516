from datetime import datetime

import pytest

from crefy.access import MintDenial, VerificationState, can_mint, evaluate_mint, same_address
from crefy.schemas import CampaignOut

from conftest import CONTRACT_ADDRESS, OWNER_WALLET, STRANGER_WALLET


def make_campaign(access=None, **overrides):
    data = {
        "id": "camp-1",
        "companyId": "co-1",
        "name": "Spring Tour",
        "slug": "spring-tour",
        "description": "Campus tour collectibles",
        "type": "UNIVERSITY_TOUR",
        "status": "ACTIVE",
        "startDate": datetime(2025, 1, 1),
        "contractAddress": CONTRACT_ADDRESS,
        "contractNetwork": "sepolia",
        "nftConfig": {
            "name": "Spring Tour NFT",
            "symbol": "SPRING",
            "description": "Thanks for visiting",
            "metadataFormat": "ERC721",
            "revealType": "INSTANT",
        },
        "accessControl": access or {"accessType": "PUBLIC"},
        "totalMinted": 0,
        "mintLimit": 10,
        "mintLimitPerWallet": 2,
        "createdAt": datetime(2025, 1, 1),
        "updatedAt": datetime(2025, 1, 1),
    }
    data.update(overrides)
    return CampaignOut.model_validate(data)


ON_SEPOLIA = VerificationState(network="sepolia")


def test_public_campaign_allows_any_wallet():
    decision = evaluate_mint(make_campaign(), STRANGER_WALLET, ON_SEPOLIA)
    assert decision.allowed
    assert decision.reason is None


def test_empty_allowlist_denies_everyone():
    campaign = make_campaign({"accessType": "ALLOWLIST", "allowlist": []})
    for wallet in (OWNER_WALLET, STRANGER_WALLET):
        assert evaluate_mint(campaign, wallet, ON_SEPOLIA).reason == MintDenial.NOT_ALLOWLISTED


def test_allowlist_match_is_case_insensitive():
    mixed = "0xAbCdEf0000000000000000000000000000000001"
    campaign = make_campaign({"accessType": "ALLOWLIST", "allowlist": [mixed]})
    assert can_mint(campaign, mixed.lower(), ON_SEPOLIA)
    assert not can_mint(campaign, STRANGER_WALLET, ON_SEPOLIA)


@pytest.mark.parametrize("campaign_kwargs,state,reason", [
    ({"status": "PAUSED"}, ON_SEPOLIA, MintDenial.CAMPAIGN_NOT_ACTIVE),
    ({}, VerificationState(minted_count=2, network="sepolia"), MintDenial.WALLET_LIMIT_REACHED),
    ({"totalMinted": 10}, ON_SEPOLIA, MintDenial.MINT_LIMIT_REACHED),
    ({}, VerificationState(network="mainnet"), MintDenial.WRONG_NETWORK),
    ({}, VerificationState(), MintDenial.WRONG_NETWORK),
])
def test_denial_reasons(campaign_kwargs, state, reason):
    decision = evaluate_mint(make_campaign(**campaign_kwargs), OWNER_WALLET, state)
    assert not decision.allowed
    assert decision.reason == reason


def test_first_failing_rule_is_reported():
    campaign = make_campaign({"accessType": "ALLOWLIST", "allowlist": []}, status="DRAFT", totalMinted=10)
    state = VerificationState(minted_count=5, network="mainnet")
    assert evaluate_mint(campaign, OWNER_WALLET, state).reason == MintDenial.CAMPAIGN_NOT_ACTIVE


def test_network_comparison_ignores_case():
    assert can_mint(make_campaign(), OWNER_WALLET, VerificationState(network="Sepolia"))


def test_email_and_code_requirements():
    campaign = make_campaign({"accessType": "PRIVATE", "requiresEmail": True, "requiresCode": True})
    assert evaluate_mint(campaign, OWNER_WALLET, ON_SEPOLIA).reason == MintDenial.EMAIL_NOT_VERIFIED

    email_only = VerificationState(network="sepolia", email_verified=True)
    assert evaluate_mint(campaign, OWNER_WALLET, email_only).reason == MintDenial.CODE_NOT_VERIFIED

    both = VerificationState(network="sepolia", email_verified=True, code_verified=True)
    assert can_mint(campaign, OWNER_WALLET, both)


def test_same_address():
    assert same_address("0xABC", "0xabc")
    assert not same_address("0xabc", None)
    assert not same_address("", "")
