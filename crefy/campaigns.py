# crefy/campaigns.py
import logging
from typing import Optional, Set, Union

from .access import VerificationState, evaluate_mint
from .auth import Caller, has_company_permission
from .companies import pagination
from .errors import (
    DomainError,
    FieldError,
    conflict,
    forbidden,
    guarded,
    not_found,
    unauthorized,
    validation_error,
)
from .schemas import (
    ADDRESS_RE,
    AccessType,
    CampaignCreate,
    CampaignList,
    CampaignOut,
    CampaignStatus,
    CampaignType,
    CampaignUpdate,
    CodeVerification,
    EmailVerification,
    MintEligibility,
    MintRecordIn,
    MintRecordOut,
    OperationResult,
    ParticipationOut,
    TemplateList,
    validate_payload,
)
from .slugs import generate_slug, is_campaign_slug_unique
from .store import StoreConflict, TenantStore, tenant_scope
from .templates import apply_template, get_templates

logger = logging.getLogger(__name__)

INVALID_CAMPAIGN = "Invalid campaign data"
SLUG_TAKEN = "Campaign slug already exists for this company"
# keys of a stored campaign that are not part of the writable payload
READ_ONLY_KEYS = ("id", "companyName", "totalMinted", "createdAt", "updatedAt")


def _enum_value(enum_cls, value: Optional[str]) -> Optional[str]:
    # unknown filter values are ignored rather than rejected
    if value and value in {member.value for member in enum_cls}:
        return value
    return None


def _redacted(campaign: CampaignOut) -> CampaignOut:
    """Hide redemption codes and the allowlist from callers outside the company."""
    access = campaign.access_control.model_copy(update={"codes": None, "allowlist": None})
    return campaign.model_copy(update={"access_control": access})


def _publicly_visible(company, campaign: CampaignOut) -> bool:
    return (
        company.settings.allow_public_campaigns
        and campaign.status == CampaignStatus.ACTIVE
        and campaign.access_control.access_type == AccessType.PUBLIC
    )


def _campaign_fields(data: CampaignCreate) -> dict:
    return {
        "name": data.name,
        "slug": data.slug,
        "description": data.description,
        "type": data.type.value,
        "status": data.status.value,
        "start_date": data.start_date,
        "end_date": data.end_date,
        "contract_address": data.contract_address,
        "contract_network": data.contract_network,
        "contract_abi": data.contract_abi,
        "nft_config": data.nft_config.to_json_dict(),
        "access_control": data.access_control.to_json_dict(),
        "featured_image": data.featured_image,
        "banner_image": data.banner_image,
        "gallery_images": data.gallery_images,
        "mint_limit": data.mint_limit,
        "mint_limit_per_wallet": data.mint_limit_per_wallet,
    }


def _verification_state(participation: Optional[ParticipationOut], network: Optional[str]) -> VerificationState:
    if participation is None:
        return VerificationState(network=network)
    return VerificationState(
        minted_count=participation.minted_count,
        network=network,
        email_verified=participation.email_verified,
        code_verified=bool(participation.code_used),
    )


def _require_wallet(caller: Optional[Caller]) -> Optional[DomainError]:
    if caller is None or not caller.wallet_address:
        return unauthorized("Wallet authentication required")
    return None


# ----------------- Listing -----------------
@guarded("fetching campaigns")
def list_campaigns(
    store: TenantStore,
    caller: Optional[Caller],
    company_id: Optional[str] = None,
    campaign_type: Optional[str] = None,
    status: Optional[str] = None,
    search: str = "",
    page: int = 1,
    limit: int = 10,
) -> CampaignList:
    full_access_ids: Optional[Set[str]] = None
    public_ids: Set[str] = set()
    permitted: Set[str] = set()

    if company_id:
        company = store.find_company(company_id)
        if company is None:
            return CampaignList(campaigns=[], pagination=pagination(0, page, limit))
        if has_company_permission(caller, company):
            permitted = {company.id}
        elif company.settings.allow_public_campaigns:
            full_access_ids, public_ids = set(), {company.id}
        else:
            return CampaignList(campaigns=[], pagination=pagination(0, page, limit))
    elif caller is None or not caller.is_admin:
        companies = store.all_companies()
        public_ids = {c.id for c in companies if c.settings.allow_public_campaigns}
        permitted = full_access_ids = {c.id for c in companies if has_company_permission(caller, c)}

    campaigns, total = store.find_campaigns(
        company_id=company_id,
        full_access_ids=full_access_ids,
        public_ids=public_ids,
        campaign_type=_enum_value(CampaignType, campaign_type),
        status=_enum_value(CampaignStatus, status),
        search=search,
        page=page,
        limit=limit,
    )
    if caller is None or not caller.is_admin:
        campaigns = [c if c.company_id in permitted else _redacted(c) for c in campaigns]
    return CampaignList(campaigns=campaigns, pagination=pagination(total, page, limit))


@guarded("fetching templates")
def list_templates() -> TemplateList:
    return TemplateList(templates=get_templates())


# ----------------- Create -----------------
@guarded("creating campaign")
def create_campaign(store: TenantStore, payload, caller: Optional[Caller]) -> Union[CampaignOut, DomainError]:
    campaign_data = payload
    if isinstance(payload, dict) and isinstance(payload.get("templateId"), str):
        campaign_data = apply_template(payload["templateId"], payload)

    data, errors = validate_payload(CampaignCreate, campaign_data)
    if errors:
        return validation_error(INVALID_CAMPAIGN, errors)

    company = store.find_company(data.company_id)
    if company is None:
        return not_found("Company not found")
    if not has_company_permission(caller, company):
        return unauthorized("Unauthorized to create campaigns for this company")

    slug = data.slug or generate_slug(data.name)
    if not slug:
        return validation_error(INVALID_CAMPAIGN, [FieldError("slug", "Could not derive a slug from the name")])

    with store.locked(tenant_scope(company.id)):
        # slug check, ceiling check and insert form one critical section per company
        company = store.find_company(company.id)
        if company is None:
            return not_found("Company not found")
        if not is_campaign_slug_unique(store, company.id, slug):
            return conflict(SLUG_TAKEN)
        ceiling = company.settings.max_campaigns_allowed
        if store.count_campaigns(company.id) >= ceiling:
            return forbidden(f"Maximum number of campaigns ({ceiling}) reached for this company")

        fields = _campaign_fields(data)
        fields.update(
            company_id=company.id,
            slug=slug,
            total_minted=0,
            mint_limit_per_wallet=data.mint_limit_per_wallet or company.settings.default_mint_limit,
        )
        try:
            campaign = store.insert_campaign(fields)
        except StoreConflict:
            return conflict(SLUG_TAKEN)

    logger.info("Created campaign %s (%s) for company %s", campaign.id, campaign.slug, company.id)
    return campaign


# ----------------- Read -----------------
@guarded("fetching campaign")
def get_campaign(store: TenantStore, campaign_id: str, caller: Optional[Caller]) -> Union[CampaignOut, DomainError]:
    campaign = store.find_campaign(campaign_id)
    if campaign is None:
        return not_found("Campaign not found")
    company = store.find_company(campaign.company_id)
    if has_company_permission(caller, company):
        return campaign
    if not _publicly_visible(company, campaign):
        return not_found("Campaign not found")
    return _redacted(campaign)


# ----------------- Update -----------------
@guarded("updating campaign")
def update_campaign(store: TenantStore, campaign_id: str, payload, caller: Optional[Caller]) -> Union[CampaignOut, DomainError]:
    campaign = store.find_campaign(campaign_id)
    if campaign is None:
        return not_found("Campaign not found")
    if not has_company_permission(caller, store.find_company(campaign.company_id)):
        return unauthorized("Unauthorized to update this campaign")

    update, errors = validate_payload(CampaignUpdate, payload)
    if errors:
        return validation_error(INVALID_CAMPAIGN, errors)

    with store.locked(tenant_scope(campaign.company_id)):
        campaign = store.find_campaign(campaign_id)
        if campaign is None:
            return not_found("Campaign not found")

        merged = campaign.to_json_dict()
        for key in READ_ONLY_KEYS:
            merged.pop(key, None)
        # explicit nulls clear optional fields; required ones fail revalidation
        for name, value in update.model_dump(exclude_unset=True).items():
            alias = CampaignUpdate.model_fields[name].alias or name
            if name in ("nft_config", "access_control") and value is not None:
                merged[alias] = {**merged[alias], **value}
            else:
                merged[alias] = value

        data, errors = validate_payload(CampaignCreate, merged)
        if errors:
            return validation_error(INVALID_CAMPAIGN, errors)
        if data.mint_limit < campaign.total_minted:
            return validation_error(INVALID_CAMPAIGN, [
                FieldError("mintLimit", f"Mint limit cannot be lower than the {campaign.total_minted} tokens already minted"),
            ])
        if data.slug != campaign.slug and not is_campaign_slug_unique(store, campaign.company_id, data.slug, exclude_id=campaign.id):
            return conflict(SLUG_TAKEN)

        try:
            updated = store.update_campaign(campaign.id, _campaign_fields(data))
        except StoreConflict:
            return conflict(SLUG_TAKEN)

    if updated is None:
        return not_found("Campaign not found")
    logger.info("Updated campaign %s", updated.id)
    return updated


# ----------------- Delete -----------------
@guarded("deleting campaign")
def delete_campaign(store: TenantStore, campaign_id: str, caller: Optional[Caller]) -> Union[OperationResult, DomainError]:
    campaign = store.find_campaign(campaign_id)
    if campaign is None:
        return not_found("Campaign not found")
    if not has_company_permission(caller, store.find_company(campaign.company_id)):
        return unauthorized("Unauthorized to delete this campaign")

    with store.locked(tenant_scope(campaign.company_id)):
        store.delete_campaign(campaign.id)
    logger.info("Deleted campaign %s", campaign.id)
    return OperationResult(message="Campaign deleted successfully")


# ----------------- Participation -----------------
@guarded("checking mint eligibility")
def check_eligibility(store: TenantStore, campaign_id: str, caller: Optional[Caller], network: Optional[str] = None) -> Union[MintEligibility, DomainError]:
    denied = _require_wallet(caller)
    if denied:
        return denied
    campaign = store.find_campaign(campaign_id)
    if campaign is None:
        return not_found("Campaign not found")

    participation = store.find_participation(campaign.id, caller.wallet_address)
    decision = evaluate_mint(campaign, caller.wallet_address, _verification_state(participation, network))
    return MintEligibility(allowed=decision.allowed, reason=decision.reason.value if decision.reason else None)


@guarded("verifying campaign code")
def verify_code(store: TenantStore, campaign_id: str, payload, caller: Optional[Caller]) -> Union[ParticipationOut, DomainError]:
    denied = _require_wallet(caller)
    if denied:
        return denied
    data, errors = validate_payload(CodeVerification, payload)
    if errors:
        return validation_error("Invalid code", errors)
    campaign = store.find_campaign(campaign_id)
    if campaign is None:
        return not_found("Campaign not found")

    wallet = caller.wallet_address
    with store.locked(tenant_scope(campaign.company_id)):
        campaign = store.find_campaign(campaign_id)
        if campaign is None:
            return not_found("Campaign not found")
        access = campaign.access_control
        if not access.requires_code:
            return validation_error("Campaign does not require a code")

        participation = store.find_participation(campaign.id, wallet)
        if participation is not None and participation.code_used:
            return participation

        entry = next((c for c in access.codes or [] if c.code == data.code), None)
        if entry is None or not entry.is_active:
            return validation_error("Invalid code")
        cap = entry.max_uses
        if access.max_uses_per_code:
            cap = min(cap, access.max_uses_per_code)
        if entry.uses >= cap:
            return validation_error("Code has no remaining uses")

        codes = [c.model_copy(update={"uses": c.uses + 1}) if c.code == entry.code else c for c in access.codes]
        try:
            participation = store.redeem_code(
                campaign.id, wallet, access.model_copy(update={"codes": codes}).to_json_dict(), entry.code,
            )
        except StoreConflict:
            return conflict("Participation changed concurrently, retry the verification")

    logger.info("Wallet %s redeemed code on campaign %s", wallet, campaign.id)
    return participation


@guarded("verifying participant email")
def verify_participant_email(store: TenantStore, campaign_id: str, wallet_address: str, payload, caller: Optional[Caller]) -> Union[ParticipationOut, DomainError]:
    campaign = store.find_campaign(campaign_id)
    if campaign is None:
        return not_found("Campaign not found")
    if not has_company_permission(caller, store.find_company(campaign.company_id)):
        return unauthorized("Unauthorized to verify participants of this campaign")
    if not ADDRESS_RE.match(wallet_address):
        return validation_error("Invalid wallet address", [FieldError("walletAddress", "Invalid Ethereum address")])
    data, errors = validate_payload(EmailVerification, payload)
    if errors:
        return validation_error("Invalid email", errors)

    with store.locked(tenant_scope(campaign.company_id)):
        return store.save_participation(campaign.id, wallet_address, {"email": data.email, "email_verified": True})


@guarded("recording mint")
def record_mint(store: TenantStore, campaign_id: str, payload, caller: Optional[Caller]) -> Union[MintRecordOut, DomainError]:
    denied = _require_wallet(caller)
    if denied:
        return denied
    data, errors = validate_payload(MintRecordIn, payload)
    if errors:
        return validation_error("Invalid mint data", errors)
    campaign = store.find_campaign(campaign_id)
    if campaign is None:
        return not_found("Campaign not found")

    wallet = caller.wallet_address
    with store.locked(tenant_scope(campaign.company_id)):
        # re-evaluated under the lock so concurrent mints cannot exceed the limits
        campaign = store.find_campaign(campaign_id)
        if campaign is None:
            return not_found("Campaign not found")
        participation = store.find_participation(campaign.id, wallet)
        decision = evaluate_mint(campaign, wallet, _verification_state(participation, data.network))
        if not decision.allowed:
            return forbidden(f"Mint not allowed: {decision.reason.value}")
        campaign, participation = store.record_mint(campaign.id, wallet, data.token_id)

    logger.info("Recorded mint of token %s on campaign %s for %s", data.token_id, campaign.id, wallet)
    return MintRecordOut(campaign_id=campaign.id, total_minted=campaign.total_minted, participation=participation)
