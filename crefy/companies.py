# crefy/companies.py
import logging
import math
from typing import Optional, Union

from .auth import Caller, has_company_permission
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
    AccessType,
    CampaignStatus,
    CompanyCreate,
    CompanyDetail,
    CompanyList,
    CompanyOut,
    CompanySettings,
    CompanyUpdate,
    OperationResult,
    Pagination,
    PublicBranding,
    PublicCampaignOut,
    PublicCompanyDetail,
    PublicCompanyOut,
    validate_payload,
)
from .slugs import generate_slug, is_company_slug_unique
from .store import COMPANIES_SCOPE, StoreConflict, TenantStore, tenant_scope

logger = logging.getLogger(__name__)

INVALID_COMPANY = "Invalid company data"
SCALAR_FIELDS = ("name", "description", "logo", "website", "contact_email")


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def pagination(total: int, page: int, limit: int) -> Pagination:
    return Pagination(total=total, page=page, limit=limit, total_pages=page_count(total, limit))


def public_view(company: CompanyOut, campaigns) -> PublicCompanyDetail:
    """Reduced company view for callers outside the company."""
    branding = company.branding
    listed = [
        PublicCampaignOut.model_validate(c.model_dump())
        for c in campaigns
        if c.status == CampaignStatus.ACTIVE and c.access_control.access_type == AccessType.PUBLIC
    ]
    return PublicCompanyDetail(
        company=PublicCompanyOut(
            id=company.id,
            name=company.name,
            slug=company.slug,
            description=company.description,
            logo=company.logo,
            website=company.website,
            branding=PublicBranding(
                primary_color=branding.primary_color,
                secondary_color=branding.secondary_color,
                banner_image=branding.banner_image,
                logo_image=branding.logo_image,
            ),
        ),
        campaigns=listed,
    )


# ----------------- Listing -----------------
@guarded("fetching companies")
def list_companies(store: TenantStore, search: str = "", page: int = 1, limit: int = 10) -> CompanyList:
    companies, total = store.find_companies(search=search, page=page, limit=limit)
    return CompanyList(companies=companies, pagination=pagination(total, page, limit))


# ----------------- Create -----------------
@guarded("creating company")
def create_company(store: TenantStore, payload) -> Union[CompanyOut, DomainError]:
    data, errors = validate_payload(CompanyCreate, payload)
    if errors:
        return validation_error(INVALID_COMPANY, errors)

    slug = data.slug or generate_slug(data.name)
    if not slug:
        return validation_error(INVALID_COMPANY, [FieldError("slug", "Could not derive a slug from the name")])

    with store.locked(COMPANIES_SCOPE):
        if not is_company_slug_unique(store, slug):
            return conflict("Company slug already exists")
        try:
            company = store.insert_company({
                "name": data.name,
                "slug": slug,
                "description": data.description or "",
                "logo": data.logo,
                "website": data.website,
                "branding": data.branding.to_json_dict(),
                "admin_address": data.admin_address,
                "contact_email": data.contact_email,
                "settings": data.settings.to_json_dict(),
            })
        except StoreConflict:
            return conflict("Company slug already exists")

    logger.info("Created company %s (%s)", company.id, company.slug)
    return company


# ----------------- Read -----------------
@guarded("fetching company")
def get_company(store: TenantStore, slug: str, caller: Optional[Caller]) -> Union[CompanyDetail, PublicCompanyDetail, DomainError]:
    company = store.find_company_by_slug(slug)
    if company is None:
        return not_found("Company not found")

    campaigns = store.company_campaigns(company.id)
    if has_company_permission(caller, company):
        return CompanyDetail(company=company, campaigns=campaigns)
    if not company.settings.allow_public_campaigns:
        return forbidden("Company not publicly accessible")
    return public_view(company, campaigns)


# ----------------- Update -----------------
@guarded("updating company")
def update_company(store: TenantStore, slug: str, payload, caller: Optional[Caller]) -> Union[CompanyOut, DomainError]:
    company = store.find_company_by_slug(slug)
    if company is None:
        return not_found("Company not found")
    if not has_company_permission(caller, company):
        return unauthorized("Unauthorized to update this company")

    data, errors = validate_payload(CompanyUpdate, payload)
    if errors:
        return validation_error(INVALID_COMPANY, errors)

    with store.locked(tenant_scope(company.id)):
        company = store.find_company(company.id)
        if company is None:
            return not_found("Company not found")

        # an explicit null clears a field, an omitted one is left alone
        changes = {}
        for name in SCALAR_FIELDS:
            if name in data.model_fields_set:
                changes[name] = getattr(data, name)
        if "name" in changes and changes["name"] is None:
            return validation_error(INVALID_COMPANY, [FieldError("name", "Name cannot be cleared")])
        if "description" in changes and changes["description"] is None:
            changes["description"] = ""

        # nested objects are merged key by key onto the stored values
        if data.branding is not None:
            changes["branding"] = {
                **company.branding.to_json_dict(),
                **data.branding.to_json_dict(exclude_unset=True),
            }
        if data.settings is not None:
            settings, errors = validate_payload(CompanySettings, {
                **company.settings.to_json_dict(),
                **data.settings.to_json_dict(exclude_unset=True),
            })
            if errors:
                return validation_error(INVALID_COMPANY, [
                    FieldError(f"settings.{e.field}", e.message) for e in errors
                ])
            changes["settings"] = settings.to_json_dict()
        updated = store.update_company(company.id, changes)

    if updated is None:
        return not_found("Company not found")
    logger.info("Updated company %s: %s", updated.id, sorted(changes))
    return updated


# ----------------- Delete -----------------
@guarded("deleting company")
def delete_company(store: TenantStore, slug: str, caller: Optional[Caller]) -> Union[OperationResult, DomainError]:
    company = store.find_company_by_slug(slug)
    if company is None:
        return not_found("Company not found")
    if caller is None or not caller.is_admin:
        return unauthorized("Unauthorized - Admin access required")

    with store.locked(tenant_scope(company.id)):
        store.delete_company(company.id)
    return OperationResult(message="Company deleted successfully")

