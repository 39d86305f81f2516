"""Campaign presets and the merge that applies them to a creation payload.

Templates are read-only. ``apply_template`` works on the raw JSON payload
(camelCase keys) before it is validated, so a template can supply required
NFT fields the caller left out.
"""

import copy
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from .models import utcnow
from .schemas import CampaignTemplate, CampaignType, UtcDatetime

_datetime_adapter = TypeAdapter(UtcDatetime)


def _build_templates(today: date) -> List[CampaignTemplate]:
    reveal_on = datetime.combine(today + timedelta(days=7), datetime.min.time())
    return [
        CampaignTemplate(
            id="template-university-tour",
            name="University Tour",
            description="Commemorative NFTs for university tour events",
            type=CampaignType.UNIVERSITY_TOUR,
            nft_config={
                "name": "University Tour NFT",
                "symbol": "UTOUR",
                "description": "Commemorative NFT for attending our university tour",
                "metadataFormat": "ERC721",
                "attributes": [
                    {"traitType": "Event", "value": "University Tour"},
                    {"traitType": "Year", "value": today.year},
                ],
                "revealType": "INSTANT",
                "transferable": True,
                "redeemable": False,
            },
            access_control={"accessType": "PUBLIC", "requiresEmail": True, "requiresCode": False},
            default_duration=30,
        ),
        CampaignTemplate(
            id="template-crypto-conference",
            name="Crypto Conference",
            description="Attendance proof NFTs for crypto conferences",
            type=CampaignType.CRYPTO_CONFERENCE,
            nft_config={
                "name": "Crypto Conference NFT",
                "symbol": "CONF",
                "description": "Proof of attendance for our crypto conference",
                "metadataFormat": "ERC721",
                "attributes": [
                    {"traitType": "Event", "value": "Crypto Conference"},
                    {"traitType": "Edition", "value": str(today.year)},
                ],
                "revealType": "INSTANT",
                "transferable": True,
                "redeemable": True,
            },
            access_control={"accessType": "ALLOWLIST", "requiresEmail": True, "requiresCode": True},
            default_duration=7,
        ),
        CampaignTemplate(
            id="template-anniversary",
            name="Anniversary Celebration",
            description="Commemorative NFTs for company anniversaries",
            type=CampaignType.ANNIVERSARY,
            nft_config={
                "name": "Anniversary Collection NFT",
                "symbol": "ANNIV",
                "description": "Commemorative NFT for our company anniversary",
                "metadataFormat": "ERC721",
                "attributes": [
                    {"traitType": "Event", "value": "Anniversary"},
                    {"traitType": "Year", "value": today.year},
                ],
                "revealType": "DELAYED",
                "revealDate": reveal_on.isoformat(),
                "transferable": True,
                "redeemable": False,
            },
            access_control={"accessType": "PUBLIC", "requiresEmail": False, "requiresCode": False},
            default_duration=14,
        ),
        CampaignTemplate(
            id="template-product-launch",
            name="Product Launch",
            description="NFTs for product launch events",
            type=CampaignType.PRODUCT_LAUNCH,
            nft_config={
                "name": "Product Launch NFT",
                "symbol": "LAUNCH",
                "description": "Early adopter NFT for our product launch",
                "metadataFormat": "ERC721",
                "attributes": [
                    {"traitType": "Product", "value": "New Product"},
                    {"traitType": "Launch Date", "value": today.isoformat()},
                ],
                "revealType": "INSTANT",
                "transferable": True,
                "redeemable": True,
            },
            access_control={"accessType": "PRIVATE", "requiresEmail": True, "requiresCode": True},
            default_duration=30,
        ),
    ]


def get_templates(today: Optional[date] = None) -> List[CampaignTemplate]:
    return _build_templates(today or utcnow().date())


def find_template(template_id: str, today: Optional[date] = None) -> Optional[CampaignTemplate]:
    for template in get_templates(today):
        if template.id == template_id:
            return template
    return None


def _merge_fields(template_values: Dict[str, Any], user_values: Dict[str, Any]) -> Dict[str, Any]:
    # user value wins when present; None counts as absent
    merged = copy.deepcopy(template_values)
    for key, value in user_values.items():
        if value is not None:
            merged[key] = value
    return merged


def _merge_attributes(template_attributes: List[Dict[str, Any]], user_attributes: List[Any]) -> List[Any]:
    user_traits = {attr.get("traitType") for attr in user_attributes if isinstance(attr, dict)}
    kept = [attr for attr in template_attributes if attr.get("traitType") not in user_traits]
    return copy.deepcopy(kept) + list(user_attributes)


def _end_date_from(start: Any, days: int) -> Any:
    try:
        start_at = _datetime_adapter.validate_python(start)
    except ValidationError:
        # left for the schema validator to report
        return None
    end_at = start_at + timedelta(days=days)
    if isinstance(start, (date, datetime)):
        return end_at
    return end_at.isoformat()


def apply_template(template_id: str, campaign_data: Dict[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    """Merge the named template under ``campaign_data``.

    Unknown template ids return the data unchanged. The input mapping is
    never mutated.
    """
    template = find_template(template_id, today)
    if template is None:
        return campaign_data

    data = copy.deepcopy(campaign_data)

    user_nft = data.get("nftConfig")
    if user_nft is None or isinstance(user_nft, dict):
        user_nft = user_nft or {}
        template_nft = dict(template.nft_config)
        template_attributes = template_nft.pop("attributes", [])
        user_attributes = user_nft.get("attributes")
        merged_nft = _merge_fields(template_nft, user_nft)
        if user_attributes is None or isinstance(user_attributes, list):
            merged_nft["attributes"] = _merge_attributes(template_attributes, user_attributes or [])
        data["nftConfig"] = merged_nft

    user_access = data.get("accessControl")
    if user_access is None or isinstance(user_access, dict):
        data["accessControl"] = _merge_fields(template.access_control, user_access or {})

    data["type"] = template.type.value

    if template.default_duration and not data.get("endDate") and data.get("startDate"):
        end_date = _end_date_from(data["startDate"], template.default_duration)
        if end_date is not None:
            data["endDate"] = end_date

    return data
