# crefy/schemas.py
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Type, TypeVar, Union

from pydantic import (
    AfterValidator,
    AnyUrl,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .errors import FieldError

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
HEX_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
SLUG_PATTERN = r"^[a-z0-9-]+$"

_url_adapter = TypeAdapter(AnyUrl)

# ----------------------------
# Field types
# ----------------------------

def _blank_to_none(value):
    # an empty media field means "not set", not "invalid URL"
    if value == "":
        return None
    return value

def _check_url(value):
    if value is None:
        return value
    try:
        _url_adapter.validate_python(value)
    except ValidationError:
        raise ValueError("Invalid URL")
    return value

def _check_address(value):
    if not ADDRESS_RE.match(value):
        raise ValueError("Invalid Ethereum address")
    return value

def _check_color(value):
    if value is not None and not HEX_COLOR_RE.match(value):
        raise ValueError("Invalid color hex code")
    return value

def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

Url = Annotated[str, AfterValidator(_check_url)]
OptionalUrl = Annotated[Optional[str], BeforeValidator(_blank_to_none), AfterValidator(_check_url)]
Address = Annotated[str, AfterValidator(_check_address)]
HexColor = Annotated[Optional[str], AfterValidator(_check_color)]
PositiveCount = Annotated[int, Field(strict=True, gt=0)]
UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self, **kwargs) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", **kwargs)

# ----------------------------
# Enumerations
# ----------------------------

class CampaignType(str, Enum):
    UNIVERSITY_TOUR = "UNIVERSITY_TOUR"
    CRYPTO_CONFERENCE = "CRYPTO_CONFERENCE"
    ANNIVERSARY = "ANNIVERSARY"
    PRODUCT_LAUNCH = "PRODUCT_LAUNCH"
    COMMUNITY_REWARD = "COMMUNITY_REWARD"
    LOYALTY_PROGRAM = "LOYALTY_PROGRAM"
    LIMITED_EDITION = "LIMITED_EDITION"
    CUSTOM = "CUSTOM"

class CampaignStatus(str, Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

class MetadataFormat(str, Enum):
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"
    CUSTOM = "CUSTOM"

class RevealType(str, Enum):
    INSTANT = "INSTANT"
    DELAYED = "DELAYED"

class AccessType(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"
    ALLOWLIST = "ALLOWLIST"

# ----------------------------
# NFT configuration
# ----------------------------

class NFTAttribute(CamelModel):
    trait_type: str = Field(min_length=1, max_length=50)
    value: Union[str, int, float]
    display_type: Optional[Literal["string", "number", "boost_percentage", "boost_number", "date"]] = None

    @field_validator("value")
    @classmethod
    def _value_not_empty(cls, value):
        if isinstance(value, str) and not value:
            raise ValueError("Attribute value cannot be empty")
        return value

class NFTConfiguration(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    symbol: str = Field(min_length=1, max_length=10)
    description: str = Field(min_length=1, max_length=1000)
    base_uri: OptionalUrl = None
    metadata_format: MetadataFormat
    attributes: List[NFTAttribute] = Field(default_factory=list)
    image: OptionalUrl = None
    animation: OptionalUrl = None
    external_url: OptionalUrl = None
    reveal_type: RevealType
    reveal_date: Optional[UtcDatetime] = Field(default=None, validate_default=True)
    transferable: bool = True
    redeemable: bool = False

    @field_validator("reveal_date")
    @classmethod
    def _reveal_date_for_delayed(cls, value, info: ValidationInfo):
        if value is None and info.data.get("reveal_type") == RevealType.DELAYED:
            raise ValueError("Reveal date is required for delayed reveal type")
        return value

# ----------------------------
# Access control
# ----------------------------

class CampaignCode(CamelModel):
    code: str = Field(min_length=4, max_length=20)
    uses: int = Field(default=0, ge=0, strict=True)
    max_uses: PositiveCount
    is_active: bool = True

class CampaignAccessControl(CamelModel):
    access_type: AccessType
    allowlist: Optional[List[Address]] = None
    requires_email: bool = False
    requires_code: bool = False
    codes: Optional[List[CampaignCode]] = None
    max_uses_per_code: Optional[PositiveCount] = None

# ----------------------------
# Company Schemas
# ----------------------------

class CompanyBranding(CamelModel):
    primary_color: HexColor = None
    secondary_color: HexColor = None
    accent_color: HexColor = None
    font_family: Optional[str] = None
    banner_image: OptionalUrl = None
    logo_image: OptionalUrl = None
    custom_css: Optional[str] = Field(default=None, alias="customCSS")

class CompanySettings(CamelModel):
    allow_public_campaigns: bool = True
    require_email_verification: bool = False
    max_campaigns_allowed: PositiveCount = 10
    custom_domain: Optional[str] = None
    analytics_enabled: bool = True
    default_mint_limit: PositiveCount = 5

class CompanySettingsUpdate(CamelModel):
    allow_public_campaigns: Optional[bool] = None
    require_email_verification: Optional[bool] = None
    max_campaigns_allowed: Optional[PositiveCount] = None
    custom_domain: Optional[str] = None
    analytics_enabled: Optional[bool] = None
    default_mint_limit: Optional[PositiveCount] = None

class CompanyCreate(CamelModel):
    name: str = Field(min_length=2, max_length=100)
    slug: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(default=None, max_length=500)
    logo: OptionalUrl = None
    website: OptionalUrl = None
    branding: CompanyBranding = Field(default_factory=CompanyBranding)
    admin_address: Address
    contact_email: Optional[EmailStr] = None
    settings: CompanySettings = Field(default_factory=CompanySettings)

class CompanyUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    logo: OptionalUrl = None
    website: OptionalUrl = None
    branding: Optional[CompanyBranding] = None
    contact_email: Optional[EmailStr] = None
    settings: Optional[CompanySettingsUpdate] = None

class CompanyOut(CamelModel):
    id: str
    name: str
    slug: str
    description: str = ""
    logo: Optional[str] = None
    website: Optional[str] = None
    branding: CompanyBranding
    admin_address: str
    contact_email: Optional[str] = None
    settings: CompanySettings
    created_at: datetime
    updated_at: datetime

class PublicBranding(CamelModel):
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    banner_image: Optional[str] = None
    logo_image: Optional[str] = None

class PublicCompanyOut(CamelModel):
    id: str
    name: str
    slug: str
    description: str = ""
    logo: Optional[str] = None
    website: Optional[str] = None
    branding: PublicBranding

# ----------------------------
# Campaign Schemas
# ----------------------------

class CampaignCreate(CamelModel):
    company_id: str = Field(min_length=1)
    name: str = Field(min_length=2, max_length=100)
    slug: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=SLUG_PATTERN)
    description: str = Field(min_length=1, max_length=1000)
    type: CampaignType
    status: CampaignStatus = CampaignStatus.DRAFT
    start_date: UtcDatetime
    end_date: Optional[UtcDatetime] = None
    contract_address: Address
    contract_network: str = Field(min_length=1)
    contract_abi: Any = None
    nft_config: NFTConfiguration
    access_control: CampaignAccessControl
    featured_image: OptionalUrl = None
    banner_image: OptionalUrl = None
    gallery_images: Optional[List[Url]] = None
    mint_limit: PositiveCount
    # falls back to the company's settings.defaultMintLimit
    mint_limit_per_wallet: Optional[PositiveCount] = None
    template_id: Optional[str] = None

    @field_validator("end_date")
    @classmethod
    def _end_after_start(cls, value, info: ValidationInfo):
        start = info.data.get("start_date")
        if value is not None and start is not None and value <= start:
            raise ValueError("End date must be after start date")
        return value

class CampaignUpdate(CamelModel):
    """Partial update. nftConfig and accessControl are merged onto the stored
    values and the merged campaign is validated again as a whole."""
    name: Optional[str] = None
    slug: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    type: Optional[CampaignType] = None
    status: Optional[CampaignStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    contract_address: Optional[str] = None
    contract_network: Optional[str] = None
    contract_abi: Any = None
    nft_config: Optional[Dict[str, Any]] = None
    access_control: Optional[Dict[str, Any]] = None
    featured_image: Optional[str] = None
    banner_image: Optional[str] = None
    gallery_images: Optional[List[str]] = None
    mint_limit: Optional[int] = None
    mint_limit_per_wallet: Optional[int] = None

class CampaignOut(CamelModel):
    id: str
    company_id: str
    company_name: Optional[str] = None
    name: str
    slug: str
    description: str
    type: CampaignType
    status: CampaignStatus
    start_date: datetime
    end_date: Optional[datetime] = None
    contract_address: str
    contract_network: str
    contract_abi: Any = None
    nft_config: NFTConfiguration
    access_control: CampaignAccessControl
    featured_image: Optional[str] = None
    banner_image: Optional[str] = None
    gallery_images: Optional[List[str]] = None
    total_minted: int
    mint_limit: int
    mint_limit_per_wallet: int
    created_at: datetime
    updated_at: datetime

class PublicCampaignOut(CamelModel):
    id: str
    company_id: str
    company_name: Optional[str] = None
    name: str
    slug: str
    description: str
    type: CampaignType
    start_date: datetime
    end_date: Optional[datetime] = None
    featured_image: Optional[str] = None
    total_minted: int
    mint_limit: int

class CampaignTemplate(CamelModel):
    id: str
    name: str
    description: str
    type: CampaignType
    nft_config: Dict[str, Any]
    access_control: Dict[str, Any]
    default_duration: int

# ----------------------------
# Listing / detail envelopes
# ----------------------------

class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int

class CompanyList(CamelModel):
    companies: List[CompanyOut]
    pagination: Pagination

class CampaignList(CamelModel):
    campaigns: List[CampaignOut]
    pagination: Pagination

class CompanyDetail(CamelModel):
    company: CompanyOut
    campaigns: List[CampaignOut]

class PublicCompanyDetail(CamelModel):
    company: PublicCompanyOut
    campaigns: List[PublicCampaignOut]

class TemplateList(CamelModel):
    templates: List[CampaignTemplate]

# ----------------------------
# Participation / minting
# ----------------------------

class CodeVerification(CamelModel):
    code: str = Field(min_length=1)

class EmailVerification(CamelModel):
    email: EmailStr

class MintRecordIn(CamelModel):
    token_id: int = Field(ge=0)
    network: str = Field(min_length=1)
    tx_hash: Optional[str] = None

class MintEligibility(CamelModel):
    allowed: bool
    reason: Optional[str] = None

class ParticipationOut(CamelModel):
    campaign_id: str
    wallet_address: str
    minted_count: int
    minted_token_ids: List[int]
    last_minted_at: Optional[datetime] = None
    email: Optional[str] = None
    email_verified: bool
    code_used: Optional[str] = None

class MintRecordOut(CamelModel):
    campaign_id: str
    total_minted: int
    participation: ParticipationOut

class OperationResult(CamelModel):
    success: bool = True
    message: str

# ----------------------------
# Auth
# ----------------------------

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class WalletLogin(CamelModel):
    message: Optional[str] = None
    signature: Optional[str] = None
    address: Optional[str] = None

class WalletUserOut(CamelModel):
    wallet_address: str
    created_at: datetime

class WalletLoginOut(CamelModel):
    token: str
    user: WalletUserOut

# ----------------------------
# On-chain lookups
# ----------------------------

class OwnershipCheck(CamelModel):
    token_id: int = Field(ge=0)
    user_address: Address
    contract_address: Address

class TokenUriRequest(CamelModel):
    token_id: int = Field(ge=0)
    contract_address: Address

class OwnerLookup(CamelModel):
    contract_address: Address
    user_address: Address

class OwnershipOut(CamelModel):
    is_owner: bool
    owner: Optional[str] = None
    token_uri: Optional[str] = Field(default=None, alias="tokenURI")
    error: Optional[str] = None

class TokenUriOut(CamelModel):
    token_uri: str = Field(alias="tokenURI")
    error: Optional[str] = None

# ----------------------------
# Memories
# ----------------------------

class MemoryCreate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    is_redeemable: bool = True
    max_mints: Optional[PositiveCount] = None
    image_url: OptionalUrl = None

class MemoryMint(CamelModel):
    qr_code: Optional[str] = None

class MemoryRedeem(CamelModel):
    minter_wallet: Address

class MemoryOut(CamelModel):
    id: int
    creator_wallet: str
    title: str
    description: Optional[str] = None
    qr_code: Optional[str] = None
    image_url: Optional[str] = None
    is_redeemable: bool
    max_mints: int
    current_mints: int
    status: str
    created_at: datetime

class MemoryDetail(MemoryOut):
    user_status: Optional[str] = None

class CreatedMemory(MemoryOut):
    stats: Dict[str, int] = Field(default_factory=dict)

class MintedMemory(CamelModel):
    id: int
    title: str
    image_url: Optional[str] = None
    token_id: int

class MemoryMintOut(CamelModel):
    success: bool = True
    memory: MintedMemory

class MemoryRedeemOut(CamelModel):
    success: bool = True
    memory_id: int
    status: str

class OwnedMemory(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    status: str
    minted_at: datetime
    redeemed_at: Optional[datetime] = None

class MemoryMinter(CamelModel):
    memory_id: int
    owner_wallet: str
    token_id: int
    status: str
    tx_hash: str
    minted_at: datetime
    redeemed_at: Optional[datetime] = None

# ----------------------------
# Validation entry point
# ----------------------------

ModelT = TypeVar("ModelT", bound=BaseModel)

def _field_path(loc) -> str:
    # defaults validated without input are located by attribute name, not alias
    return ".".join(to_camel(part) if isinstance(part, str) and "_" in part else str(part) for part in loc)

def _message(error) -> str:
    if error.get("type") == "value_error" and "error" in error.get("ctx", {}):
        return str(error["ctx"]["error"])
    return error["msg"]

def validate_payload(model: Type[ModelT], data: Any) -> Tuple[Optional[ModelT], List[FieldError]]:
    """Validate untyped input against ``model``.

    Returns ``(value, [])`` on success and ``(None, errors)`` otherwise. Never
    raises for malformed input.
    """
    if not isinstance(data, dict):
        return None, [FieldError("", "Expected a JSON object")]
    try:
        return model.model_validate(data), []
    except ValidationError as exc:
        return None, [FieldError(_field_path(err["loc"]), _message(err)) for err in exc.errors()]
