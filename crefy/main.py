# crefy/main.py

# -------------------- crefy/main.py --------------------
import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from sqlmodel import Session, select
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import campaigns, companies, config, memories, nfts
from .access import same_address
from .auth import (
    Caller,
    admin_token,
    decode_access_token,
    generate_nonce,
    get_password_hash,
    recover_signer,
    verify_password,
    wallet_token,
)
from .database import engine, get_session, init_db
from .errors import DomainError, FieldError
from .logging_config import configure_logging
from .models import AdminUser, WalletUser
from .schemas import (
    ADDRESS_RE,
    CampaignList,
    CampaignOut,
    CompanyList,
    CompanyOut,
    CreatedMemory,
    MemoryDetail,
    MemoryMinter,
    MemoryMintOut,
    MemoryOut,
    MemoryRedeemOut,
    MintEligibility,
    MintRecordOut,
    OperationResult,
    OwnedMemory,
    OwnerLookup,
    OwnershipCheck,
    OwnershipOut,
    ParticipationOut,
    TemplateList,
    Token,
    TokenUriOut,
    TokenUriRequest,
    WalletLogin,
    WalletLoginOut,
    WalletUserOut,
)
from .store import TenantStore

logger = logging.getLogger(__name__)

# ----------------- FastAPI INSTANCE -----------------
app = FastAPI(title="Crefy Campaigns Backend")

# ----------------- CORS -----------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------- Startup -----------------
def seed_admin():
    if not config.ADMIN_EMAIL or not config.ADMIN_PASSWORD:
        logger.warning("ADMIN_EMAIL/ADMIN_PASSWORD not set, no admin account seeded")
        return
    with Session(engine) as session:
        existing = session.exec(select(AdminUser).where(AdminUser.email == config.ADMIN_EMAIL)).first()
        if existing:
            return
        session.add(AdminUser(email=config.ADMIN_EMAIL, password_hash=get_password_hash(config.ADMIN_PASSWORD)))
        session.commit()
        logger.info("Seeded admin account %s", config.ADMIN_EMAIL)

@app.on_event("startup")
def on_startup():
    configure_logging()
    init_db()
    seed_admin()

# ----------------- Error rendering -----------------
@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    details = [
        FieldError(".".join(str(p) for p in err["loc"] if p != "body"), err["msg"]).to_dict()
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )

def respond(result):
    if isinstance(result, DomainError):
        return JSONResponse(status_code=result.status_code, content=result.to_dict())
    return result

# ----------------- Dependencies -----------------
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/token", auto_error=False)

def get_store(session: Session = Depends(get_session)) -> TenantStore:
    return TenantStore(session)

def get_caller(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[Caller]:
    """Anonymous requests are allowed; a token that is present must be valid."""
    if not token:
        return None
    payload = decode_access_token(token)
    caller = Caller.from_claims(payload) if payload else None
    if caller is None:
        raise HTTPException(401, "Invalid token")
    return caller

def get_current_wallet(caller: Optional[Caller] = Depends(get_caller)) -> str:
    if caller is None or not caller.wallet_address:
        raise HTTPException(401, "Wallet authentication required")
    return caller.wallet_address

@app.get("/")
def root():
    return {"service": "crefy-campaigns", "status": "ok"}

# ----------------- Auth -----------------
@app.post("/token", response_model=Token)
def login_for_token(form_data: OAuth2PasswordRequestForm = Depends(), session: Session = Depends(get_session)):
    admin = session.exec(select(AdminUser).where(AdminUser.email == form_data.username)).first()
    if not admin or not verify_password(form_data.password, admin.password_hash):
        raise HTTPException(400, "Incorrect email or password")
    return Token(access_token=admin_token(admin.email))

@app.get("/auth/nonce")
def get_nonce():
    return {"nonce": generate_nonce()}

@app.post("/auth/login", response_model=WalletLoginOut)
def wallet_login(body: WalletLogin, session: Session = Depends(get_session)):
    if not body.message or not body.signature or not body.address:
        return JSONResponse(
            status_code=400,
            content={"error": "Missing required fields", "required": ["message", "signature", "address"]},
        )
    if not ADDRESS_RE.match(body.address):
        raise HTTPException(400, "Invalid wallet address format")

    signer = recover_signer(body.message, body.signature)
    if not same_address(signer, body.address):
        raise HTTPException(401, "Invalid signature")

    address = body.address.lower()
    user = session.exec(select(WalletUser).where(WalletUser.wallet_address == address)).first()
    if not user:
        user = WalletUser(wallet_address=address)
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info("Registered wallet user %s", address)

    return WalletLoginOut(
        token=wallet_token(user.wallet_address),
        user=WalletUserOut(wallet_address=user.wallet_address, created_at=user.created_at),
    )

# ----------------- Companies -----------------
@app.get("/companies", response_model=CompanyList)
def list_companies(
    search: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    store: TenantStore = Depends(get_store),
):
    return respond(companies.list_companies(store, search=search, page=page, limit=limit))

@app.post("/companies", response_model=CompanyOut, status_code=201)
def create_company(
    payload: Dict[str, Any] = Body(...),
    store: TenantStore = Depends(get_store),
):
    return respond(companies.create_company(store, payload))

@app.get("/companies/{slug}")
def get_company(slug: str, store: TenantStore = Depends(get_store), caller: Optional[Caller] = Depends(get_caller)):
    result = companies.get_company(store, slug, caller)
    if isinstance(result, DomainError):
        return respond(result)
    return JSONResponse(content=result.to_json_dict())

@app.put("/companies/{slug}", response_model=CompanyOut)
def update_company(
    slug: str,
    payload: Dict[str, Any] = Body(...),
    store: TenantStore = Depends(get_store),
    caller: Optional[Caller] = Depends(get_caller),
):
    return respond(companies.update_company(store, slug, payload, caller))

@app.delete("/companies/{slug}", response_model=OperationResult)
def delete_company(slug: str, store: TenantStore = Depends(get_store), caller: Optional[Caller] = Depends(get_caller)):
    return respond(companies.delete_company(store, slug, caller))

# ----------------- Campaigns -----------------
@app.get("/campaigns", response_model=CampaignList)
def list_campaigns(
    company_id: Optional[str] = Query(None, alias="companyId"),
    campaign_type: Optional[str] = Query(None, alias="type"),
    status: Optional[str] = None,
    search: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    store: TenantStore = Depends(get_store),
    caller: Optional[Caller] = Depends(get_caller),
):
    return respond(campaigns.list_campaigns(
        store, caller,
        company_id=company_id,
        campaign_type=campaign_type,
        status=status,
        search=search,
        page=page,
        limit=limit,
    ))

# declared before /campaigns/{campaign_id} so "templates" is not taken for an id
@app.get("/campaigns/templates", response_model=TemplateList)
def list_templates():
    return respond(campaigns.list_templates())

@app.post("/campaigns", response_model=CampaignOut, status_code=201)
def create_campaign(
    payload: Dict[str, Any] = Body(...),
    store: TenantStore = Depends(get_store),
    caller: Optional[Caller] = Depends(get_caller),
):
    return respond(campaigns.create_campaign(store, payload, caller))

@app.get("/campaigns/{campaign_id}", response_model=CampaignOut)
def get_campaign(campaign_id: str, store: TenantStore = Depends(get_store), caller: Optional[Caller] = Depends(get_caller)):
    return respond(campaigns.get_campaign(store, campaign_id, caller))

@app.put("/campaigns/{campaign_id}", response_model=CampaignOut)
def update_campaign(
    campaign_id: str,
    payload: Dict[str, Any] = Body(...),
    store: TenantStore = Depends(get_store),
    caller: Optional[Caller] = Depends(get_caller),
):
    return respond(campaigns.update_campaign(store, campaign_id, payload, caller))

@app.delete("/campaigns/{campaign_id}", response_model=OperationResult)
def delete_campaign(campaign_id: str, store: TenantStore = Depends(get_store), caller: Optional[Caller] = Depends(get_caller)):
    return respond(campaigns.delete_campaign(store, campaign_id, caller))

# ----------------- Participation -----------------
@app.get("/campaigns/{campaign_id}/eligibility", response_model=MintEligibility)
def check_eligibility(
    campaign_id: str,
    network: Optional[str] = None,
    store: TenantStore = Depends(get_store),
    caller: Optional[Caller] = Depends(get_caller),
):
    return respond(campaigns.check_eligibility(store, campaign_id, caller, network=network))

@app.post("/campaigns/{campaign_id}/verify-code", response_model=ParticipationOut)
def verify_code(
    campaign_id: str,
    payload: Dict[str, Any] = Body(...),
    store: TenantStore = Depends(get_store),
    caller: Optional[Caller] = Depends(get_caller),
):
    return respond(campaigns.verify_code(store, campaign_id, payload, caller))

@app.post("/campaigns/{campaign_id}/participants/{wallet_address}/verify-email", response_model=ParticipationOut)
def verify_participant_email(
    campaign_id: str,
    wallet_address: str,
    payload: Dict[str, Any] = Body(...),
    store: TenantStore = Depends(get_store),
    caller: Optional[Caller] = Depends(get_caller),
):
    return respond(campaigns.verify_participant_email(store, campaign_id, wallet_address, payload, caller))

@app.post("/campaigns/{campaign_id}/mints", response_model=MintRecordOut, status_code=201)
def record_mint(
    campaign_id: str,
    payload: Dict[str, Any] = Body(...),
    store: TenantStore = Depends(get_store),
    caller: Optional[Caller] = Depends(get_caller),
):
    return respond(campaigns.record_mint(store, campaign_id, payload, caller))

# ----------------- On-chain lookups -----------------
@app.post("/nft/check-ownership", response_model=OwnershipOut, response_model_exclude_none=True)
def check_ownership(request: OwnershipCheck):
    return nfts.check_ownership(request)

@app.post("/nft/token-uri", response_model=TokenUriOut, response_model_exclude_none=True)
def get_token_uri(request: TokenUriRequest):
    return nfts.get_token_uri(request)

@app.post("/nft/owner/{token_id}", response_model=OwnershipOut, response_model_exclude_none=True)
def find_owned_token(token_id: int, request: OwnerLookup):
    return nfts.find_owned_token(token_id, request)

# ----------------- Memories -----------------
@app.post("/memories", response_model=MemoryOut, status_code=201)
def create_memory(
    payload: Dict[str, Any] = Body(...),
    wallet: str = Depends(get_current_wallet),
    session: Session = Depends(get_session),
):
    return respond(memories.create_memory(session, wallet, payload))

@app.post("/memories/mint", response_model=MemoryMintOut, status_code=201)
def mint_memory(
    payload: Dict[str, Any] = Body(...),
    wallet: str = Depends(get_current_wallet),
    session: Session = Depends(get_session),
):
    return respond(memories.mint_memory(session, wallet, payload))

@app.patch("/memories/{memory_id}/redeem", response_model=MemoryRedeemOut)
def redeem_memory(
    memory_id: int,
    payload: Dict[str, Any] = Body(...),
    wallet: str = Depends(get_current_wallet),
    session: Session = Depends(get_session),
):
    return respond(memories.redeem_memory(session, wallet, memory_id, payload))

@app.get("/memories/user", response_model=List[OwnedMemory])
def owned_memories(wallet: str = Depends(get_current_wallet), session: Session = Depends(get_session)):
    return respond(memories.owned_memories(session, wallet))

@app.get("/memories/created", response_model=List[CreatedMemory])
def created_memories(wallet: str = Depends(get_current_wallet), session: Session = Depends(get_session)):
    return respond(memories.created_memories(session, wallet))

@app.get("/memories/{memory_id}", response_model=MemoryDetail)
def memory_detail(memory_id: int, wallet: str = Depends(get_current_wallet), session: Session = Depends(get_session)):
    return respond(memories.memory_detail(session, wallet, memory_id))

@app.get("/memories/{memory_id}/minters", response_model=List[MemoryMinter])
def memory_minters(memory_id: int, wallet: str = Depends(get_current_wallet), session: Session = Depends(get_session)):
    return respond(memories.memory_minters(session, wallet, memory_id))
