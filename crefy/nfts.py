# crefy/nfts.py
import logging

from . import chain_client
from .access import same_address
from .chain_client import ChainLookupError
from .schemas import OwnerLookup, OwnershipCheck, OwnershipOut, TokenUriOut, TokenUriRequest

logger = logging.getLogger(__name__)

RPC_NOT_CONFIGURED = "RPC URL not configured"


def check_ownership(request: OwnershipCheck) -> OwnershipOut:
    rpc_url = chain_client.default_rpc_url()
    if not rpc_url:
        logger.error("Ownership check requested but RPC_URL is not set")
        return OwnershipOut(is_owner=False, error=RPC_NOT_CONFIGURED)
    try:
        owner = chain_client.owner_of(request.contract_address, request.token_id, rpc_url)
    except ChainLookupError as exc:
        return OwnershipOut(is_owner=False, error=str(exc))
    if owner is None:
        # token not minted yet
        return OwnershipOut(is_owner=False)
    return OwnershipOut(is_owner=same_address(owner, request.user_address), owner=owner)


def get_token_uri(request: TokenUriRequest) -> TokenUriOut:
    rpc_url = chain_client.default_rpc_url()
    if not rpc_url:
        logger.error("Token URI requested but RPC_URL is not set")
        return TokenUriOut(token_uri="", error=RPC_NOT_CONFIGURED)
    try:
        uri = chain_client.token_uri(request.contract_address, request.token_id, rpc_url)
    except ChainLookupError as exc:
        return TokenUriOut(token_uri="", error=str(exc))
    return TokenUriOut(token_uri=uri or "")


def find_owned_token(token_id: int, request: OwnerLookup) -> OwnershipOut:
    """Look the token up on every configured network, first match wins."""
    networks = chain_client.network_rpc_urls()
    if not networks:
        logger.error("Owner lookup requested but no RPC endpoints are configured")
        return OwnershipOut(is_owner=False, error=RPC_NOT_CONFIGURED)

    for network, rpc_url in networks:
        try:
            owner = chain_client.owner_of(request.contract_address, token_id, rpc_url)
            if owner and same_address(owner, request.user_address):
                uri = chain_client.token_uri(request.contract_address, token_id, rpc_url)
                return OwnershipOut(is_owner=True, owner=owner, token_uri=uri or "")
        except ChainLookupError:
            logger.info("Token %s not available on %s", token_id, network)
    return OwnershipOut(is_owner=False)
