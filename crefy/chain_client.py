import logging
from typing import List, Optional, Tuple

from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from . import config

logger = logging.getLogger(__name__)

# Only the two ERC-721 read calls the platform needs
ERC721_READ_ABI = [
    {
        "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
        "name": "ownerOf",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
        "name": "tokenURI",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class ChainLookupError(Exception):
    """The RPC endpoint could not answer."""


def default_rpc_url() -> str:
    return config.RPC_URL

def network_rpc_urls() -> List[Tuple[str, str]]:
    """Configured networks in lookup order; falls back to RPC_URL alone."""
    if config.NETWORK_RPC_URLS:
        return list(config.NETWORK_RPC_URLS.items())
    if config.RPC_URL:
        return [("default", config.RPC_URL)]
    return []

def _contract(rpc_url: str, contract_address: str):
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": config.RPC_TIMEOUT_SECONDS}))
    return w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=ERC721_READ_ABI)

def _call(rpc_url: str, contract_address: str, function_name: str, token_id: int):
    contract = _contract(rpc_url, contract_address)
    try:
        return getattr(contract.functions, function_name)(token_id).call()
    except (ContractLogicError, BadFunctionCallOutput):
        # reverted (token not minted) or empty result (no contract at address)
        return None
    except Exception as exc:
        logger.error("RPC %s(%s) on %s failed: %s", function_name, token_id, contract_address, exc)
        raise ChainLookupError(str(exc)) from exc

def owner_of(contract_address: str, token_id: int, rpc_url: str) -> Optional[str]:
    return _call(rpc_url, contract_address, "ownerOf", token_id)

def token_uri(contract_address: str, token_id: int, rpc_url: str) -> Optional[str]:
    return _call(rpc_url, contract_address, "tokenURI", token_id)
