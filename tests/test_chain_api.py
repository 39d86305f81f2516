import pytest
from web3.exceptions import ContractLogicError

from crefy import chain_client, config
from crefy.chain_client import ChainLookupError

from conftest import CONTRACT_ADDRESS, OWNER_WALLET, STRANGER_WALLET


@pytest.fixture
def rpc(monkeypatch):
    monkeypatch.setattr(config, "RPC_URL", "http://rpc.test")
    monkeypatch.setattr(config, "NETWORK_RPC_URLS", {})
    return monkeypatch


def ownership_body(**overrides):
    body = {"tokenId": 7, "userAddress": OWNER_WALLET, "contractAddress": CONTRACT_ADDRESS}
    body.update(overrides)
    return body


def test_missing_rpc_configuration(client, monkeypatch):
    monkeypatch.setattr(config, "RPC_URL", "")
    monkeypatch.setattr(config, "NETWORK_RPC_URLS", {})
    response = client.post("/nft/check-ownership", json=ownership_body())
    assert response.status_code == 200
    assert response.json() == {"isOwner": False, "error": "RPC URL not configured"}

    token_uri = client.post("/nft/token-uri", json={"tokenId": 7, "contractAddress": CONTRACT_ADDRESS}).json()
    assert token_uri == {"tokenURI": "", "error": "RPC URL not configured"}


def test_check_ownership_compares_owner(client, rpc):
    rpc.setattr(chain_client, "owner_of", lambda contract, token_id, url: OWNER_WALLET)
    response = client.post("/nft/check-ownership", json=ownership_body())
    assert response.json()["isOwner"] is True

    not_mine = client.post("/nft/check-ownership", json=ownership_body(userAddress=STRANGER_WALLET)).json()
    assert not_mine["isOwner"] is False
    assert not_mine["owner"].lower() == OWNER_WALLET


def test_unminted_token_is_not_owned(client, rpc):
    rpc.setattr(chain_client, "owner_of", lambda contract, token_id, url: None)
    assert client.post("/nft/check-ownership", json=ownership_body()).json() == {"isOwner": False}


def test_rpc_failure_reported(client, rpc):
    def broken(contract, token_id, url):
        raise ChainLookupError("connection refused")

    rpc.setattr(chain_client, "owner_of", broken)
    rpc.setattr(chain_client, "token_uri", broken)
    assert client.post("/nft/check-ownership", json=ownership_body()).json() == {
        "isOwner": False,
        "error": "connection refused",
    }
    assert client.post("/nft/token-uri", json={"tokenId": 7, "contractAddress": CONTRACT_ADDRESS}).json() == {
        "tokenURI": "",
        "error": "connection refused",
    }


def test_token_uri(client, rpc):
    rpc.setattr(chain_client, "token_uri", lambda contract, token_id, url: f"ipfs://meta/{token_id}")
    response = client.post("/nft/token-uri", json={"tokenId": 7, "contractAddress": CONTRACT_ADDRESS})
    assert response.json() == {"tokenURI": "ipfs://meta/7"}


def test_owner_lookup_walks_networks(client, monkeypatch):
    monkeypatch.setattr(config, "NETWORK_RPC_URLS", {"mainnet": "http://mainnet.test", "sepolia": "http://sepolia.test"})
    calls = []

    def owner_of(contract, token_id, url):
        calls.append(url)
        if url == "http://mainnet.test":
            raise ChainLookupError("not deployed here")
        return OWNER_WALLET

    monkeypatch.setattr(chain_client, "owner_of", owner_of)
    monkeypatch.setattr(chain_client, "token_uri", lambda contract, token_id, url: "ipfs://meta/7")

    body = {"contractAddress": CONTRACT_ADDRESS, "userAddress": OWNER_WALLET}
    response = client.post("/nft/owner/7", json=body)
    assert response.json() == {"isOwner": True, "owner": OWNER_WALLET, "tokenURI": "ipfs://meta/7"}
    assert calls == ["http://mainnet.test", "http://sepolia.test"]

    other = client.post("/nft/owner/7", json={**body, "userAddress": STRANGER_WALLET})
    assert other.json() == {"isOwner": False}


def test_lookup_body_validated(client, rpc):
    response = client.post("/nft/check-ownership", json=ownership_body(contractAddress="0x1"))
    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "contractAddress"


class FakeContract:
    def __init__(self, outcome):
        self.functions = self
        self.outcome = outcome

    def ownerOf(self, token_id):
        return self

    def call(self):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def test_client_maps_reverts_to_none(monkeypatch):
    monkeypatch.setattr(chain_client, "_contract", lambda url, address: FakeContract(ContractLogicError("execution reverted")))
    assert chain_client.owner_of(CONTRACT_ADDRESS, 1, "http://rpc.test") is None


def test_client_wraps_transport_errors(monkeypatch):
    monkeypatch.setattr(chain_client, "_contract", lambda url, address: FakeContract(ConnectionError("timed out")))
    with pytest.raises(ChainLookupError):
        chain_client.owner_of(CONTRACT_ADDRESS, 1, "http://rpc.test")


def test_client_returns_owner(monkeypatch):
    monkeypatch.setattr(chain_client, "_contract", lambda url, address: FakeContract(OWNER_WALLET))
    assert chain_client.owner_of(CONTRACT_ADDRESS, 1, "http://rpc.test") == OWNER_WALLET


def test_network_fallback_to_default_rpc(monkeypatch):
    monkeypatch.setattr(config, "NETWORK_RPC_URLS", {})
    monkeypatch.setattr(config, "RPC_URL", "http://rpc.test")
    assert chain_client.network_rpc_urls() == [("default", "http://rpc.test")]
