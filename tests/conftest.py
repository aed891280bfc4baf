"""
Pytest fixtures for the txguard SDK tests.
"""
import pytest
from typing import Any, Dict, List, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from txguard_sdk import (
    TransactionGuard, TransactionRequest, RequestKind, Role, SignedPayload, SimulationResult,
    Disclosure, AVALANCHE_MAINNET_CHAIN_ID, AVALANCHE_FUJI_CHAIN_ID
)
from txguard_sdk._rate_limited_log import reset_rate_limits
from txguard_sdk.adapters import encode_calldata
from txguard_sdk.config import NetworkConfig

# Constants for testing
TEST_CONTRACT = "0x1234567890123456789012345678901234567890"
TEST_SPENDER = "0x0987654321098765432109876543210987654321"
TEST_RECIPIENT = "0x2345678901234567890123456789012345678901"
TEST_PRIV_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
TEST_TX_HASH = "0x" + "ab" * 32
MAINNET = AVALANCHE_MAINNET_CHAIN_ID
FUJI = AVALANCHE_FUJI_CHAIN_ID

ERC20_ABI = [
    {
        "name": name,
        "type": "function",
        "inputs": [{"name": arg, "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    }
    for name, arg in (("transfer", "to"), ("approve", "spender"))
]


@pytest.fixture(autouse=True)
def _reset_shared_state():
    """Rate-limit cache and network cache are module level; isolate tests"""
    reset_rate_limits()
    NetworkConfig._networks_cache = None
    yield
    reset_rate_limits()
    NetworkConfig._networks_cache = None


class FakeSimulator:
    """Simulator returning a fixed reply (or raising) and counting calls"""

    def __init__(self, reply: Any = None, error: Optional[Exception] = None):
        self.reply = reply if reply is not None else SimulationResult.success(21000)
        self.error = error
        self.calls: List[TransactionRequest] = []

    def simulate(self, request):
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return self.reply


class FakePrompt:
    """HumanPrompt returning a fixed answer"""

    def __init__(self, answer: Any = True):
        self.answer = answer
        self.shown: List[Disclosure] = []

    def confirm(self, disclosure):
        self.shown.append(disclosure)
        return self.answer


class DisclosureSigner:
    """
    Wallet stand-in: signs the canonical disclosure bytes and a matching
    type-2 transaction with a test key.

    The key exists only in the test suite; the SDK never sees it.
    """

    def __init__(self, priv_key: str = TEST_PRIV_KEY):
        self._account = Account.from_key(priv_key)
        self.address = self._account.address
        self.calls = 0

    def transaction_for(self, disclosure: Disclosure) -> Dict[str, Any]:
        return {
            "type": 2,
            "chainId": disclosure.chain_id,
            "nonce": 0,
            "to": disclosure.target,
            "value": disclosure.declared_value,
            "data": disclosure.calldata,
            "gas": disclosure.gas_estimate,
            "maxFeePerGas": 30 * 10 ** 9,
            "maxPriorityFeePerGas": 10 ** 9,
        }

    def sign(self, disclosure: Disclosure) -> SignedPayload:
        self.calls += 1
        fields = disclosure.canonical_bytes()
        attestation = Account.sign_message(encode_defunct(primitive=fields), private_key=self._account.key)
        signed_tx = self._account.sign_transaction(self.transaction_for(disclosure))
        return SignedPayload(
            raw_transaction=bytes(signed_tx.raw_transaction),
            signed_fields=fields,
            signature=Web3.to_hex(attestation.signature),
            signer_address=self.address,
        )


class FakeBroadcaster:
    """Broadcaster returning a fixed hash and a receipt with the given status"""

    def __init__(self, status: int = 1, submit_error: Optional[Exception] = None,
                 receipt_error: Optional[Exception] = None):
        self.status = status
        self.submit_error = submit_error
        self.receipt_error = receipt_error
        self.submitted: List[SignedPayload] = []

    def submit(self, signed_payload):
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(signed_payload)
        return TEST_TX_HASH

    def wait_for_receipt(self, tx_hash) -> Dict[str, Any]:
        if self.receipt_error is not None:
            raise self.receipt_error
        return {
            "transactionHash": bytes.fromhex(tx_hash[2:]),
            "blockNumber": 12345,
            "blockHash": bytes.fromhex("cd" * 32),
            "status": self.status,
            "gasUsed": 21000,
            "from": "0x1234567890123456789012345678901234567890",
            "to": TEST_CONTRACT,
            "logs": [],
        }


@pytest.fixture
def guard():
    return TransactionGuard()


@pytest.fixture
def session(guard):
    return guard.open_session()


@pytest.fixture
def capabilities(guard, session):
    """Factory: (read, write) handles for a chain, granted once per chain"""
    granted = {}

    def _for(chain_id: int):
        if chain_id not in granted:
            granted[chain_id] = (
                guard.grant(session, Role.READ, chain_id),
                guard.grant(session, Role.WRITE, chain_id),
            )
        return granted[chain_id]

    return _for


@pytest.fixture
def make_request():
    def _make(chain_id: int = FUJI, kind: RequestKind = RequestKind.CALL, **kwargs):
        defaults = {
            "target": TEST_CONTRACT,
            "function_name": "approve" if kind == RequestKind.APPROVAL else "transfer",
            "args": (TEST_SPENDER, 1000) if kind == RequestKind.APPROVAL else (TEST_RECIPIENT, 1000),
            "declared_value": 0,
        }
        defaults.update(kwargs)
        if "calldata" not in defaults:
            defaults["calldata"] = encode_calldata(ERC20_ABI, defaults["function_name"], defaults["args"])
        return TransactionRequest.create(chain_id=chain_id, kind=kind, **defaults)

    return _make


@pytest.fixture
def start(guard, capabilities, make_request):
    """Factory: a lifecycle for a new request on the given chain"""
    def _start(chain_id: int = FUJI, request: Optional[TransactionRequest] = None, **kwargs):
        request = request or make_request(chain_id=chain_id, **kwargs)
        cap_chain = chain_id if chain_id in (MAINNET, FUJI) else FUJI
        read, write = capabilities(cap_chain)
        return guard.begin(request, read_capability=read, write_capability=write)

    return _start


@pytest.fixture
def simulator():
    return FakeSimulator()


@pytest.fixture
def signer():
    return DisclosureSigner()


@pytest.fixture
def broadcaster():
    return FakeBroadcaster()
