"""
Data models for the txguard SDK.
"""
import json
import uuid
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Any, Mapping, Optional, List, Tuple, Union, Literal

from pydantic import BaseModel, Field, PrivateAttr, computed_field, field_validator, model_validator
from web3 import Web3

from .exceptions import AlreadySimulated, DuplicateConfirmation

AVALANCHE_MAINNET_CHAIN_ID = 43114
AVALANCHE_FUJI_CHAIN_ID = 43113
ALLOWED_CHAIN_IDS = frozenset({AVALANCHE_MAINNET_CHAIN_ID, AVALANCHE_FUJI_CHAIN_ID})

# ERC-20 "unlimited" allowance sentinel
MAX_UINT256 = 2 ** 256 - 1
INFINITE = "infinite"


class ChainLabel(str, Enum):
    """Risk label of a network context."""
    MAINNET = "Mainnet"
    TESTNET = "Testnet"
    REJECTED = "Rejected"


class RequestKind(str, Enum):
    """Kind of write-intent."""
    CALL = "Call"
    APPROVAL = "Approval"


class SimulationOutcome(str, Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"


class ApprovalRisk(str, Enum):
    FINITE = "Finite"
    INFINITE = "Infinite"


class LifecycleState(str, Enum):
    """States of a transaction lifecycle."""
    IDLE = "Idle"
    CHAIN_VALIDATED = "ChainValidated"
    SIMULATED = "Simulated"
    DISCLOSED = "Disclosed"
    CONFIRMED = "Confirmed"
    SIGNED = "Signed"
    SUBMITTED = "Submitted"
    MONITORING = "Monitoring"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ABORTED = "Aborted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    LifecycleState.SUCCEEDED,
    LifecycleState.FAILED,
    LifecycleState.ABORTED,
})


def _label_for(chain_id: Any) -> ChainLabel:
    if isinstance(chain_id, bool) or not isinstance(chain_id, int):
        return ChainLabel.REJECTED
    if chain_id == AVALANCHE_MAINNET_CHAIN_ID:
        return ChainLabel.MAINNET
    if chain_id == AVALANCHE_FUJI_CHAIN_ID:
        return ChainLabel.TESTNET
    return ChainLabel.REJECTED


class ChainContext(BaseModel):
    """Network context of a request, immutable once built"""
    chain_id: int
    label: ChainLabel
    allowlisted: bool

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _check_allow_list(self) -> "ChainContext":
        expected_label = _label_for(self.chain_id)
        if self.allowlisted != (self.chain_id in ALLOWED_CHAIN_IDS):
            raise ValueError(f"allowlisted flag does not match chain id {self.chain_id}")
        if self.label != expected_label:
            raise ValueError(f"Chain {self.chain_id} must be labelled {expected_label.value}, got {self.label.value}")
        return self

    @classmethod
    def from_chain_id(cls, chain_id: int) -> "ChainContext":
        """
        Build the context for a caller-supplied chain id.

        Ids outside the allow-list produce a Rejected context; non-integer
        input raises ValueError.
        """
        if isinstance(chain_id, bool) or not isinstance(chain_id, int):
            raise ValueError(f"chain_id must be an integer, got {type(chain_id).__name__}")
        return cls(
            chain_id=chain_id,
            label=_label_for(chain_id),
            allowlisted=chain_id in ALLOWED_CHAIN_IDS,
        )

    @property
    def is_mainnet(self) -> bool:
        return self.label == ChainLabel.MAINNET


class SimulationResult(BaseModel):
    """Outcome of a pre-submission simulation"""
    outcome: SimulationOutcome
    gas_estimate: int = Field(0, ge=0)
    failure_reason: Optional[str] = None

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _failure_has_reason(self) -> "SimulationResult":
        if self.outcome == SimulationOutcome.FAILURE and not self.failure_reason:
            raise ValueError("A failed simulation must carry a failure_reason")
        return self

    @classmethod
    def success(cls, gas_estimate: int) -> "SimulationResult":
        return cls(outcome=SimulationOutcome.SUCCESS, gas_estimate=gas_estimate)

    @classmethod
    def failure(cls, reason: str, gas_estimate: int = 0) -> "SimulationResult":
        return cls(
            outcome=SimulationOutcome.FAILURE,
            gas_estimate=gas_estimate,
            failure_reason=reason or "unknown simulation failure",
        )

    @property
    def succeeded(self) -> bool:
        return self.outcome == SimulationOutcome.SUCCESS


def _checksum(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValueError(f"{field_name} must be a valid address, got: {value!r}")
    return Web3.to_checksum_address(value)


def _freeze(value: Any) -> Any:
    """
    Deep, detached copy of a call argument.

    Lists become tuples and mappings become read-only views over a private
    copy, so nothing the caller still holds can change a request after it
    was created.
    """
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, str, bytes)):
        return value
    if isinstance(value, bytearray):
        return bytes(value)
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): _freeze(v) for k, v in value.items()})
    raise ValueError(f"Unsupported call argument of type {type(value).__name__}")


def _freeze_args(value: Tuple[Any, ...]) -> Tuple[Any, ...]:
    return tuple(_freeze(v) for v in value)


def _valid_calldata(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = "0x" + bytes(value).hex()
    if not isinstance(value, str) or not value.startswith("0x") or len(value) % 2:
        raise ValueError(f"calldata must be 0x-prefixed hex, got: {value!r}")
    try:
        bytes.fromhex(value[2:])
    except ValueError:
        raise ValueError(f"calldata must be 0x-prefixed hex, got: {value!r}")
    return value.lower()


class ApprovalDisclosure(BaseModel):
    """Token allowance facts that must be shown before an approval is confirmed"""
    token: str
    spender: str
    amount: Union[int, Literal["infinite"]]

    class Config:
        frozen = True

    @field_validator("token", "spender")
    @classmethod
    def _valid_address(cls, value: str, info) -> str:
        return _checksum(value, info.field_name)

    @field_validator("amount")
    @classmethod
    def _non_negative(cls, value):
        if isinstance(value, int) and value < 0:
            raise ValueError("amount must be non-negative")
        return value

    @computed_field
    @property
    def risk(self) -> ApprovalRisk:
        if self.amount == INFINITE or self.amount >= MAX_UINT256:
            return ApprovalRisk.INFINITE
        return ApprovalRisk.FINITE


class TransactionRequest(BaseModel):
    """
    A single write-intent.

    Immutable after creation except for the set-once simulation result and
    confirmation record. ``args`` are deep-copied into tuples and read-only
    mappings; ``calldata`` is the ABI-encoded call the signed transaction
    must carry.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    target: str
    function_name: str = Field(..., min_length=1)
    args: Tuple[Any, ...] = ()
    calldata: Optional[str] = None
    declared_value: int = Field(0, ge=0)
    chain_context: ChainContext
    kind: RequestKind = RequestKind.CALL

    _simulation_result: Optional[SimulationResult] = PrivateAttr(default=None)
    _confirmation: Optional["ConfirmationRecord"] = PrivateAttr(default=None)

    class Config:
        frozen = True

    @field_validator("target")
    @classmethod
    def _valid_target(cls, value: str) -> str:
        return _checksum(value, "target")

    @field_validator("args")
    @classmethod
    def _detached_args(cls, value: Tuple[Any, ...]) -> Tuple[Any, ...]:
        return _freeze_args(value)

    @field_validator("calldata", mode="before")
    @classmethod
    def _hex_calldata(cls, value: Any) -> Optional[str]:
        return _valid_calldata(value)

    @classmethod
    def create(
        cls,
        target: str,
        function_name: str,
        chain_id: int,
        args: Tuple[Any, ...] = (),
        declared_value: int = 0,
        kind: RequestKind = RequestKind.CALL,
        request_id: Optional[str] = None,
        calldata: Optional[str] = None
    ) -> "TransactionRequest":
        """Build a request with a chain context derived from a raw chain id"""
        fields: Dict[str, Any] = {
            "target": target,
            "function_name": function_name,
            "args": tuple(args),
            "calldata": calldata,
            "declared_value": declared_value,
            "chain_context": ChainContext.from_chain_id(chain_id),
            "kind": kind,
        }
        if request_id is not None:
            fields["id"] = request_id
        return cls(**fields)

    @property
    def simulation_result(self) -> Optional[SimulationResult]:
        return self._simulation_result

    @property
    def confirmation(self) -> Optional["ConfirmationRecord"]:
        return self._confirmation

    def attach_simulation(self, result: SimulationResult) -> None:
        if self._simulation_result is not None:
            raise AlreadySimulated("A simulation result is already attached", request_id=self.id)
        self._simulation_result = result

    def attach_confirmation(self, record: "ConfirmationRecord") -> None:
        if self._confirmation is not None:
            raise DuplicateConfirmation("A confirmation record is already attached", request_id=self.id)
        if record.request_id != self.id:
            raise ValueError(f"Confirmation for {record.request_id} cannot be attached to {self.id}")
        self._confirmation = record


def _canonical(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool) or value is None or isinstance(value, (int, str)):
        return value
    return str(value)


class Disclosure(BaseModel):
    """The facts a person must see before confirming a transaction"""
    request_id: str
    target: str
    function_name: str
    args: Tuple[Any, ...] = ()
    calldata: Optional[str] = None
    declared_value: int
    gas_estimate: int
    chain_id: int
    chain_label: ChainLabel
    kind: RequestKind
    approval: Optional[ApprovalDisclosure] = None

    class Config:
        frozen = True

    @field_validator("args")
    @classmethod
    def _detached_args(cls, value: Tuple[Any, ...]) -> Tuple[Any, ...]:
        return _freeze_args(value)

    @field_validator("calldata", mode="before")
    @classmethod
    def _hex_calldata(cls, value: Any) -> Optional[str]:
        return _valid_calldata(value)

    def fields_snapshot(self) -> Dict[str, Any]:
        """Plain-data snapshot of every disclosed field"""
        snapshot = {
            "requestId": self.request_id,
            "target": self.target,
            "functionName": self.function_name,
            "args": _canonical(self.args),
            "calldata": self.calldata,
            "declaredValue": str(self.declared_value),
            "gasEstimate": self.gas_estimate,
            "chainId": self.chain_id,
            "chainLabel": self.chain_label.value,
            "kind": self.kind.value,
        }
        if self.approval is not None:
            snapshot["approval"] = {
                "token": self.approval.token,
                "spender": self.approval.spender,
                "amount": str(self.approval.amount),
                "risk": self.approval.risk.value,
            }
        return snapshot

    def canonical_bytes(self) -> bytes:
        """Deterministic encoding a signer must echo back unchanged"""
        return json.dumps(self.fields_snapshot(), sort_keys=True, separators=(",", ":")).encode("utf-8")

    @property
    def digest(self) -> str:
        return Web3.to_hex(Web3.keccak(self.canonical_bytes()))


class ConfirmationRecord(BaseModel):
    """
    Explicit human acknowledgement of one disclosure.

    ``disclosed_bytes`` are the canonical bytes of the disclosure at the
    moment it was confirmed; a signer must sign exactly these.
    """
    request_id: str
    disclosed_fields: Disclosure
    disclosed_bytes: bytes
    confirmed_at: datetime

    class Config:
        frozen = True


TransactionRequest.model_rebuild()


class SignedPayload(BaseModel):
    """
    Output of an external signer.

    ``signature`` is an EIP-191 signature over ``signed_fields`` by
    ``signer_address``. ``raw_transaction`` must be an EIP-2718 typed
    transaction signed by the same account; it is decoded and checked
    against the disclosure before it is ever broadcast.
    """
    raw_transaction: bytes
    signed_fields: bytes
    signature: str
    signer_address: str

    class Config:
        frozen = True

    @field_validator("signer_address")
    @classmethod
    def _valid_signer(cls, value: str) -> str:
        return _checksum(value, "signer_address")


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: Optional[str] = Field(None, alias="blockHash")
    status: int
    gas_used: int = Field(0, alias="gasUsed")
    from_address: Optional[str] = Field(None, alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[Any] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, receipt: Any) -> "TxReceipt":
        """
        Convert a web3 receipt (or any mapping) to our TxReceipt model

        Args:
            receipt: The web3 transaction receipt

        Returns:
            Our TxReceipt model
        """
        if isinstance(receipt, cls):
            return receipt
        receipt_dict = dict(receipt)

        # Convert bytes to hex strings
        for key, value in list(receipt_dict.items()):
            if isinstance(value, (bytes, bytearray)):
                receipt_dict[key] = "0x" + bytes(value).hex()

        return cls.model_validate(receipt_dict)
