"""
txguard SDK - transaction-safety gate for Avalanche C-Chain write-intents.
"""
from .version import __version__
from .capability import Capability, CapabilityGuard, OperationKind, Role
from .chain_registry import ChainRegistry, EndpointContext, NetworkInfo
from .client import TransactionGuard
from .confirmation import ConfirmationLedger
from .disclosure import DisclosureBuilder, DisclosureStyle, render
from .exceptions import (
    TxGuardError, UnsupportedChain, UntrustedEndpoint, CapabilityViolation, AlreadySimulated,
    SimulationFailure, IncompleteSimulation, MissingApprovalDisclosure, ConfirmationDenied,
    DuplicateConfirmation, PromotionBlocked, InvalidTransition, SignatureMismatch,
    DuplicateInFlight, SignerError, BroadcastError, ReceiptError
)
from .lifecycle import InFlightRegistry, TransactionLifecycle
from .models import (
    ALLOWED_CHAIN_IDS, AVALANCHE_FUJI_CHAIN_ID, AVALANCHE_MAINNET_CHAIN_ID, INFINITE,
    ApprovalDisclosure, ApprovalRisk, ChainContext, ChainLabel, ConfirmationRecord, Disclosure,
    LifecycleState, RequestKind, SignedPayload, SimulationOutcome, SimulationResult,
    TransactionRequest, TxReceipt
)
from .promotion import PromotionEvidence, PromotionGuard
from .simulation import SimulationGate

__all__ = [
    "__version__",
    "TransactionGuard",
    "TransactionLifecycle",
    "InFlightRegistry",
    "ChainRegistry",
    "EndpointContext",
    "NetworkInfo",
    "CapabilityGuard",
    "Capability",
    "Role",
    "OperationKind",
    "SimulationGate",
    "DisclosureBuilder",
    "DisclosureStyle",
    "render",
    "ConfirmationLedger",
    "PromotionGuard",
    "PromotionEvidence",
    "ALLOWED_CHAIN_IDS",
    "AVALANCHE_MAINNET_CHAIN_ID",
    "AVALANCHE_FUJI_CHAIN_ID",
    "INFINITE",
    "ApprovalDisclosure",
    "ApprovalRisk",
    "ChainContext",
    "ChainLabel",
    "ConfirmationRecord",
    "Disclosure",
    "LifecycleState",
    "RequestKind",
    "SignedPayload",
    "SimulationOutcome",
    "SimulationResult",
    "TransactionRequest",
    "TxReceipt",
    "TxGuardError",
    "UnsupportedChain",
    "UntrustedEndpoint",
    "CapabilityViolation",
    "AlreadySimulated",
    "SimulationFailure",
    "IncompleteSimulation",
    "MissingApprovalDisclosure",
    "ConfirmationDenied",
    "DuplicateConfirmation",
    "PromotionBlocked",
    "InvalidTransition",
    "SignatureMismatch",
    "DuplicateInFlight",
    "SignerError",
    "BroadcastError",
    "ReceiptError",
]
