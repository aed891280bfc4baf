"""
TransactionGuard - main entry point of the txguard SDK.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from .adapters import encode_calldata
from .capability import Capability, CapabilityGuard, Role
from .chain_registry import ChainRegistry
from .confirmation import ConfirmationLedger
from .disclosure import DisclosureBuilder
from .lifecycle import InFlightRegistry, TransactionLifecycle
from .models import RequestKind, TransactionRequest
from .promotion import PromotionGuard
from .simulation import SimulationGate


class TransactionGuard:
    """
    Owns the components shared by every request and creates lifecycles.

    The guard never signs, never holds keys and never drives a lifecycle
    by itself. Typical use:

        guard = TransactionGuard()
        session = guard.open_session()
        read = guard.grant(session, Role.READ, 43113)
        write = guard.grant(session, Role.WRITE, 43113)
        request = guard.new_request(target, "transfer", 43113, args=(to, amount), abi=abi)
        lifecycle = guard.begin(request, read_capability=read, write_capability=write)
        lifecycle.validate_chain()
        lifecycle.simulate(simulator)
        lifecycle.disclose()
        lifecycle.confirm(prompt)
        lifecycle.sign(signer)
        lifecycle.submit(broadcaster)
        lifecycle.await_receipt(broadcaster)
    """

    def __init__(
        self,
        registry: Optional[ChainRegistry] = None,
        capability_guard: Optional[CapabilityGuard] = None,
        simulation_gate: Optional[SimulationGate] = None,
        disclosure_builder: Optional[DisclosureBuilder] = None,
        ledger: Optional[ConfirmationLedger] = None,
        promotion_guard: Optional[PromotionGuard] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the TransactionGuard

        Args:
            registry: Chain allow-list and metadata (defaults to bundled networks)
            capability_guard: Registry of capability handles
            simulation_gate: Records simulation results per request id
            disclosure_builder: Builds disclosures
            ledger: Records confirmations per request id
            promotion_guard: Mainnet promotion checks
            logger: Optional logger instance to use for debug/info logging
        """
        self.logger = logger or logging.getLogger(__name__)
        self.registry = registry or ChainRegistry(logger=self.logger)
        self.capability_guard = capability_guard or CapabilityGuard()
        self.simulation_gate = simulation_gate or SimulationGate(logger=self.logger)
        self.disclosure_builder = disclosure_builder or DisclosureBuilder()
        self.ledger = ledger or ConfirmationLedger()
        self.promotion_guard = promotion_guard or PromotionGuard()
        self.in_flight = InFlightRegistry()

    def open_session(self) -> str:
        return self.capability_guard.open_session()

    def close_session(self, session_id: str) -> None:
        self.capability_guard.close_session(session_id)

    def grant(self, session_id: str, role: Role, chain_id: int) -> Capability:
        """
        Grant a capability on a validated chain.

        Raises:
            UnsupportedChain: If the chain is not allow-listed
            CapabilityViolation: If the handle cannot be granted
        """
        context = self.registry.validate(chain_id)
        return self.capability_guard.grant(role, context, session_id)

    def new_request(
        self,
        target: str,
        function_name: str,
        chain_id: int,
        args: Sequence[Any] = (),
        declared_value: int = 0,
        kind: RequestKind = RequestKind.CALL,
        abi: Optional[List[Dict[str, Any]]] = None,
        calldata: Optional[str] = None
    ) -> TransactionRequest:
        """
        Create a request with a fresh id.

        With an ``abi`` the call is encoded here; otherwise pass ``calldata``
        directly. A request without calldata can be simulated and confirmed
        but never signed.
        """
        if abi is not None and calldata is None:
            calldata = encode_calldata(abi, function_name, args)
        return TransactionRequest.create(
            target=target,
            function_name=function_name,
            chain_id=chain_id,
            args=tuple(args),
            declared_value=declared_value,
            kind=kind,
            calldata=calldata,
        )

    def begin(
        self,
        request: TransactionRequest,
        *,
        read_capability: Capability,
        write_capability: Capability
    ) -> TransactionLifecycle:
        """
        Start the lifecycle of one request.

        Raises:
            DuplicateInFlight: If a lifecycle for this request id is live
            InvalidTransition: If this request id already reached a terminal state
        """
        return TransactionLifecycle(
            request,
            read_capability=read_capability,
            write_capability=write_capability,
            registry=self.registry,
            capability_guard=self.capability_guard,
            ledger=self.ledger,
            simulation_gate=self.simulation_gate,
            disclosure_builder=self.disclosure_builder,
            promotion_guard=self.promotion_guard,
            in_flight=self.in_flight,
            logger=self.logger,
        )

    def tx_url(self, chain_id: int, tx_hash: str) -> Optional[str]:
        return self.registry.tx_url(chain_id, tx_hash)
