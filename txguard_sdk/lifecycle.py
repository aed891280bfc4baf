"""
TransactionLifecycle - the per-request state machine.

Idle -> ChainValidated -> Simulated -> Disclosed -> Confirmed -> Signed
-> Submitted -> Monitoring -> Succeeded | Failed, with Aborted reachable
from every state before Signed. Each transition is driven by one explicit
call carrying one external event; nothing advances the machine on its own.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional, Set, Tuple

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.typed_transactions import TypedTransaction
from hexbytes import HexBytes
from web3 import Web3

from .capability import Capability, CapabilityGuard, OperationKind
from .chain_registry import ChainRegistry
from .confirmation import ConfirmationLedger
from .disclosure import DisclosureBuilder
from .exceptions import (
    BroadcastError, ConfirmationDenied, DuplicateInFlight, InvalidTransition, ReceiptError,
    SignatureMismatch, SignerError, SimulationFailure, TxGuardError
)
from .interfaces import Broadcaster, HumanPrompt, Signer, Simulator
from .models import (
    ApprovalDisclosure, ChainContext, ConfirmationRecord, Disclosure, LifecycleState,
    SignedPayload, SimulationResult, TransactionRequest, TxReceipt
)
from .promotion import EvidenceLike, PromotionEvidence, PromotionGuard, coerce_evidence
from .simulation import SimulationGate

logger = logging.getLogger(__name__)

ABORTABLE_STATES = frozenset({
    LifecycleState.IDLE,
    LifecycleState.CHAIN_VALIDATED,
    LifecycleState.SIMULATED,
    LifecycleState.DISCLOSED,
    LifecycleState.CONFIRMED,
})


class InFlightRegistry:
    """
    At most one live lifecycle per request id.

    Ids that reached a terminal state are retired for good: recovery always
    goes through a fresh request. Only ids are kept, for the life of the
    registry.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._active: Set[str] = set()
        self._retired: Set[str] = set()

    def acquire(self, request_id: str) -> None:
        with self._lock:
            if request_id in self._retired:
                raise InvalidTransition(
                    "Request already reached a terminal state; create a new request",
                    request_id=request_id,
                )
            if request_id in self._active:
                raise DuplicateInFlight("A lifecycle for this request is already in flight", request_id=request_id)
            self._active.add(request_id)

    def retire(self, request_id: str) -> None:
        with self._lock:
            self._active.discard(request_id)
            self._retired.add(request_id)

    def is_active(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._active

    def is_retired(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._retired


class TransactionLifecycle:
    """
    Drives one TransactionRequest from Idle to a terminal state.

    Shared components (registry, capability guard, simulation gate, ledger,
    in-flight registry) are passed in so that many lifecycles see the same
    records; everything else is owned by this instance.
    """

    def __init__(
        self,
        request: TransactionRequest,
        *,
        read_capability: Capability,
        write_capability: Capability,
        registry: ChainRegistry,
        capability_guard: CapabilityGuard,
        ledger: ConfirmationLedger,
        simulation_gate: Optional[SimulationGate] = None,
        disclosure_builder: Optional[DisclosureBuilder] = None,
        promotion_guard: Optional[PromotionGuard] = None,
        in_flight: Optional[InFlightRegistry] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.request = request
        self.read_capability = read_capability
        self.write_capability = write_capability
        self.registry = registry
        self.capability_guard = capability_guard
        self.ledger = ledger
        self.simulation_gate = simulation_gate or SimulationGate()
        self.disclosure_builder = disclosure_builder or DisclosureBuilder()
        self.promotion_guard = promotion_guard or PromotionGuard()
        self.in_flight = in_flight or InFlightRegistry()
        self.logger = logger or logging.getLogger(__name__)

        self.in_flight.acquire(request.id)

        self._state = LifecycleState.IDLE
        self._step_lock = threading.Lock()
        self._history: List[Tuple[LifecycleState, LifecycleState, datetime]] = []

        self.chain_context: Optional[ChainContext] = None
        self.disclosure: Optional[Disclosure] = None
        self.confirmation: Optional[ConfirmationRecord] = None
        self.signed_payload: Optional[SignedPayload] = None
        self.tx_hash: Optional[str] = None
        self.receipt: Optional[TxReceipt] = None
        self.error: Optional[TxGuardError] = None
        self.abort_reason: Optional[str] = None
        self._evidence: Optional[PromotionEvidence] = None
        self._mainnet_ack = False

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    @property
    def simulation_result(self) -> Optional[SimulationResult]:
        return self.request.simulation_result

    @property
    def history(self) -> List[Tuple[LifecycleState, LifecycleState, datetime]]:
        return list(self._history)

    def _move(self, to: LifecycleState) -> None:
        from_state = self._state
        self._state = to
        self._history.append((from_state, to, datetime.now(timezone.utc)))
        self.logger.info(f"Request {self.request.id}: {from_state.value} -> {to.value}")
        if to.is_terminal:
            self.in_flight.retire(self.request.id)

    def _require(self, *allowed: LifecycleState, event: str) -> None:
        if self._state not in allowed:
            expected = " or ".join(s.value for s in allowed)
            raise InvalidTransition(
                f"Cannot {event} in state {self._state.value}; expected {expected}",
                request_id=self.request.id,
                state=self._state.value,
            )

    @contextmanager
    def _step(self, event: str, *allowed: LifecycleState) -> Iterator[None]:
        if not self._step_lock.acquire(blocking=False):
            raise DuplicateInFlight(
                f"Another operation is in progress; cannot {event}",
                request_id=self.request.id,
                state=self._state.value,
            )
        try:
            self._require(*allowed, event=event)
            yield
        finally:
            self._step_lock.release()

    def _fail(self, error: TxGuardError, to: LifecycleState = LifecycleState.ABORTED) -> TxGuardError:
        error.with_context(request_id=self.request.id, state=self._state.value)
        self.error = error
        self._move(to)
        return error

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def validate_chain(self) -> ChainContext:
        """
        Idle -> ChainValidated.

        Raises:
            UnsupportedChain: Chain not allow-listed (lifecycle is Aborted)
            CapabilityViolation: Capabilities not live or scoped elsewhere
                (lifecycle is Aborted)
        """
        with self._step("validate chain", LifecycleState.IDLE):
            try:
                context = self.registry.validate(self.request.chain_context.chain_id)
                if context != self.request.chain_context:
                    raise InvalidTransition("Request chain context does not match the registry")
                self.capability_guard.use(self.read_capability, OperationKind.READ, context)
                self.capability_guard.use(self.write_capability, OperationKind.WRITE, context)
            except TxGuardError as e:
                raise self._fail(e)
            self.chain_context = context
            self._move(LifecycleState.CHAIN_VALIDATED)
            return context

    def simulate(self, simulator: Simulator) -> SimulationResult:
        """
        ChainValidated -> Simulated.

        Raises:
            SimulationFailure: The simulation failed; its reason is surfaced
                verbatim (lifecycle is Aborted)
            AlreadySimulated: The request id was simulated before (Aborted)
        """
        with self._step("simulate", LifecycleState.CHAIN_VALIDATED):
            try:
                self.capability_guard.use(self.read_capability, OperationKind.READ, self.chain_context)
                result = self.simulation_gate.simulate(self.request, simulator)
            except DuplicateInFlight:
                raise
            except TxGuardError as e:
                raise self._fail(e)

            if not result.succeeded:
                raise self._fail(SimulationFailure(f"Simulation failed: {result.failure_reason}"))

            self._move(LifecycleState.SIMULATED)
            return result

    def disclose(self, approval_disclosure: Optional[ApprovalDisclosure] = None) -> Disclosure:
        """
        Simulated -> Disclosed.

        Raises:
            IncompleteSimulation, MissingApprovalDisclosure: (lifecycle is Aborted)
        """
        with self._step("disclose", LifecycleState.SIMULATED):
            try:
                disclosure = self.disclosure_builder.build(
                    self.request, self.request.simulation_result, approval_disclosure
                )
            except TxGuardError as e:
                raise self._fail(e)
            self.disclosure = disclosure
            self._move(LifecycleState.DISCLOSED)
            return disclosure

    def confirm(self, prompt: HumanPrompt) -> ConfirmationRecord:
        """
        Disclosed -> Confirmed, or Aborted if the person declines.

        The prompt is asked exactly once; its answer is never inferred.

        Raises:
            ConfirmationDenied: The person declined (lifecycle is Aborted)
            DuplicateConfirmation: A record already exists (Aborted)
        """
        with self._step("confirm", LifecycleState.DISCLOSED):
            try:
                user_ack = prompt.confirm(self.disclosure)
            except Exception as e:
                raise self._fail(ConfirmationDenied(f"Confirmation prompt failed: {e}"))

            try:
                record = self.ledger.record(self.request.id, self.disclosure, user_ack)
                self.request.attach_confirmation(record)
            except TxGuardError as e:
                raise self._fail(e)

            self.confirmation = record
            self._move(LifecycleState.CONFIRMED)
            return record

    def authorize_promotion(self, evidence: EvidenceLike, explicit_mainnet_ack: bool) -> bool:
        """
        Confirmed -> Confirmed. Stores promotion evidence and checks it.

        No-op for testnet requests. The same check is repeated by ``sign``.

        Raises:
            PromotionBlocked: Evidence or acknowledgement missing for a
                mainnet request (lifecycle is Aborted)
        """
        with self._step("authorize promotion", LifecycleState.CONFIRMED):
            try:
                self._evidence = coerce_evidence(evidence)
                self._mainnet_ack = explicit_mainnet_ack is True
                self.promotion_guard.require_promotion(
                    self.request, self._evidence, self._mainnet_ack, state=self._state.value
                )
            except TxGuardError as e:
                raise self._fail(e)
            return True

    def sign(self, signer: Signer) -> SignedPayload:
        """
        Confirmed -> Signed.

        Re-validates the chain, re-runs the promotion guard and checks the
        Write capability before asking the signer. The returned payload must
        carry a signature over exactly the confirmed bytes and a typed raw
        transaction whose target, value, chain id and calldata match the
        disclosure, both from the same account.

        Raises:
            UnsupportedChain, PromotionBlocked, CapabilityViolation,
            InvalidTransition, SignerError, SignatureMismatch: (lifecycle is Aborted)
        """
        with self._step("sign", LifecycleState.CONFIRMED):
            try:
                context = self.registry.validate(self.request.chain_context.chain_id)
                if context != self.chain_context or context.chain_id != self.disclosure.chain_id:
                    raise InvalidTransition("Chain context changed between confirmation and signing")
                self.promotion_guard.require_promotion(
                    self.request, self._evidence, self._mainnet_ack, state=self._state.value
                )
                self.capability_guard.use(self.write_capability, OperationKind.WRITE, context)
                if self.disclosure.calldata is None:
                    raise InvalidTransition("Request carries no calldata; its transaction cannot be checked")

                try:
                    payload = signer.sign(self.disclosure)
                except Exception as e:
                    self.logger.error(f"Signing failed for {self.request.id}: {e}")
                    raise SignerError(f"Failed to sign transaction: {e}")

                self._verify_payload(payload)
            except TxGuardError as e:
                raise self._fail(e)

            self.signed_payload = payload
            self._move(LifecycleState.SIGNED)
            return payload

    def submit(self, broadcaster: Broadcaster) -> str:
        """
        Signed -> Submitted.

        Raises:
            BroadcastError: Submission failed (lifecycle is Failed; the signed
                payload is outside this core's control once produced)
        """
        with self._step("submit", LifecycleState.SIGNED):
            try:
                self.capability_guard.use(self.write_capability, OperationKind.WRITE, self.chain_context)
            except TxGuardError as e:
                raise self._fail(e, LifecycleState.FAILED)
            try:
                tx_hash = broadcaster.submit(self.signed_payload)
            except Exception as e:
                self.logger.error(f"Failed to send transaction for {self.request.id}: {e}")
                raise self._fail(BroadcastError(f"Failed to send transaction: {e}"), LifecycleState.FAILED)

            self.tx_hash = Web3.to_hex(tx_hash) if isinstance(tx_hash, (bytes, bytearray)) else str(tx_hash)
            self.logger.info(f"Transaction sent: {self.tx_hash}")
            self._move(LifecycleState.SUBMITTED)
            return self.tx_hash

    def await_receipt(self, broadcaster: Broadcaster) -> TxReceipt:
        """
        Submitted -> Monitoring -> Succeeded | Failed.

        If no receipt can be obtained the lifecycle stays in Monitoring and
        this call may be repeated.

        Raises:
            ReceiptError: No receipt observed (lifecycle stays Monitoring)
        """
        with self._step("await receipt", LifecycleState.SUBMITTED, LifecycleState.MONITORING):
            if self._state == LifecycleState.SUBMITTED:
                self._move(LifecycleState.MONITORING)

            try:
                self.capability_guard.use(self.read_capability, OperationKind.READ, self.chain_context)
            except TxGuardError as e:
                raise e.with_context(request_id=self.request.id, state=self._state.value)
            try:
                raw_receipt = broadcaster.wait_for_receipt(self.tx_hash)
                receipt = TxReceipt.from_web3(raw_receipt)
            except Exception as e:
                self.logger.warning(f"No receipt yet for {self.tx_hash}: {e}")
                raise ReceiptError(
                    f"No receipt for {self.tx_hash}: {e}",
                    request_id=self.request.id,
                    state=self._state.value,
                )

            self.receipt = receipt
            if receipt.succeeded:
                self._move(LifecycleState.SUCCEEDED)
            else:
                self.error = TxGuardError(
                    f"Transaction {self.tx_hash} reverted on-chain (status {receipt.status})",
                    request_id=self.request.id,
                    state=LifecycleState.MONITORING.value,
                )
                self._move(LifecycleState.FAILED)
            return receipt

    def abort(self, reason: str = "aborted by caller") -> None:
        """
        Abort a lifecycle that has not been signed yet.

        Raises:
            InvalidTransition: From Signed onwards, or from a terminal state
        """
        with self._step("abort", *ABORTABLE_STATES):
            self.abort_reason = reason
            self.logger.info(f"Request {self.request.id} aborted: {reason}")
            self._move(LifecycleState.ABORTED)

    # ------------------------------------------------------------------
    # Payload verification
    # ------------------------------------------------------------------

    def _verify_payload(self, payload: Any) -> None:
        if not isinstance(payload, SignedPayload):
            raise SignatureMismatch(f"Signer returned {type(payload).__name__}, expected SignedPayload")

        expected = self.confirmation.disclosed_bytes
        if self.disclosure.canonical_bytes() != expected:
            raise SignatureMismatch("Disclosure changed after confirmation")
        if bytes(getattr(payload, "signed_fields", b"") or b"") != expected:
            raise SignatureMismatch("Signed fields do not match the confirmed fields")

        signature = getattr(payload, "signature", None)
        signer_address = getattr(payload, "signer_address", None)
        if not signature or not signer_address or not Web3.is_address(signer_address):
            raise SignatureMismatch("Signed payload carries no signature or signer address")
        signer_address = Web3.to_checksum_address(signer_address)

        try:
            recovered = Account.recover_message(encode_defunct(primitive=expected), signature=signature)
        except Exception as e:
            raise SignatureMismatch(f"Signature over the confirmed fields is invalid: {e}")
        if recovered != signer_address:
            raise SignatureMismatch(f"Signature recovers to {recovered}, not signer {signer_address}")

        self._verify_raw_transaction(bytes(getattr(payload, "raw_transaction", b"") or b""), signer_address)

    def _verify_raw_transaction(self, raw: bytes, signer_address: str) -> None:
        disclosure = self.disclosure
        # EIP-2718 typed envelopes start with a type byte below 0x80
        if not raw or raw[0] > 0x7f:
            raise SignatureMismatch("Raw transaction is not an EIP-2718 typed transaction")

        try:
            tx = TypedTransaction.from_bytes(HexBytes(raw)).as_dict()
            sender = Account.recover_transaction(raw)
        except Exception as e:
            raise SignatureMismatch(f"Raw transaction cannot be decoded: {e}")

        to = tx.get("to")
        if isinstance(to, (bytes, bytearray)):
            to = Web3.to_hex(to) if to else None
        if not to or not Web3.is_address(to) or Web3.to_checksum_address(to) != disclosure.target:
            raise SignatureMismatch(f"Signed transaction targets {to}, not {disclosure.target}")
        if _as_int(tx.get("value", 0)) != disclosure.declared_value:
            raise SignatureMismatch(
                f"Signed transaction value {tx.get('value')} differs from disclosed {disclosure.declared_value}"
            )
        if _as_int(tx.get("chainId")) != disclosure.chain_id:
            raise SignatureMismatch(
                f"Signed transaction chain {tx.get('chainId')} differs from disclosed {disclosure.chain_id}"
            )
        if HexBytes(tx.get("data") or b"") != HexBytes(disclosure.calldata):
            raise SignatureMismatch("Signed transaction calldata differs from the disclosed calldata")
        if Web3.to_checksum_address(sender) != signer_address:
            raise SignatureMismatch(f"Signed transaction was sent by {sender}, not signer {signer_address}")


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.startswith("0x") else int(value)
        except ValueError:
            return None
    return None
