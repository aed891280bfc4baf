"""
Exceptions for the transaction-safety gate.

Every error is terminal for the request it concerns. Each carries the
reason, the request id and the lifecycle state at failure so that it can be
shown to a person verbatim.
"""
from typing import Optional


class TxGuardError(Exception):
    """Base exception for all txguard errors."""

    error_code = "TXGUARD_ERROR"

    def __init__(
        self,
        reason: str,
        request_id: Optional[str] = None,
        state: Optional[str] = None
    ):
        self.reason = reason
        self.request_id = request_id
        self.state = state
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.request_id is not None:
            context.append(f"request_id={self.request_id}")
        if self.state is not None:
            context.append(f"state={self.state}")
        if not context:
            return self.reason
        return f"{self.reason} ({', '.join(context)})"

    def with_context(
        self,
        request_id: Optional[str] = None,
        state: Optional[str] = None
    ) -> "TxGuardError":
        """
        Fill in request id and state if they were not known when raised.

        Returns:
            The same exception instance, for ``raise err.with_context(...)``
        """
        if self.request_id is None and request_id is not None:
            self.request_id = request_id
        if self.state is None and state is not None:
            self.state = state
        self.args = (self._format(),)
        return self


class UnsupportedChain(TxGuardError):
    """Raised when a chain id is outside the allow-list."""
    error_code = "UNSUPPORTED_CHAIN"


class UntrustedEndpoint(TxGuardError):
    """Raised when an RPC endpoint is not bundled and not approved out-of-band."""
    error_code = "UNTRUSTED_ENDPOINT"


class CapabilityViolation(TxGuardError):
    """Raised when a capability handle is used outside its role or scope."""
    error_code = "CAPABILITY_VIOLATION"


class AlreadySimulated(TxGuardError):
    """Raised when a request already carries a simulation result."""
    error_code = "ALREADY_SIMULATED"


class SimulationFailure(TxGuardError):
    """Raised when the pre-submission simulation did not succeed."""
    error_code = "SIMULATION_FAILURE"


class IncompleteSimulation(TxGuardError):
    """Raised when a disclosure is requested for an unsuccessful simulation."""
    error_code = "INCOMPLETE_SIMULATION"


class MissingApprovalDisclosure(TxGuardError):
    """Raised when an approval request has no usable approval disclosure."""
    error_code = "MISSING_APPROVAL_DISCLOSURE"


class ConfirmationDenied(TxGuardError):
    """Raised when a person did not explicitly acknowledge a disclosure."""
    error_code = "CONFIRMATION_DENIED"


class DuplicateConfirmation(TxGuardError):
    """Raised when a request already has a confirmation record."""
    error_code = "DUPLICATE_CONFIRMATION"


class PromotionBlocked(TxGuardError):
    """Raised when a mainnet request lacks promotion evidence or acknowledgement."""
    error_code = "PROMOTION_BLOCKED"


class InvalidTransition(TxGuardError):
    """Raised when a lifecycle event arrives out of order."""
    error_code = "INVALID_TRANSITION"


class SignatureMismatch(InvalidTransition):
    """Raised when a signed payload does not match the disclosed fields."""
    error_code = "SIGNATURE_MISMATCH"


class DuplicateInFlight(TxGuardError):
    """Raised when a second operation for the same request id is already running."""
    error_code = "DUPLICATE_IN_FLIGHT"


class SignerError(TxGuardError):
    """Raised when the external signer fails."""
    error_code = "SIGNER_ERROR"


class BroadcastError(TxGuardError):
    """Raised when the external broadcaster fails to submit a signed payload."""
    error_code = "BROADCAST_ERROR"


class ReceiptError(TxGuardError):
    """Raised when no receipt could be obtained for a submitted transaction."""
    error_code = "RECEIPT_ERROR"
