"""
Protocols for the external collaborators of the gate.

None of these are implemented by the core. The signer in particular holds
all key material; the core only ever sees its signed payload.
"""
from typing import Any, Mapping, Protocol, Union

from .models import Disclosure, SignedPayload, SimulationResult, TransactionRequest, TxReceipt


class Simulator(Protocol):
    """Dry-runs a request against a node"""

    def simulate(self, request: TransactionRequest) -> Union[SimulationResult, Mapping[str, Any]]:
        ...


class Signer(Protocol):
    """External wallet software"""

    def sign(self, disclosure: Disclosure) -> SignedPayload:
        """Sign the disclosed fields and a typed transaction carrying the disclosed calldata"""
        ...


class Broadcaster(Protocol):
    """Submits signed payloads and observes receipts"""

    def submit(self, signed_payload: SignedPayload) -> str:
        """Broadcast and return the transaction hash"""
        ...

    def wait_for_receipt(self, tx_hash: str) -> Union[TxReceipt, Mapping[str, Any]]:
        ...


class HumanPrompt(Protocol):
    """Shows a disclosure to a person and returns their explicit answer"""

    def confirm(self, disclosure: Disclosure) -> bool:
        ...
