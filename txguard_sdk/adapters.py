"""
web3.py reference implementations of the Simulator and Broadcaster
interfaces.

Neither adapter signs anything: simulation uses ``eth_call`` and
``eth_estimateGas``; broadcasting forwards an already signed payload.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from web3 import Web3
from web3.exceptions import ContractLogicError

from .config import get_receipt_timeout
from .models import SignedPayload, SimulationResult, TransactionRequest, TxReceipt


class Web3Simulator:
    """Simulates contract calls against a node"""

    def __init__(
        self,
        w3: Web3,
        abi: List[Dict[str, Any]],
        from_address: str,
        gas_buffer: float = 1.1,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            w3: Connected Web3 instance
            abi: ABI of the contracts requests target
            from_address: Account the call is simulated from
            gas_buffer: Multiplier applied to the node's gas estimate
            logger: Optional logger instance
        """
        if gas_buffer < 1:
            raise ValueError("gas_buffer must be at least 1")
        self.w3 = w3
        self.abi = abi
        self.from_address = Web3.to_checksum_address(from_address)
        self.gas_buffer = gas_buffer
        self.logger = logger or logging.getLogger(__name__)

    def simulate(self, request: TransactionRequest) -> SimulationResult:
        """
        Dry-run a request.

        Reverts become Failure results. Transport errors propagate so the
        simulation gate records them as failures.
        """
        actual_chain_id = self.w3.eth.chain_id
        expected_chain_id = request.chain_context.chain_id
        if actual_chain_id != expected_chain_id:
            return SimulationResult.failure(
                f"Chain ID mismatch: node reports {actual_chain_id}, request targets {expected_chain_id}"
            )

        contract = self.w3.eth.contract(address=request.target, abi=self.abi)
        try:
            fn = getattr(contract.functions, request.function_name)(*_plain(request.args))
        except AttributeError:
            return SimulationResult.failure(f"Function {request.function_name} is not in the ABI")

        tx_params = {"from": self.from_address, "value": request.declared_value}
        try:
            fn.call(tx_params)
            gas = fn.estimate_gas(tx_params)
        except ContractLogicError as e:
            self.logger.debug(f"Simulation reverted for {request.id}: {e}")
            return SimulationResult.failure(f"Execution reverted: {e}")

        gas = int(gas * self.gas_buffer)
        self.logger.debug(f"Estimated gas for {request.id}: {gas}")
        return SimulationResult.success(gas)


class Web3Broadcaster:
    """Forwards signed payloads to a node and waits for receipts"""

    def __init__(
        self,
        w3: Web3,
        receipt_timeout: Optional[int] = None,
        poll_interval: float = 0.1,
        logger: Optional[logging.Logger] = None
    ):
        self.w3 = w3
        self.receipt_timeout = receipt_timeout or get_receipt_timeout()
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)

    def submit(self, signed_payload: SignedPayload) -> str:
        tx_hash = self.w3.eth.send_raw_transaction(signed_payload.raw_transaction)
        tx_hash_hex = Web3.to_hex(tx_hash)
        self.logger.info(f"Transaction sent: {tx_hash_hex}")
        return tx_hash_hex

    def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash,
            timeout=self.receipt_timeout,
            poll_latency=self.poll_interval,
        )
        return TxReceipt.from_web3(receipt)


def encode_calldata(abi: List[Dict[str, Any]], function_name: str, args: Sequence[Any] = ()) -> str:
    """
    ABI-encode a contract call offline.

    Returns:
        0x-prefixed calldata, as disclosed and later matched against the
        signed transaction

    Raises:
        ValueError: If the function is not in the ABI or the arguments do not fit it
    """
    contract = Web3().eth.contract(abi=abi)
    try:
        return contract.encode_abi(function_name, args=_plain(args))
    except Exception as e:
        raise ValueError(f"Cannot encode {function_name}: {e}") from e


def _plain(value: Any) -> Any:
    """Frozen request arguments back to the lists and dicts web3 encodes"""
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value
