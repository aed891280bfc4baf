"""
SimulationGate - mandatory pre-submission simulation.

The gate fails closed: transport errors and ambiguous simulator replies are
recorded as failures, never as success.
"""
import logging
import threading
from typing import Any, Mapping, Optional, Set

from pydantic import ValidationError

from .exceptions import AlreadySimulated, DuplicateInFlight
from .interfaces import Simulator
from .models import SimulationOutcome, SimulationResult, TransactionRequest

logger = logging.getLogger(__name__)


def _first(reply: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in reply:
            return reply[key]
    return None


def normalize_simulation_reply(reply: Any) -> SimulationResult:
    """
    Turn a simulator reply into a SimulationResult.

    Accepts a SimulationResult or a mapping with ``success`` (bool) or
    ``outcome``, ``gasEstimate``/``gas_estimate`` and an optional
    ``reason``/``failureReason``. Anything that cannot be read unambiguously
    becomes a Failure.
    """
    if isinstance(reply, SimulationResult):
        return reply
    if not isinstance(reply, Mapping):
        return SimulationResult.failure(f"Ambiguous simulator reply of type {type(reply).__name__}")

    reason = _first(reply, "reason", "failureReason", "failure_reason")
    gas = _first(reply, "gasEstimate", "gas_estimate", "gas")

    success = reply.get("success")
    outcome = reply.get("outcome")
    if isinstance(success, bool):
        succeeded = success
    elif outcome is not None:
        try:
            succeeded = SimulationOutcome(outcome) == SimulationOutcome.SUCCESS
        except ValueError:
            return SimulationResult.failure(f"Unknown simulation outcome {outcome!r}")
    else:
        return SimulationResult.failure("Simulator reply has no outcome")

    if not succeeded:
        return SimulationResult.failure(str(reason) if reason else "simulation reported failure")

    if isinstance(gas, bool) or not isinstance(gas, int) or gas < 0:
        return SimulationResult.failure(f"Simulator reported success without a usable gas estimate ({gas!r})")

    try:
        return SimulationResult.success(gas)
    except ValidationError as e:
        return SimulationResult.failure(f"Invalid simulator reply: {e}")


class SimulationGate:
    """
    Runs each request through the simulator exactly once.

    Only request ids are remembered; the result itself lives on the request.
    Simulated ids are kept for the life of the gate so that none can be
    simulated twice.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._simulated: Set[str] = set()
        self._pending: Set[str] = set()

    def was_simulated(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._simulated

    def simulate(self, request: TransactionRequest, simulator: Simulator) -> SimulationResult:
        """
        Simulate a request once and record the result.

        Returns:
            The recorded SimulationResult (Success or Failure)

        Raises:
            AlreadySimulated: If a result is already recorded for this request id
            DuplicateInFlight: If a simulation for this request id is running
        """
        with self._lock:
            if request.id in self._simulated or request.simulation_result is not None:
                raise AlreadySimulated(
                    "Request was already simulated; create a new request to retry",
                    request_id=request.id,
                )
            if request.id in self._pending:
                raise DuplicateInFlight("A simulation for this request is already running", request_id=request.id)
            self._pending.add(request.id)

        try:
            try:
                reply = simulator.simulate(request)
            except Exception as e:
                self.logger.warning(f"Simulator transport error for {request.id}: {e}")
                result = SimulationResult.failure(f"Simulator transport error: {e}")
            else:
                result = normalize_simulation_reply(reply)

            with self._lock:
                self._simulated.add(request.id)
            request.attach_simulation(result)
        finally:
            with self._lock:
                self._pending.discard(request.id)

        if result.succeeded:
            self.logger.info(f"Simulation succeeded for {request.id} (gas {result.gas_estimate})")
        else:
            self.logger.warning(f"Simulation failed for {request.id}: {result.failure_reason}")
        return result
