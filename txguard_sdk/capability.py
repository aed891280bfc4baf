"""
CapabilityGuard - read/write separation of execution handles.

A Read handle can never execute a state-mutating operation and a Write
handle can never answer a read query. Each role is granted separately;
there is no operation that turns one into the other.
"""
import uuid
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set, Tuple

from .exceptions import CapabilityViolation
from .models import ChainContext

logger = logging.getLogger(__name__)


class Role(str, Enum):
    READ = "Read"
    WRITE = "Write"


class OperationKind(str, Enum):
    READ = "read"
    WRITE = "write"


_ROLE_FOR_OPERATION = {
    OperationKind.READ: Role.READ,
    OperationKind.WRITE: Role.WRITE,
}


@dataclass(frozen=True)
class Capability:
    """
    Opaque handle scoped to one session and one chain context.

    Attributes:
        handle_id: Unique handle identifier
        role: Read or Write
        chain_context: The only chain this handle may act on
        session_id: Session the handle belongs to
    """
    handle_id: str
    role: Role
    chain_context: ChainContext
    session_id: str


class CapabilityGuard:
    """Grants, checks and destroys capability handles"""

    def __init__(self):
        self._lock = threading.RLock()
        self._sessions: Set[str] = set()
        self._handles: Dict[str, Capability] = {}
        self._by_key: Dict[Tuple[str, Role, int], str] = {}
        self._default_session = self.open_session()

    def open_session(self) -> str:
        session_id = uuid.uuid4().hex
        with self._lock:
            self._sessions.add(session_id)
        logger.debug(f"Opened capability session {session_id}")
        return session_id

    def close_session(self, session_id: str) -> None:
        """Destroy every handle of a session"""
        with self._lock:
            self._sessions.discard(session_id)
            for handle_id in [h for h, cap in self._handles.items() if cap.session_id == session_id]:
                self._drop(self._handles[handle_id])
        logger.debug(f"Closed capability session {session_id}")

    def grant(
        self,
        role: Role,
        chain_context: ChainContext,
        session_id: Optional[str] = None
    ) -> Capability:
        """
        Grant a handle for one role on one chain.

        Args:
            role: Read or Write
            chain_context: Validated chain context
            session_id: Session to grant in (defaults to the guard's own session)

        Raises:
            CapabilityViolation: For rejected chains, unknown sessions, or a
                second live handle with the same session, role and chain
        """
        role = Role(role)
        session_id = session_id or self._default_session
        if not chain_context.allowlisted:
            raise CapabilityViolation(f"Cannot grant {role.value} on rejected chain {chain_context.chain_id}")

        with self._lock:
            if session_id not in self._sessions:
                raise CapabilityViolation(f"Session {session_id} is not open")
            key = (session_id, role, chain_context.chain_id)
            if key in self._by_key:
                raise CapabilityViolation(
                    f"A {role.value} handle for chain {chain_context.chain_id} is already live in this session"
                )
            capability = Capability(
                handle_id=uuid.uuid4().hex,
                role=role,
                chain_context=chain_context,
                session_id=session_id,
            )
            self._handles[capability.handle_id] = capability
            self._by_key[key] = capability.handle_id

        logger.info(f"Granted {role.value} capability on chain {chain_context.chain_id}")
        return capability

    def is_live(self, capability: Capability) -> bool:
        with self._lock:
            return self._handles.get(capability.handle_id) == capability

    def use(
        self,
        capability: Capability,
        operation_kind: OperationKind,
        chain_context: Optional[ChainContext] = None
    ) -> None:
        """
        Check that a handle may perform an operation.

        Raises:
            CapabilityViolation: If the handle is not live, has the wrong
                role for the operation, or is scoped to another chain
        """
        operation_kind = OperationKind(operation_kind)
        if not isinstance(capability, Capability) or not self.is_live(capability):
            raise CapabilityViolation("Capability handle is revoked or was never granted")

        required = _ROLE_FOR_OPERATION[operation_kind]
        if capability.role != required:
            raise CapabilityViolation(
                f"{capability.role.value} capability cannot perform a {operation_kind.value} operation"
            )

        if chain_context is not None and capability.chain_context != chain_context:
            raise CapabilityViolation(
                f"Capability is scoped to chain {capability.chain_context.chain_id}, "
                f"not {chain_context.chain_id}"
            )

    def revoke(self, capability: Capability) -> None:
        with self._lock:
            if self._handles.get(capability.handle_id) == capability:
                self._drop(capability)

    def _drop(self, capability: Capability) -> None:
        self._handles.pop(capability.handle_id, None)
        self._by_key.pop((capability.session_id, capability.role, capability.chain_context.chain_id), None)
