"""
PromotionGuard - gate on the step from testnet to mainnet.
"""
import logging
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, StrictBool, ValidationError

from .exceptions import PromotionBlocked
from .models import TransactionRequest

logger = logging.getLogger(__name__)


class PromotionEvidence(BaseModel):
    """What the caller has proven before targeting mainnet"""
    testnet_validated: StrictBool = Field(False, alias="testnetValidated")
    fork_tested: StrictBool = Field(False, alias="forkTested")

    class Config:
        frozen = True
        populate_by_name = True


EvidenceLike = Union[PromotionEvidence, Mapping[str, Any], None]


def coerce_evidence(evidence: EvidenceLike) -> PromotionEvidence:
    """
    Raises:
        PromotionBlocked: If the evidence is not a mapping of strict booleans
    """
    if evidence is None:
        return PromotionEvidence()
    if isinstance(evidence, PromotionEvidence):
        return evidence
    if not isinstance(evidence, Mapping):
        raise PromotionBlocked(f"Invalid promotion evidence {evidence!r}: expected a mapping")
    try:
        return PromotionEvidence.model_validate(dict(evidence))
    except ValidationError as e:
        raise PromotionBlocked(
            f"Invalid promotion evidence {evidence!r}: {e.error_count()} invalid field(s)"
        )


class PromotionGuard:
    """Requires testnet validation, fork testing and an explicit mainnet acknowledgement"""

    def missing_requirements(
        self,
        request: TransactionRequest,
        evidence: EvidenceLike,
        explicit_mainnet_ack: bool
    ) -> List[str]:
        """Names of the unmet requirements; empty for testnet requests"""
        if not request.chain_context.is_mainnet:
            return []
        evidence = coerce_evidence(evidence)
        missing = []
        if evidence.testnet_validated is not True:
            missing.append("testnetValidated")
        if evidence.fork_tested is not True:
            missing.append("forkTested")
        if explicit_mainnet_ack is not True:
            missing.append("explicitMainnetAck")
        return missing

    def authorize_promotion(
        self,
        request: TransactionRequest,
        evidence: EvidenceLike,
        explicit_mainnet_ack: bool
    ) -> bool:
        """
        Decide whether a request may proceed towards mainnet signing.

        Testnet requests always pass.
        """
        return not self.missing_requirements(request, evidence, explicit_mainnet_ack)

    def require_promotion(
        self,
        request: TransactionRequest,
        evidence: EvidenceLike,
        explicit_mainnet_ack: bool,
        state: Optional[str] = None
    ) -> None:
        """
        Raises:
            PromotionBlocked: If any requirement is unmet for a mainnet request
        """
        missing = self.missing_requirements(request, evidence, explicit_mainnet_ack)
        if missing:
            logger.warning(f"Mainnet promotion blocked for {request.id}: missing {', '.join(missing)}")
            raise PromotionBlocked(
                f"Mainnet promotion blocked: missing {', '.join(missing)}",
                request_id=request.id,
                state=state,
            )
