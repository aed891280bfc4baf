"""
DisclosureBuilder - the facts a person sees before confirming.
"""
from typing import List, Optional

from pydantic import BaseModel

from .exceptions import IncompleteSimulation, MissingApprovalDisclosure
from .models import (
    ApprovalDisclosure, ApprovalRisk, Disclosure, RequestKind, SimulationResult, TransactionRequest
)


class DisclosureStyle(BaseModel):
    """
    Immutable presentation settings consumed by a HumanPrompt.

    Tone and wording live here, never in lifecycle state.
    """
    heading: str = "Review this transaction"
    show_args: bool = True
    native_symbol: str = "AVAX"
    value_decimals: int = 18
    closing: str = "Confirm only if every field above is what you intend."

    class Config:
        frozen = True


DEFAULT_STYLE = DisclosureStyle()

INFINITE_APPROVAL_WARNING = (
    "WARNING: this approval is UNLIMITED. The spender can move every token of this "
    "kind you hold, now and in the future, until the approval is revoked."
)


class DisclosureBuilder:
    """Builds disclosures from a request and its successful simulation"""

    def build(
        self,
        request: TransactionRequest,
        simulation_result: Optional[SimulationResult],
        approval_disclosure: Optional[ApprovalDisclosure] = None
    ) -> Disclosure:
        """
        Build the disclosure for a request.

        Args:
            request: The transaction request
            simulation_result: Its simulation result
            approval_disclosure: Required for Approval requests, refused otherwise

        Raises:
            IncompleteSimulation: If the simulation did not succeed
            MissingApprovalDisclosure: If an Approval request has no usable
                approval disclosure
            ValueError: If an approval disclosure is given for a Call request
        """
        if simulation_result is None or not simulation_result.succeeded:
            reason = simulation_result.failure_reason if simulation_result else "no simulation result"
            raise IncompleteSimulation(
                f"Cannot disclose a request without a successful simulation: {reason}",
                request_id=request.id,
            )

        if request.kind == RequestKind.APPROVAL:
            if approval_disclosure is None:
                raise MissingApprovalDisclosure(
                    "Approval requests require an approval disclosure", request_id=request.id
                )
            if approval_disclosure.token != request.target:
                raise MissingApprovalDisclosure(
                    f"Approval disclosure describes token {approval_disclosure.token}, "
                    f"but the request targets {request.target}",
                    request_id=request.id,
                )
        elif approval_disclosure is not None:
            raise ValueError("approval_disclosure is only valid for Approval requests")

        return Disclosure(
            request_id=request.id,
            target=request.target,
            function_name=request.function_name,
            args=request.args,
            calldata=request.calldata,
            declared_value=request.declared_value,
            gas_estimate=simulation_result.gas_estimate,
            chain_id=request.chain_context.chain_id,
            chain_label=request.chain_context.label,
            kind=request.kind,
            approval=approval_disclosure,
        )


def _format_units(value: int, decimals: int) -> str:
    whole, fraction = divmod(value, 10 ** decimals)
    if not fraction:
        return str(whole)
    return f"{whole}.{str(fraction).rjust(decimals, '0').rstrip('0')}"


def render(disclosure: Disclosure, style: DisclosureStyle = DEFAULT_STYLE) -> str:
    """Human-readable text for a disclosure"""
    lines: List[str] = [style.heading, ""]
    lines.append(f"Network:     {disclosure.chain_label.value} (chain id {disclosure.chain_id})")
    lines.append(f"Contract:    {disclosure.target}")
    lines.append(f"Function:    {disclosure.function_name}")
    if style.show_args:
        rendered_args = ", ".join(repr(a) for a in disclosure.args)
        lines.append(f"Arguments:   ({rendered_args})")
    lines.append(
        f"Value:       {_format_units(disclosure.declared_value, style.value_decimals)} {style.native_symbol}"
        f" ({disclosure.declared_value} wei)"
    )
    lines.append(f"Gas (est.):  {disclosure.gas_estimate}")

    if disclosure.approval is not None:
        approval = disclosure.approval
        lines.append("")
        lines.append(f"Token:       {approval.token}")
        lines.append(f"Spender:     {approval.spender}")
        amount = "UNLIMITED" if approval.risk == ApprovalRisk.INFINITE else str(approval.amount)
        lines.append(f"Allowance:   {amount}")
        if approval.risk == ApprovalRisk.INFINITE:
            lines.append(INFINITE_APPROVAL_WARNING)

    lines.append("")
    lines.append(f"Disclosure digest: {disclosure.digest}")
    lines.append(style.closing)
    return "\n".join(lines)
