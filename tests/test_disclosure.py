"""
Tests for the DisclosureBuilder and disclosure rendering.
"""
import pytest

from txguard_sdk import (
    ApprovalDisclosure, ApprovalRisk, DisclosureBuilder, DisclosureStyle, IncompleteSimulation,
    MissingApprovalDisclosure, RequestKind, SimulationResult, render, INFINITE
)
from txguard_sdk.disclosure import INFINITE_APPROVAL_WARNING, _format_units
from txguard_sdk.models import MAX_UINT256
from conftest import TEST_CONTRACT, TEST_SPENDER, MAINNET

OK = SimulationResult.success(46000)


@pytest.fixture
def builder():
    return DisclosureBuilder()


def test_build_call(builder, make_request):
    request = make_request(declared_value=10 ** 18)
    disclosure = builder.build(request, OK)

    assert disclosure.request_id == request.id
    assert disclosure.target == request.target
    assert disclosure.function_name == "transfer"
    assert disclosure.args == request.args
    assert disclosure.declared_value == 10 ** 18
    assert disclosure.gas_estimate == 46000
    assert disclosure.chain_label.value == "Testnet"
    assert disclosure.approval is None


@pytest.mark.parametrize("result", [None, SimulationResult.failure("insufficient funds")])
def test_build_without_successful_simulation(builder, make_request, result):
    with pytest.raises(IncompleteSimulation):
        builder.build(make_request(), result)


def test_approval_requires_approval_disclosure(builder, make_request):
    request = make_request(kind=RequestKind.APPROVAL)
    with pytest.raises(MissingApprovalDisclosure):
        builder.build(request, OK)


def test_approval_disclosure_must_describe_target_token(builder, make_request):
    request = make_request(kind=RequestKind.APPROVAL)
    other_token = ApprovalDisclosure(token=TEST_SPENDER, spender=TEST_SPENDER, amount=1)
    with pytest.raises(MissingApprovalDisclosure, match="describes token"):
        builder.build(request, OK, other_token)


def test_call_refuses_approval_disclosure(builder, make_request):
    approval = ApprovalDisclosure(token=TEST_CONTRACT, spender=TEST_SPENDER, amount=1)
    with pytest.raises(ValueError):
        builder.build(make_request(), OK, approval)


def test_render_call(builder, make_request):
    request = make_request(chain_id=MAINNET, declared_value=1500000000000000000)
    text = render(builder.build(request, OK))

    assert "Review this transaction" in text
    assert "Mainnet (chain id 43114)" in text
    assert request.target in text
    assert "transfer" in text
    assert "1.5 AVAX (1500000000000000000 wei)" in text
    assert "46000" in text
    assert INFINITE_APPROVAL_WARNING not in text


@pytest.mark.parametrize("amount", [INFINITE, MAX_UINT256])
def test_render_infinite_approval(builder, make_request, amount):
    request = make_request(kind=RequestKind.APPROVAL)
    approval = ApprovalDisclosure(token=TEST_CONTRACT, spender=TEST_SPENDER, amount=amount)
    disclosure = builder.build(request, OK, approval)

    assert disclosure.approval.risk == ApprovalRisk.INFINITE
    text = render(disclosure)
    assert "Allowance:   UNLIMITED" in text
    assert INFINITE_APPROVAL_WARNING in text


def test_render_finite_approval(builder, make_request):
    request = make_request(kind=RequestKind.APPROVAL)
    approval = ApprovalDisclosure(token=TEST_CONTRACT, spender=TEST_SPENDER, amount=1000)
    text = render(builder.build(request, OK, approval))

    assert "Allowance:   1000" in text
    assert INFINITE_APPROVAL_WARNING not in text


def test_style_changes_presentation_only(builder, make_request):
    disclosure = builder.build(make_request(declared_value=2 * 10 ** 18), OK)
    style = DisclosureStyle(heading="Hey! Quick check", show_args=False, closing="Sure?")

    text = render(disclosure, style)

    assert text.startswith("Hey! Quick check")
    assert "Arguments:" not in text
    assert text.endswith("Sure?")
    assert disclosure.digest in text


@pytest.mark.parametrize("value, expected", [
    (0, "0"),
    (10 ** 18, "1"),
    (1500000000000000000, "1.5"),
    (1, "0.000000000000000001"),
])
def test_format_units(value, expected):
    assert _format_units(value, 18) == expected


def test_canonical_bytes_are_stable(builder, make_request):
    request = make_request()
    first = builder.build(request, OK)
    second = builder.build(request, OK)

    assert first.canonical_bytes() == second.canonical_bytes()
    assert first.digest == second.digest
    assert first.digest.startswith("0x") and len(first.digest) == 66


def test_any_field_change_changes_digest(builder, make_request):
    disclosure = builder.build(make_request(), OK)
    bumped = disclosure.model_copy(update={"declared_value": disclosure.declared_value + 1})
    assert bumped.digest != disclosure.digest


def test_snapshot_keys(builder, make_request):
    request = make_request(kind=RequestKind.APPROVAL)
    approval = ApprovalDisclosure(token=TEST_CONTRACT, spender=TEST_SPENDER, amount=INFINITE)
    snapshot = builder.build(request, OK, approval).fields_snapshot()

    assert snapshot["requestId"] == request.id
    assert snapshot["kind"] == "Approval"
    assert snapshot["approval"]["amount"] == "infinite"
    assert snapshot["approval"]["risk"] == "Infinite"
