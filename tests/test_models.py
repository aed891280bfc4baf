"""
Tests for the data models.
"""
import pytest
from pydantic import ValidationError

from txguard_sdk import (
    AlreadySimulated, ApprovalDisclosure, ApprovalRisk, ChainContext, ChainLabel, ConfirmationRecord,
    DuplicateConfirmation, LifecycleState, SignedPayload, SimulationResult, TransactionRequest, TxReceipt,
    INFINITE
)
from txguard_sdk.models import MAX_UINT256
from conftest import TEST_CONTRACT, TEST_SPENDER, TEST_RECIPIENT, TEST_TX_HASH, MAINNET, FUJI


class TestChainContext:
    """Chain contexts are derived from the chain id and cannot be mislabelled"""

    def test_from_chain_id(self):
        assert ChainContext.from_chain_id(MAINNET).label == ChainLabel.MAINNET
        assert ChainContext.from_chain_id(FUJI).label == ChainLabel.TESTNET
        rejected = ChainContext.from_chain_id(1)
        assert rejected.label == ChainLabel.REJECTED
        assert not rejected.allowlisted

    @pytest.mark.parametrize("chain_id", ["43114", 43114.0, True, None])
    def test_non_integer_chain_id(self, chain_id):
        with pytest.raises(ValueError):
            ChainContext.from_chain_id(chain_id)

    def test_cannot_allowlist_foreign_chain(self):
        with pytest.raises(ValidationError):
            ChainContext(chain_id=1, label=ChainLabel.REJECTED, allowlisted=True)

    def test_cannot_relabel_mainnet(self):
        with pytest.raises(ValidationError):
            ChainContext(chain_id=MAINNET, label=ChainLabel.TESTNET, allowlisted=True)

    def test_immutable(self):
        context = ChainContext.from_chain_id(FUJI)
        with pytest.raises(ValidationError):
            context.chain_id = MAINNET


class TestSimulationResult:
    def test_failure_needs_reason(self):
        with pytest.raises(ValidationError):
            SimulationResult(outcome="Failure")

    def test_negative_gas(self):
        with pytest.raises(ValidationError):
            SimulationResult.success(-1)


class TestApprovalDisclosure:
    @pytest.mark.parametrize("amount, risk", [
        (0, ApprovalRisk.FINITE),
        (1000, ApprovalRisk.FINITE),
        (MAX_UINT256 - 1, ApprovalRisk.FINITE),
        (MAX_UINT256, ApprovalRisk.INFINITE),
        (INFINITE, ApprovalRisk.INFINITE),
    ])
    def test_risk(self, amount, risk):
        assert ApprovalDisclosure(token=TEST_CONTRACT, spender=TEST_SPENDER, amount=amount).risk == risk

    def test_addresses_are_checksummed(self):
        approval = ApprovalDisclosure(token=TEST_CONTRACT.lower(), spender=TEST_SPENDER, amount=1)
        assert approval.token == TEST_CONTRACT

    @pytest.mark.parametrize("fields", [
        {"token": "0x1234", "spender": TEST_SPENDER, "amount": 1},
        {"token": TEST_CONTRACT, "spender": TEST_SPENDER, "amount": -1},
        {"token": TEST_CONTRACT, "spender": TEST_SPENDER, "amount": "lots"},
    ])
    def test_invalid(self, fields):
        with pytest.raises(ValidationError):
            ApprovalDisclosure(**fields)


class TestTransactionRequest:
    def test_create(self):
        request = TransactionRequest.create(TEST_CONTRACT.lower(), "transfer", FUJI, args=[TEST_SPENDER, 5])
        assert request.target == TEST_CONTRACT
        assert request.args == (TEST_SPENDER, 5)
        assert request.chain_context.label == ChainLabel.TESTNET
        assert len(request.id) == 32

    def test_ids_are_unique(self):
        first = TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI)
        second = TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI)
        assert first.id != second.id

    @pytest.mark.parametrize("fields", [
        {"target": "not-an-address", "function_name": "transfer", "chain_id": FUJI},
        {"target": TEST_CONTRACT, "function_name": "", "chain_id": FUJI},
        {"target": TEST_CONTRACT, "function_name": "transfer", "chain_id": FUJI, "declared_value": -1},
    ])
    def test_invalid(self, fields):
        with pytest.raises(ValidationError):
            TransactionRequest.create(**fields)

    def test_list_arguments_are_detached(self):
        amounts = [1, 2]
        request = TransactionRequest.create(TEST_CONTRACT, "batchTransfer", FUJI, args=[TEST_RECIPIENT, amounts])

        amounts.append(3)
        assert request.args == (TEST_RECIPIENT, (1, 2))

    def test_mapping_arguments_are_read_only(self):
        params = {"recipient": TEST_RECIPIENT, "amounts": [1]}
        request = TransactionRequest.create(TEST_CONTRACT, "route", FUJI, args=[params])

        params["recipient"] = TEST_SPENDER
        params["amounts"].append(2)
        assert request.args[0]["recipient"] == TEST_RECIPIENT
        assert request.args[0]["amounts"] == (1,)
        with pytest.raises(TypeError):
            request.args[0]["recipient"] = TEST_SPENDER

    def test_unsupported_argument(self):
        with pytest.raises(ValidationError, match="Unsupported call argument"):
            TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI, args=[object()])

    @pytest.mark.parametrize("calldata, expected", [
        ("0xA9059CBB", "0xa9059cbb"),
        (b"\xa9\x05\x9c\xbb", "0xa9059cbb"),
        ("0x", "0x"),
    ])
    def test_calldata(self, calldata, expected):
        request = TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI, calldata=calldata)
        assert request.calldata == expected

    @pytest.mark.parametrize("calldata", ["a9059cbb", "0xa9059cb", "0xzz", 12])
    def test_invalid_calldata(self, calldata):
        with pytest.raises(ValidationError):
            TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI, calldata=calldata)

    def test_immutable(self):
        request = TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI)
        with pytest.raises(ValidationError):
            request.declared_value = 10

    def test_simulation_is_set_once(self):
        request = TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI)
        request.attach_simulation(SimulationResult.success(1))
        with pytest.raises(AlreadySimulated):
            request.attach_simulation(SimulationResult.success(2))
        assert request.simulation_result.gas_estimate == 1

    def test_confirmation_is_set_once(self, guard):
        request = TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI)
        disclosure = guard.disclosure_builder.build(request, SimulationResult.success(1))
        record = guard.ledger.record(request.id, disclosure, True)

        request.attach_confirmation(record)
        assert request.confirmation is record
        with pytest.raises(DuplicateConfirmation):
            request.attach_confirmation(record)

    def test_confirmation_for_other_request(self, guard):
        request = TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI)
        other = TransactionRequest.create(TEST_CONTRACT, "transfer", FUJI)
        disclosure = guard.disclosure_builder.build(other, SimulationResult.success(1))
        record = ConfirmationRecord(
            request_id=other.id,
            disclosed_fields=disclosure,
            disclosed_bytes=disclosure.canonical_bytes(),
            confirmed_at="2026-01-01T00:00:00Z",
        )
        with pytest.raises(ValueError):
            request.attach_confirmation(record)


def test_terminal_states():
    terminal = {s for s in LifecycleState if s.is_terminal}
    assert terminal == {LifecycleState.SUCCEEDED, LifecycleState.FAILED, LifecycleState.ABORTED}


def test_receipt_from_web3():
    receipt = TxReceipt.from_web3({
        "transactionHash": bytes.fromhex(TEST_TX_HASH[2:]),
        "blockNumber": 7,
        "blockHash": b"\xcd" * 32,
        "status": 1,
        "gasUsed": 21000,
        "from": TEST_SPENDER,
        "to": TEST_CONTRACT,
        "logs": [],
    })
    assert receipt.tx_hash == TEST_TX_HASH
    assert receipt.block_hash == "0x" + "cd" * 32
    assert receipt.from_address == TEST_SPENDER
    assert receipt.succeeded
    assert TxReceipt.from_web3(receipt) is receipt


def test_reverted_receipt():
    receipt = TxReceipt(tx_hash=TEST_TX_HASH, block_number=1, status=0)
    assert not receipt.succeeded


class TestSignedPayload:
    def test_signature_is_required(self):
        with pytest.raises(ValidationError):
            SignedPayload(raw_transaction=b"\x02", signed_fields=b"{}")

    def test_signer_is_checksummed(self):
        payload = SignedPayload(
            raw_transaction=b"\x02", signed_fields=b"{}", signature="0x" + "11" * 65,
            signer_address=TEST_SPENDER.lower()
        )
        assert payload.signer_address == TEST_SPENDER

    def test_invalid_signer(self):
        with pytest.raises(ValidationError):
            SignedPayload(
                raw_transaction=b"\x02", signed_fields=b"{}", signature="0x" + "11" * 65,
                signer_address="nobody"
            )
