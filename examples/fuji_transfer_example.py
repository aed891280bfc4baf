#!/usr/bin/env python3
"""
Example: an ERC-20 transfer on Avalanche Fuji through the transaction gate.

The SDK never touches the private key. The LocalWallet below stands in for
whatever wallet the application uses; it signs only after a person has
confirmed the rendered disclosure.

Environment:
    TOKEN_ADDRESS      ERC-20 contract on Fuji
    RECIPIENT_ADDRESS  Receiver of the tokens
    PRIVATE_KEY        Wallet key (test funds only)
"""
import os
import sys
import logging

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from txguard_sdk import (
    AVALANCHE_FUJI_CHAIN_ID, Role, SignedPayload, TransactionGuard, TxGuardError, render
)
from txguard_sdk.adapters import Web3Broadcaster, Web3Simulator
from txguard_sdk.config import NetworkConfig

ERC20_ABI = [{
    "name": "transfer",
    "type": "function",
    "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
    "outputs": [{"name": "", "type": "bool"}],
    "stateMutability": "nonpayable",
}]


class ConsolePrompt:
    """Shows the disclosure and asks for a typed 'yes'"""

    def confirm(self, disclosure):
        print(render(disclosure))
        return input("Type 'yes' to confirm: ").strip().lower() == "yes"


class LocalWallet:
    """Signs the confirmed disclosure and a type-2 transaction carrying its calldata"""

    def __init__(self, w3, priv_key):
        self.w3 = w3
        self.account = Account.from_key(priv_key)

    def sign(self, disclosure):
        fields = disclosure.canonical_bytes()
        attestation = self.account.sign_message(encode_defunct(primitive=fields))

        priority_fee = self.w3.eth.max_priority_fee
        tx = {
            "type": 2,
            "chainId": disclosure.chain_id,
            "nonce": self.w3.eth.get_transaction_count(self.account.address),
            "to": disclosure.target,
            "value": disclosure.declared_value,
            "data": disclosure.calldata,
            "gas": disclosure.gas_estimate,
            "maxPriorityFeePerGas": priority_fee,
            "maxFeePerGas": 2 * self.w3.eth.get_block("latest")["baseFeePerGas"] + priority_fee,
        }
        signed_tx = self.account.sign_transaction(tx)

        return SignedPayload(
            raw_transaction=signed_tx.raw_transaction,
            signed_fields=fields,
            signature=Web3.to_hex(attestation.signature),
            signer_address=self.account.address,
        )


def main():
    logging.basicConfig(level=logging.INFO)

    token = os.environ.get("TOKEN_ADDRESS")
    recipient = os.environ.get("RECIPIENT_ADDRESS")
    priv_key = os.environ.get("PRIVATE_KEY")
    if not (token and recipient and priv_key):
        print("ERROR: TOKEN_ADDRESS, RECIPIENT_ADDRESS and PRIVATE_KEY are required")
        return 1

    guard = TransactionGuard()
    rpc_url = NetworkConfig.get_rpc_url("avalanche-fuji")
    guard.registry.validate_endpoint(rpc_url, AVALANCHE_FUJI_CHAIN_ID)
    w3 = Web3(Web3.HTTPProvider(rpc_url))

    wallet = LocalWallet(w3, priv_key)
    session = guard.open_session()
    read = guard.grant(session, Role.READ, AVALANCHE_FUJI_CHAIN_ID)
    write = guard.grant(session, Role.WRITE, AVALANCHE_FUJI_CHAIN_ID)

    request = guard.new_request(
        token, "transfer", AVALANCHE_FUJI_CHAIN_ID, args=(recipient, 10 ** 18), abi=ERC20_ABI
    )
    lifecycle = guard.begin(request, read_capability=read, write_capability=write)

    try:
        lifecycle.validate_chain()
        lifecycle.simulate(Web3Simulator(w3, ERC20_ABI, wallet.account.address))
        lifecycle.disclose()
        lifecycle.confirm(ConsolePrompt())
        lifecycle.sign(wallet)

        broadcaster = Web3Broadcaster(w3)
        tx_hash = lifecycle.submit(broadcaster)
        print(f"Submitted: {guard.tx_url(AVALANCHE_FUJI_CHAIN_ID, tx_hash)}")
        receipt = lifecycle.await_receipt(broadcaster)
        print(f"Final state: {lifecycle.state.value} (block {receipt.block_number})")
    except TxGuardError as e:
        print(f"Stopped in state {lifecycle.state.value}: {e}")
        return 1
    finally:
        guard.close_session(session)
    return 0


if __name__ == "__main__":
    sys.exit(main())
