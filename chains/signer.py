# PATH: chains/signer.py
"""
Transaction signing with an eth-account LocalAccount.

Builds EIP-1559 (type 2) transaction dicts and signs them. The signed hash is
known before broadcast, which is what makes resubmission idempotent: the
orchestrator can ask the chain for a receipt of the exact bytes it sent.
"""

from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address

from chains.client import SignedSubmission
from core.models import GasParameters


class TransactionSigner:
    """Signs settlement calls for one authorized executor key."""

    def __init__(self, account: LocalAccount, chain_id: int):
        self._account = account
        self.chain_id = chain_id

    @classmethod
    def from_key(cls, private_key: str, chain_id: int) -> "TransactionSigner":
        return cls(Account.from_key(private_key), chain_id)

    @classmethod
    def random(cls, chain_id: int) -> "TransactionSigner":
        """Throwaway key (paper mode)."""
        return cls(Account.create(), chain_id)

    @property
    def address(self) -> str:
        return self._account.address

    def build(
        self,
        to: str,
        data: bytes,
        nonce: int,
        gas: GasParameters,
        value: int = 0,
    ) -> dict:
        return {
            "type": 2,
            "chainId": self.chain_id,
            "nonce": nonce,
            "to": to_checksum_address(to),
            "value": value,
            "data": data,
            "gas": gas.gas_limit,
            "maxFeePerGas": gas.max_fee,
            "maxPriorityFeePerGas": gas.max_priority_fee,
        }

    def sign(
        self,
        to: str,
        data: bytes,
        nonce: int,
        gas: GasParameters,
        value: int = 0,
    ) -> SignedSubmission:
        tx = self.build(to, data, nonce, gas, value)
        signed = self._account.sign_transaction(tx)
        return SignedSubmission(
            raw=self._raw_bytes(signed),
            tx_hash="0x" + bytes(signed.hash).hex(),
            sender=self.address,
            nonce=nonce,
            to=to,
            data=data,
            gas_limit=gas.gas_limit,
            max_fee_per_gas=gas.max_fee,
            max_priority_fee_per_gas=gas.max_priority_fee,
            fields=tx,
        )

    @staticmethod
    def _raw_bytes(signed) -> bytes:
        raw: Optional[bytes] = getattr(signed, "raw_transaction", None)
        if raw is None:
            raw = getattr(signed, "rawTransaction", None)
        if raw is None:
            raise ValueError("Signed transaction has no raw bytes")
        return bytes(raw)
