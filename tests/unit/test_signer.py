# PATH: tests/unit/test_signer.py
"""
Tests for chains/signer.py
"""

from eth_account import Account

from chains.signer import TransactionSigner
from core.constants import GWEI, GasStrategy
from core.models import GasParameters

KEY = "0x" + "4c" * 32
PROGRAM = "0x" + "f1" * 20
GAS = GasParameters(GasStrategy.NORMAL, 20 * GWEI, 2 * GWEI, 27 * GWEI, 420_000)


class TestSigner:
    def test_from_key_address(self):
        signer = TransactionSigner.from_key(KEY, 31337)
        assert signer.address == Account.from_key(KEY).address

    def test_signed_bytes_recover_to_signer(self):
        signer = TransactionSigner.random(31337)
        submission = signer.sign(PROGRAM, b"\x01\x02", 5, GAS)

        assert Account.recover_transaction(submission.raw) == signer.address
        assert submission.nonce == 5
        assert submission.gas_limit == 420_000
        assert submission.max_fee_per_gas == 27 * GWEI
        assert submission.tx_hash.startswith("0x") and len(submission.tx_hash) == 66

    def test_signing_is_deterministic(self):
        signer = TransactionSigner.from_key(KEY, 1)
        first = signer.sign(PROGRAM, b"\x01", 0, GAS)
        second = signer.sign(PROGRAM, b"\x01", 0, GAS)
        assert first.tx_hash == second.tx_hash
        assert first.raw == second.raw

    def test_fee_change_changes_hash(self):
        signer = TransactionSigner.from_key(KEY, 1)
        bumped = GasParameters(GasStrategy.NORMAL, 20 * GWEI, 3 * GWEI, 31 * GWEI, 420_000)
        assert signer.sign(PROGRAM, b"", 0, GAS).tx_hash != signer.sign(PROGRAM, b"", 0, bumped).tx_hash

    def test_build_is_eip1559(self):
        tx = TransactionSigner.from_key(KEY, 10).build(PROGRAM, b"", 3, GAS)
        assert tx["type"] == 2
        assert tx["chainId"] == 10
        assert tx["maxPriorityFeePerGas"] == 2 * GWEI
        assert tx["to"].lower() == PROGRAM
