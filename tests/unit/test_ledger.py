# PATH: tests/unit/test_ledger.py
"""
Tests for settlement/ledger.py

A staged ledger is invisible until committed, and a commit applies all
writes at once or refuses if the base moved underneath it.
"""

import pytest

from settlement.ledger import Ledger

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
TOKEN = "0x" + "70" * 20


@pytest.fixture
def ledger():
    ledger = Ledger()
    ledger.mint(ALICE, TOKEN, 100)
    return ledger


class TestStaging:
    def test_writes_invisible_until_commit(self, ledger):
        staged = ledger.begin()
        assert staged.transfer(ALICE, BOB, TOKEN, 40)

        assert staged.balance_of(BOB, TOKEN) == 40
        assert ledger.balance_of(BOB, TOKEN) == 0

        assert ledger.commit(staged) == 2
        assert ledger.balance_of(ALICE, TOKEN) == 60
        assert ledger.balance_of(BOB, TOKEN) == 40

    def test_discarded_stage_changes_nothing(self, ledger):
        before = ledger.balances()
        staged = ledger.begin()
        staged.transfer(ALICE, BOB, TOKEN, 100)
        del staged
        assert ledger.balances() == before

    def test_overdraft_refused_without_write(self, ledger):
        staged = ledger.begin()
        assert staged.transfer(ALICE, BOB, TOKEN, 101) is False
        assert not staged.dirty

    def test_negative_amounts(self, ledger):
        staged = ledger.begin()
        assert staged.transfer(ALICE, BOB, TOKEN, -1) is False
        with pytest.raises(ValueError):
            staged.credit(ALICE, TOKEN, -1)
        with pytest.raises(ValueError):
            staged.debit(ALICE, TOKEN, -1)
        with pytest.raises(ValueError):
            ledger.mint(ALICE, TOKEN, -1)

    def test_addresses_are_case_insensitive(self, ledger):
        assert ledger.balance_of(ALICE.upper().replace("0X", "0x"), TOKEN) == 100


class TestCommit:
    def test_double_commit_refused(self, ledger):
        staged = ledger.begin()
        staged.credit(BOB, TOKEN, 1)
        ledger.commit(staged)
        with pytest.raises(ValueError, match="already committed"):
            ledger.commit(staged)

    def test_stale_stage_refused(self, ledger):
        first = ledger.begin()
        second = ledger.begin()
        first.credit(BOB, TOKEN, 1)
        ledger.commit(first)

        second.credit(BOB, TOKEN, 5)
        with pytest.raises(ValueError, match="changed since staging"):
            ledger.commit(second)
        assert ledger.balance_of(BOB, TOKEN) == 1

    def test_foreign_stage_refused(self, ledger):
        with pytest.raises(ValueError, match="another ledger"):
            Ledger().commit(ledger.begin())

    def test_zero_balances_are_dropped(self, ledger):
        staged = ledger.begin()
        staged.transfer(ALICE, BOB, TOKEN, 100)
        ledger.commit(staged)
        assert (ALICE.lower(), TOKEN.lower()) not in ledger.balances()
        assert ledger.version == 2
