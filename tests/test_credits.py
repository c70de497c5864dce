"""Tests for the credit gate."""
import pytest

from record_transfer.errors import CreditError
from record_transfer.models.credit import TeamCredit
from record_transfer.services.credits import provision_credits


def _balance(db, team_id, credit_type):
    db.expire_all()
    return (
        db.query(TeamCredit)
        .filter(TeamCredit.team_id == team_id, TeamCredit.credit_type == credit_type)
        .one()
    )


def test_check_credits(db, gate):
    """Test the check compares against the remaining balance."""
    provision_credits(db, "t", "prospecting", 10)
    assert gate.check_credits("t", "prospecting", 10)
    assert not gate.check_credits("t", "prospecting", 11)
    assert not gate.check_credits("t", "leads", 1)
    assert gate.check_credits("nobody", "leads", 0)


def test_charge_reduces_remaining(db, gate):
    provision_credits(db, "t", "prospecting", 10)
    gate.charge_credits("t", "prospecting", 4)
    gate.charge_credits("t", "prospecting", 6)
    balance = _balance(db, "t", "prospecting")
    assert balance.used == 10
    assert balance.remaining == 0


def test_overcharge_is_rejected_without_side_effects(db, gate):
    """Test a charge that would exceed the total changes nothing."""
    provision_credits(db, "t", "prospecting", 5)
    gate.charge_credits("t", "prospecting", 3)
    with pytest.raises(CreditError) as excinfo:
        gate.charge_credits("t", "prospecting", 3)
    assert excinfo.value.units == 3
    assert _balance(db, "t", "prospecting").used == 3


def test_provision_resets_total(db):
    provision_credits(db, "t", "leads", 5)
    balance = provision_credits(db, "t", "leads", 50)
    assert balance.total == 50
    assert db.query(TeamCredit).count() == 1
