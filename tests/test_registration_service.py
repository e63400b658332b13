# Overview: Pytest coverage for single-use registration codes.

"""
Registration Code Tests

A code registers exactly one party of the role it was issued for, and
stops working once used or expired.
"""

from datetime import timedelta

import pytest

from wareflow.errors import AccessDenied, Conflict, NotFound, ValidationError
from wareflow.models import Dealer, RegistrationCode, Warehouse
from wareflow.services import registration_service
from wareflow.time_utils import utcnow


@pytest.fixture
def dealer_code(db_session, owner, warehouse_a):
    return registration_service.generate_registration_code(owner, "dealer", warehouse_a.id)


class TestGenerate:
    def test_code_shape(self, db_session, dealer_code, warehouse_a):
        assert len(dealer_code.code) == registration_service.CODE_LENGTH
        assert dealer_code.code.isalnum() and dealer_code.code.upper() == dealer_code.code
        assert dealer_code.role == "dealer"
        assert dealer_code.warehouse_id == warehouse_a.id
        assert dealer_code.is_used is False
        assert dealer_code.expires_at > utcnow()

    def test_owner_only(self, db_session, warehouse_actor):
        with pytest.raises(AccessDenied):
            registration_service.generate_registration_code(warehouse_actor, "dealer")

    def test_owner_role_not_registrable(self, db_session, owner):
        with pytest.raises(ValidationError):
            registration_service.generate_registration_code(owner, "owner")

    def test_unknown_warehouse(self, db_session, owner):
        with pytest.raises(NotFound):
            registration_service.generate_registration_code(owner, "salesman", 999999)


class TestRegister:
    def test_verify_is_case_insensitive(self, db_session, dealer_code):
        row = registration_service.verify_registration_code(dealer_code.code.lower())
        assert row.id == dealer_code.id

    def test_dealer_inherits_code_warehouse(self, db_session, dealer_code, warehouse_a):
        party = registration_service.register_with_code(dealer_code.code, "dealer", {
            "name": "New Dealer",
            "mobile_number": "9300000001",
            "agency_name": "New Agency",
            "password_hash": "opaque-hash",
        })

        assert isinstance(party, Dealer)
        assert party.warehouse_id == warehouse_a.id
        assert party.password_hash == "opaque-hash"

        db_session.expire_all()
        assert db_session.get(RegistrationCode, dealer_code.id).is_used is True

    def test_code_is_single_use(self, db_session, dealer_code):
        registration_service.register_with_code(dealer_code.code, "dealer", {
            "name": "First", "mobile_number": "9300000001",
        })
        with pytest.raises(ValidationError):
            registration_service.register_with_code(dealer_code.code, "dealer", {
                "name": "Second", "mobile_number": "9300000002",
            })

    def test_role_mismatch(self, db_session, dealer_code):
        with pytest.raises(ValidationError, match="Role mismatch"):
            registration_service.register_with_code(dealer_code.code, "salesman", {
                "name": "Wrong", "mobile_number": "9300000003",
            })
        db_session.expire_all()
        assert db_session.get(RegistrationCode, dealer_code.id).is_used is False

    def test_expired_code(self, db_session, dealer_code):
        dealer_code.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        with pytest.raises(ValidationError):
            registration_service.verify_registration_code(dealer_code.code)

    def test_register_warehouse(self, db_session, owner):
        code = registration_service.generate_registration_code(owner, "warehouse")
        party = registration_service.register_with_code(code.code, "warehouse", {
            "name": "East Depot", "username": "east",
        })
        assert isinstance(party, Warehouse)
        assert party.status == "active"

    def test_duplicate_mobile_leaves_code_unused(self, db_session, dealer_code, dealer):
        with pytest.raises(Conflict):
            registration_service.register_with_code(dealer_code.code, "dealer", {
                "name": "Copy", "mobile_number": dealer.mobile_number,
            })
        registration_service.verify_registration_code(dealer_code.code)


class TestMaintenance:
    def test_purge_removes_only_expired(self, db_session, owner, dealer_code):
        stale = registration_service.generate_registration_code(owner, "salesman")
        stale.expires_at = utcnow() - timedelta(hours=1)
        db_session.commit()

        assert registration_service.purge_expired_codes() == 1
        assert [c.id for c in registration_service.list_registration_codes(owner)] == [dealer_code.id]
