"""
Test suite for collections data model

Tests status normalization of stored records, record conversion, cheque
forms and audit note handling.
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from collection_desk.collections import (
    Collection, CollectionKind, CollectionStatus, Cheque, ChequeForm, ChequeStatus,
    Customer, Directory, OrderBalances, OrderPatch, append_note
)


class TestCollectionStatus:
    """Test mapping stored status strings onto the closed enum"""

    def test_legacy_collected_is_complete(self):
        assert CollectionStatus.normalize("collected") == CollectionStatus.COMPLETE
        assert CollectionStatus.normalize("Collected") == CollectionStatus.COMPLETE
        assert CollectionStatus.normalize("completed") == CollectionStatus.COMPLETE

    def test_missing_status_is_pending(self):
        assert CollectionStatus.normalize(None) == CollectionStatus.PENDING
        assert CollectionStatus.normalize("") == CollectionStatus.PENDING
        assert CollectionStatus.normalize("pending") == CollectionStatus.PENDING

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            CollectionStatus.normalize("bounced")


class TestCollectionRecord:
    """Test conversion to and from stored records"""

    def test_from_dict_reads_stored_layout(self):
        collection = Collection.from_dict({
            "id": "c1",
            "order_id": "o1",
            "customer_id": "cust1",
            "collection_type": "Credit",
            "amount": "1000.00",
            "status": "collected",
            "created_at": "2024-03-01T08:00:00Z",
        })
        assert collection.kind == CollectionKind.CREDIT
        assert collection.status == CollectionStatus.COMPLETE
        assert collection.amount == Decimal("1000.00")
        assert collection.created_at == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        assert collection.notes == ""

    def test_to_dict_uses_stored_names(self):
        collection = Collection(
            id="c1", order_id="o1", customer_id="cust1",
            kind=CollectionKind.CHEQUE, amount=Decimal("250.50")
        )
        data = collection.to_dict()
        assert data["collection_type"] == "cheque"
        assert data["amount"] == "250.50"
        assert data["status"] == "pending"
        assert data["created_at"] is None

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            Collection(id="c1", order_id="o1", customer_id="x",
                       kind=CollectionKind.CREDIT, amount=Decimal("-1"))

    def test_effective_date_prefers_collected_at(self):
        created = datetime(2024, 3, 1, tzinfo=timezone.utc)
        collected = datetime(2024, 3, 5, tzinfo=timezone.utc)
        collection = Collection(id="c1", order_id="o1", customer_id="x",
                                kind=CollectionKind.CREDIT, amount=Decimal("1"),
                                created_at=created, collected_at=collected)
        assert collection.effective_date == collected
        assert collection.aging_reference == created


class TestNotes:
    """Test audit note appending"""

    def test_append_to_empty(self):
        assert append_note("", "Cheque recorded.") == "Cheque recorded."
        assert append_note(None, "Cheque recorded.") == "Cheque recorded."

    def test_append_keeps_prior(self):
        assert append_note("Merged from c1", "Merged from c2") == "Merged from c1 | Merged from c2"

    def test_blank_note_keeps_prior(self):
        assert append_note("prior", "  ") == "prior"


class TestChequeForm:
    """Test cheque form input handling"""

    def test_missing_fields(self):
        form = ChequeForm(payer_name="A", amount=Decimal("0"))
        assert form.missing_fields() == ["bank", "cheque_number", "cheque_date", "amount"]

    def test_complete_form(self):
        form = ChequeForm(payer_name="A", bank="B", cheque_number="1",
                          cheque_date="2024-03-21", amount="500")
        assert form.missing_fields() == []
        assert form.cheque_date == date(2024, 3, 21)
        assert form.amount == Decimal("500")


class TestChequeRecord:
    """Test cheque record conversion"""

    def test_round_trip(self):
        cheque = Cheque(
            id="q1", collection_id="c1", order_id="o1", payer_name="A", bank="B",
            cheque_number="123", cheque_date=date(2024, 3, 21), amount=Decimal("500"),
            deposit_date=date(2024, 3, 28)
        )
        restored = Cheque.from_dict(cheque.to_dict())
        assert restored == cheque
        assert restored.status == ChequeStatus.RECEIVED


class TestOrderFields:
    """Test order balance reads and patches"""

    def test_balances_read_stored_names(self):
        balances = OrderBalances.from_dict({
            "id": "o1", "amountpaid": "100", "creditbalance": "900", "chequebalance": None
        })
        assert balances.amount_paid == Decimal("100")
        assert balances.credit_balance == Decimal("900")
        assert balances.cheque_balance == Decimal("0")

    def test_patch_only_emits_set_fields(self):
        patch = OrderPatch(amount_paid=Decimal("1000"), credit_balance=Decimal("0"))
        assert patch.to_dict() == {"amountpaid": "1000", "creditbalance": "0"}


class TestDirectory:
    """Test display name lookups"""

    def test_lookups(self):
        directory = Directory(
            customers={"cust1": Customer(id="cust1", name="Acme Stores", phone="0771234567")},
            users={"u1": "Nimal"}
        )
        assert directory.customer_name("cust1") == "Acme Stores"
        assert directory.customer_phone("cust1") == "0771234567"
        assert directory.customer_name("missing") == ""
        assert directory.user_name("u1") == "Nimal"
        assert directory.user_name(None) == ""
