"""
Collections Data Model

Collections (money owed on an order, as open credit or as a cheque), the
cheques that back them and the order balance fields the lifecycle engine
reads and patches.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from enum import Enum

from .currency import to_decimal, ZERO
from .timeutils import parse_datetime, parse_date

NOTE_SEPARATOR = " | "


class CollectionKind(Enum):
    """How the money is owed"""
    CREDIT = "credit"
    CHEQUE = "cheque"


class CollectionStatus(Enum):
    """Collection status. Complete is terminal."""
    PENDING = "pending"
    COMPLETE = "complete"

    @classmethod
    def normalize(cls, raw: Any) -> 'CollectionStatus':
        """
        Map a stored status string onto the closed enum.

        Older rows carry ``collected`` (and some ``completed``) for what is
        now ``complete``. A missing status means the row was never settled.
        """
        if isinstance(raw, CollectionStatus):
            return raw
        text = (raw or "").strip().lower()
        if text in ("", "pending"):
            return cls.PENDING
        if text in ("complete", "completed", "collected"):
            return cls.COMPLETE
        raise ValueError(f"Unknown collection status: {raw!r}")


class ChequeStatus(Enum):
    """Instrument tracking state; only RECEIVED is set by this package"""
    RECEIVED = "Received"
    CLEARED = "Cleared"
    BOUNCED = "Bounced"


def append_note(prior: Optional[str], note: str) -> str:
    """Append to an audit note without losing what was there"""
    prior = (prior or "").strip()
    note = (note or "").strip()
    if not prior:
        return note
    if not note:
        return prior
    return f"{prior}{NOTE_SEPARATOR}{note}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Collection:
    """A claim for money owed on one order"""
    id: str
    order_id: str
    customer_id: str
    kind: CollectionKind
    amount: Decimal
    status: CollectionStatus = CollectionStatus.PENDING
    created_at: Optional[datetime] = None
    collected_at: Optional[datetime] = None
    collected_by: Optional[str] = None
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    notes: str = ""
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            self.amount = to_decimal(self.amount)
        if self.amount < ZERO:
            raise ValueError("Collection amount cannot be negative")

    @property
    def is_pending(self) -> bool:
        return self.status == CollectionStatus.PENDING

    @property
    def is_complete(self) -> bool:
        return self.status == CollectionStatus.COMPLETE

    @property
    def is_credit(self) -> bool:
        return self.kind == CollectionKind.CREDIT

    @property
    def is_cheque(self) -> bool:
        return self.kind == CollectionKind.CHEQUE

    @property
    def effective_date(self) -> Optional[datetime]:
        """Date used for display and sorting: collected_at wins over created_at"""
        return self.collected_at or self.created_at

    @property
    def aging_reference(self) -> Optional[datetime]:
        """Date aging counts from: created_at, falling back to collected_at"""
        return self.created_at or self.collected_at

    def copy(self, **changes) -> 'Collection':
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored record layout"""
        return {
            'id': self.id,
            'order_id': self.order_id,
            'customer_id': self.customer_id,
            'collection_type': self.kind.value,
            'amount': str(self.amount),
            'status': self.status.value,
            'created_at': _iso(self.created_at),
            'collected_at': _iso(self.collected_at),
            'collected_by': self.collected_by,
            'completed_by': self.completed_by,
            'completed_at': _iso(self.completed_at),
            'notes': self.notes,
            'updated_at': _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Collection':
        """Create instance from a stored record, normalizing legacy status"""
        return cls(
            id=str(data['id']),
            order_id=str(data.get('order_id') or ''),
            customer_id=str(data.get('customer_id') or ''),
            kind=CollectionKind((data.get('collection_type') or 'credit').lower()),
            amount=to_decimal(data.get('amount')),
            status=CollectionStatus.normalize(data.get('status')),
            created_at=parse_datetime(data.get('created_at')),
            collected_at=parse_datetime(data.get('collected_at')),
            collected_by=data.get('collected_by'),
            completed_by=data.get('completed_by'),
            completed_at=parse_datetime(data.get('completed_at')),
            notes=data.get('notes') or "",
            updated_at=parse_datetime(data.get('updated_at')),
        )


@dataclass
class Cheque:
    """A physical cheque backing all or part of a cheque collection"""
    id: str
    collection_id: str
    order_id: str
    payer_name: str
    bank: str
    cheque_number: str
    cheque_date: date
    amount: Decimal
    deposit_date: Optional[date] = None
    customer_id: Optional[str] = None
    notes: str = ""
    status: ChequeStatus = ChequeStatus.RECEIVED
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'collection_id': self.collection_id,
            'order_id': self.order_id,
            'customer_id': self.customer_id,
            'payer_name': self.payer_name,
            'bank': self.bank,
            'cheque_number': self.cheque_number,
            'cheque_date': self.cheque_date.isoformat(),
            'deposit_date': self.deposit_date.isoformat() if self.deposit_date else None,
            'amount': str(self.amount),
            'notes': self.notes,
            'status': self.status.value,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Cheque':
        return cls(
            id=str(data['id']),
            collection_id=str(data.get('collection_id') or ''),
            order_id=str(data.get('order_id') or ''),
            customer_id=data.get('customer_id'),
            payer_name=data.get('payer_name') or '',
            bank=data.get('bank') or '',
            cheque_number=data.get('cheque_number') or '',
            cheque_date=parse_date(data.get('cheque_date')),
            deposit_date=parse_date(data.get('deposit_date')),
            amount=to_decimal(data.get('amount')),
            notes=data.get('notes') or '',
            status=ChequeStatus(data.get('status') or ChequeStatus.RECEIVED.value),
            created_by=data.get('created_by'),
            created_at=parse_datetime(data.get('created_at')),
        )


@dataclass
class ChequeForm:
    """Caller input describing one cheque to record"""
    payer_name: str = ""
    bank: str = ""
    cheque_number: str = ""
    cheque_date: Optional[date] = None
    amount: Decimal = ZERO
    deposit_date: Optional[date] = None
    notes: str = ""

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            self.amount = to_decimal(self.amount)
        if isinstance(self.cheque_date, str):
            self.cheque_date = parse_date(self.cheque_date)
        if isinstance(self.deposit_date, str):
            self.deposit_date = parse_date(self.deposit_date)

    def missing_fields(self) -> List[str]:
        """Required fields left blank (notes and deposit date are optional here)"""
        missing = []
        if not self.payer_name.strip():
            missing.append('payer_name')
        if not self.bank.strip():
            missing.append('bank')
        if not self.cheque_number.strip():
            missing.append('cheque_number')
        if self.cheque_date is None:
            missing.append('cheque_date')
        if self.amount <= ZERO:
            missing.append('amount')
        return missing


@dataclass
class OrderBalances:
    """Outstanding balance fields on an order"""
    order_id: str
    amount_paid: Decimal = ZERO
    credit_balance: Decimal = ZERO
    cheque_balance: Decimal = ZERO
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrderBalances':
        return cls(
            order_id=str(data.get('id') or ''),
            amount_paid=to_decimal(data.get('amountpaid')),
            credit_balance=to_decimal(data.get('creditbalance')),
            cheque_balance=to_decimal(data.get('chequebalance')),
            notes=data.get('notes') or '',
        )


@dataclass
class OrderPatch:
    """Fields to change on an order; None means leave untouched"""
    amount_paid: Optional[Decimal] = None
    credit_balance: Optional[Decimal] = None
    cheque_balance: Optional[Decimal] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.amount_paid is not None:
            data['amountpaid'] = str(self.amount_paid)
        if self.credit_balance is not None:
            data['creditbalance'] = str(self.credit_balance)
        if self.cheque_balance is not None:
            data['chequebalance'] = str(self.cheque_balance)
        if self.notes is not None:
            data['notes'] = self.notes
        return data


@dataclass
class Customer:
    """Read-only customer reference"""
    id: str
    name: str
    phone: str = ""
    location: Optional[str] = None


@dataclass
class Directory:
    """Resolves customer and user ids to display data for search and export"""
    customers: Dict[str, Customer] = field(default_factory=dict)
    users: Dict[str, str] = field(default_factory=dict)  # user id -> name

    def customer_name(self, customer_id: str) -> str:
        customer = self.customers.get(customer_id)
        return customer.name if customer else ""

    def customer_phone(self, customer_id: str) -> str:
        customer = self.customers.get(customer_id)
        return customer.phone if customer else ""

    def user_name(self, user_id: Optional[str]) -> str:
        if not user_id:
            return ""
        return self.users.get(user_id, "")
