"""
Collection Filtering and Reporting

Pure functions over an in-memory collection set: filters, date-bucketed
groups, portfolio totals and flat export rows. Totals are always computed
over the full set so they do not move when the view is filtered.
"""

from decimal import Decimal
from datetime import date, datetime, tzinfo
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence
import csv
import io

from .aging import AgingBucket, AgingPolicy
from .collections import Collection, CollectionKind, CollectionStatus, Directory
from .currency import ZERO, amount_to_text
from .timeutils import end_of_range, start_of_range, local_date

UNKNOWN_DATE = "Unknown"


def filter_by_status(collections: Iterable[Collection], status: Optional[CollectionStatus]) -> List[Collection]:
    if status is None:
        return list(collections)
    return [c for c in collections if c.status == status]


def filter_by_kind(collections: Iterable[Collection], kind: Optional[CollectionKind]) -> List[Collection]:
    if kind is None:
        return list(collections)
    return [c for c in collections if c.kind == kind]


def filter_by_date_range(collections: Iterable[Collection], date_from: Optional[date] = None,
                         date_to: Optional[date] = None, tz: Optional[tzinfo] = None) -> List[Collection]:
    """
    Keep collections whose effective date falls in the range.

    ``date_to`` is inclusive: the bound is pushed one day later before
    comparing. Undated collections are dropped once either bound is set.
    """
    result = list(collections)
    if date_from is not None:
        lower = start_of_range(date_from, tz)
        result = [c for c in result if c.effective_date is not None and c.effective_date >= lower]
    if date_to is not None:
        upper = end_of_range(date_to, tz)
        result = [c for c in result if c.effective_date is not None and c.effective_date <= upper]
    return result


def filter_by_aging_bucket(collections: Iterable[Collection], bucket: Optional[AgingBucket],
                           now: datetime, policy: Optional[AgingPolicy] = None) -> List[Collection]:
    """
    Keep collections in an aging bucket.

    Asking for DUE_SOON also returns OVERDUE collections; anything due soon
    or worse needs chasing.
    """
    if bucket is None:
        return list(collections)
    policy = policy or AgingPolicy()
    if bucket == AgingBucket.DUE_SOON:
        wanted = {AgingBucket.DUE_SOON, AgingBucket.OVERDUE}
    else:
        wanted = {bucket}
    return [c for c in collections if policy.classify(c, now) in wanted]


def search_haystack(collection: Collection, directory: Optional[Directory] = None) -> str:
    directory = directory or Directory()
    parts = [
        collection.order_id,
        directory.customer_name(collection.customer_id),
        directory.customer_phone(collection.customer_id),
        collection.notes,
        directory.user_name(collection.collected_by),
        collection.collected_by or "",
        amount_to_text(collection.amount),
    ]
    return " ".join(p for p in parts if p).lower()


def filter_by_search_term(collections: Iterable[Collection], term: Optional[str],
                          directory: Optional[Directory] = None) -> List[Collection]:
    """Case-insensitive substring match over ids, names, phone, notes and amount"""
    needle = (term or "").strip().lower()
    if not needle:
        return list(collections)
    return [c for c in collections if needle in search_haystack(c, directory)]


def sort_by_effective_date(collections: Iterable[Collection]) -> List[Collection]:
    """Newest first by collected_at, else created_at. Undated rows sort last."""
    collections = list(collections)
    dated = [c for c in collections if c.effective_date is not None]
    undated = [c for c in collections if c.effective_date is None]
    dated.sort(key=lambda c: c.effective_date, reverse=True)
    return dated + undated


@dataclass
class CollectionFilter:
    """Active filters from the collections view"""
    status: Optional[CollectionStatus] = None
    kind: Optional[CollectionKind] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    aging: Optional[AgingBucket] = None
    search: Optional[str] = None


def apply_filters(collections: Sequence[Collection], criteria: CollectionFilter, now: datetime,
                  directory: Optional[Directory] = None,
                  policy: Optional[AgingPolicy] = None) -> List[Collection]:
    """Apply every active filter and sort newest first"""
    policy = policy or AgingPolicy()
    result = filter_by_status(collections, criteria.status)
    result = filter_by_kind(result, criteria.kind)
    if criteria.aging is not None:
        # An aging filter replaces any explicit date range
        result = filter_by_aging_bucket(result, criteria.aging, now, policy)
    else:
        result = filter_by_date_range(result, criteria.date_from, criteria.date_to, policy.tz)
    result = filter_by_search_term(result, criteria.search, directory)
    return sort_by_effective_date(result)


@dataclass
class DayGroup:
    """Collections sharing a calendar day. Subtotals count pending members only."""
    key: str
    day: Optional[date]
    collections: List[Collection] = field(default_factory=list)
    total_credit: Decimal = ZERO
    total_cheque: Decimal = ZERO
    credit_count: int = 0
    cheque_count: int = 0
    pending_total: Decimal = ZERO

    @property
    def count(self) -> int:
        return len(self.collections)

    def add(self, collection: Collection) -> None:
        self.collections.append(collection)
        if not collection.is_pending:
            return
        self.pending_total += collection.amount
        if collection.is_credit:
            self.total_credit += collection.amount
            self.credit_count += 1
        else:
            self.total_cheque += collection.amount
            self.cheque_count += 1


def group_by_day(collections: Iterable[Collection], tz: Optional[tzinfo] = None) -> List[DayGroup]:
    """Bucket by local calendar day, newest day first, Unknown last"""
    groups: Dict[str, DayGroup] = {}
    for collection in collections:
        moment = collection.effective_date
        if moment is None:
            key, day = UNKNOWN_DATE, None
        else:
            day = local_date(moment, tz)
            key = day.isoformat()
        group = groups.get(key)
        if group is None:
            group = groups[key] = DayGroup(key=key, day=day)
        group.add(collection)

    dated = sorted((g for g in groups.values() if g.day is not None), key=lambda g: g.day, reverse=True)
    unknown = [g for g in groups.values() if g.day is None]
    return dated + unknown


@dataclass
class CollectionTotals:
    total_pending_amount: Decimal = ZERO
    total_completed_amount: Decimal = ZERO
    pending_credit: Decimal = ZERO
    pending_cheque: Decimal = ZERO
    overdue_amount: Decimal = ZERO
    overdue_count: int = 0
    due_soon_amount: Decimal = ZERO
    due_soon_count: int = 0
    total_collections: int = 0

    def to_dict(self) -> Dict[str, str]:
        return {
            'total_pending_amount': str(self.total_pending_amount),
            'total_completed_amount': str(self.total_completed_amount),
            'pending_credit': str(self.pending_credit),
            'pending_cheque': str(self.pending_cheque),
            'overdue_amount': str(self.overdue_amount),
            'overdue_count': self.overdue_count,
            'due_soon_amount': str(self.due_soon_amount),
            'due_soon_count': self.due_soon_count,
            'total_collections': self.total_collections,
        }


def compute_totals(collections: Sequence[Collection], now: datetime,
                   policy: Optional[AgingPolicy] = None) -> CollectionTotals:
    """
    Portfolio totals over the full, unfiltered collection set.

    Legacy ``collected`` rows were normalized to COMPLETE when loaded, so
    they land in the completed total.
    """
    policy = policy or AgingPolicy()
    totals = CollectionTotals(total_collections=len(collections))
    for collection in collections:
        if collection.is_complete:
            totals.total_completed_amount += collection.amount
            continue

        totals.total_pending_amount += collection.amount
        if collection.is_credit:
            totals.pending_credit += collection.amount
        else:
            totals.pending_cheque += collection.amount

        bucket = policy.classify(collection, now)
        if bucket == AgingBucket.OVERDUE:
            totals.overdue_amount += collection.amount
            totals.overdue_count += 1
        elif bucket == AgingBucket.DUE_SOON:
            totals.due_soon_amount += collection.amount
            totals.due_soon_count += 1
    return totals


EXPORT_HEADERS = ['Order ID', 'Customer', 'Type', 'Amount', 'Collected By', 'Date', 'Status', 'Notes']


def export_rows(collections: Iterable[Collection], directory: Optional[Directory] = None) -> List[Dict[str, str]]:
    """Flatten collections into rows for spreadsheet export"""
    directory = directory or Directory()
    rows = []
    for c in collections:
        moment = c.effective_date
        rows.append({
            'Order ID': c.order_id,
            'Customer': directory.customer_name(c.customer_id) or c.customer_id,
            'Type': c.kind.value,
            'Amount': str(c.amount),
            'Collected By': directory.user_name(c.collected_by) or (c.collected_by or ''),
            'Date': moment.isoformat() if moment else '',
            'Status': c.status.value,
            'Notes': c.notes or '',
        })
    return rows


def export_csv(rows: List[Dict[str, str]]) -> str:
    """Serialize export rows as CSV text"""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=EXPORT_HEADERS)
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return output.getvalue()
