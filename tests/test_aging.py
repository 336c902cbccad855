"""
Test suite for aging module

Tests day-count aging of pending collections and the due soon / overdue
thresholds.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, timedelta

from collection_desk.aging import (
    AgingBucket, AgingPolicy, bucket_for_age, classify, collection_age_days
)
from collection_desk.collections import Collection, CollectionKind, CollectionStatus


NOW = datetime(2024, 3, 21, 10, 0, tzinfo=timezone.utc)


def make_collection(days_old=None, status=CollectionStatus.PENDING, **kwargs):
    created_at = NOW - timedelta(days=days_old) if days_old is not None else None
    return Collection(
        id=kwargs.pop("id", "c1"),
        order_id="o1",
        customer_id="cust1",
        kind=kwargs.pop("kind", CollectionKind.CREDIT),
        amount=Decimal("1000"),
        status=status,
        created_at=created_at,
        **kwargs
    )


class TestBucketForAge:
    """Test threshold boundaries"""

    def test_boundaries(self):
        assert bucket_for_age(0) == AgingBucket.ON_TIME
        assert bucket_for_age(9) == AgingBucket.ON_TIME
        assert bucket_for_age(10) == AgingBucket.DUE_SOON
        assert bucket_for_age(14) == AgingBucket.DUE_SOON
        assert bucket_for_age(15) == AgingBucket.OVERDUE

    def test_unknown_age_is_on_time(self):
        assert bucket_for_age(None) == AgingBucket.ON_TIME


class TestClassify:
    """Test classification of collections"""

    def test_twenty_day_old_pending_is_overdue(self):
        collection = make_collection(days_old=20)
        assert classify(collection, NOW, timezone.utc) == AgingBucket.OVERDUE

    def test_twelve_day_old_pending_is_due_soon(self):
        collection = make_collection(days_old=12)
        assert classify(collection, NOW, timezone.utc) == AgingBucket.DUE_SOON

    def test_fresh_collection_is_on_time(self):
        collection = make_collection(days_old=2)
        assert classify(collection, NOW, timezone.utc) == AgingBucket.ON_TIME

    def test_completed_collection_never_ages(self):
        collection = make_collection(days_old=40, status=CollectionStatus.COMPLETE)
        assert classify(collection, NOW, timezone.utc) == AgingBucket.ON_TIME

    def test_undated_collection_is_on_time(self):
        collection = make_collection(days_old=None)
        assert collection_age_days(collection, NOW, timezone.utc) is None
        assert classify(collection, NOW, timezone.utc) == AgingBucket.ON_TIME

    def test_age_counts_calendar_days(self):
        """Late in the evening and early next morning are one day apart"""
        collection = make_collection()
        collection.created_at = datetime(2024, 3, 20, 23, 30, tzinfo=timezone.utc)
        now = datetime(2024, 3, 21, 0, 15, tzinfo=timezone.utc)
        assert collection_age_days(collection, now, timezone.utc) == 1

    def test_falls_back_to_collected_at(self):
        collection = make_collection(collected_at=NOW - timedelta(days=16))
        assert classify(collection, NOW, timezone.utc) == AgingBucket.OVERDUE

    def test_age_is_monotonic(self):
        collection = make_collection(days_old=5)
        ages = [
            collection_age_days(collection, NOW + timedelta(hours=h), timezone.utc)
            for h in range(0, 24 * 12, 7)
        ]
        assert ages == sorted(ages)


class TestAgingPolicy:
    """Test configured thresholds"""

    def test_custom_thresholds(self):
        policy = AgingPolicy(due_soon_days=3, overdue_days=5, tz=timezone.utc)
        assert policy.classify(make_collection(days_old=4), NOW) == AgingBucket.DUE_SOON
        assert policy.classify(make_collection(days_old=6), NOW) == AgingBucket.OVERDUE

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ValueError):
            AgingPolicy(due_soon_days=20, overdue_days=14)
