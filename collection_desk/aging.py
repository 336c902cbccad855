"""
Aging Classifier

Buckets pending collections by how long they have been outstanding. The
bucket is recomputed on every query; it is never stored on the record.
"""

from datetime import datetime, tzinfo
from enum import Enum
from typing import Optional

from .collections import Collection
from .timeutils import age_in_days

DUE_SOON_DAYS = 10
OVERDUE_DAYS = 14


class AgingBucket(Enum):
    ON_TIME = "on_time"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"


def collection_age_days(collection: Collection, now: datetime, tz: Optional[tzinfo] = None) -> Optional[int]:
    """Whole days since the collection was created, or None if it has no date"""
    reference = collection.aging_reference
    if reference is None:
        return None
    return age_in_days(reference, now, tz)


def bucket_for_age(age_days: Optional[int], due_soon_days: int = DUE_SOON_DAYS,
                   overdue_days: int = OVERDUE_DAYS) -> AgingBucket:
    if age_days is None:
        return AgingBucket.ON_TIME
    if age_days > overdue_days:
        return AgingBucket.OVERDUE
    if age_days >= due_soon_days:
        return AgingBucket.DUE_SOON
    return AgingBucket.ON_TIME


def classify(collection: Collection, now: datetime, tz: Optional[tzinfo] = None,
             due_soon_days: int = DUE_SOON_DAYS, overdue_days: int = OVERDUE_DAYS) -> AgingBucket:
    """
    Classify a collection as on time, due soon or overdue.

    Only pending collections age; completed ones are always on time. With
    the default thresholds 10 to 14 days is due soon and anything older
    than 14 days is overdue.
    """
    if not collection.is_pending:
        return AgingBucket.ON_TIME
    return bucket_for_age(collection_age_days(collection, now, tz), due_soon_days, overdue_days)


class AgingPolicy:
    """Classifier bound to configured thresholds and a display time zone"""

    def __init__(self, due_soon_days: int = DUE_SOON_DAYS, overdue_days: int = OVERDUE_DAYS,
                 tz: Optional[tzinfo] = None):
        if due_soon_days > overdue_days:
            raise ValueError("due_soon_days cannot exceed overdue_days")
        self.due_soon_days = due_soon_days
        self.overdue_days = overdue_days
        self.tz = tz

    @classmethod
    def from_config(cls, config, tz: Optional[tzinfo] = None) -> 'AgingPolicy':
        return cls(config.due_soon_days, config.overdue_days, tz)

    def classify(self, collection: Collection, now: datetime) -> AgingBucket:
        return classify(collection, now, self.tz, self.due_soon_days, self.overdue_days)
