from __future__ import annotations

from privgate.core.records.models import DataCategory, PersonalRecord
from privgate.core.records.store import RecordStore

__all__ = ["DataCategory", "PersonalRecord", "RecordStore"]
