"""Raw record storage and ingestion."""

from app.features.records.routes import router
from app.features.records.schemas import CategoryTotal, RawRecord, RecordIn
from app.features.records.service import RecordStore, SqlRecordStore, insert_records

__all__ = [
    "CategoryTotal",
    "RawRecord",
    "RecordIn",
    "RecordStore",
    "SqlRecordStore",
    "insert_records",
    "router",
]
