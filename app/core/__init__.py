"""Core infrastructure: config, database, logging, cache, identity, exceptions."""

from app.core.cache import ResultCache, build_result_cache
from app.core.config import Settings, get_settings
from app.core.database import Base, get_db
from app.core.identity import get_account_id
from app.core.logging import get_logger, request_id_ctx

__all__ = [
    "Base",
    "ResultCache",
    "Settings",
    "build_result_cache",
    "get_account_id",
    "get_db",
    "get_logger",
    "get_settings",
    "request_id_ctx",
]
