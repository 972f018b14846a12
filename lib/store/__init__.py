"""
JSON-file curated metadata store and per-track override maps.
"""
from lib.store.database import (
    COLLECTIONS,
    JsonDatabase,
    InvalidCollectionError,
    ItemNotFoundError,
    DuplicateItemError,
    validate_collection,
)
from lib.store.records import prepare_new_record, prepare_updates, compute_completion, is_active
from lib.store.overrides import OverrideStore, OverrideValidationError, OVERRIDE_KINDS, validate_override_kind

__all__ = [
    "COLLECTIONS",
    "JsonDatabase",
    "InvalidCollectionError",
    "ItemNotFoundError",
    "DuplicateItemError",
    "validate_collection",
    "prepare_new_record",
    "prepare_updates",
    "compute_completion",
    "is_active",
    "OverrideStore",
    "OverrideValidationError",
    "OVERRIDE_KINDS",
    "validate_override_kind",
]
