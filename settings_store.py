"""
The store settings record.

There is exactly one settings document. Reads never write; every write bumps
`version` and only lands if nobody else wrote in between.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from pymongo.errors import DuplicateKeyError

from database import db
from schemas import Settings

logger = logging.getLogger(__name__)

SETTINGS_ID = "store"


class VersionConflict(Exception):
    pass


def get_settings() -> Settings:
    doc = db["settings"].find_one({"_id": SETTINGS_ID})
    if not doc:
        return Settings()
    return Settings(**doc)


def update_settings(patch: dict, expected_version: Optional[int] = None) -> Settings:
    current = get_settings()
    if expected_version is not None and expected_version != current.version:
        raise VersionConflict(
            f"Settings changed since version {expected_version} (now {current.version})"
        )

    updated = Settings(**{
        **current.model_dump(),
        **patch,
        "version": current.version + 1,
        "updatedAt": datetime.now(timezone.utc),
    })
    try:
        db["settings"].update_one(
            {"_id": SETTINGS_ID, "version": current.version},
            {"$set": updated.model_dump()},
            upsert=True,
        )
    except DuplicateKeyError:
        # the version filter missed, so a concurrent write got there first
        raise VersionConflict("Settings were changed by another request")

    logger.info("Settings updated to version %s: %s", updated.version, sorted(patch))
    return updated


def pricing_rules() -> dict:
    s = get_settings()
    return {
        "tax_rate": s.taxRate,
        "shipping_fee": s.shippingFee,
        "free_shipping_threshold": s.freeShippingThreshold,
    }
