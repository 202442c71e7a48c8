"""
merge.py
Upsert of an imported batch into the member collection.

Records are matched on membershipNumber, falling back to id. Matching
records are shallow-merged (imported fields win), new ones are appended and
registered so that repeated keys inside one batch collapse onto a single
member. Merging the same batch twice gives the same collection as merging it
once.
"""

from __future__ import annotations

from loguru import logger

from members import normalize_member
from utils import generate_id, now_iso


def _keys(member: dict) -> list[str]:
    return [k for k in (member.get("membershipNumber"), member.get("id")) if k]


def merge_members(existing: list[dict], imported: list[dict], now: str | None = None) -> list[dict]:
    now = now or now_iso()
    collection = [dict(m) for m in existing]

    # key -> position in collection
    lookup: dict[str, int] = {}
    for position, member in enumerate(collection):
        for key in _keys(member):
            lookup[key] = position

    created = updated = 0
    for record in imported:
        key = record.get("membershipNumber") or record.get("id")
        if key and key in lookup:
            position = lookup[key]
            current = collection[position]
            merged = {**current, **record, "updatedAt": now}
            # the stored id is stable; an imported row never replaces it
            merged["id"] = current.get("id") or record.get("id")
            collection[position] = normalize_member(merged)
            updated += 1
        else:
            fresh = {**record, "createdAt": record.get("createdAt") or now, "updatedAt": now}
            if record.get("id") and record["id"] in lookup:
                # new membership number but an id already taken: never share an id
                fresh["id"] = generate_id("import")
                logger.warning("Imported id {} already in use, assigned {}", record["id"], fresh["id"])
            fresh = normalize_member(fresh)
            collection.append(fresh)
            position = len(collection) - 1
            created += 1

        for k in _keys(collection[position]):
            lookup[k] = position

    logger.info("Merged import: {} updated, {} created", updated, created)
    return collection
