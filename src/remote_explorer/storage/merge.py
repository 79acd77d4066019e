"""Folding a newly saved FileRecord into the stored one."""

from datetime import datetime, timezone
from typing import Any, Optional


def _union(first: Optional[list], second: Optional[list]) -> list:
    merged: list = []
    for item in (first or []) + (second or []):
        if item not in merged:
            merged.append(item)
    return merged


def _history_entry(run_id: int, status: str) -> dict[str, Any]:
    return {
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status,
    }


def merge_record(existing: Optional[dict[str, Any]], new: dict[str, Any], run_id: int) -> dict[str, Any]:
    """Merge two serialized FileRecords for the same path.

    Discovery provenance is kept from the first record. A success is never
    downgraded by a later failure. Path lists are unioned. ``scan_history``
    gains one entry per run; repeated saves within a run only update that
    run's entry.
    """
    if existing is None:
        record = dict(new)
        record["scan_history"] = [_history_entry(run_id, new.get("status", "unknown"))]
        return record

    is_binary = bool(new.get("is_binary") or existing.get("is_binary"))
    merged = {**existing, **new}
    merged["status"] = new["status"] if new.get("status") == "success" else existing.get("status")
    merged["is_binary"] = is_binary
    merged["content"] = None if is_binary else (new.get("content") or existing.get("content"))
    merged["size"] = new.get("size") or existing.get("size", 0)
    merged["extracted_paths"] = _union(existing.get("extracted_paths"), new.get("extracted_paths"))
    merged["generated_paths"] = _union(existing.get("generated_paths"), new.get("generated_paths"))
    merged["ignored_paths"] = _union(existing.get("ignored_paths"), new.get("ignored_paths"))
    merged["discovery_method"] = existing.get("discovery_method", new.get("discovery_method"))
    merged["discovered_from"] = existing.get("discovered_from", new.get("discovered_from"))

    history = list(existing.get("scan_history") or [])
    if not history or history[-1].get("run_id") != run_id:
        history.append(_history_entry(run_id, new.get("status", "unknown")))
    elif history[-1].get("status") != new.get("status"):
        history[-1] = _history_entry(run_id, new.get("status", "unknown"))
    merged["scan_history"] = history
    return merged
