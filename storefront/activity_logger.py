"""
Activity Logger for the Lunia storefront.

Appends structured JSONL entries for order, payment, discount and review
activity to <data dir>/activity.jsonl with automatic rotation at 10MB.
Feeds the admin dashboard's recent-activity summary.
"""

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from . import settings

logger = logging.getLogger("storefront-activity")

VALID_ENTITY_TYPES = {"order", "payment", "discount", "review"}
VALID_ACTIONS = {
    "created",
    "status_changed",
    "paid",
    "payment_failed",
    "redeemed",
    "approved",
    "rejected",
}

# Rotation threshold in bytes (10MB)
MAX_FILE_SIZE = 10 * 1024 * 1024


class ActivityLogger:
    """Thread-safe activity logger writing JSONL to the storefront data dir."""

    def __init__(self, data_dir: Optional[str] = None) -> None:
        self._data_dir = Path(data_dir or settings.STOREFRONT_DATA_DIR)
        self._log_file = self._data_dir / "activity.jsonl"
        self._lock = threading.Lock()
        self._data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def log_file(self) -> Path:
        return self._log_file

    def _rotate_if_needed(self) -> None:
        try:
            if self._log_file.exists() and self._log_file.stat().st_size >= MAX_FILE_SIZE:
                timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
                rotated = self._data_dir / f"activity-{timestamp}.jsonl"
                self._log_file.rename(rotated)
                logger.info("Rotated activity log to %s", rotated)
        except OSError as e:
            logger.warning("Failed to rotate activity log: %s", e)

    def log(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Log an activity entry. Returns the entry dict."""
        if entity_type not in VALID_ENTITY_TYPES:
            logger.warning("Invalid entity_type %r (valid: %s)", entity_type, VALID_ENTITY_TYPES)
        if action not in VALID_ACTIONS:
            logger.warning("Invalid action %r (valid: %s)", action, VALID_ACTIONS)

        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action,
            "old_value": old_value,
            "new_value": new_value,
            "user_id": user_id,
        }

        with self._lock:
            self._rotate_if_needed()
            try:
                with open(self._log_file, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, separators=(",", ":")) + "\n")
            except OSError as e:
                logger.error("Failed to write activity entry: %s", e)

        return entry

    def query_since(self, timestamp: str) -> list[dict[str, Any]]:
        """Return activity entries after the given ISO timestamp."""
        timestamp = timestamp.replace("Z", "+00:00")
        results: list[dict[str, Any]] = []

        if not self._log_file.exists():
            return results

        with self._lock:
            try:
                with open(self._log_file, "r", encoding="utf-8") as f:
                    for line in f:
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            entry = json.loads(line)
                        except json.JSONDecodeError:
                            continue
                        if entry.get("timestamp", "").replace("Z", "+00:00") > timestamp:
                            results.append(entry)
            except OSError as e:
                logger.error("Failed to read activity log: %s", e)

        return results

    def get_summary(self, since_timestamp: Optional[str] = None) -> dict[str, Any]:
        """Summarize storefront activity since a timestamp (default: last 24h)."""
        if since_timestamp is None:
            since_timestamp = (datetime.now(timezone.utc) - timedelta(hours=24)).isoformat()
        since_timestamp = since_timestamp.replace("Z", "+00:00")

        entries = self.query_since(since_timestamp)

        summary = {
            "total_changes": len(entries),
            "orders_created": 0,
            "orders_paid": 0,
            "payments_failed": 0,
            "status_changes": 0,
            "discounts_redeemed": 0,
            "reviews_moderated": 0,
        }
        highlights: list[str] = []

        for entry in entries:
            entity_type = entry.get("entity_type", "")
            action = entry.get("action", "")
            entity_id = entry.get("entity_id", "")

            if entity_type == "order":
                if action == "created":
                    summary["orders_created"] += 1
                    highlights.append(f"Order {entity_id} placed")
                elif action == "status_changed":
                    summary["status_changes"] += 1
                    highlights.append(
                        f"Order {entity_id}: {entry.get('old_value', '')} -> {entry.get('new_value', '')}"
                    )
            elif entity_type == "payment":
                if action == "paid":
                    summary["orders_paid"] += 1
                    highlights.append(f"Payment received for {entity_id}")
                elif action == "payment_failed":
                    summary["payments_failed"] += 1
                    highlights.append(f"Payment failed for {entity_id}")
            elif entity_type == "discount" and action == "redeemed":
                summary["discounts_redeemed"] += 1
            elif entity_type == "review" and action in ("approved", "rejected"):
                summary["reviews_moderated"] += 1

        return {
            "since": since_timestamp,
            "summary": summary,
            "highlights": highlights,
        }


# Singleton instance
_instance: Optional[ActivityLogger] = None
_instance_lock = threading.Lock()


def get_activity_logger(data_dir: Optional[str] = None) -> ActivityLogger:
    """Get or create the singleton ActivityLogger instance."""
    global _instance
    if _instance is None:
        with _instance_lock:
            if _instance is None:
                _instance = ActivityLogger(data_dir=data_dir)
    return _instance
