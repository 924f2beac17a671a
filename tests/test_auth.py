"""
Tests for storefront/auth.py and storefront/activity_logger.py.

Covers:
- Token issue and verification
- Tampered, malformed and expired tokens
- Activity log writes, queries and summaries
"""

import os
import sys

import pytest

# Ensure project root is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from storefront.activity_logger import ActivityLogger
from storefront.auth import issue_token, verify_token


# ---------------------------------------------------------------------------
# Test: tokens
# ---------------------------------------------------------------------------

class TestTokens:
    def test_round_trip_claims(self):
        token = issue_token("user-1", email="ada@example.com", full_name="Ada Lovelace", role="admin")
        user = verify_token(token)
        assert user.id == "user-1"
        assert user.email == "ada@example.com"
        assert user.full_name == "Ada Lovelace"
        assert user.is_admin

    def test_default_role_is_customer(self):
        user = verify_token(issue_token("user-1"))
        assert user.role == "customer"
        assert not user.is_admin

    def test_non_ascii_claims(self):
        user = verify_token(issue_token("user-1", full_name="Zoë Ångström"))
        assert user.full_name == "Zoë Ångström"

    def test_tampered_signature_rejected(self):
        token = issue_token("user-1")
        payload, signature = token.split(".")
        forged = payload + "." + ("A" if signature[0] != "A" else "B") + signature[1:]
        assert verify_token(forged) is None

    def test_swapped_payload_rejected(self):
        admin_payload = issue_token("user-1", role="admin").split(".")[0]
        customer_sig = issue_token("user-1").split(".")[1]
        assert verify_token(f"{admin_payload}.{customer_sig}") is None

    @pytest.mark.parametrize("token", ["", "no-dot", "a.b.c", "...."])
    def test_malformed_rejected(self, token):
        assert verify_token(token) is None

    def test_expired_rejected(self):
        assert verify_token(issue_token("user-1", ttl_minutes=-1)) is None


# ---------------------------------------------------------------------------
# Test: activity log
# ---------------------------------------------------------------------------

class TestActivityLogger:
    def test_log_appends_jsonl(self, tmp_path):
        activity = ActivityLogger(data_dir=str(tmp_path))
        entry = activity.log("order", "LUN-1", "created", new_value="pending", user_id="user-1")
        assert entry["entity_id"] == "LUN-1"
        lines = activity.log_file.read_text().splitlines()
        assert len(lines) == 1
        assert '"action":"created"' in lines[0]

    def test_query_since_filters_by_timestamp(self, tmp_path):
        activity = ActivityLogger(data_dir=str(tmp_path))
        first = activity.log("order", "LUN-1", "created")
        activity.log("payment", "LUN-1", "paid")
        entries = activity.query_since(first["timestamp"])
        assert [e["action"] for e in entries] == ["paid"]

    def test_query_skips_corrupt_lines(self, tmp_path):
        activity = ActivityLogger(data_dir=str(tmp_path))
        activity.log("order", "LUN-1", "created")
        with open(activity.log_file, "a", encoding="utf-8") as f:
            f.write("not json\n\n")
        assert len(activity.query_since("2000-01-01T00:00:00Z")) == 1

    def test_query_without_file(self, tmp_path):
        assert ActivityLogger(data_dir=str(tmp_path)).query_since("2000-01-01T00:00:00Z") == []

    def test_summary_counts(self, tmp_path):
        activity = ActivityLogger(data_dir=str(tmp_path))
        activity.log("order", "LUN-1", "created")
        activity.log("payment", "LUN-1", "paid")
        activity.log("order", "LUN-1", "status_changed", old_value="pending", new_value="processing")
        activity.log("payment", "LUN-2", "payment_failed")
        activity.log("discount", "GLOW20", "redeemed")
        activity.log("review", "r-1", "approved")
        result = activity.get_summary()
        summary = result["summary"]
        assert summary["total_changes"] == 6
        assert summary["orders_created"] == 1
        assert summary["orders_paid"] == 1
        assert summary["status_changes"] == 1
        assert summary["payments_failed"] == 1
        assert summary["discounts_redeemed"] == 1
        assert summary["reviews_moderated"] == 1
        assert "Order LUN-1: pending -> processing" in result["highlights"]

    def test_unknown_entity_still_logged(self, tmp_path):
        activity = ActivityLogger(data_dir=str(tmp_path))
        activity.log("refund", "x", "created")
        assert len(activity.query_since("2000-01-01T00:00:00Z")) == 1

    def test_rotation(self, tmp_path, monkeypatch):
        monkeypatch.setattr("storefront.activity_logger.MAX_FILE_SIZE", 10)
        activity = ActivityLogger(data_dir=str(tmp_path))
        activity.log("order", "LUN-1", "created")
        activity.log("order", "LUN-2", "created")
        rotated = list(tmp_path.glob("activity-*.jsonl"))
        assert len(rotated) == 1
        assert len(activity.log_file.read_text().splitlines()) == 1
