"""Tests for SubscriptionStore: lookups, reload on change, malformed input."""

import json
import os
from pathlib import Path

from Koyn_Finance.data.subscriptions import SubscriptionStore
from Koyn_Finance.models import SubscriptionPlan, SubscriptionStatus


def _write(path: Path, rows: object) -> None:
    path.write_text(json.dumps(rows), encoding="utf-8")


class TestLookups:
    def test_get_by_id(self, tmp_path: Path) -> None:
        path = tmp_path / "subscriptions.json"
        _write(
            path,
            [{"id": "sub_1", "email": "a@example.com", "status": "active", "plan": "monthly"}],
        )
        sub = SubscriptionStore(path).get("sub_1")
        assert sub is not None
        assert sub.plan == SubscriptionPlan.MONTHLY
        assert sub.status == SubscriptionStatus.ACTIVE

    def test_unknown_id_returns_none(self, tmp_path: Path) -> None:
        path = tmp_path / "subscriptions.json"
        _write(path, [])
        assert SubscriptionStore(path).get("nope") is None

    def test_find_by_email_is_case_insensitive_newest_first(self, tmp_path: Path) -> None:
        path = tmp_path / "subscriptions.json"
        _write(
            path,
            [
                {"id": "old", "email": "A@Example.com", "startedAt": "2024-01-01T00:00:00Z"},
                {"id": "new", "email": "a@example.com", "startedAt": "2025-01-01T00:00:00Z"},
                {"id": "other", "email": "b@example.com"},
            ],
        )
        found = SubscriptionStore(path).find_by_email(" a@EXAMPLE.com ")
        assert [sub.id for sub in found] == ["new", "old"]

    def test_camel_case_aliases_parsed(self, tmp_path: Path) -> None:
        path = tmp_path / "subscriptions.json"
        _write(path, [{"id": "sub_1", "renewalDate": "2030-06-01T00:00:00Z"}])
        sub = SubscriptionStore(path).get("sub_1")
        assert sub is not None
        assert sub.renewal_date is not None
        assert sub.renewal_date.year == 2030

    def test_unknown_plan_kept_verbatim(self, tmp_path: Path) -> None:
        path = tmp_path / "subscriptions.json"
        _write(path, [{"id": "sub_1", "plan": "enterprise"}])
        sub = SubscriptionStore(path).get("sub_1")
        assert sub is not None
        assert sub.plan == "enterprise"


class TestRobustness:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = SubscriptionStore(tmp_path / "missing.json")
        assert store.get("sub_1") is None
        assert store.find_by_email("a@example.com") == []

    def test_corrupt_file_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "subscriptions.json"
        path.write_text("{not json", encoding="utf-8")
        assert SubscriptionStore(path).get("sub_1") is None

    def test_malformed_rows_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "subscriptions.json"
        _write(path, [{"email": "no-id@example.com"}, {"id": "sub_ok"}])
        store = SubscriptionStore(path)
        assert store.get("sub_ok") is not None

    def test_reloads_when_file_changes(self, tmp_path: Path) -> None:
        path = tmp_path / "subscriptions.json"
        _write(path, [{"id": "sub_1", "plan": "free"}])
        store = SubscriptionStore(path)
        assert store.get("sub_2") is None

        _write(path, [{"id": "sub_1", "plan": "free"}, {"id": "sub_2", "plan": "yearly"}])
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))

        sub = store.get("sub_2")
        assert sub is not None
        assert sub.plan == SubscriptionPlan.YEARLY
