"""File-backed store for Web Push subscriptions.

The in-memory mapping is the source of truth; the JSON file is best-effort
durability. Neither ``load`` nor ``save`` ever raises: a missing or broken
file degrades to an empty mapping, a failed write is logged and the process
carries on with what it has in memory.

On-disk layout (pretty-printed so it can be hand-edited for recovery)::

    {
      "<id>": {
        "id": "<id>",
        "endpoint_descriptor": {"endpoint": "...", "keys": {"p256dh": "...", "auth": "..."}},
        "launch_time": "2026-12-13T00:00:00+03:00",
        "daily_times": ["09:00"],
        "timezone": "Africa/Nairobi",
        "created_at": "...",
        "last_sent_at": null
      }
    }
"""

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from urllib.parse import urlparse

from pydantic import ValidationError

from countdown_push.configs.schedule import ScheduleConfig
from countdown_push.models.subscription import EndpointDescriptor, SubscriptionCreate, SubscriptionRecord

logger = logging.getLogger(__name__)


class SubscriptionStore:
    """CRUD operations for SubscriptionRecord, persisted to a JSON file."""

    def __init__(self, path: str | Path, defaults: ScheduleConfig | None = None):
        self.path = Path(path)
        self.defaults = defaults or ScheduleConfig()
        self._records: dict[str, SubscriptionRecord] = {}

    # --- Persistence ------------------------------------------------------------

    def load(self) -> dict[str, SubscriptionRecord]:
        """Read the backing file into memory and return a copy of the mapping."""
        self._records = self._read()
        return dict(self._records)

    def save(self, records: Mapping[str, SubscriptionRecord] | None = None) -> bool:
        """Write *records* (default: the in-memory mapping) to disk atomically.

        Returns False when the write failed; the in-memory mapping is untouched
        either way.
        """
        snapshot = self._records if records is None else records
        data = {rid: rec.model_dump(mode="json", by_alias=True) for rid, rec in snapshot.items()}

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                    f.write("\n")
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning(f"Could not write subscriptions file {self.path}: {e}")
            return False
        return True

    def _read(self) -> dict[str, SubscriptionRecord]:
        if not self.path.exists():
            logger.info(f"No subscriptions file at {self.path}, starting empty")
            return {}

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load subscriptions file {self.path}: {e}")
            return {}

        if isinstance(raw, list):
            return self._migrate_legacy(raw)
        if not isinstance(raw, dict):
            logger.warning(f"Unexpected subscriptions file layout ({type(raw).__name__}), starting empty")
            return {}

        records: dict[str, SubscriptionRecord] = {}
        for rid, value in raw.items():
            if not isinstance(value, dict):
                logger.warning(f"Skipping subscription {rid}: not an object")
                continue
            try:
                # The mapping key is authoritative for the id; a missing zone means the configured default
                record = SubscriptionRecord.model_validate(
                    {**value, "timezone": value.get("timezone") or self.defaults.DefaultTimezone, "id": rid},
                    context={"default_timezone": self.defaults.DefaultTimezone},
                )
            except ValidationError as e:
                logger.warning(f"Skipping invalid subscription {rid}: {e.error_count()} validation error(s)")
                continue
            records[rid] = record

        logger.info(f"Loaded {len(records)} subscription(s) from {self.path}")
        return records

    def _migrate_legacy(self, items: list) -> dict[str, SubscriptionRecord]:
        """Convert a bare list of browser PushSubscriptions into records."""
        records: dict[str, SubscriptionRecord] = {}
        seen: set[str] = set()
        for item in items:
            try:
                descriptor = EndpointDescriptor.model_validate(item)
            except ValidationError:
                logger.warning("Skipping invalid legacy subscription entry")
                continue
            if descriptor.endpoint in seen:
                continue
            seen.add(descriptor.endpoint)
            record = SubscriptionRecord.from_create(SubscriptionCreate(endpoint_descriptor=descriptor), self.defaults)
            records[record.id] = record

        logger.info(f"Migrated {len(records)} legacy subscription(s) from {self.path}")
        return records

    # --- In-memory access -------------------------------------------------------

    def get(self, subscription_id: str) -> SubscriptionRecord | None:
        return self._records.get(subscription_id)

    def all(self) -> list[SubscriptionRecord]:
        return list(self._records.values())

    def ids(self) -> list[str]:
        return list(self._records)

    def find_by_endpoint(self, endpoint: str) -> list[SubscriptionRecord]:
        return [rec for rec in self._records.values() if rec.endpoint == endpoint]

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    # --- Mutations (each one persists) ------------------------------------------

    def add(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Insert or replace *record* by id."""
        self._records[record.id] = record
        self.save()
        return record

    def delete(self, subscription_id: str) -> SubscriptionRecord | None:
        removed = self._records.pop(subscription_id, None)
        if removed is not None:
            self.save()
        return removed

    def mark_sent(self, subscription_id: str, when: datetime) -> None:
        record = self._records.get(subscription_id)
        if record is None:
            return
        self._records[subscription_id] = record.model_copy(update={"last_sent_at": when})
        self.save()

    @staticmethod
    def extract_domain(endpoint: str) -> str:
        """Return ``https://host`` from an endpoint URL (safe for logging)."""
        parsed = urlparse(endpoint)
        return f"{parsed.scheme}://{parsed.netloc}"
