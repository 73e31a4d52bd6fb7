"""Override manager: persisted false-positive and accepted-risk decisions.

Overrides are keyed by violation fingerprint and stored as JSON::

    {
      "version": "1.0",
      "lastUpdated": "2025-01-01T00:00:00+00:00",
      "overrides": {
        "<fingerprint>": {"rule": ..., "filePath": ..., "status": ...,
                          "reason": ..., "addedBy": ..., "timestamp": ...}
      }
    }

A run reads the store once; :class:`OverrideStore` mutations replace the
file atomically so a concurrent reader sees either the old or new content.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from valence.engine.models import (
    STATUS_ACCEPTED_RISK,
    STATUS_FALSE_POSITIVE,
    blocking_violations,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from pathlib import Path

    from valence.engine.models import EvaluationResult, Violation

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0"
FINGERPRINT_LENGTH = 16
VALID_STATUSES: frozenset[str] = frozenset({STATUS_FALSE_POSITIVE, STATUS_ACCEPTED_RISK})
RECENT_DAYS = 7

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class OverrideStoreError(Exception):
    """Raised when the override store cannot be read or written."""


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


def fingerprint(
    validator: str, rule_id: str, file_path: str, excerpt: str | None = None
) -> str:
    """Stable identity of a violation for override matching.

    Built from validator, rule, file and the matched excerpt when known.
    Line numbers are not part of it.
    """
    parts = [validator, rule_id, file_path, (excerpt or "").strip()]
    digest = hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OverrideRecord:
    """One persisted decision about a fingerprinted violation."""

    fingerprint: str
    rule: str
    file_path: str
    status: str  # "false-positive" | "accepted-risk"
    reason: str
    added_by: str
    timestamp: str  # ISO-8601

    def to_dict(self) -> dict[str, str]:
        return {
            "rule": self.rule,
            "filePath": self.file_path,
            "status": self.status,
            "reason": self.reason,
            "addedBy": self.added_by,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, key: str, data: Mapping[str, object]) -> OverrideRecord:
        status = str(data.get("status", STATUS_FALSE_POSITIVE)).replace("_", "-")
        if status not in VALID_STATUSES:
            msg = f"override '{key}' has invalid status '{status}'"
            raise OverrideStoreError(msg)
        return cls(
            fingerprint=key,
            rule=str(data.get("rule", "")),
            file_path=str(data.get("filePath", "")),
            status=status,
            reason=str(data.get("reason", "")),
            added_by=str(data.get("addedBy", "unknown")),
            timestamp=str(data.get("timestamp", data.get("addedAt", ""))),
        )


def new_record(
    fingerprint: str,
    *,
    rule: str,
    file_path: str,
    reason: str,
    status: str = STATUS_FALSE_POSITIVE,
    added_by: str = "unknown",
    now: datetime | None = None,
) -> OverrideRecord:
    """Create a record stamped with the current UTC time."""
    if status not in VALID_STATUSES:
        msg = f"invalid override status '{status}', must be one of {sorted(VALID_STATUSES)}"
        raise ValueError(msg)
    stamp = (now or datetime.now(timezone.utc)).isoformat(timespec="seconds")
    return OverrideRecord(
        fingerprint=fingerprint,
        rule=rule,
        file_path=file_path,
        status=status,
        reason=reason,
        added_by=added_by,
        timestamp=stamp,
    )


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _read_store(path: Path) -> dict[str, OverrideRecord]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = f"cannot read override store {path}: {exc}"
        raise OverrideStoreError(msg) from exc

    if not isinstance(data, dict):
        msg = f"override store {path} must be a JSON object"
        raise OverrideStoreError(msg)
    entries = data.get("overrides", {})
    if not isinstance(entries, dict):
        msg = f"override store {path}: 'overrides' must be an object"
        raise OverrideStoreError(msg)

    records: dict[str, OverrideRecord] = {}
    for key, entry in entries.items():
        if not isinstance(entry, dict):
            msg = f"override '{key}' must be an object"
            raise OverrideStoreError(msg)
        records[str(key)] = OverrideRecord.from_dict(str(key), entry)
    return records


def load_overrides(path: Path) -> dict[str, OverrideRecord]:
    """Read the store for a run.

    A missing store is empty.  An unreadable or malformed store is logged
    and treated as empty so the run still proceeds.
    """
    try:
        return _read_store(path)
    except OverrideStoreError as exc:
        logger.warning("Ignoring override store: %s", exc)
        return {}


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def is_overridden(violation: Violation, overrides: Mapping[str, OverrideRecord]) -> bool:
    return violation.fingerprint is not None and violation.fingerprint in overrides


def apply_overrides(
    results: Iterable[EvaluationResult], overrides: Mapping[str, OverrideRecord]
) -> list[EvaluationResult]:
    """Remove false positives and flag accepted risks in every result.

    Removed violations move to ``suppressed``; ``passed`` is recomputed so a
    result whose only findings are suppressed or accepted passes.
    """
    if not overrides:
        return list(results)

    applied: list[EvaluationResult] = []
    for result in results:
        active: list[Violation] = []
        suppressed: list[Violation] = list(result.suppressed)
        changed = False
        for violation in result.violations:
            record = overrides.get(violation.fingerprint or "")
            if record is None:
                active.append(violation)
            elif record.status == STATUS_FALSE_POSITIVE:
                suppressed.append(replace(violation, override_status=STATUS_FALSE_POSITIVE))
                changed = True
            else:
                active.append(replace(violation, override_status=STATUS_ACCEPTED_RISK))
                changed = True

        if not changed:
            applied.append(result)
            continue
        kept = tuple(active)
        applied.append(
            replace(
                result,
                violations=kept,
                suppressed=tuple(suppressed),
                passed=not blocking_violations(kept),
            )
        )
    return applied


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def override_stats(
    overrides: Mapping[str, OverrideRecord], *, now: datetime | None = None
) -> dict[str, object]:
    """Summarise the store: totals by status, rule and author, plus recent additions."""
    current = now or datetime.now(timezone.utc)
    cutoff = current - timedelta(days=RECENT_DAYS)

    by_status: dict[str, int] = {status: 0 for status in sorted(VALID_STATUSES)}
    by_rule: dict[str, int] = {}
    by_author: dict[str, int] = {}
    recent = 0
    for record in overrides.values():
        by_status[record.status] = by_status.get(record.status, 0) + 1
        by_rule[record.rule] = by_rule.get(record.rule, 0) + 1
        by_author[record.added_by] = by_author.get(record.added_by, 0) + 1
        try:
            stamp = datetime.fromisoformat(record.timestamp)
        except ValueError:
            continue
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        if stamp > cutoff:
            recent += 1

    return {
        "total": len(overrides),
        "by_status": by_status,
        "by_rule": dict(sorted(by_rule.items())),
        "by_author": dict(sorted(by_author.items())),
        "recent": recent,
    }


# ---------------------------------------------------------------------------
# Persistent store
# ---------------------------------------------------------------------------


class OverrideStore:
    """File-backed override store used by the ``overrides`` commands.

    Unlike :func:`load_overrides`, explicit mutations propagate
    ``OverrideStoreError`` instead of silently starting from scratch.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._records: dict[str, OverrideRecord] | None = None

    @property
    def records(self) -> dict[str, OverrideRecord]:
        if self._records is None:
            self._records = _read_store(self.path)
        return self._records

    def list_records(self) -> list[OverrideRecord]:
        return sorted(self.records.values(), key=lambda r: (r.timestamp, r.fingerprint))

    def get(self, key: str) -> OverrideRecord | None:
        return self.records.get(key)

    def add(self, record: OverrideRecord) -> None:
        self.records[record.fingerprint] = record
        self.save()

    def remove(self, key: str) -> bool:
        """Remove an override; returns False when *key* was not present."""
        if key not in self.records:
            return False
        del self.records[key]
        self.save()
        return True

    def stats(self) -> dict[str, object]:
        return override_stats(self.records)

    def save(self) -> None:
        payload = {
            "version": STORE_VERSION,
            "lastUpdated": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "overrides": {
                key: self.records[key].to_dict() for key in sorted(self.records)
            },
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
                fh.write("\n")
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            msg = f"cannot write override store {self.path}: {exc}"
            raise OverrideStoreError(msg) from exc
