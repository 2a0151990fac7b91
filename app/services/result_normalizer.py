"""
Step result normalization: the one place the two step vocabularies meet.

Persisted ledgers contain two encodings:
    legacy     passed | failed | skipped   (and sometimes under the key "result")
    canonical  pass   | fail   | skip

Every read of a ledger goes through ``normalize_status``. Unknown or missing
values normalize to ``None`` ("no verdict yet"); they are never treated as a
failure, so half-migrated rows stay readable.

Writes are validated separately by ``coerce_status_for_write``, which rejects
values that would normalize to ``None``.
"""

from app.core.exceptions import ValidationError

PASS = "pass"
FAIL = "fail"
SKIP = "skip"

CANONICAL_STATUSES = (PASS, FAIL, SKIP)

_STATUS_MAP = {
    "pass": PASS,
    "passed": PASS,
    "fail": FAIL,
    "failed": FAIL,
    "skip": SKIP,
    "skipped": SKIP,
}


def _raw_value(entry):
    if isinstance(entry, dict):
        value = entry.get("status")
        if value is None:
            value = entry.get("result")
        return value
    return entry


def normalize_status(entry):
    """Map a step entry (dict) or a bare status string to pass/fail/skip or None.

    ``status`` wins over the legacy ``result`` key when both are present.
    Idempotent: ``normalize_status(normalize_status(x)) == normalize_status(x)``.
    """
    value = _raw_value(entry)
    if not isinstance(value, str):
        return None
    return _STATUS_MAP.get(value.strip().lower())


def normalize_ledger(entries):
    """Normalized statuses of a ledger, position for position."""
    return [normalize_status(e) for e in (entries or [])]


def coerce_status_for_write(value):
    """Canonical status for a new ledger entry; raises ValidationError if unrecognized."""
    status = normalize_status(value)
    if status is None:
        raise ValidationError(
            f"Unknown step status {value!r}",
            details={"status": f"must be one of {', '.join(CANONICAL_STATUSES)}"},
        )
    return status
