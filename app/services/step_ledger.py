"""
Step result ledger of one assignment.

Entries are positional: entry ``i`` is the outcome of test step ``i``. The
ledger may be shorter than the test (steps not reached yet) but never has
gaps and is never reordered; revisiting a step replaces its entry in place.

Stored entries are kept as they were written. Legacy entries are only
rewritten to the canonical vocabulary when the assignee records that step
again.
"""

from app.core.exceptions import ValidationError
from app.services.result_normalizer import (
    FAIL, PASS, SKIP, coerce_status_for_write, normalize_ledger,
)


class StepLedger:
    """Mutable working copy of ``TestAssignment.step_results``.

    The JSON column is not mutation-tracked, so callers write back
    ``ledger.to_list()`` (a fresh list) instead of editing in place.
    """

    def __init__(self, entries=None):
        self._entries = [dict(e) if isinstance(e, dict) else e for e in (entries or [])]

    @classmethod
    def for_assignment(cls, assignment):
        return cls(assignment.step_results)

    def __len__(self):
        return len(self._entries)

    @property
    def is_empty(self):
        return not self._entries

    def upsert(self, step_index, status, notes=None, *, step_count):
        """Record (or re-record) the outcome of ``step_index``.

        Raises:
            ValidationError: index outside the test, a gap in the ledger,
                or an unrecognized status.
        """
        if not isinstance(step_index, int) or isinstance(step_index, bool):
            raise ValidationError("step_index must be an integer", details={"step_index": step_index})
        if step_index < 0 or step_index >= step_count:
            raise ValidationError(
                f"step_index {step_index} is outside the test (0..{step_count - 1})",
                details={"step_index": "out of range"},
            )
        if step_index > len(self._entries):
            raise ValidationError(
                f"Step {step_index} cannot be recorded before step {len(self._entries)}",
                details={"step_index": "steps are recorded in order"},
            )

        entry = {"step_index": step_index, "status": coerce_status_for_write(status)}
        if notes is not None:
            entry["notes"] = notes

        if step_index == len(self._entries):
            self._entries.append(entry)
        else:
            self._entries[step_index] = entry
        return entry

    def statuses(self):
        """Normalized status per entry (None where there is no verdict)."""
        return normalize_ledger(self._entries)

    def counts(self):
        statuses = self.statuses()
        return {
            "passed": statuses.count(PASS),
            "failed": statuses.count(FAIL),
            "skipped": statuses.count(SKIP),
            "no_verdict": statuses.count(None),
        }

    def to_list(self):
        return [dict(e) if isinstance(e, dict) else e for e in self._entries]
