"""
Execution rollups: pure functions over step ledgers.

Two judgment rules exist and must not be mixed up:

``overall_result``  (historical rule)
    Used for finished attempts, result lists, per-test and per-user
    statistics. Looks only at the ledger:
        empty            → no_results
        any fail         → failed
        all pass         → passed
        any skip         → partial
        otherwise        → in_progress   (entries without a verdict)

``gate_summary``  (required-step gate)
    Used only for the live summary shown to the assignee while an attempt
    is still open. Evaluated against the test's step definitions:
        empty ledger                  → no_results
        a required step failed        → failed
        any other failure             → failed
        any skip                      → partial
        otherwise                     → passed
    Unreached steps only show up in the ``pending`` count.

Nothing here touches the database; every function can be re-run on the same
input any number of times.
"""

import math

from app.services.result_normalizer import FAIL, PASS, SKIP, normalize_ledger

PASSED = "passed"
FAILED = "failed"
PARTIAL = "partial"
IN_PROGRESS = "in_progress"
NO_RESULTS = "no_results"

HISTORICAL_RULE = "historical"
GATE_RULE = "required_step_gate"


def _ledger_of(assignment):
    return assignment.step_results or []


def pass_rate(passed, total):
    """Whole-number percentage rounded half-up; 0 when there is nothing to rate."""
    if not total:
        return 0
    return int(math.floor(passed / total * 100 + 0.5))


# ── Per attempt ──────────────────────────────────────────────────────────────

def overall_result(entries):
    """Historical overall result of one ledger (see module docstring)."""
    statuses = normalize_ledger(entries)
    if not statuses:
        return NO_RESULTS
    if FAIL in statuses:
        return FAILED
    if all(s == PASS for s in statuses):
        return PASSED
    if SKIP in statuses:
        return PARTIAL
    return IN_PROGRESS


def gate_summary(step_definitions, entries):
    """Required-step gate for an attempt that is still being executed.

    Args:
        step_definitions: ``Test.step_definitions()`` output.
        entries: the assignment's ledger.

    Returns:
        dict with ``result``, ``rule``, per-verdict counts, ``pending`` (test
        steps without a verdict) and ``required_failures`` (step indexes).
    """
    statuses = normalize_ledger(entries)
    required_failures = [
        i for i, status in enumerate(statuses)
        if status == FAIL and i < len(step_definitions) and step_definitions[i]["required"]
    ]
    pending = sum(
        1 for i in range(len(step_definitions))
        if i >= len(statuses) or statuses[i] is None
    )

    if not statuses:
        result = NO_RESULTS
    elif required_failures or FAIL in statuses:
        result = FAILED
    elif SKIP in statuses:
        result = PARTIAL
    else:
        result = PASSED

    return {
        "result": result,
        "rule": GATE_RULE,
        "total_steps": len(step_definitions),
        "passed": statuses.count(PASS),
        "failed": statuses.count(FAIL),
        "skipped": statuses.count(SKIP),
        "pending": pending,
        "required_failures": required_failures,
    }


# ── Across attempts ──────────────────────────────────────────────────────────

def executed_attempts(assignments):
    """Non-deleted assignments whose ledger has at least one entry."""
    return [
        a for a in assignments
        if getattr(a, "deleted_at", None) is None and _ledger_of(a)
    ]


def per_test_statistics(assignments):
    """Per-test rollup over sibling assignments (historical rule)."""
    executed = executed_attempts(assignments)
    results = [overall_result(_ledger_of(a)) for a in executed]
    passed = results.count(PASSED)
    failed = results.count(FAILED)
    return {
        "total": len(executed),
        "passed": passed,
        "failed": failed,
        "pass_rate": pass_rate(passed, len(executed)),
    }


def per_user_statistics(assignments):
    """Per-assignee rollup: workload by state plus execution outcomes."""
    active = [a for a in assignments if getattr(a, "deleted_at", None) is None]
    by_state = {"assigned": 0, "in_progress": 0, "blocked": 0, "done": 0}
    for a in active:
        if a.state in by_state:
            by_state[a.state] += 1

    outcome = per_test_statistics(active)
    return {
        "assignments": len(active),
        "by_state": by_state,
        "executed": outcome["total"],
        "passed": outcome["passed"],
        "failed": outcome["failed"],
        "pass_rate": outcome["pass_rate"],
    }
