# assignments/autograder.py
"""
Function-test autograder.

Flow
----
1) For every file of the assignment, fetch ``<assignment.path>/<filename>``
   through the injected ``fetch(path) -> str | None``.
2) Missing file: every test case of every auto-tested function in it is
   recorded as failed with ``File not found: <path>`` (still counted in the
   maximum score).
3) Present file: each auto-tested function is run through the test runner,
   one sandbox per test case.
4) Scores and results are summed in catalog order into a ``GradeResult``.

Verdicts
--------
not-submitted   every file was missing and there was something to score
passed          score == max_score > 0
failed          anything else
error           assigned by the caller when grading raised (fetch failure, ...)

Fetch errors are not caught here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .catalog import AssignmentSpec, FunctionSpec
from .runner import TestResult, run_function_tests
from .sandbox import SandboxExecutor, get_sandbox

logger = logging.getLogger(__name__)

NOT_SUBMITTED = "not-submitted"
PASSED = "passed"
FAILED = "failed"
ERROR = "error"

Fetch = Callable[[str], Optional[str]]


@dataclass
class GradeResult:
    score: int = 0
    max_score: int = 0
    results: List[TestResult] = field(default_factory=list)
    files_found: List[str] = field(default_factory=list)
    files_missing: List[str] = field(default_factory=list)

    @property
    def percentage(self) -> int:
        return percentage(self.score, self.max_score)

    def results_as_dicts(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.results]


def percentage(score: int, max_score: int) -> int:
    if not max_score:
        return 0
    # half-up rounding
    return int(score * 100 / max_score + 0.5)


def grade_source(
    source: str,
    functions: Sequence[FunctionSpec],
    executor: Optional[SandboxExecutor] = None,
    timeout_ms: Optional[int] = None,
) -> GradeResult:
    """Grade one already-fetched file against its function specs."""
    executor = executor or get_sandbox()
    out = GradeResult()
    for fn in functions:
        if fn.skip_auto_test:
            continue
        run = run_function_tests(source, fn.name, fn.tests, executor=executor, timeout_ms=timeout_ms)
        out.score += run.score
        out.max_score += run.max_score
        out.results.extend(run.results)
    return out


def _missing_file_results(functions: Sequence[FunctionSpec], path: str) -> List[TestResult]:
    results = []
    for fn in functions:
        if fn.skip_auto_test:
            continue
        for i, case in enumerate(fn.tests):
            results.append(TestResult(
                function_name=fn.name,
                test_index=i,
                passed=False,
                input=case.input,
                expected=case.display_expected,
                error=f"File not found: {path}",
            ))
    return results


def grade_assignment(
    assignment: AssignmentSpec,
    fetch: Fetch,
    executor: Optional[SandboxExecutor] = None,
    timeout_ms: Optional[int] = None,
) -> GradeResult:
    executor = executor or get_sandbox()
    total = GradeResult()

    for file in assignment.files:
        path = assignment.file_path(file)
        source = fetch(path)

        if source is None:
            logger.info("autograder: %s missing", path)
            missing = _missing_file_results(file.functions, path)
            total.max_score += len(missing)
            total.results.extend(missing)
            total.files_missing.append(path)
            continue

        total.files_found.append(path)
        part = grade_source(source, file.functions, executor=executor, timeout_ms=timeout_ms)
        total.score += part.score
        total.max_score += part.max_score
        total.results.extend(part.results)

    logger.info(
        "autograder: week %s session %s scored %s/%s (found=%s missing=%s)",
        assignment.week, assignment.session, total.score, total.max_score,
        len(total.files_found), len(total.files_missing),
    )
    return total


def classify(result: GradeResult) -> str:
    if not result.files_found and result.max_score > 0:
        return NOT_SUBMITTED
    if result.max_score > 0 and result.score == result.max_score:
        return PASSED
    return FAILED
