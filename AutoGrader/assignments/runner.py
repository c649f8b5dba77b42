# assignments/runner.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .catalog import TestCase
from .comparator import matches_shape, values_equal
from .sandbox import SandboxExecutor, get_sandbox

logger = logging.getLogger(__name__)

NO_MODE_MESSAGE = "Invalid test case: no evaluation mode (expected, throws or matchesShape)"


@dataclass(frozen=True)
class TestResult:
    function_name: str
    test_index: int
    passed: bool
    input: List[Any]
    expected: Any = None
    actual: Any = None
    error: Optional[str] = None
    has_actual: bool = False

    __test__ = False

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "functionName": self.function_name,
            "testIndex": self.test_index,
            "passed": self.passed,
            "input": self.input,
            "expected": self.expected,
        }
        if self.has_actual:
            d["actual"] = self.actual
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass
class FunctionRunResult:
    score: int = 0
    max_score: int = 0
    results: List[TestResult] = field(default_factory=list)


def evaluate_case(function_name: str, index: int, case: TestCase, outcome) -> TestResult:
    """Turn one sandbox outcome into a verdict for ``case``."""
    base = dict(function_name=function_name, test_index=index, input=case.input, expected=case.display_expected)
    mode = case.mode

    if not outcome.ok:
        message = outcome.error or "Execution error"
        if mode == "throws" and case.throws in message:
            return TestResult(passed=True, **base)
        return TestResult(passed=False, error=message, **base)

    actual = outcome.value
    if mode == "throws":
        return TestResult(
            passed=False, actual=actual, has_actual=True,
            error=f"Expected error containing '{case.throws}'", **base,
        )
    if mode == "matchesShape":
        passed = matches_shape(actual, case.matches_shape)
    else:
        passed = values_equal(actual, case.expected, case.tolerance)
    return TestResult(passed=passed, actual=actual, has_actual=True, **base)


def run_function_tests(
    source: str,
    function_name: str,
    test_cases: Sequence[TestCase],
    executor: Optional[SandboxExecutor] = None,
    timeout_ms: Optional[int] = None,
) -> FunctionRunResult:
    """
    Run every case against ``function_name`` in ``source``.

    Each case is executed in its own sandbox and judged on its own; a crash
    while handling one case is recorded as that case's failure and the rest
    still run. ``max_score`` is always ``len(test_cases)``.
    """
    executor = executor or get_sandbox()
    run = FunctionRunResult(max_score=len(test_cases))

    for i, case in enumerate(test_cases):
        if case.mode is None:
            result = TestResult(
                function_name=function_name, test_index=i, passed=False,
                input=case.input, expected=None, error=NO_MODE_MESSAGE,
            )
        else:
            try:
                outcome = executor.execute(source, function_name, case.sandbox_args(), timeout_ms)
                result = evaluate_case(function_name, i, case, outcome)
            except Exception as e:
                logger.exception("runner: %s[%s] crashed", function_name, i)
                result = TestResult(
                    function_name=function_name, test_index=i, passed=False,
                    input=case.input, expected=case.display_expected,
                    error=f"Test execution failed: {e}",
                )

        if result.passed:
            run.score += 1
        run.results.append(result)

    logger.info("runner: %s scored %s/%s", function_name, run.score, run.max_score)
    return run
