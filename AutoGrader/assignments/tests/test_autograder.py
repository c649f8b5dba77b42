import textwrap

import pytest

from assignments import autograder, catalog
from assignments.catalog import parse_assignment
from assignments.github import FetchError
from assignments.sandbox import SubprocessSandbox

from .fakes import FakeExecutor, ok


def make_assignment(files):
    return parse_assignment({"week": 2, "session": 3, "title": "T", "path": "week2/session3", "files": files})


ADD_FILE = {
    "filename": "math_utils.py",
    "functions": [{"name": "add", "tests": [{"input": [1, 2], "expected": 3}, {"input": [2, 2], "expected": 5}]}],
}


def test_present_file_is_graded():
    executor = FakeExecutor([ok(3), ok(4)])
    result = autograder.grade_assignment(make_assignment([ADD_FILE]), lambda path: "def add(a, b): ...", executor)

    assert (result.score, result.max_score) == (1, 2)
    assert [r.passed for r in result.results] == [True, False]
    assert result.results[1].actual == 4
    assert result.files_found == ["week2/session3/math_utils.py"]
    assert autograder.classify(result) == autograder.FAILED


def test_missing_file_fails_every_case():
    executor = FakeExecutor([])
    result = autograder.grade_assignment(make_assignment([ADD_FILE]), lambda path: None, executor)

    assert (result.score, result.max_score) == (0, 2)
    assert {r.error for r in result.results} == {"File not found: week2/session3/math_utils.py"}
    assert [r.expected for r in result.results] == [3, 5]
    assert executor.calls == []
    assert autograder.classify(result) == autograder.NOT_SUBMITTED


def test_one_missing_file_out_of_two_is_not_not_submitted():
    other = {"filename": "other.py", "functions": [{"name": "one", "tests": [{"input": [], "expected": 1}]}]}
    sources = {"week2/session3/other.py": "def one(): return 1"}
    result = autograder.grade_assignment(
        make_assignment([ADD_FILE, other]), sources.get, FakeExecutor([ok(1)]),
    )
    assert (result.score, result.max_score) == (1, 3)
    assert result.files_missing == ["week2/session3/math_utils.py"]
    assert autograder.classify(result) == autograder.FAILED


def test_skipped_functions_are_not_scored():
    file = {"filename": "m.py", "functions": [
        {"name": "graded", "tests": [{"input": [], "expected": 1}]},
        {"name": "manual", "skipAutoTest": True, "tests": [{"input": [], "expected": 2}]},
    ]}
    executor = FakeExecutor([ok(1)])
    result = autograder.grade_assignment(make_assignment([file]), lambda p: "src", executor)
    assert (result.score, result.max_score) == (1, 1)
    assert [c[1] for c in executor.calls] == ["graded"]
    assert autograder.classify(result) == autograder.PASSED

    missing = autograder.grade_assignment(make_assignment([file]), lambda p: None, executor)
    assert missing.max_score == 1


def test_fetch_error_propagates():
    def fetch(path):
        raise FetchError("GitHub API error: 502 Bad Gateway")

    with pytest.raises(FetchError):
        autograder.grade_assignment(make_assignment([ADD_FILE]), fetch, FakeExecutor([]))


def test_grade_source():
    fns = make_assignment([ADD_FILE]).files[0].functions
    result = autograder.grade_source("src", fns, executor=FakeExecutor([ok(3), ok(5)]))
    assert (result.score, result.max_score) == (2, 2)


@pytest.mark.parametrize("score,max_score,found,verdict", [
    (0, 0, [], autograder.FAILED),
    (0, 0, ["a.py"], autograder.FAILED),
    (2, 2, ["a.py"], autograder.PASSED),
    (1, 2, ["a.py"], autograder.FAILED),
    (0, 2, [], autograder.NOT_SUBMITTED),
])
def test_classify(score, max_score, found, verdict):
    result = autograder.GradeResult(score=score, max_score=max_score, files_found=found)
    assert autograder.classify(result) == verdict


def test_percentage_rounds_half_up():
    assert autograder.percentage(1, 8) == 13
    assert autograder.percentage(1, 3) == 33
    assert autograder.percentage(2, 3) == 67
    assert autograder.percentage(0, 0) == 0


def test_shipped_assignment_end_to_end():
    """A correct solution for week 2 / session 3 passes in real sandboxes."""
    solution = textwrap.dedent("""
        def add(a, b):
            return a + b

        def divide(a, b):
            if b == 0:
                raise ValueError("Cannot divide by zero")
            return a / b

        def clamp(value, low, high):
            return max(low, min(high, value))
    """)
    assignment = catalog.require_assignment(2, 3)
    result = autograder.grade_assignment(
        assignment,
        {"week2/session3/math_utils.py": solution}.get,
        executor=SubprocessSandbox(memory_mb=512),
        timeout_ms=5000,
    )
    assert [r.error for r in result.results if not r.passed] == []
    assert (result.score, result.max_score) == (9, 9)
    assert autograder.classify(result) == autograder.PASSED
