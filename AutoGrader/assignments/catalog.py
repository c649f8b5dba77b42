# assignments/catalog.py
"""
Static assignment catalog.

The catalog is a JSON document (``ASSIGNMENT_SPECS_PATH``) shaped like::

    {
      "course": {"name": "...", "repoName": "..."},
      "assignments": [
        {"week": 2, "session": 3, "title": "...", "path": "week2/session3",
         "files": [{"filename": "math_utils.py",
                    "functions": [{"name": "add", "tests": [{"input": [1, 2], "expected": 3}]}]}]}
      ],
      "grading": {"functionTests": {"timeout": 2000}}
    }

Test-case arguments written as ``{"$callback": "lambda x: x * 2"}`` are callback
sources; they are compiled inside the sandbox, never in this process.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings

CALLBACK_KEY = "$callback"

_MODE_KEYS = ("throws", "matchesShape", "expected")


class SpecError(ValueError):
    """Raised for malformed catalog entries."""


class AssignmentNotFound(LookupError):
    pass


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class CallbackSource:
    source: str


@dataclass(frozen=True)
class TestCase:
    input: List[Any]
    expected: Any = UNSET
    throws: Optional[str] = None
    matches_shape: Optional[Dict[str, Any]] = None
    tolerance: Optional[float] = None

    __test__ = False  # not a pytest class

    @property
    def mode(self) -> Optional[str]:
        # throws > matchesShape > expected
        if self.throws:
            return "throws"
        if self.matches_shape is not None:
            return "matchesShape"
        if self.expected is not UNSET:
            return "expected"
        return None

    @property
    def display_expected(self) -> Any:
        return None if self.expected is UNSET else self.expected

    def sandbox_args(self) -> List[Any]:
        return [to_sandbox_arg(a) for a in self.input]


@dataclass(frozen=True)
class FunctionSpec:
    name: str
    tests: Tuple[TestCase, ...]
    skip_auto_test: bool = False
    description: str = ""
    params: Tuple[Dict[str, str], ...] = ()
    returns: str = ""


@dataclass(frozen=True)
class FileSpec:
    filename: str
    functions: Tuple[FunctionSpec, ...]


@dataclass(frozen=True)
class AssignmentSpec:
    week: int
    session: int
    title: str
    path: str
    files: Tuple[FileSpec, ...] = field(default_factory=tuple)

    def file_path(self, file: FileSpec) -> str:
        base = self.path.strip("/")
        return f"{base}/{file.filename}" if base else file.filename


@dataclass(frozen=True)
class Catalog:
    course: Dict[str, Any]
    assignments: Tuple[AssignmentSpec, ...]
    function_timeout_ms: Optional[int] = None


def to_sandbox_arg(value: Any) -> Any:
    if isinstance(value, dict) and set(value) == {CALLBACK_KEY}:
        src = value[CALLBACK_KEY]
        if not isinstance(src, str):
            raise SpecError(f"'{CALLBACK_KEY}' must be a string of Python source")
        return CallbackSource(src)
    return value


# -----------------------
# Parsing
# -----------------------
def parse_test_case(raw: Any, where: str) -> TestCase:
    if not isinstance(raw, dict):
        raise SpecError(f"{where}: test case must be an object")
    args = raw.get("input", [])
    if not isinstance(args, list):
        raise SpecError(f"{where}: 'input' must be a list")
    for a in args:
        to_sandbox_arg(a)

    throws = raw.get("throws")
    if throws is not None and not isinstance(throws, str):
        raise SpecError(f"{where}: 'throws' must be a string")
    # an empty message selects nothing
    throws = throws if throws and throws.strip() else None
    shape = raw.get("matchesShape")
    if shape is not None and not isinstance(shape, dict):
        raise SpecError(f"{where}: 'matchesShape' must be an object")
    tolerance = raw.get("tolerance")
    if tolerance is not None and (isinstance(tolerance, bool) or not isinstance(tolerance, (int, float))):
        raise SpecError(f"{where}: 'tolerance' must be a number")

    return TestCase(
        input=list(args),
        expected=raw["expected"] if "expected" in raw else UNSET,
        throws=throws,
        matches_shape=shape,
        tolerance=tolerance,
    )


def parse_function(raw: Any, where: str) -> FunctionSpec:
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
        raise SpecError(f"{where}: function must be an object with a 'name'")
    name = raw["name"]
    tests = raw.get("tests") or []
    if not isinstance(tests, list):
        raise SpecError(f"{where}.{name}: 'tests' must be a list")
    return FunctionSpec(
        name=name,
        tests=tuple(parse_test_case(t, f"{where}.{name}[{i}]") for i, t in enumerate(tests)),
        skip_auto_test=bool(raw.get("skipAutoTest", False)),
        description=str(raw.get("description", "")),
        params=tuple(raw.get("params") or ()),
        returns=str(raw.get("returns", "")),
    )


def parse_assignment(raw: Any) -> AssignmentSpec:
    if not isinstance(raw, dict):
        raise SpecError("assignment must be an object")
    try:
        week, session = int(raw["week"]), int(raw["session"])
    except (KeyError, TypeError, ValueError) as e:
        raise SpecError(f"assignment needs integer 'week' and 'session': {e}") from e
    where = f"week{week}/session{session}"
    files = []
    for f in raw.get("files") or []:
        if not isinstance(f, dict) or not f.get("filename"):
            raise SpecError(f"{where}: file entry needs a 'filename'")
        fns = tuple(parse_function(fn, f"{where}/{f['filename']}") for fn in f.get("functions") or [])
        files.append(FileSpec(filename=str(f["filename"]), functions=fns))
    return AssignmentSpec(
        week=week,
        session=session,
        title=str(raw.get("title") or f"Week {week} / Session {session}"),
        path=str(raw.get("path") or ""),
        files=tuple(files),
    )


def parse_catalog(data: Dict[str, Any]) -> Catalog:
    timeout = ((data.get("grading") or {}).get("functionTests") or {}).get("timeout")
    return Catalog(
        course=dict(data.get("course") or {}),
        assignments=tuple(parse_assignment(a) for a in data.get("assignments") or []),
        function_timeout_ms=int(timeout) if timeout else None,
    )


# -----------------------
# Lookups
# -----------------------
@lru_cache(maxsize=4)
def _load(path: str) -> Catalog:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_catalog(raw)


def load_catalog() -> Catalog:
    return _load(str(settings.ASSIGNMENT_SPECS_PATH))


def get_course() -> Dict[str, Any]:
    return load_catalog().course


def get_assignment(week: int, session: int) -> Optional[AssignmentSpec]:
    for a in load_catalog().assignments:
        if a.week == week and a.session == session:
            return a
    return None


def require_assignment(week: int, session: int) -> AssignmentSpec:
    a = get_assignment(week, session)
    if a is None:
        raise AssignmentNotFound(f"No assignment spec found for week {week} session {session}")
    return a


def list_assignments() -> List[Dict[str, Any]]:
    items = [{"week": a.week, "session": a.session, "title": a.title} for a in load_catalog().assignments]
    return sorted(items, key=lambda a: (a["week"], a["session"]))


def get_function_timeout_ms() -> int:
    return load_catalog().function_timeout_ms or int(settings.GRADER_SANDBOX_TIMEOUT_MS)
