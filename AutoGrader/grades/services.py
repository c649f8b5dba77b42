# grades/services.py
"""
Grade one student (or every active student) for a (week, session).

The submission row is the single source of truth: it flips to ``grading``
before any I/O, and always ends in ``completed`` or ``error``. A completed
submission hands off to the email outbox; a failure there never affects the
grade.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from django.conf import settings
from django.utils import timezone

from assignments import autograder, catalog, github
from assignments.sandbox import SandboxExecutor
from notifications.outbox import enqueue_grade_report
from students.models import Student

from .models import Submission

logger = logging.getLogger(__name__)

NOT_SUBMITTED_MESSAGE = "Assignment files not found - not submitted"

FetcherFactory = Callable[[str, str], Callable[[str], Optional[str]]]
RepoCheck = Callable[[str, str], bool]


@dataclass
class StudentGradeOutcome:
    status: str
    score: int = 0
    max_score: int = 0
    percentage: int = 0
    error_message: str = ""
    submission: Optional[Submission] = None
    results: List[Dict[str, Any]] = field(default_factory=list)
    repository_missing: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.submission.pk if self.submission else None,
            "week": self.submission.week if self.submission else None,
            "session": self.submission.session if self.submission else None,
            "status": self.status,
            "score": self.score,
            "maxScore": self.max_score,
            "percentage": self.percentage,
            "errorMessage": self.error_message or None,
            "results": self.results,
        }


@dataclass
class BatchGradeReport:
    summary: Dict[str, int]
    results: List[Dict[str, Any]]


def course_repo_name() -> str:
    return settings.COURSE_REPO_NAME or catalog.get_course().get("repoName") or ""


def _start_submission(student: Student, week: int, session: int) -> Submission:
    submission, created = Submission.objects.get_or_create(
        student=student, week=week, session=session,
        defaults={"status": Submission.STATUS_GRADING},
    )
    if not created:
        submission.status = Submission.STATUS_GRADING
        submission.submitted_at = timezone.now()
        submission.save(update_fields=["status", "submitted_at", "updated_at"])
    return submission


def _finish(submission: Submission, status: str, score: int, max_score: int, results, error_message: str = "") -> None:
    submission.status = status
    submission.score = score
    submission.max_score = max_score
    submission.results = results
    submission.error_message = error_message
    submission.save(update_fields=["status", "score", "max_score", "results", "error_message", "updated_at"])


def _enqueue_report(student: Student, submission: Submission) -> None:
    try:
        result = enqueue_grade_report(student, submission)
        logger.info("grade: email enqueue for submission %s: %s", submission.pk, result.reason or "enqueued")
    except Exception:
        logger.exception("grade: email enqueue failed for submission %s", submission.pk)


def grade_student(
    student: Student,
    week: int,
    session: int,
    fetcher: Optional[FetcherFactory] = None,
    executor: Optional[SandboxExecutor] = None,
    repo_check: Optional[RepoCheck] = None,
) -> StudentGradeOutcome:
    """Raises ``catalog.AssignmentNotFound`` before touching the database."""
    assignment = catalog.require_assignment(week, session)
    fetcher = fetcher or github.repo_fetcher
    repo_check = repo_check or github.repo_exists
    repo = course_repo_name()

    submission = _start_submission(student, week, session)
    logger.info("grade: %s week %s session %s (submission %s)", student.github_username, week, session, submission.pk)

    try:
        if not repo_check(student.github_username, repo):
            message = f"Repository not found: {student.github_username}/{repo}"
            _finish(submission, Submission.STATUS_ERROR, 0, 0, [], message)
            return StudentGradeOutcome(
                autograder.NOT_SUBMITTED, error_message=message, submission=submission, repository_missing=True,
            )

        result = autograder.grade_assignment(
            assignment,
            fetcher(student.github_username, repo),
            executor=executor,
            timeout_ms=catalog.get_function_timeout_ms(),
        )
        results = result.results_as_dicts()
        verdict = autograder.classify(result)

        if verdict == autograder.NOT_SUBMITTED:
            _finish(submission, Submission.STATUS_ERROR, 0, result.max_score, results, NOT_SUBMITTED_MESSAGE)
            return StudentGradeOutcome(
                verdict, 0, result.max_score, 0, NOT_SUBMITTED_MESSAGE, submission, results,
            )

        _finish(submission, Submission.STATUS_COMPLETED, result.score, result.max_score, results)
    except Exception as e:
        logger.exception("grade: %s week %s session %s failed", student.github_username, week, session)
        message = str(e) or type(e).__name__
        submission.status = Submission.STATUS_ERROR
        submission.error_message = message
        submission.save(update_fields=["status", "error_message", "updated_at"])
        return StudentGradeOutcome(autograder.ERROR, error_message=message, submission=submission)

    _enqueue_report(student, submission)
    return StudentGradeOutcome(
        verdict, result.score, result.max_score, result.percentage, "", submission, results,
    )


def grade_batch(
    week: int,
    session: int,
    students: Optional[Iterable[Student]] = None,
    fetcher: Optional[FetcherFactory] = None,
    executor: Optional[SandboxExecutor] = None,
    repo_check: Optional[RepoCheck] = None,
) -> BatchGradeReport:
    catalog.require_assignment(week, session)
    if students is None:
        students = Student.objects.filter(is_active=True)

    rows: List[Dict[str, Any]] = []
    for student in students:
        row = {
            "studentId": student.pk,
            "studentName": student.name,
            "githubUsername": student.github_username,
            "status": autograder.ERROR,
            "score": 0,
            "maxScore": 0,
            "percentage": 0,
        }
        try:
            outcome = grade_student(
                student, week, session, fetcher=fetcher, executor=executor, repo_check=repo_check,
            )
            row.update(status=outcome.status, score=outcome.score, maxScore=outcome.max_score,
                       percentage=outcome.percentage)
            if outcome.error_message:
                row["errorMessage"] = outcome.error_message
        except Exception as e:
            logger.exception("grade_batch: student %s failed", student.pk)
            row["errorMessage"] = str(e) or type(e).__name__
        rows.append(row)

    summary = {
        "total": len(rows),
        "passed": sum(1 for r in rows if r["status"] == autograder.PASSED),
        "failed": sum(1 for r in rows if r["status"] == autograder.FAILED),
        "not_submitted": sum(1 for r in rows if r["status"] == autograder.NOT_SUBMITTED),
        "errors": sum(1 for r in rows if r["status"] == autograder.ERROR),
    }
    logger.info("grade_batch: week %s session %s %s", week, session, summary)
    return BatchGradeReport(summary=summary, results=rows)
