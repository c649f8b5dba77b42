# grades/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.core.exceptions import ObjectDoesNotExist

from assignments.catalog import AssignmentNotFound
from students.models import Student

from .services import grade_batch, grade_student

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def grade_student_task(self, student_id: int, week: int, session: int) -> dict:
    """Grade one student; the outcome is persisted on the submission either way."""
    try:
        student = Student.objects.get(pk=student_id)
    except ObjectDoesNotExist:
        logger.warning("grade_student_task: student %s not found", student_id)
        return {"ok": False, "error": "student_not_found"}

    try:
        outcome = grade_student(student, week, session)
    except AssignmentNotFound as e:
        return {"ok": False, "error": str(e)}
    return {"ok": True, **outcome.as_dict()}


@shared_task(bind=True)
def grade_assignment_batch_task(self, week: int, session: int) -> dict:
    """Grade every active student for (week, session); one student's failure never stops the rest."""
    try:
        report = grade_batch(week, session)
    except AssignmentNotFound as e:
        return {"ok": False, "error": str(e)}
    return {"ok": True, "summary": report.summary, "results": report.results}
