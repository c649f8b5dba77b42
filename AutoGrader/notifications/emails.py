# notifications/emails.py
"""
Grade report rendering and the mail transport.

Rendering is pure apart from the cumulative totals, which read the student's
completed submissions. ``send_email`` is the only place that talks SMTP; it is
called from the outbox and from the test-email endpoint.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from email.utils import formataddr, make_msgid
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.mail import EmailMultiAlternatives
from django.db.models import Count, Sum
from django.template.loader import render_to_string

from assignments import catalog
from assignments.autograder import percentage
from grades.models import Submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool
    from_name: str
    from_address: str
    reply_to: Optional[str] = None


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def get_email_config() -> EmailConfig:
    enabled = bool(getattr(settings, "EMAIL_ENABLED", False))
    from_name = getattr(settings, "EMAIL_FROM_NAME", "") or "Course Instructor"
    reply_to = getattr(settings, "EMAIL_REPLY_TO", "") or None
    if not enabled:
        return EmailConfig(False, from_name, getattr(settings, "EMAIL_FROM_ADDRESS", ""), reply_to)

    user = getattr(settings, "EMAIL_HOST_USER", "")
    password = getattr(settings, "EMAIL_HOST_PASSWORD", "")
    if not user:
        raise ImproperlyConfigured("SMTP_USER is not set")
    if not password:
        raise ImproperlyConfigured("SMTP_PASS is not set")
    return EmailConfig(True, from_name, getattr(settings, "EMAIL_FROM_ADDRESS", "") or user, reply_to)


def send_email(to: str, subject: str, html: str, text: str) -> Optional[str]:
    """Send one multipart message. Returns the Message-ID, or None when email is disabled."""
    config = get_email_config()
    if not config.enabled:
        logger.info("email: disabled, not sending '%s' to %s", subject, to)
        return None

    message_id = make_msgid()
    msg = EmailMultiAlternatives(
        subject=subject,
        body=text,
        from_email=formataddr((config.from_name, config.from_address)),
        to=[to],
        reply_to=[config.reply_to] if config.reply_to else None,
        headers={"Message-ID": message_id},
    )
    msg.attach_alternative(html, "text/html")
    msg.send(fail_silently=False)
    logger.info("email: sent '%s' to %s (%s)", subject, to, message_id)
    return message_id


# -----------------------
# Rendering
# -----------------------
def to_json(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def failed_checks(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    rows = []
    for r in results or []:
        if not isinstance(r, dict) or r.get("passed") is not False:
            continue
        rows.append({
            "function_name": str(r.get("functionName", "unknown")),
            "test_index": r.get("testIndex", ""),
            "input": to_json(r.get("input")),
            "expected": to_json(r.get("expected")),
            "actual": to_json(r["actual"]) if "actual" in r else "(none)",
            "error": str(r.get("error") or ""),
        })
    return rows


def completed_cumulative(student) -> Dict[str, int]:
    row = Submission.objects.filter(student=student, status=Submission.STATUS_COMPLETED).aggregate(
        total_score=Sum("score"), total_max_score=Sum("max_score"), completed=Count("id"),
    )
    total_score = row["total_score"] or 0
    total_max = row["total_max_score"] or 0
    return {
        "total_score": total_score,
        "total_max_score": total_max,
        "overall_percentage": percentage(total_score, total_max),
        "completed_assignments": row["completed"] or 0,
        "total_assignments": len(catalog.list_assignments()),
    }


def assignment_title(week: int, session: int) -> str:
    a = catalog.get_assignment(week, session)
    return a.title if a else f"Week {week} / Session {session}"


def render_grade_report(student, submission) -> RenderedEmail:
    course_name = catalog.get_course().get("name") or "Course"
    title = assignment_title(submission.week, submission.session)
    context = {
        "student_name": student.name,
        "course_name": course_name,
        "week": submission.week,
        "session": submission.session,
        "title": title,
        "score": submission.score,
        "max_score": submission.max_score,
        "percentage": percentage(submission.score, submission.max_score),
        "cumulative": completed_cumulative(student),
        "failed": failed_checks(submission.results),
    }
    subject = f"{course_name} — Week {submission.week} Session {submission.session} — {title} — Grade Report"
    return RenderedEmail(
        subject=subject,
        html=render_to_string("notifications/grade_report.html", context),
        text=render_to_string("notifications/grade_report.txt", context),
    )
