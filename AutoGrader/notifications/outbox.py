# notifications/outbox.py
"""
Durable grade-report email outbox.

Job lifecycle
-------------
pending ──claim (next_attempt_at <= now)──▶ processing ──send ok──▶ sent
   ▲                                          │
   └──── send failed (attempts+1, backoff) ───┤
                                              └──disqualified──▶ canceled

Grading never talks SMTP: it only inserts a pending row keyed by
``(submission, signature)``. The batch processor (Celery beat, management
command or HTTP trigger) claims rows one at a time with a compare-and-set
UPDATE, so overlapping batches never process the same job twice.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional

from django.core.exceptions import ImproperlyConfigured
from django.db import IntegrityError, transaction
from django.db.models import Count
from django.utils import timezone

from grades.models import Submission
from students.models import Student

from .emails import get_email_config, render_grade_report, send_email
from .models import OutboxJob

logger = logging.getLogger(__name__)

BACKOFF_BASE = timedelta(minutes=1)
BACKOFF_MAX = timedelta(hours=6)
DEFAULT_BATCH_LIMIT = 20
MAX_BATCH_LIMIT = 100
CLAIM_CANDIDATES = 10


@dataclass(frozen=True)
class EnqueueResult:
    enqueued: bool
    skipped: bool
    reason: Optional[str] = None
    signature: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OutboxSummary:
    claimed: int = 0
    sent: int = 0
    retried: int = 0
    canceled: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


# -----------------------
# Signatures
# -----------------------
def compute_failed_checks_signature(results: Optional[Iterable[Dict[str, Any]]]) -> str:
    keys = []
    for r in results or []:
        if not isinstance(r, dict) or r.get("passed") is not False:
            continue
        name = r.get("functionName")
        index = r.get("testIndex")
        keys.append(f"{'unknown' if name is None else name}:{-1 if index is None else index}")
    return "|".join(sorted(keys))


def compute_email_signature(score: int, max_score: int, failed_checks_signature: str) -> str:
    base = f"{score}/{max_score}|{failed_checks_signature}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def compute_submission_signature(submission: Submission) -> str:
    return compute_email_signature(
        int(submission.score or 0),
        int(submission.max_score or 0),
        compute_failed_checks_signature(submission.results),
    )


def compute_backoff(attempts: int) -> timedelta:
    # 1m, 2m, 4m, ... capped at 6h
    exponent = max(0, attempts - 1)
    if exponent >= 20:
        return BACKOFF_MAX
    return min(BACKOFF_BASE * (2 ** exponent), BACKOFF_MAX)


# -----------------------
# Enqueue
# -----------------------
def enqueue_grade_report(student, submission: Submission) -> EnqueueResult:
    """Record that this grade should be emailed. Never sends anything itself."""
    try:
        enabled = get_email_config().enabled
    except ImproperlyConfigured as e:
        logger.warning("outbox: email config error, not enqueuing: %s", e)
        return EnqueueResult(False, True, "email-config-error")

    if not enabled:
        return EnqueueResult(False, True, "email-disabled")
    if submission.status != Submission.STATUS_COMPLETED:
        return EnqueueResult(False, True, "submission-not-completed")

    to = (getattr(student, "email", "") or "").strip()
    if not to:
        return EnqueueResult(False, True, "missing-student-email")

    signature = compute_submission_signature(submission)
    if submission.last_email_signature == signature and submission.last_emailed_at:
        return EnqueueResult(False, True, "deduped", signature)

    try:
        with transaction.atomic():
            job, created = OutboxJob.objects.get_or_create(
                submission=submission,
                signature=signature,
                defaults={
                    "type": OutboxJob.TYPE_GRADE_REPORT,
                    "status": OutboxJob.STATUS_PENDING,
                    "attempts": 0,
                    "next_attempt_at": timezone.now(),
                    "student": student,
                    "to": to,
                },
            )
    except IntegrityError:
        # lost an insert race on (submission, signature)
        return EnqueueResult(False, True, "deduped", signature)

    if not created:
        return EnqueueResult(False, True, "deduped", signature)

    logger.info("outbox: enqueued job %s for submission %s -> %s", job.pk, submission.pk, to)
    return EnqueueResult(True, False, None, signature)


# -----------------------
# Claim & process
# -----------------------
def claim_next_job(now=None) -> Optional[OutboxJob]:
    """Atomically move the oldest due pending job to processing; None when nothing is due."""
    now = now or timezone.now()
    while True:
        candidates = list(
            OutboxJob.objects.filter(status=OutboxJob.STATUS_PENDING, next_attempt_at__lte=now)
            .order_by("created_at", "pk")
            .values_list("pk", flat=True)[:CLAIM_CANDIDATES]
        )
        if not candidates:
            return None
        for pk in candidates:
            won = OutboxJob.objects.filter(pk=pk, status=OutboxJob.STATUS_PENDING).update(
                status=OutboxJob.STATUS_PROCESSING,
                processing_started_at=timezone.now(),
                updated_at=timezone.now(),
            )
            if won == 1:
                return OutboxJob.objects.get(pk=pk)
        # every candidate was taken by someone else; look again


def _cancel(job: OutboxJob, reason: str) -> None:
    job.status = OutboxJob.STATUS_CANCELED
    job.cancel_reason = reason
    job.processing_started_at = None
    job.save(update_fields=["status", "cancel_reason", "processing_started_at", "updated_at"])
    logger.info("outbox: job %s canceled (%s)", job.pk, reason)


def _disqualify(job: OutboxJob, student, submission: Optional[Submission]) -> Optional[str]:
    if submission is None or student is None:
        return "missing-student-or-submission"
    if submission.status != Submission.STATUS_COMPLETED:
        return "submission-not-completed"
    current = compute_submission_signature(submission)
    if current != job.signature:
        return "superseded-by-new-grade"
    if submission.last_email_signature == current and submission.last_emailed_at:
        return "already-sent"
    if not (student.email or "").strip():
        return "missing-student-email"
    return None


def _deliver(job: OutboxJob, student, submission: Submission) -> None:
    to = student.email.strip()
    rendered = render_grade_report(student, submission)
    send_email(to, rendered.subject, rendered.html, rendered.text)

    now = timezone.now()
    job.status = OutboxJob.STATUS_SENT
    job.sent_at = now
    job.last_error = None
    job.processing_started_at = None
    job.to = to
    job.save(update_fields=["status", "sent_at", "last_error", "processing_started_at", "to", "updated_at"])

    Submission.objects.filter(pk=submission.pk).update(
        last_email_signature=job.signature, last_emailed_at=now, last_email_error="",
    )


def _schedule_retry(job: OutboxJob, error: Exception) -> None:
    attempts = job.attempts + 1
    message = str(error) or type(error).__name__
    job.status = OutboxJob.STATUS_PENDING
    job.attempts = attempts
    job.next_attempt_at = timezone.now() + compute_backoff(attempts)
    job.last_error = message
    job.processing_started_at = None
    job.save(update_fields=[
        "status", "attempts", "next_attempt_at", "last_error", "processing_started_at", "updated_at",
    ])
    if job.submission_id:
        Submission.objects.filter(pk=job.submission_id).update(last_email_error=message)
    logger.warning("outbox: job %s attempt %s failed, retry at %s: %s", job.pk, attempts, job.next_attempt_at, message)


def process_job(job: OutboxJob, summary: OutboxSummary) -> None:
    try:
        submission = Submission.objects.filter(pk=job.submission_id).first() if job.submission_id else None
        student = Student.objects.filter(pk=job.student_id).first() if job.student_id else None

        reason = _disqualify(job, student, submission)
        if reason:
            _cancel(job, reason)
            summary.canceled += 1
            return

        _deliver(job, student, submission)
        summary.sent += 1
    except Exception as e:
        logger.exception("outbox: job %s failed", job.pk)
        _schedule_retry(job, e)
        summary.retried += 1


def process_outbox_batch(limit: Optional[int] = DEFAULT_BATCH_LIMIT) -> OutboxSummary:
    try:
        limit = int(limit or DEFAULT_BATCH_LIMIT)
    except (TypeError, ValueError):
        limit = DEFAULT_BATCH_LIMIT
    limit = max(1, min(MAX_BATCH_LIMIT, limit))

    now = timezone.now()
    summary = OutboxSummary()
    for _ in range(limit):
        job = claim_next_job(now)
        if job is None:
            break
        summary.claimed += 1
        process_job(job, summary)

    if summary.claimed:
        logger.info("outbox: batch %s", summary.as_dict())
    return summary


def requeue_processing_jobs(queryset=None) -> int:
    """Put jobs left in ``processing`` by a dead worker back to ``pending``, due now."""
    queryset = OutboxJob.objects.all() if queryset is None else queryset
    count = queryset.filter(status=OutboxJob.STATUS_PROCESSING).update(
        status=OutboxJob.STATUS_PENDING,
        processing_started_at=None,
        next_attempt_at=timezone.now(),
        updated_at=timezone.now(),
    )
    if count:
        logger.warning("outbox: requeued %s job(s) stuck in processing", count)
    return count


def outbox_status_counts() -> Dict[str, int]:
    counts = {status: 0 for status, _ in OutboxJob.STATUS_CHOICES}
    for row in OutboxJob.objects.order_by().values("status").annotate(n=Count("id")):
        counts[row["status"]] = row["n"]
    return counts
