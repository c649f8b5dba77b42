# grades/views.py
import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from assignments import github
from assignments.catalog import AssignmentNotFound, require_assignment
from students.models import Student

from .services import course_repo_name, grade_batch, grade_student

logger = logging.getLogger(__name__)


def _json_body(request):
    try:
        body = json.loads(request.body or b"{}")
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@csrf_exempt
@require_POST
def grade(request):
    body = _json_body(request)
    if body is None:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)

    student_id, week, session = body.get("studentId"), _int(body.get("week")), _int(body.get("session"))
    if not student_id or not week or not session:
        return JsonResponse({"error": "studentId, week, and session are required"}, status=400)

    student = Student.objects.filter(pk=_int(student_id)).first()
    if student is None:
        return JsonResponse({"error": "Student not found"}, status=404)

    try:
        require_assignment(week, session)
    except AssignmentNotFound as e:
        return JsonResponse({"error": str(e)}, status=404)

    outcome = grade_student(student, week, session)
    if outcome.status == "error":
        return JsonResponse({"error": f"Grading failed: {outcome.error_message}"}, status=500)
    if outcome.repository_missing:
        return JsonResponse({"error": outcome.error_message, "submission": outcome.as_dict()}, status=404)
    return JsonResponse({"message": "Grading complete", "submission": outcome.as_dict()})


@csrf_exempt
@require_POST
def grade_batch_view(request):
    body = _json_body(request)
    if body is None:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)

    week, session = _int(body.get("week")), _int(body.get("session"))
    if not week or not session:
        return JsonResponse({"error": "week and session are required"}, status=400)

    try:
        require_assignment(week, session)
    except AssignmentNotFound as e:
        return JsonResponse({"error": str(e)}, status=404)

    students = list(Student.objects.filter(is_active=True))
    if not students:
        return JsonResponse({"error": "No active students found"}, status=404)

    report = grade_batch(week, session, students=students)
    return JsonResponse({"message": "Batch grading complete", "summary": report.summary, "results": report.results})


@csrf_exempt
@require_POST
def preview(request):
    """Which assignment files a student's repository has, without grading anything."""
    body = _json_body(request)
    if body is None:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)

    week, session = _int(body.get("week")), _int(body.get("session"))
    owner = body.get("githubUsername")
    owner = owner.strip() if isinstance(owner, str) else ""
    if not owner and body.get("studentId"):
        student = Student.objects.filter(pk=_int(body.get("studentId"))).first()
        if student is None:
            return JsonResponse({"error": "Student not found"}, status=404)
        owner = student.github_username
    if not owner or not week or not session:
        return JsonResponse({"error": "studentId or githubUsername, week, and session are required"}, status=400)

    try:
        assignment = require_assignment(week, session)
    except AssignmentNotFound as e:
        return JsonResponse({"error": str(e)}, status=404)

    repo = course_repo_name()
    preview_body = {"repository": f"{owner}/{repo}", "repoExists": github.repo_exists(owner, repo), "files": []}
    if preview_body["repoExists"]:
        try:
            for f in assignment.files:
                path = assignment.file_path(f)
                preview_body["files"].append({"path": path, "exists": github.path_exists(owner, repo, path)})
        except github.FetchError as e:
            logger.warning("preview: %s/%s week %s session %s: %s", owner, repo, week, session, e)
            return JsonResponse({"error": str(e), **preview_body}, status=502)
    preview_body["ready"] = bool(preview_body["files"]) and all(f["exists"] for f in preview_body["files"])
    return JsonResponse(preview_body)
