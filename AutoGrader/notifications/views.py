# notifications/views.py
import json
import logging

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.core.validators import validate_email
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .emails import send_email
from .outbox import outbox_status_counts, process_outbox_batch

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def process_outbox(request):
    try:
        body = json.loads(request.body or b"{}")
    except ValueError:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)
    if not isinstance(body, dict):
        return JsonResponse({"error": "Invalid JSON body"}, status=400)

    try:
        summary = process_outbox_batch(body.get("limit") or settings.OUTBOX_BATCH_LIMIT)
    except Exception as e:
        logger.exception("process_outbox: batch failed")
        return JsonResponse({"error": str(e) or "Outbox processing failed"}, status=500)
    return JsonResponse({"ok": True, **summary.as_dict()})


@require_GET
def outbox_status(request):
    return JsonResponse({"counts": outbox_status_counts()})


@csrf_exempt
@require_POST
def send_test_email(request):
    """Send one plain message straight through the transport, bypassing the outbox."""
    try:
        body = json.loads(request.body or b"{}")
    except ValueError:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)
    to = body.get("to") if isinstance(body, dict) else None
    if not isinstance(to, str) or not to.strip():
        return JsonResponse({"error": "to is required"}, status=400)
    to = to.strip()
    try:
        validate_email(to)
    except ValidationError:
        return JsonResponse({"error": f"Invalid email address: {to}"}, status=400)

    subject = "AutoGrader test email"
    text = "This is a test message from AutoGrader. SMTP is configured correctly."
    html = f"<p>{text}</p>"
    try:
        message_id = send_email(to, subject, html, text)
    except ImproperlyConfigured as e:
        return JsonResponse({"error": str(e)}, status=500)
    except Exception as e:
        logger.exception("send_test_email: sending to %s failed", to)
        return JsonResponse({"error": str(e) or "Sending failed"}, status=502)

    if message_id is None:
        return JsonResponse({"ok": False, "skipped": "email-disabled"})
    return JsonResponse({"ok": True, "messageId": message_id})
