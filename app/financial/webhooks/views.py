"""
Webhook endpoint for the instant-payment provider.

The view:
1. Checks the shared secret (X-Webhook-Secret)
2. Parses the body into a ProviderEvent
3. Creates/retrieves the ProviderWebhookEvent journal row
4. Reconciles the event synchronously
5. Answers 200 for applied events and no-ops, 500 for internal failures

Processing is synchronous so the response reflects the outcome: a 500
makes the provider redeliver, and reconciliation is idempotent, so a
redelivery after a partial failure is safe.

Usage:
    # In urls.py
    from financial.webhooks.views import payment_provider_webhook

    urlpatterns = [
        path("webhooks/payment-provider/", payment_provider_webhook, name="payment_provider_webhook"),
    ]
"""

from __future__ import annotations

import hmac
import logging

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from financial.models import ProviderWebhookEvent
from financial.state_machines import WebhookEventStatus
from financial.webhooks.handlers import dispatch_provider_event
from financial.webhooks.parsing import WebhookPayloadError, parse_provider_payload

logger = logging.getLogger(__name__)


def _secret_matches(request: HttpRequest) -> bool:
    expected = settings.PAYMENT_PROVIDER_WEBHOOK_SECRET
    if not expected:
        return True
    received = request.headers.get("X-Webhook-Secret", "")
    return hmac.compare_digest(received.encode(), expected.encode())


@csrf_exempt
@require_POST
def payment_provider_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive and reconcile a payment-provider event.

    Returns:
        JsonResponse with status:
        - 200: Event applied, or a no-op (unknown reference, already
          terminal obligation, non-actionable status, duplicate delivery)
        - 400: Body is not a JSON object
        - 401: Shared secret missing or wrong
        - 500: Internal failure; the provider should redeliver
    """
    if not _secret_matches(request):
        logger.warning("Provider webhook rejected: bad shared secret")
        return JsonResponse({"error": "Invalid webhook secret"}, status=401)

    try:
        event = parse_provider_payload(request.body)
    except WebhookPayloadError as e:
        logger.warning(f"Provider webhook rejected: {e.message}")
        return JsonResponse(e.to_dict(), status=400)

    logger.info(
        f"Received provider webhook: {event.event_type or '<untyped>'}",
        extra={
            "event_id": event.event_id,
            "provider_reference": event.reference,
            "provider_status": event.raw_status,
        },
    )

    webhook_event, created = ProviderWebhookEvent.objects.get_or_create(
        event_id=event.event_id,
        defaults={
            "event_type": ProviderWebhookEvent.fit("event_type", event.event_type),
            "provider_reference": ProviderWebhookEvent.fit("provider_reference", event.reference),
            "provider_status": ProviderWebhookEvent.fit("provider_status", event.raw_status),
            "payload": event.payload,
        },
    )

    if not created and webhook_event.status == WebhookEventStatus.PROCESSED:
        logger.info(
            "Provider webhook already processed, returning success",
            extra={"event_id": event.event_id},
        )
        return JsonResponse({"status": "already_processed"}, status=200)

    webhook_event.attempts += 1

    try:
        result = dispatch_provider_event(event)
    except Exception as e:
        webhook_event.status = WebhookEventStatus.FAILED
        webhook_event.error_message = f"{type(e).__name__}: {e}"
        webhook_event.save(update_fields=["status", "error_message", "attempts", "updated_at"])
        logger.error(
            f"Provider webhook processing failed: {type(e).__name__}",
            extra={"event_id": event.event_id, "provider_reference": event.reference},
            exc_info=True,
        )
        return JsonResponse({"error": "Internal error"}, status=500)

    reconciliation = result.data
    applied = reconciliation is not None and reconciliation.applied
    webhook_event.status = WebhookEventStatus.PROCESSED if applied else WebhookEventStatus.IGNORED
    webhook_event.outcome = reconciliation.outcome.value if reconciliation else "skipped"
    webhook_event.processed_at = timezone.now()
    webhook_event.error_message = ""
    webhook_event.save(
        update_fields=[
            "status",
            "outcome",
            "attempts",
            "processed_at",
            "error_message",
            "updated_at",
        ]
    )

    body = {"status": webhook_event.status, "outcome": webhook_event.outcome}
    if reconciliation is not None:
        body["result"] = reconciliation.to_dict()
    return JsonResponse(body, status=200)
