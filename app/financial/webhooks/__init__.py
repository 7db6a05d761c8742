"""
Webhook handling for payment-provider confirmation events.

Events are verified with a shared secret, journaled in
ProviderWebhookEvent and reconciled synchronously.

Usage:
    # In urls.py
    from financial.webhooks.views import payment_provider_webhook

    urlpatterns = [
        path("webhooks/payment-provider/", payment_provider_webhook, name="payment_provider_webhook"),
    ]
"""
