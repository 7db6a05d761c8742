"""
URL configuration for the ERP financial backend.

This is the root URL configuration that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/financial/             - Financial endpoints
        webhooks/payment-provider/ - Payment provider webhook (POST, shared secret)
        customers/{id}/credit/     - Stored vs derived available credit
        obligations/{id}/mark-paid/ - Manual payment override
        obligations/{id}/cancel/   - Cancel an active obligation
        receivables/batch-receive/ - Settle several receivables at once
        bank-accounts/{id}/transactions/ - List transactions / manual posting
        bank-accounts/transfer/    - Transfer between accounts
        audit/credit/              - Customer credit audit ({autoFix})
        audit/balances/            - Bank balance audit ({autoFix})

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Financial core
    path("financial/", include("financial.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "ERP Financial Admin"
admin.site.site_title = "ERP Financial"
admin.site.index_title = "Ledger, credit and reconciliation"
