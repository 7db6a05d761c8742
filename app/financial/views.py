"""
DRF views for the financial app.

This module provides API views for:
- Customer credit inspection
- Manual obligation override (mark paid, batch receipt, cancel)
- Bank transaction history, manual postings and transfers
- Credit and balance audits

Endpoints:
    GET  /api/v1/financial/customers/{id}/credit/
    POST /api/v1/financial/obligations/{id}/mark-paid/
    POST /api/v1/financial/obligations/{id}/cancel/
    POST /api/v1/financial/receivables/batch-receive/
    GET  /api/v1/financial/bank-accounts/{id}/transactions/
    POST /api/v1/financial/bank-accounts/{id}/transactions/
    POST /api/v1/financial/bank-accounts/transfer/
    POST /api/v1/financial/audit/credit/
    POST /api/v1/financial/audit/balances/

Security:
    - Credit inspection requires authentication
    - Everything that moves money or corrects cached values requires staff
    - The provider webhook lives in financial.webhooks.views

Domain errors are mapped to HTTP responses by
core.views.application_error_response.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.views import application_error_response
from financial.ledger.services import BankLedgerService
from financial.serializers import (
    AuditRequestSerializer,
    BatchReceiveSerializer,
    MarkPaidSerializer,
    ObligationSerializer,
    PostingSerializer,
    TransactionQuerySerializer,
    TransactionSerializer,
    TransferSerializer,
    to_money,
)
from financial.services import CreditService, DriftAuditService, ObligationService

logger = logging.getLogger(__name__)


class CustomerCreditView(APIView):
    """
    Credit check for a customer.

    GET /api/v1/financial/customers/{customer_id}/credit/

    Returns the stored (cached) available credit, the value derived from
    current obligations and the outstanding debt breakdown.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_customer_credit",
        summary="Customer available credit",
        responses={200: OpenApiResponse(description="Credit snapshot"), 404: None},
        tags=["Financial - Credit"],
    )
    def get(self, request, customer_id):
        try:
            snapshot = CreditService.explain(customer_id)
        except BaseApplicationError as e:
            return application_error_response(e)
        data = snapshot.to_dict()
        data["drifted"] = snapshot.drifted
        return Response(data)


class ObligationMarkPaidView(APIView):
    """
    Manual payment override.

    POST /api/v1/financial/obligations/{obligation_id}/mark-paid/

    Request body:
        {
            "payment_method": "pix",
            "payment_date": "2024-05-10",
            "paid_amount": "250.00",           (optional, partial payment)
            "bank_account_id": "<uuid>",      (optional, posts an INCOME)
            "fee": "2.50"                      (optional)
        }

    Response:
        200 OK: Obligation paid (with remainder/transaction when created)
        404 Not Found: Unknown obligation or bank account
        409 Conflict: Obligation already terminal or covered by a boleto
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="mark_obligation_paid",
        summary="Mark obligation as paid",
        request=MarkPaidSerializer,
        tags=["Financial - Obligations"],
    )
    def post(self, request, obligation_id):
        serializer = MarkPaidSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        try:
            result = ObligationService.mark_paid(
                obligation_id,
                data["payment_method"],
                data["payment_date"],
                paid_amount=to_money(data.get("paid_amount")),
                bank_account_id=data.get("bank_account_id"),
                fee=to_money(data.get("fee")),
                paid_by=request.user,
            )
        except BaseApplicationError as e:
            return application_error_response(e)

        return Response(
            {
                "obligation": ObligationSerializer(result.obligation).data,
                "settled_receivables": ObligationSerializer(
                    result.settled_receivables, many=True
                ).data,
                "remainder": (
                    ObligationSerializer(result.remainder).data if result.remainder else None
                ),
                "transaction": (
                    TransactionSerializer(result.transaction).data if result.transaction else None
                ),
                "available_credit": str(result.available_credit.amount),
            }
        )


class ReceivableBatchReceiveView(APIView):
    """
    Batch receipt of receivables.

    POST /api/v1/financial/receivables/batch-receive/

    Request body:
        {
            "receivable_ids": ["<uuid>", ...],
            "bank_account_id": "<uuid>",
            "payment_method": "cash",          (optional)
            "payment_date": "2024-05-10"       (optional)
        }

    Response:
        200 OK: All receivables paid, one INCOME posted per receivable
        404 Not Found: Unknown receivable or bank account
        409 Conflict: A receivable is terminal or covered by a boleto
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="receive_receivables_batch",
        summary="Receive several receivables at once",
        request=BatchReceiveSerializer,
        tags=["Financial - Obligations"],
    )
    def post(self, request):
        serializer = BatchReceiveSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        try:
            result = ObligationService.receive_batch(
                data["receivable_ids"],
                data["bank_account_id"],
                data["payment_method"],
                data["payment_date"],
                paid_by=request.user,
            )
        except BaseApplicationError as e:
            return application_error_response(e)

        return Response(
            {
                "receivables": ObligationSerializer(result.receivables, many=True).data,
                "transactions": TransactionSerializer(result.transactions, many=True).data,
                "total": str(result.total.amount),
                "available_credit": {
                    str(customer_id): str(credit.amount)
                    for customer_id, credit in result.available_credit.items()
                },
            }
        )


class ObligationCancelView(APIView):
    """
    Cancel an active obligation.

    POST /api/v1/financial/obligations/{obligation_id}/cancel/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="cancel_obligation",
        summary="Cancel obligation",
        request=None,
        tags=["Financial - Obligations"],
    )
    def post(self, request, obligation_id):
        try:
            obligation = ObligationService.cancel(obligation_id, cancelled_by=request.user)
        except BaseApplicationError as e:
            return application_error_response(e)
        return Response(ObligationSerializer(obligation).data)


class BankAccountTransactionsView(APIView):
    """
    Transaction history and manual postings for one account.

    GET  /api/v1/financial/bank-accounts/{account_id}/transactions/
        ?start_date=YYYY-MM-DD&end_date=YYYY-MM-DD
    POST /api/v1/financial/bank-accounts/{account_id}/transactions/
        {"transaction_type": "expense", "amount": "40.00", "description": "..."}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="list_bank_transactions",
        summary="List bank account transactions",
        parameters=[TransactionQuerySerializer],
        responses={200: TransactionSerializer(many=True)},
        tags=["Financial - Bank Ledger"],
    )
    def get(self, request, account_id):
        query = TransactionQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            transactions = BankLedgerService.get_transactions(
                account_id,
                start_date=query.validated_data.get("start_date"),
                end_date=query.validated_data.get("end_date"),
            )
        except BaseApplicationError as e:
            return application_error_response(e)
        return Response(TransactionSerializer(transactions, many=True).data)

    @extend_schema(
        operation_id="post_bank_transaction",
        summary="Post a manual income or expense",
        request=PostingSerializer,
        responses={201: TransactionSerializer},
        tags=["Financial - Bank Ledger"],
    )
    def post(self, request, account_id):
        serializer = PostingSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        try:
            posted = BankLedgerService.post(
                account_id,
                data["transaction_type"],
                to_money(data["amount"]),
                description=data["description"],
                category=data["category"],
                date=data.get("date"),
                created_by=request.user,
            )
        except BaseApplicationError as e:
            return application_error_response(e)
        return Response(TransactionSerializer(posted).data, status=status.HTTP_201_CREATED)


class BankTransferView(APIView):
    """
    Transfer between two bank accounts.

    POST /api/v1/financial/bank-accounts/transfer/

    Response:
        200 OK: {"from_balance": "...", "to_balance": "...", "debit": {...}, "credit": {...}}
        400 Bad Request: Insufficient funds or invalid amount
        409 Conflict: Same account or inactive account
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="transfer_between_accounts",
        summary="Transfer between accounts",
        request=TransferSerializer,
        tags=["Financial - Bank Ledger"],
    )
    def post(self, request):
        serializer = TransferSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        try:
            result = BankLedgerService.transfer(
                data["from_account_id"],
                data["to_account_id"],
                to_money(data["amount"]),
                data["description"],
                date=data.get("date"),
                created_by=request.user,
            )
        except BaseApplicationError as e:
            return application_error_response(e)

        return Response(
            {
                "from_balance": str(result.from_balance.amount),
                "to_balance": str(result.to_balance.amount),
                "debit": TransactionSerializer(result.debit).data,
                "credit": TransactionSerializer(result.credit).data,
            }
        )


class CreditAuditView(APIView):
    """
    Customer credit audit.

    POST /api/v1/financial/audit/credit/
        {"autoFix": false}  dry run, writes nothing
        {"autoFix": true}   dry run, then apply corrections
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="audit_customer_credit",
        summary="Audit customer available credit",
        request=AuditRequestSerializer,
        tags=["Financial - Audit"],
    )
    def post(self, request):
        serializer = AuditRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            report = DriftAuditService.audit_customer_credit()
            if serializer.validated_data["autoFix"] and report.has_drift:
                report = DriftAuditService.apply_credit_fixes(
                    report, confirm=True, performed_by=request.user
                )
        except BaseApplicationError as e:
            return application_error_response(e)
        return Response(report.to_dict())


class BalanceAuditView(APIView):
    """
    Bank account balance audit.

    POST /api/v1/financial/audit/balances/
        {"autoFix": false}  dry run, writes nothing
        {"autoFix": true}   dry run, then recompute drifted accounts
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="audit_account_balances",
        summary="Audit bank account balances",
        request=AuditRequestSerializer,
        tags=["Financial - Audit"],
    )
    def post(self, request):
        serializer = AuditRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            report = DriftAuditService.audit_account_balances()
            if serializer.validated_data["autoFix"] and report.has_drift:
                report = DriftAuditService.apply_balance_fixes(
                    report, confirm=True, performed_by=request.user
                )
        except BaseApplicationError as e:
            return application_error_response(e)
        return Response(report.to_dict())
