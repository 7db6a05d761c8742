"""
Financial ledger and credit reconciliation.

Submodules:
    money: Integer-cents Money value type
    models: Boleto, Receivable, ProviderWebhookEvent, AuditRun, DriftCorrection
    ledger: BankAccount, Transaction and BankLedgerService
    services: Aggregation, credit, obligations, reconciliation, audit
    webhooks: Payment-provider webhook endpoint
"""
