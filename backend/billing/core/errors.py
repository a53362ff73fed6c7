"""Error taxonomy for checkout and webhook reconciliation.

Services raise these; the HTTP layer maps ``status_code`` and ``code`` onto
``HTTPException`` responses.
"""

from __future__ import annotations


class BillingError(Exception):
    status_code = 500
    code = "billing_error"

    def __init__(self, message: str = "", **context) -> None:
        self.message = message or self.__class__.__name__
        self.context = context
        super().__init__(self.message)


class AuthenticationFailure(BillingError):
    status_code = 401
    code = "authentication_failure"


class MalformedPayload(BillingError):
    status_code = 400
    code = "malformed_payload"


class UnrecognizedEvent(BillingError):
    status_code = 200
    code = "unrecognized_event"


class OrphanTransaction(BillingError):
    status_code = 400
    code = "orphan_transaction"


class MissingMetadata(BillingError):
    status_code = 400
    code = "missing_metadata"


class MetadataMismatch(BillingError):
    status_code = 400
    code = "metadata_mismatch"


class UserNotFound(BillingError):
    status_code = 404
    code = "user_not_found"


class TransactionNotFound(BillingError):
    status_code = 404
    code = "transaction_not_found"


class InvalidQuantity(BillingError):
    status_code = 400
    code = "invalid_quantity"


class InvalidAmount(BillingError):
    status_code = 400
    code = "invalid_amount"


class DuplicateExternalId(BillingError):
    status_code = 409
    code = "duplicate_external_id"


class InsufficientCredits(BillingError):
    status_code = 402
    code = "insufficient_credits"


class ProviderUnavailable(BillingError):
    status_code = 502
    code = "provider_unavailable"


class PaymentsNotConfigured(BillingError):
    status_code = 503
    code = "payments_not_configured"


class TransactionNotPending(BillingError):
    status_code = 409
    code = "transaction_not_pending"
