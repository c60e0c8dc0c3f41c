"""Failure classes for the auto-recharge pass.

Every per-organization error renders as ``Org <id>: <detail>`` so it can be
appended to the pass report unchanged.
"""

from typing import Optional


class AutoRechargeError(RuntimeError):
    def __init__(self, detail: str, organization_id: Optional[int] = None):
        self.detail = detail
        self.organization_id = organization_id
        message = f"Org {organization_id}: {detail}" if organization_id is not None else detail
        super().__init__(message)


class ConfigFetchError(AutoRechargeError):
    """Configurations could not be loaded or reset; the pass cannot proceed."""


class OrgNotFound(AutoRechargeError):
    def __init__(self, organization_id: int):
        super().__init__("Organization not found", organization_id)


class MissingPaymentProfile(AutoRechargeError):
    def __init__(self, organization_id: int):
        super().__init__("No Stripe customer ID", organization_id)


class PaymentDeclined(AutoRechargeError):
    pass


class PaymentRequiresAuth(AutoRechargeError):
    def __init__(self, organization_id: int):
        super().__init__("Card requires authentication - disabling auto-recharge", organization_id)


class PaymentError(AutoRechargeError):
    pass


class LedgerPostFailure(AutoRechargeError):
    """Money was captured but the credit was not recorded."""

    def __init__(self, organization_id: int, transaction_id: Optional[str], reason: str, recorded: bool = False):
        self.transaction_id = transaction_id
        self.recorded = recorded
        follow_up = "credit is retried on the next pass" if recorded else "manual reconciliation required"
        super().__init__(
            f"Charge {transaction_id} captured but ledger credit failed ({reason}); {follow_up}",
            organization_id,
        )


class NotificationFailure(AutoRechargeError):
    """Describes a notification that could not be written. Logged, never raised."""
