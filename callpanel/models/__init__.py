from .user import User
from .organization import Organization
from .auto_recharge_config import AutoRechargeConfig
from .campaign import Campaign, CampaignStatus, PausedReason
from .credit_ledger_entry import CreditLedgerEntry, LedgerEntryType, LedgerKind
from .server_notification import ServerNotification

__all__ = [
    "User",
    "Organization",
    "AutoRechargeConfig",
    "Campaign",
    "CampaignStatus",
    "PausedReason",
    "CreditLedgerEntry",
    "LedgerEntryType",
    "LedgerKind",
    "ServerNotification",
]
