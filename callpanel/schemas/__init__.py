from .auto_recharge import (
    AutoRechargeConfigResponse,
    AutoRechargeConfigUpsert,
    AutoRechargeRunResponse,
    CreditLedgerEntryResponse,
    CreditsResponse,
)

__all__ = [
    "AutoRechargeConfigResponse",
    "AutoRechargeConfigUpsert",
    "AutoRechargeRunResponse",
    "CreditLedgerEntryResponse",
    "CreditsResponse",
]
