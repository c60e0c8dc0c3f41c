"""Centralized brand configuration for user-facing copy."""

BRAND_NAME = "CallPanel"
BRAND_DOMAIN = "callpanel.io"
BRAND_PRODUCT_NAME = "Voice Campaign Control Panel"
BRAND_APP_DESCRIPTION = "Multi-tenant voice campaign control panel: billing and credit reconciliation API"


def format_usd(amount) -> str:
    """Render a money amount the way tenant-facing notifications show it ($12.50)."""
    return f"${float(amount):.2f}"
