import uuid
from contextvars import ContextVar
from typing import Optional

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_request_id(request_id: str):
    return _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def ensure_request_id(prefix: str = "job") -> str:
    """Return the current request id, minting one for work that did not start from HTTP."""
    current = _request_id_ctx.get()
    if current:
        return current
    minted = f"{prefix}-{uuid.uuid4().hex[:12]}"
    _request_id_ctx.set(minted)
    return minted
