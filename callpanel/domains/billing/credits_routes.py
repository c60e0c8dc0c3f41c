"""Credit balance and recent ledger activity for the caller's organization."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...deps import get_current_user
from ...models.organization import Organization
from ...models.user import User
from ...platform.database import get_db
from ...schemas.auto_recharge import CreditLedgerEntryResponse, CreditsResponse
from ...services.credit_ledger_service import recent_ledger_entries

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.get("/credits", response_model=CreditsResponse)
def get_credits(
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not current_user.organization_id:
        raise HTTPException(status_code=403, detail="User is not a member of an organization")
    org = db.query(Organization).filter(Organization.id == current_user.organization_id).first()
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    entries = recent_ledger_entries(db, org.id, limit=limit)
    return CreditsResponse(
        organization_id=org.id,
        credit_balance=float(org.credit_balance or 0),
        entries=[CreditLedgerEntryResponse.model_validate(entry) for entry in entries],
    )
