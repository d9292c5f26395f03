"""Company API — the caller's own tenant.

Learn: /companies/{company_id} routes sit behind require_company_match, so a
caller can only ever read or edit the company in their own token. Editing
additionally needs the admin role; both guards share the cached
get_current_user result for the request.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException

from clara.auth.dependencies import Principal, get_user_store
from clara.auth.guards import require_company_match, require_role
from clara.schemas.company import CompanyRead, CompanyUpdate
from clara.services.user_service import UserStore

router = APIRouter(prefix="/companies")


@router.get("/{company_id}", response_model=CompanyRead)
async def get_company(
    company_id: uuid.UUID,
    principal: Principal = Depends(require_company_match("company_id")),
    users: UserStore = Depends(get_user_store),
):
    company = await users.get_company(company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


@router.patch(
    "/{company_id}",
    response_model=CompanyRead,
    dependencies=[Depends(require_role("admin"))],
)
async def update_company(
    company_id: uuid.UUID,
    body: CompanyUpdate,
    principal: Principal = Depends(require_company_match("company_id")),
    users: UserStore = Depends(get_user_store),
):
    company = await users.get_company(company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    for field, value in changes.items():
        if isinstance(value, str):
            value = value.strip() or None
        if field in ("name", "default_timezone") and value is None:
            raise HTTPException(status_code=422, detail=f"{field} cannot be empty")
        setattr(company, field, value)

    await users.db.commit()
    await users.db.refresh(company)
    return company
