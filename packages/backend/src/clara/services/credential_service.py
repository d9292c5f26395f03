"""Per-company ServiceTrade credentials (company_servicetrade table)."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clara.db.models import CompanyServiceTradeCredentials
from clara.services.servicetrade import Credentials


class CredentialStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_credentials(self, company_id: str) -> Optional[Credentials]:
        row = await self.db.get(CompanyServiceTradeCredentials, uuid.UUID(str(company_id)))
        if row is None:
            return None
        return Credentials(username=row.username, password=row.password)

    async def upsert_credentials(
        self, company_id: str, username: str, password: str
    ) -> None:
        """Insert or overwrite the single credential row for a company."""
        cid = uuid.UUID(str(company_id))
        row = await self.db.get(CompanyServiceTradeCredentials, cid)
        if row is None:
            row = CompanyServiceTradeCredentials(
                company_id=cid, username=username, password=password
            )
            self.db.add(row)
        else:
            row.username = username
            row.password = password
            row.updated_at = datetime.now(timezone.utc)
        await self.db.commit()

    async def has_credentials(self, company_id: str) -> bool:
        result = await self.db.execute(
            select(CompanyServiceTradeCredentials.company_id).where(
                CompanyServiceTradeCredentials.company_id == uuid.UUID(str(company_id))
            )
        )
        return result.first() is not None
