"""Wallet gating. The balance belongs to the wallet service; the engine only asks whether a technician is blocked."""

import uuid
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Technician


class WalletLedger(Protocol):
    async def is_blocked(self, technician_id: uuid.UUID) -> bool: ...


class TechnicianBalanceLedger:
    """Reads the balance mirrored onto the technicians table. Zero or less is blocked."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def is_blocked(self, technician_id: uuid.UUID) -> bool:
        result = await self._session.execute(
            select(Technician.wallet_balance).where(Technician.user_id == technician_id)
        )
        balance = result.scalar_one_or_none()
        return (balance or 0) <= 0
