"""Tenant lookup by phone number."""
import logging
import re
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callbridge.db.models import Tenant
from callbridge.services.tenants.models import TenantProfile

logger = logging.getLogger(__name__)

_NON_DIAL_CHARS = re.compile(r"[^0-9+]")


def normalize_phone_number(phone_number: Optional[str]) -> str:
    """Strip everything except digits and '+'."""
    return _NON_DIAL_CHARS.sub("", phone_number or "")


class TenantPhoneResolver:
    """Resolves tenants from dialed numbers and tenant ids."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _get_active_tenants(self) -> List[TenantProfile]:
        async with self.session_factory() as session:
            result = await session.execute(select(Tenant).where(Tenant.status == "active"))
            return [TenantProfile.from_row(row) for row in result.scalars().all()]

    async def find_by_phone_number(self, phone_number: str) -> Optional[TenantProfile]:
        """
        Find the active tenant bound to a phone number.

        Stored numbers may carry arbitrary formatting, so both sides are
        normalized and every active tenant is scanned: the dedicated column
        first, then the legacy settings/metadata location.

        Returns:
            The matching tenant, or None when nothing matches or the lookup fails
        """
        normalized = normalize_phone_number(phone_number)
        if not normalized:
            return None

        try:
            tenants = await self._get_active_tenants()
        except Exception as e:
            logger.error(
                f"[TENANT LOOKUP] Error finding tenant by phone number {phone_number}: "
                f"{type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return None

        for tenant in tenants:
            if tenant.twilio_phone_number and normalize_phone_number(tenant.twilio_phone_number) == normalized:
                return tenant

        for tenant in tenants:
            legacy = tenant.legacy_phone_number
            if legacy and normalize_phone_number(legacy) == normalized:
                logger.debug(f"[TENANT LOOKUP] Matched legacy phone binding for tenant {tenant.tenant_id}")
                return tenant

        return None

    async def get_by_id(self, tenant_id: str) -> Optional[TenantProfile]:
        """Get a tenant by id. Lookup errors propagate to the caller."""
        async with self.session_factory() as session:
            tenant = await session.get(Tenant, tenant_id)
            return TenantProfile.from_row(tenant) if tenant else None
