"""Tenant view models."""
from typing import Any, Dict, Optional

from pydantic import BaseModel

from callbridge.db.models import Tenant


class TenantProfile(BaseModel):
    """Read-only view of a tenant's phone binding and voice settings."""

    tenant_id: str
    name: str
    status: str = "active"
    twilio_phone_number: Optional[str] = None
    settings: Dict[str, Any] = {}
    metadata: Dict[str, Any] = {}

    @classmethod
    def from_row(cls, tenant: Tenant) -> "TenantProfile":
        return cls(
            tenant_id=tenant.id,
            name=tenant.name,
            status=tenant.status,
            twilio_phone_number=tenant.twilio_phone_number,
            settings=tenant.settings or {},
            metadata=tenant.extra_metadata or {},
        )

    @property
    def legacy_phone_number(self) -> Optional[str]:
        """Phone number stored before the dedicated column existed."""
        return self.metadata.get("twilio_phone_number") or self.settings.get("twilio_phone_number")

    @property
    def agent_id(self) -> Optional[str]:
        """Tenant-specific voice agent override, if any."""
        return self.settings.get("voice_agent_id") or self.metadata.get("voice_agent_id")

    @property
    def business_hours(self) -> Optional[Dict[str, Any]]:
        return self.settings.get("business_hours")

    @property
    def greeting(self) -> Optional[str]:
        return self.settings.get("ai_greeting")

    @property
    def tone(self) -> Optional[str]:
        return self.settings.get("ai_tone")

    @property
    def timezone(self) -> str:
        return self.settings.get("timezone") or "UTC"
