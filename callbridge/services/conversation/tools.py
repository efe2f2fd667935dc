"""Read-only tenant tools the voice agent can call mid-conversation."""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel

from callbridge.services.tenants.business_hours import DEFAULT_BUSINESS_HOURS, format_business_hours
from callbridge.services.tenants.models import TenantProfile
from callbridge.services.tenants.resolver import TenantPhoneResolver

logger = logging.getLogger(__name__)


class ToolCallRequest(BaseModel):
    tool_name: str
    parameters: Dict[str, Any] = {}
    tenant_id: Optional[str] = None


ToolHandler = Callable[[TenantProfile, Dict[str, Any]], Awaitable[Dict[str, Any]]]


class TenantToolService:
    """Dispatches agent tool calls to tenant lookups."""

    def __init__(self, tenant_resolver: TenantPhoneResolver):
        self.tenant_resolver = tenant_resolver
        self._tools: Dict[str, ToolHandler] = {
            "get_business_hours": self._get_business_hours,
            "get_hours": self._get_business_hours,
            "get_tenant_info": self._get_tenant_info,
        }

    async def handle(self, request: ToolCallRequest) -> Dict[str, Any]:
        """Run a tool. Errors come back as {"success": False, "error": ...}."""
        handler = self._tools.get(request.tool_name)
        if handler is None:
            logger.warning(f"[TOOL CALL] Unknown tool: {request.tool_name}")
            return {"success": False, "error": f"Unknown tool: {request.tool_name}"}

        tenant_id = request.tenant_id or request.parameters.get("tenant_id")
        if not tenant_id:
            return {"success": False, "error": "tenant_id is required"}

        try:
            tenant = await self.tenant_resolver.get_by_id(tenant_id)
            if tenant is None:
                return {"success": False, "error": f"Tenant not found: {tenant_id}"}
            logger.info(f"[TOOL CALL] {request.tool_name} for tenant {tenant_id}")
            return await handler(tenant, request.parameters)
        except Exception as e:
            logger.error(
                f"[TOOL CALL] Error running {request.tool_name} for tenant {tenant_id}: "
                f"{type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return {"success": False, "error": "Failed to run tool"}

    async def _get_business_hours(self, tenant: TenantProfile, parameters: Dict[str, Any]) -> Dict[str, Any]:
        hours = tenant.business_hours or DEFAULT_BUSINESS_HOURS
        return {
            "success": True,
            "business_hours": hours,
            "timezone": tenant.timezone,
            "formatted": format_business_hours(hours),
        }

    async def _get_tenant_info(self, tenant: TenantProfile, parameters: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "success": True,
            "tenant": {
                "id": tenant.tenant_id,
                "name": tenant.name,
                "phone_number": tenant.twilio_phone_number or tenant.legacy_phone_number,
                "timezone": tenant.timezone,
            },
        }
