"""Load tenants from a YAML file."""
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

import yaml
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callbridge.core.logging import setup_logging
from callbridge.db.models import Tenant

logger = logging.getLogger(__name__)


def load_tenant_file(path: str) -> List[Dict[str, Any]]:
    """Read tenant definitions from YAML."""
    with open(Path(path), "r") as f:
        data = yaml.safe_load(f) or {}
    return data.get("tenants", [])


async def seed_tenants(
    session_factory: async_sessionmaker[AsyncSession],
    tenants: List[Dict[str, Any]],
) -> int:
    """
    Insert or update tenants.

    Each entry needs at least ``id``, ``name`` and ``slug``; ``metadata`` is
    stored in the tenant's metadata column.

    Returns:
        Number of tenants written
    """
    async with session_factory() as session:
        for data in tenants:
            tenant = await session.get(Tenant, data["id"])
            if tenant is None:
                tenant = Tenant(id=data["id"])
                session.add(tenant)
            tenant.name = data["name"]
            tenant.slug = data["slug"]
            tenant.status = data.get("status", "active")
            tenant.twilio_phone_number = data.get("twilio_phone_number")
            tenant.settings = data.get("settings", {})
            tenant.extra_metadata = data.get("metadata")
        await session.commit()
    logger.info(f"[SEED] Wrote {len(tenants)} tenant(s)")
    return len(tenants)


async def _main(path: str) -> None:
    from callbridge.db.database import AsyncSessionLocal, dispose_db, init_db

    await init_db()
    await seed_tenants(AsyncSessionLocal, load_tenant_file(path))
    await dispose_db()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python -m callbridge.db.seed <tenants.yaml>")
        sys.exit(2)
    setup_logging()
    asyncio.run(_main(sys.argv[1]))
