from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from busybot.models import TenantSettings


def get_tenant_settings(db: Session, tenant_id: UUID) -> Optional[TenantSettings]:
    return db.query(TenantSettings).filter(TenantSettings.tenant_id == tenant_id).first()


def resolve_tenant_ids(db: Session, instance: Optional[str], broadcast: bool = False) -> list[UUID]:
    """Tenants bound to a gateway instance.

    With ``broadcast`` and no bound tenant, every tenant that has settings is returned.
    """
    bound = []
    if instance:
        bound = [
            row.tenant_id
            for row in db.query(TenantSettings.tenant_id).filter(TenantSettings.gateway_instance == instance).all()
        ]
    if bound or not broadcast:
        return bound
    return [row.tenant_id for row in db.query(TenantSettings.tenant_id).all()]
