from typing import Optional

from fastapi import Header, HTTPException, status


def get_tenant_id(
    x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-ID"),
) -> str:
    # La resolución de identidad/tenant vive fuera; aquí solo llega el identificador
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    return x_tenant_id


def get_actor(
    x_actor: Optional[str] = Header(default=None, alias="X-Actor"),
) -> str:
    return x_actor or "operator"
