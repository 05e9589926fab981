"""Tenant resolution for import endpoints."""

from fastapi import Header, HTTPException, status


def get_tenant_id(x_tenant_id: str | None = Header(None, alias="X-Tenant-ID")) -> str:
    """Tenant routing happens upstream; the resolved tenant arrives as a header."""
    if not x_tenant_id or not x_tenant_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    return x_tenant_id.strip()
