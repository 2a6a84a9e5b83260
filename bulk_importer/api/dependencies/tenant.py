"""Tenant scoping for API requests.

Tenant resolution (subdomains, sessions) happens upstream; by the time a
request reaches this service the tenant id travels in ``X-Tenant-ID``.
"""

from fastapi import Header, HTTPException, status


def get_tenant_id(x_tenant_id: str | None = Header(None)) -> str:
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    return tenant_id
