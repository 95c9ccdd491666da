"""
Discharge Portal - Tenant Directory

Tenant existence, branding and feature configuration, read-only from the
auth core's point of view.
"""

from discharge_backend.tenants.directory import TenantDirectory
from discharge_backend.tenants.models import TenantConfig, TenantRecord

__all__ = [
    "TenantDirectory",
    "TenantConfig",
    "TenantRecord",
]
