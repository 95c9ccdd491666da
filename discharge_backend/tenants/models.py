"""
Discharge Portal - Tenant Models

TenantRecord is the database row; TenantConfig is the public shape handed
to the login response and the tenant config endpoint.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field as PydanticField
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


DEFAULT_PRIMARY_COLOR = "#3b82f6"
DEFAULT_SECONDARY_COLOR = "#60a5fa"
DEFAULT_ACCENT_COLOR = "#1e40af"


class TenantRecord(SQLModel, table=True):
    """
    Tenant configuration row.

    branding, features and config are free-form JSON documents; missing
    keys are filled with defaults when read through TenantDirectory.
    """
    __tablename__ = "tenants"

    id: str = Field(primary_key=True)
    name: str
    status: str = "active"
    type: str = "custom"
    branding: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    features: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    config: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))


class _CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Branding(_CamelModel):
    logo: str
    favicon: Optional[str] = None
    primary_color: str = DEFAULT_PRIMARY_COLOR
    secondary_color: str = DEFAULT_SECONDARY_COLOR
    accent_color: str = DEFAULT_ACCENT_COLOR


class Features(_CamelModel):
    """Which portals and capabilities a tenant has switched on."""
    ai_generation: bool = True
    multi_language: bool = True
    supported_languages: List[str] = PydanticField(default_factory=lambda: ["en"])
    file_upload: bool = True
    expert_portal: bool = True
    clinician_portal: bool = True
    admin_portal: bool = True


class TenantSettings(_CamelModel):
    simplification_enabled: bool = True
    translation_enabled: bool = True
    default_language: str = "en"


class TenantConfig(_CamelModel):
    id: str
    name: str
    status: str = "active"
    type: str = "custom"
    branding: Branding
    features: Features = PydanticField(default_factory=Features)
    config: TenantSettings = PydanticField(default_factory=TenantSettings)

    @property
    def is_active(self) -> bool:
        return self.status == "active"
