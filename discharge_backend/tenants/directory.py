"""
Discharge Portal - Tenant Directory

Resolves tenant configuration by id:
1. tenants table (primary store)
2. YAML fallback file (TENANT_CONFIG_PATH), loaded once at startup
3. Otherwise not found

get_tenant_config_with_defaults() never fails: login responses always
carry some branding even when the lookup misses or the store errors.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from discharge_backend.tenants.models import (
    Branding,
    Features,
    TenantConfig,
    TenantRecord,
    TenantSettings,
)


logger = structlog.get_logger(__name__)


def _by_field_name(model, doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Rewrite camelCase alias keys to field names so both spellings merge alike."""
    names = {field.alias: name for name, field in model.model_fields.items() if field.alias}
    return {names.get(key, key): value for key, value in (doc or {}).items()}


class TenantDirectory:
    """
    Tenant configuration lookups.

    Usage:
        tenants = TenantDirectory(engine, fallback_path="config/tenants.yaml")
        config = tenants.get_tenant_config("demo")
    """

    def __init__(
        self,
        engine: Engine,
        fallback_path: Optional[str] = None,
        asset_base_url: str = "https://storage.googleapis.com/discharge-portal-assets",
    ):
        self._engine = engine
        self._asset_base_url = asset_base_url.rstrip("/")
        self._fallback = self._load_fallback(fallback_path)

    def _load_fallback(self, path: Optional[str]) -> Dict[str, Dict[str, Any]]:
        """Load tenant documents from YAML. Missing file means no fallback."""
        if not path or not Path(path).exists():
            return {}

        with open(path, "r") as f:
            config = yaml.safe_load(f) or {}

        tenants = config.get("tenants", {}) or {}
        logger.info("tenant_fallback_loaded", path=path, tenants=len(tenants))
        return {str(tenant_id): doc or {} for tenant_id, doc in tenants.items()}

    def _build_config(self, tenant_id: str, doc: Dict[str, Any]) -> TenantConfig:
        return TenantConfig(
            id=doc.get("id") or tenant_id,
            name=doc.get("name") or f"{tenant_id} Hospital",
            status=doc.get("status") or "active",
            type=doc.get("type") or "custom",
            branding=Branding(**{
                **self.default_branding(tenant_id).model_dump(),
                **_by_field_name(Branding, doc.get("branding")),
            }),
            features=Features(**(doc.get("features") or {})),
            config=TenantSettings(**(doc.get("config") or {})),
        )

    def default_branding(self, tenant_id: str) -> Branding:
        return Branding(
            logo=f"{self._asset_base_url}/logos/{tenant_id}.png",
            favicon=f"{self._asset_base_url}/favicons/{tenant_id}.ico",
        )

    def get_tenant_config(self, tenant_id: str) -> Optional[TenantConfig]:
        """
        Tenant configuration, or None when the tenant is unknown.

        Raises:
            SQLAlchemyError: Primary store unavailable
        """
        if not tenant_id:
            return None

        with Session(self._engine) as db:
            record = db.get(TenantRecord, tenant_id)

        if record is not None:
            doc = record.model_dump()
        elif tenant_id in self._fallback:
            doc = self._fallback[tenant_id]
        else:
            return None

        try:
            return self._build_config(tenant_id, doc)
        except ValidationError as e:
            logger.error("tenant_config_invalid", tenant_id=tenant_id, errors=e.error_count())
            return None

    def tenant_exists(self, tenant_id: str) -> bool:
        """Known and active. Suspended or inactive tenants do not count."""
        config = self.get_tenant_config(tenant_id)
        return config is not None and config.is_active

    def get_tenant_config_with_defaults(self, tenant_id: str) -> TenantConfig:
        """Tenant configuration with synthesized defaults on any miss or error."""
        try:
            config = self.get_tenant_config(tenant_id)
        except SQLAlchemyError as e:
            logger.error("tenant_lookup_failed", tenant_id=tenant_id, error=str(e))
            config = None

        if config is not None:
            return config

        logger.warning("tenant_config_defaulted", tenant_id=tenant_id)
        return TenantConfig(
            id=tenant_id,
            name=f"{tenant_id} Hospital",
            branding=self.default_branding(tenant_id),
        )

    def list_tenants(self) -> List[TenantConfig]:
        """All tenants from the store and the fallback file, store first."""
        with Session(self._engine) as db:
            records = db.exec(select(TenantRecord)).all()

        docs = {record.id: record.model_dump() for record in records}
        for tenant_id, doc in self._fallback.items():
            docs.setdefault(tenant_id, doc)

        tenants = []
        for tenant_id in sorted(docs):
            try:
                tenants.append(self._build_config(tenant_id, docs[tenant_id]))
            except ValidationError:
                logger.error("tenant_config_invalid", tenant_id=tenant_id)
        return tenants
