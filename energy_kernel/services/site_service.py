"""
Service layer for production-site registry writes.

Only the fields the allocation engine depends on are managed here:
technology and the integer banking flag.  Returns ProductionSiteInfo DTOs
instead of ORM entities.
"""

from __future__ import annotations

from sqlalchemy import select

from energy_kernel.domain.dtos import ProductionSiteInfo, SourceType
from energy_kernel.exceptions import ProductionSiteNotFoundError
from energy_kernel.logging_config import get_logger
from energy_kernel.models.production_site import ProductionSite
from energy_kernel.services.base import BaseService

logger = get_logger("services.site")

_ENTITY = "production_site"


def _entity_key(company_id: str, production_site_id: str) -> str:
    return f"{company_id}/{production_site_id}"


class SiteRegistry(BaseService):
    """
    Minimal production-site writes.

    Contract:
        ``register_site`` is an upsert on (company, production site).
        ``set_banking_flag`` raises ProductionSiteNotFoundError for an
        unknown site.
    """

    def _get(self, company_id: str, production_site_id: str) -> ProductionSite | None:
        return self.session.execute(
            select(ProductionSite)
            .where(ProductionSite.company_id == company_id)
            .where(ProductionSite.production_site_id == production_site_id)
        ).scalar_one_or_none()

    def register_site(
        self,
        company_id: str,
        production_site_id: str,
        site_type: SourceType | str,
        banking: int = 0,
        name: str | None = None,
    ) -> ProductionSiteInfo:
        site_type = SourceType.parse(site_type)
        banking = 1 if int(banking) == 1 else 0
        now = self._now()

        site = self._get(company_id, production_site_id)
        if site is None:
            site = ProductionSite(
                company_id=company_id,
                production_site_id=production_site_id,
                created_at=now,
            )
            self.session.add(site)
        site.name = name or site.name or f"Production-{production_site_id}"
        site.site_type = site_type.value
        site.banking = banking
        site.updated_at = now
        self._flush_versioned(
            _ENTITY, _entity_key(company_id, production_site_id), site.version or 0
        )

        logger.info(
            "production_site_registered",
            extra={
                "company_id": company_id,
                "production_site_id": production_site_id,
                "site_type": site_type.value,
                "banking": banking,
            },
        )
        return ProductionSiteInfo.from_model(site)

    def set_banking_flag(
        self, company_id: str, production_site_id: str, banking: int
    ) -> ProductionSiteInfo:
        site = self._get(company_id, production_site_id)
        if site is None:
            raise ProductionSiteNotFoundError(company_id, production_site_id)
        site.banking = 1 if int(banking) == 1 else 0
        site.updated_at = self._now()
        self._flush_versioned(_ENTITY, _entity_key(company_id, production_site_id), site.version)
        logger.info(
            "production_site_banking_changed",
            extra={
                "company_id": company_id,
                "production_site_id": production_site_id,
                "banking": site.banking,
            },
        )
        return ProductionSiteInfo.from_model(site)

    def delete_site(self, company_id: str, production_site_id: str) -> bool:
        """Remove the registry row. Returns False when it did not exist."""
        site = self._get(company_id, production_site_id)
        if site is None:
            return False
        expected = site.version
        self.session.delete(site)
        self._flush_versioned(_ENTITY, _entity_key(company_id, production_site_id), expected)
        return True
