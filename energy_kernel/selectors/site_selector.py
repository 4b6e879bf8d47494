"""Read-side lookups over the production-site registry."""

from __future__ import annotations

from energy_kernel.domain.dtos import ProductionSiteInfo
from energy_kernel.exceptions import ProductionSiteNotFoundError
from energy_kernel.models.production_site import ProductionSite
from energy_kernel.selectors.base import BaseSelector


class SiteSelector(BaseSelector):
    """
    Production-site queries.

    ``banking_enabled`` always reads the registry row; the flag can change
    after an allocation was created, so callers must not cache it.
    """

    def find(self, company_id: str, production_site_id: str) -> ProductionSiteInfo | None:
        found = self._infos(
            self._where(
                ProductionSite, company_id=company_id, production_site_id=production_site_id
            ),
            ProductionSiteInfo.from_model,
        )
        return found[0] if found else None

    def get(self, company_id: str, production_site_id: str) -> ProductionSiteInfo:
        site = self.find(company_id, production_site_id)
        if site is None:
            raise ProductionSiteNotFoundError(company_id, production_site_id)
        return site

    def banking_enabled(self, company_id: str, production_site_id: str) -> bool:
        return self.get(company_id, production_site_id).banking_enabled

    def list_for_company(self, company_id: str) -> list[ProductionSiteInfo]:
        return self._infos(
            self._where(ProductionSite, company_id=company_id).order_by(
                ProductionSite.production_site_id
            ),
            ProductionSiteInfo.from_model,
        )
