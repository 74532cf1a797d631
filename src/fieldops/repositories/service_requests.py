"""
Repository for service requests and site visits.
"""

from uuid import UUID

from sqlalchemy import select

from fieldops.app_logger import get_logger
from fieldops.db.models import ServiceRequest, SiteVisit
from fieldops.enums import ServiceRequestStatus
from fieldops.exceptions import NotFoundError

from .base import BaseRepository

logger = get_logger(__name__)


class ServiceRequestRepository(BaseRepository[ServiceRequest]):
    model_class = ServiceRequest
    entity_name = "Service request"

    async def set_status(self, service_request: ServiceRequest, status: ServiceRequestStatus) -> None:
        if service_request.status != status:
            logger.debug(
                f"Service request {service_request.request_no}: {service_request.status} -> {status}"
            )
            service_request.status = status

    async def get_site_visit(self, site_visit_id: UUID) -> SiteVisit:
        result = await self.session.execute(select(SiteVisit).where(SiteVisit.id == site_visit_id))
        visit = result.scalar_one_or_none()
        if visit is None:
            raise NotFoundError("Site visit", site_visit_id)
        return visit
