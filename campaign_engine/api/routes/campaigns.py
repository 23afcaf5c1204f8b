"""
Admin Campaigns API - AI engagement campaign management endpoints.

Routes:
- GET    /admin/campaigns - List campaigns (tenant/status/category/template filters)
- POST   /admin/campaigns - Create a draft campaign
- GET    /admin/campaigns/{campaign_id} - Get one campaign
- PATCH  /admin/campaigns/{campaign_id} - Edit a campaign
- DELETE /admin/campaigns/{campaign_id} - Delete a campaign
- POST   /admin/campaigns/{campaign_id}/activate|pause|resume - Status changes
- PUT    /admin/campaigns/{campaign_id}/automation - Enable automation
- DELETE /admin/campaigns/{campaign_id}/automation - Back to manual
- PUT    /admin/campaigns/{campaign_id}/analytics - Store an analytics snapshot
- GET    /admin/campaigns/{campaign_id}/schedule - Upcoming occurrences
- POST   /admin/campaigns/templates/{template_id}/activate - Clone a template
- GET    /admin/campaigns/analytics/tenants/{tenant_id} - Tenant rollup
- POST   /admin/campaigns/ticks - Run a tick now

Campaign payloads use the camelCase document shape of the admin screens and
are validated by the domain model; validation failures come back as 422.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from campaign_engine.api.dependencies import get_campaign_service, get_tick_runner
from campaign_engine.jobs.tick_runner import TickRunner, trigger_tick_manual
from campaign_engine.lib.logging import get_logger
from campaign_engine.models.campaign import CampaignCategory, CampaignStatus, CreatorType
from campaign_engine.services.campaign_service import CampaignService
from campaign_engine.services.campaign_store import CampaignFilter


logger = get_logger(__name__)
router = APIRouter(prefix="/admin/campaigns", tags=["admin_campaigns"])


# Request / Response Models
class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class CampaignListResponse(BaseModel):
    """Response for campaign listing."""
    total: int = Field(..., description="Number of campaigns returned")
    campaigns: List[Dict[str, Any]] = Field(..., description="Campaign documents")


class TemplateActivationRequest(_CamelModel):
    """Who is activating a template, and for which tenant."""
    tenant_id: Optional[str] = Field(None, description="Tenant receiving the campaign")
    creator_user_id: Optional[str] = Field(None, description="User activating the template")
    created_by: CreatorType = Field(CreatorType.TENANT, description="Creator organization type")


class ScheduleResponse(_CamelModel):
    """Upcoming occurrences of a campaign."""
    campaign_id: str
    status: CampaignStatus
    occurrences: List[datetime]


class TenantAnalyticsResponse(_CamelModel):
    """Tenant rollup; analytics is null when no campaign has data."""
    tenant_id: str
    analytics: Optional[Dict[str, Any]] = None


class TickRequest(_CamelModel):
    """Manual tick parameters."""
    now: Optional[datetime] = Field(None, description="Tick instant (defaults to now)")
    dry_run: bool = Field(False, description="Only list due campaigns")


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


# Static routes first so they are not shadowed by /{campaign_id}
@router.post("/templates/{template_id}/activate", status_code=status.HTTP_201_CREATED)
def activate_template(
    template_id: str,
    request: TemplateActivationRequest,
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    """Clone a template campaign into a draft campaign of the caller's tenant."""
    logger.info(f"POST /admin/campaigns/templates/{template_id}/activate (tenant={request.tenant_id})")
    campaign = service.activate_template(
        template_id,
        tenant_id=request.tenant_id,
        creator_user_id=request.creator_user_id,
        created_by=request.created_by,
    )
    return campaign.to_document()


@router.get("/analytics/tenants/{tenant_id}")
def get_tenant_analytics(
    tenant_id: str,
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    """
    Aggregate analytics over every campaign of a tenant.

    Returns:
        {"tenantId": ..., "analytics": summary or null}
    """
    rollup = service.tenant_analytics(tenant_id)
    response = TenantAnalyticsResponse(
        tenant_id=tenant_id,
        analytics=rollup.summary() if rollup is not None else None,
    )
    return _dump(response)


@router.post("/ticks")
def run_tick(
    request: Optional[TickRequest] = Body(None),
    runner: TickRunner = Depends(get_tick_runner),
) -> Dict[str, Any]:
    """Run one scheduler/automation tick immediately."""
    request = request or TickRequest()
    logger.info(f"POST /admin/campaigns/ticks (dry_run={request.dry_run})")
    return trigger_tick_manual(runner, now=request.now, dry_run=request.dry_run)


# Collection
@router.get("", response_model=CampaignListResponse)
def list_campaigns(
    tenant_id: Optional[str] = Query(None, alias="tenantId", description="Filter by tenant"),
    campaign_status: Optional[CampaignStatus] = Query(None, alias="status", description="Filter by status"),
    category: Optional[CampaignCategory] = Query(None, description="Filter by category"),
    template: Optional[bool] = Query(None, description="Only templates (true) or only campaigns (false)"),
    service: CampaignService = Depends(get_campaign_service),
) -> CampaignListResponse:
    """List campaigns matching the given filters, oldest first."""
    campaign_filter = CampaignFilter(
        tenant_id=tenant_id,
        status=campaign_status,
        category=category,
        template=template,
    )
    campaigns = service.list_campaigns(campaign_filter)
    logger.info(f"Returning {len(campaigns)} campaigns")
    return CampaignListResponse(
        total=len(campaigns),
        campaigns=[campaign.to_document() for campaign in campaigns],
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_campaign(
    payload: Dict[str, Any] = Body(...),
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    """Create a draft campaign from a camelCase campaign document."""
    return service.create_campaign(payload).to_document()


# Item
@router.get("/{campaign_id}")
def get_campaign(
    campaign_id: str,
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    return service.get_campaign(campaign_id).to_document()


@router.patch("/{campaign_id}")
def update_campaign(
    campaign_id: str,
    patch: Dict[str, Any] = Body(...),
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    """
    Edit a campaign.

    Status and scheduling state are not editable here; use the activate,
    pause and resume routes.
    """
    return service.update_campaign(campaign_id, patch).to_document()


@router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_campaign(
    campaign_id: str,
    service: CampaignService = Depends(get_campaign_service),
) -> Response:
    service.delete_campaign(campaign_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Lifecycle
@router.post("/{campaign_id}/activate")
def activate_campaign(
    campaign_id: str,
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    return service.activate(campaign_id).to_document()


@router.post("/{campaign_id}/pause")
def pause_campaign(
    campaign_id: str,
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    return service.pause(campaign_id).to_document()


@router.post("/{campaign_id}/resume")
def resume_campaign(
    campaign_id: str,
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    return service.resume(campaign_id).to_document()


# Automation & analytics
@router.put("/{campaign_id}/automation")
def enable_automation(
    campaign_id: str,
    config: Optional[Dict[str, Any]] = Body(None),
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    """
    Attach an automation policy; an empty body uses the configured defaults.

    The campaign becomes active as a side effect.
    """
    return service.enable_automation(campaign_id, config or None).to_document()


@router.delete("/{campaign_id}/automation")
def disable_automation(
    campaign_id: str,
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    return service.disable_automation(campaign_id).to_document()


@router.put("/{campaign_id}/analytics")
def record_analytics(
    campaign_id: str,
    snapshot: Dict[str, Any] = Body(...),
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    """Store a snapshot (or a raw getCampaignAnalytics result)."""
    return service.record_analytics(campaign_id, snapshot).to_document()


@router.get("/{campaign_id}/schedule")
def get_schedule(
    campaign_id: str,
    limit: int = Query(5, ge=1, le=100, description="Number of occurrences to preview"),
    service: CampaignService = Depends(get_campaign_service),
) -> Dict[str, Any]:
    campaign = service.get_campaign(campaign_id)
    response = ScheduleResponse(
        campaign_id=campaign.id,
        status=campaign.status,
        occurrences=service.schedule_preview(campaign_id, limit=limit),
    )
    return _dump(response)
