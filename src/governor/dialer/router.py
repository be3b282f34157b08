"""
Dialer API router.

Every endpoint acts on the account named by the bearer token. Governor
errors propagate to the exception handlers in ``governor.main``, which
render ``{"error", "message", "remedy", "sub_reason"}`` bodies.
"""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from governor.auth.middleware import CurrentAccountDep
from governor.billing.ledger import SqlLedgerReader
from governor.campaigns.repository import CampaignConfigRepository, CampaignRunRepository
from governor.campaigns.schemas import (
    CampaignConfigResponse,
    CampaignConfigUpdate,
    CheckLeadsResponse,
    ErrorResponse,
    LaunchRequest,
    LaunchResponse,
    OverrideGrantSchema,
    OverrideRequest,
    OverrideResponse,
    RunConfirmResponse,
    StopResponse,
)
from governor.campaigns.service import CampaignSettingsService
from governor.config import Settings, get_settings
from governor.launch.executor import get_run_executor
from governor.launch.sequencer import LaunchSequencer
from governor.leads.repository import LeadRepository
from governor.shared.database import get_db_session
from governor.shared.exceptions import ConcurrentLaunchError
from governor.shared.logging import get_logger
from governor.status.service import StatusService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/dialer", tags=["dialer"])

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Precondition failed"},
    401: {"description": "Missing or invalid token"},
    409: {"model": ErrorResponse, "description": "Conflicting run state"},
    503: {"model": ErrorResponse, "description": "Collaborator unreachable, retry"},
}


def get_status_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> StatusService:
    """Dependency for the status service."""
    return StatusService(
        configs=CampaignConfigRepository(session, settings.default_timezone),
        runs=CampaignRunRepository(session),
        ledger=SqlLedgerReader(session),
        leads=LeadRepository(session),
        settings=settings,
    )


def get_launch_sequencer(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> LaunchSequencer:
    """Dependency for the launch sequencer."""
    return LaunchSequencer(
        configs=CampaignConfigRepository(session, settings.default_timezone),
        runs=CampaignRunRepository(session),
        ledger=SqlLedgerReader(session),
        leads=LeadRepository(session),
        executor=get_run_executor(),
        settings=settings,
    )


def get_settings_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CampaignSettingsService:
    return CampaignSettingsService(CampaignConfigRepository(session, settings.default_timezone))


@router.get("/status")
async def get_status(
    account: CurrentAccountDep,
    service: Annotated[StatusService, Depends(get_status_service)],
) -> dict[str, Any]:
    """Current campaign runtime. Safe to poll; faults come back as ``error``."""
    runtime = await service.get_status(account.account_id)
    return runtime.as_dict()


@router.post("/launch", response_model=LaunchResponse, responses=_ERROR_RESPONSES)
async def launch_campaign(
    body: LaunchRequest,
    account: CurrentAccountDep,
    sequencer: Annotated[LaunchSequencer, Depends(get_launch_sequencer)],
) -> LaunchResponse:
    """Validate preconditions and request a run.

    The run starts asynchronously; poll ``/status`` for ``running``. A
    launch racing an active run is answered as a successful no-op.
    """
    logger.info(
        "Launch requested",
        extra={"account_id": str(account.account_id), "mode": body.mode.value},
    )
    try:
        result = await sequencer.launch(
            account.account_id,
            mode=body.mode,
            target_or_budget=body.target_or_budget,
            live_transfer=body.live_transfer,
        )
    except ConcurrentLaunchError:
        return LaunchResponse(already_running=True)
    return LaunchResponse(run_id=result.run_id, phase=result.phase.value)


@router.post("/stop", response_model=StopResponse)
async def stop_campaign(
    account: CurrentAccountDep,
    sequencer: Annotated[LaunchSequencer, Depends(get_launch_sequencer)],
) -> StopResponse:
    result = await sequencer.stop(account.account_id)
    return StopResponse(stopped=result.stopped, run_id=result.run_id)


@router.post("/override", response_model=OverrideResponse, responses=_ERROR_RESPONSES)
async def override_budget(
    body: OverrideRequest,
    account: CurrentAccountDep,
    sequencer: Annotated[LaunchSequencer, Depends(get_launch_sequencer)],
) -> OverrideResponse:
    grant = await sequencer.override(account.account_id, body.extra_leads)
    return OverrideResponse(
        grant=OverrideGrantSchema(
            extra_leads=grant.extra_leads,
            estimated_cost_cents=grant.estimated_cost_cents,
            expires_at=grant.expires_at,
        )
    )


@router.get("/settings", response_model=CampaignConfigResponse)
async def get_campaign_settings(
    account: CurrentAccountDep,
    service: Annotated[CampaignSettingsService, Depends(get_settings_service)],
) -> CampaignConfigResponse:
    config = await service.get_settings(account.account_id)
    return CampaignConfigResponse.model_validate(config)


@router.put("/settings", response_model=CampaignConfigResponse, responses=_ERROR_RESPONSES)
async def save_campaign_settings(
    body: CampaignConfigUpdate,
    account: CurrentAccountDep,
    service: Annotated[CampaignSettingsService, Depends(get_settings_service)],
) -> CampaignConfigResponse:
    config = await service.save_settings(account.account_id, body)
    return CampaignConfigResponse.model_validate(config)


@router.get("/check-leads", response_model=CheckLeadsResponse)
async def check_leads(
    account: CurrentAccountDep,
    sequencer: Annotated[LaunchSequencer, Depends(get_launch_sequencer)],
) -> CheckLeadsResponse:
    availability = await sequencer.check_leads(account.account_id)
    return CheckLeadsResponse(**availability.as_dict())


@router.post("/runs/{run_id}/confirm", response_model=RunConfirmResponse, responses={404: {"description": "Run not found"}})
async def confirm_run(
    run_id: UUID,
    account: CurrentAccountDep,
    sequencer: Annotated[LaunchSequencer, Depends(get_launch_sequencer)],
) -> RunConfirmResponse:
    """Executor callback: dialing has started for the run."""
    run = await sequencer.confirm_started(run_id, account.account_id)
    return RunConfirmResponse(run_id=run.id, phase=run.phase.value)
