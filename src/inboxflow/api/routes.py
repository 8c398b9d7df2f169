"""API routes for starting and polling inboxflow workflows."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from loguru import logger
from pydantic import BaseModel, Field

from inboxflow.application.use_cases import IncomingMessageInput, SendReplyInput, SmartReplyInput, SyncInput
from inboxflow.application.workflow.status import UnknownQueryError
from inboxflow.domain.errors import WorkflowAlreadyRunningError
from inboxflow.domain.models import AuditEvent, ReplySuggestion, TriageResult
from inboxflow.infrastructure.container import (
    EMAIL_SYNC,
    PROCESS_INCOMING,
    SEND_REPLY,
    SMART_REPLY,
    Container,
    sync_identity,
)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response with service status."""

    status: str
    timestamp: str
    services: dict[str, str]
    running_workflows: int = 0


class StartSyncRequest(BaseModel):
    user_id: str
    grant_id: str
    cursor: str | None = None
    initial_sync: bool = Field(False, description="Run one pass instead of a continuous loop")


class IncomingMessageRequest(BaseModel):
    user_id: str
    grant_id: str
    message_id: str


class SmartReplyRequest(BaseModel):
    user_id: str
    thread_id: str


class SendReplyRequest(BaseModel):
    user_id: str
    grant_id: str
    thread_id: str
    suggestion_id: str


class WorkflowStarted(BaseModel):
    instance_id: str
    workflow_type: str


class WorkflowInfo(BaseModel):
    instance_id: str
    workflow_type: str
    identity: str
    state: str
    heartbeat: str | None = None
    heartbeat_at: str | None = None
    error: str | None = None
    continued_as: str | None = None


def get_container(request: Request) -> Container:
    return request.app.state.container


async def _start(container: Container, workflow_type: str, input: Any) -> WorkflowStarted:
    try:
        instance_id = await container.engine.start(workflow_type, input)
    except WorkflowAlreadyRunningError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(e), "instance_id": e.instance_id},
        )
    return WorkflowStarted(instance_id=instance_id, workflow_type=workflow_type)


# ============================================================================
# Health Endpoints
# ============================================================================


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(container: Container = Depends(get_container)) -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=container.settings.app_version,
    )


@router.get("/health/ready", response_model=ReadinessResponse, tags=["health"])
async def readiness_check(container: Container = Depends(get_container)) -> ReadinessResponse:
    """Readiness check with store connectivity status."""
    services: dict[str, str] = {}
    running = 0

    try:
        with container.client.connection() as conn:
            conn.execute("SELECT 1")
        services["sqlite"] = "healthy"
        running = len(container.engine.instances.running())
    except Exception as e:
        logger.warning(f"SQLite health check failed: {e}")
        services["sqlite"] = f"error: {str(e)[:50]}"

    return ReadinessResponse(
        status="ready" if services["sqlite"] == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        services=services,
        running_workflows=running,
    )


# ============================================================================
# Workflow Endpoints
# ============================================================================


@router.post("/workflows/sync", response_model=WorkflowStarted, status_code=202, tags=["workflows"])
async def start_sync(body: StartSyncRequest, container: Container = Depends(get_container)) -> WorkflowStarted:
    """Start a mailbox sync. Only one sync per grant may run at a time."""
    input = SyncInput(
        user_id=body.user_id,
        grant_id=body.grant_id,
        cursor=body.cursor,
        initial_sync=body.initial_sync,
    )
    return await _start(container, EMAIL_SYNC, input)


@router.post("/workflows/incoming", response_model=WorkflowStarted, status_code=202, tags=["workflows"])
async def process_incoming(
    body: IncomingMessageRequest, container: Container = Depends(get_container)
) -> WorkflowStarted:
    """Triage one pushed message (webhook path)."""
    input = IncomingMessageInput(user_id=body.user_id, grant_id=body.grant_id, message_id=body.message_id)
    return await _start(container, PROCESS_INCOMING, input)


@router.post("/workflows/smart-reply", response_model=WorkflowStarted, status_code=202, tags=["workflows"])
async def start_smart_reply(
    body: SmartReplyRequest, container: Container = Depends(get_container)
) -> WorkflowStarted:
    return await _start(container, SMART_REPLY, SmartReplyInput(thread_id=body.thread_id, user_id=body.user_id))


@router.post("/workflows/send-reply", response_model=WorkflowStarted, status_code=202, tags=["workflows"])
async def send_reply(body: SendReplyRequest, container: Container = Depends(get_container)) -> WorkflowStarted:
    input = SendReplyInput(
        user_id=body.user_id,
        grant_id=body.grant_id,
        thread_id=body.thread_id,
        suggestion_id=body.suggestion_id,
    )
    return await _start(container, SEND_REPLY, input)


@router.get("/workflows/{instance_id}", response_model=WorkflowInfo, tags=["workflows"])
async def get_workflow(instance_id: str, container: Container = Depends(get_container)) -> WorkflowInfo:
    record = container.engine.get(instance_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Unknown workflow {instance_id}")
    return WorkflowInfo(
        instance_id=record.instance_id,
        workflow_type=record.workflow_type,
        identity=record.identity,
        state=record.state,
        heartbeat=record.heartbeat,
        heartbeat_at=record.heartbeat_at,
        error=record.error,
        continued_as=record.continued_as,
    )


@router.get("/workflows/{instance_id}/status", tags=["workflows"])
async def workflow_status(
    instance_id: str,
    query: str | None = None,
    container: Container = Depends(get_container),
) -> Any:
    """Live status of a running instance, or the stored result of a finished one."""
    try:
        return container.engine.query(instance_id, query)
    except UnknownQueryError:
        raise HTTPException(status_code=404, detail=f"No status for {instance_id}")


@router.get("/mailboxes/{grant_id}/sync", tags=["workflows"])
async def mailbox_sync_status(grant_id: str, container: Container = Depends(get_container)) -> Any:
    """Status of the sync currently running for a grant."""
    identity = sync_identity(SyncInput(user_id="", grant_id=grant_id))
    record = container.engine.active_instance(identity)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No sync running for {grant_id}")
    try:
        return {"instance_id": record.instance_id, "status": container.engine.query(record.instance_id)}
    except UnknownQueryError:
        return {"instance_id": record.instance_id, "status": None}


@router.get("/threads/{thread_id}/suggestions", response_model=list[ReplySuggestion], tags=["replies"])
async def list_suggestions(thread_id: str, container: Container = Depends(get_container)) -> list[ReplySuggestion]:
    return await container.store.list_suggestions(thread_id)


# ============================================================================
# Read Endpoints
# ============================================================================


class EmailTriageResponse(BaseModel):
    triage: TriageResult
    linked_assets: list[str] = Field(default_factory=list)


@router.get("/emails/{message_id}/triage", response_model=EmailTriageResponse, tags=["emails"])
async def get_email_triage(message_id: str, container: Container = Depends(get_container)) -> EmailTriageResponse:
    triage = await container.store.get_triage(message_id)
    if triage is None:
        raise HTTPException(status_code=404, detail=f"Email {message_id} not triaged")
    linked = await container.store.get_linked_assets(triage.email_id)
    return EmailTriageResponse(triage=triage, linked_assets=linked)


@router.get("/users/{user_id}/alerts", tags=["emails"])
async def list_alerts(user_id: str, container: Container = Depends(get_container)) -> list[dict]:
    """Urgent alerts and triage notifications for a user."""
    return await container.notifications.list_alerts(user_id)


@router.get("/users/{user_id}/tasks", tags=["emails"])
async def list_tasks(user_id: str, container: Container = Depends(get_container)) -> list[dict]:
    return await container.notifications.list_tasks(user_id)


@router.get("/users/{user_id}/audit", response_model=list[AuditEvent], tags=["emails"])
async def list_audit(
    user_id: str,
    action: str | None = None,
    container: Container = Depends(get_container),
) -> list[AuditEvent]:
    return await container.store.list_audit(user_id, action)


@router.get("/mailboxes/{grant_id}/dead-letters", tags=["workflows"])
async def list_dead_letters(grant_id: str, container: Container = Depends(get_container)) -> list[dict]:
    """Messages skipped after failing in too many sync epochs."""
    return await container.store.list_dead_letters(grant_id)
