import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from app.api.deps import get_bulk_pipeline, get_dispatcher, get_gate
from app.config import settings
from app.core.bulk import BulkIngestionPipeline
from app.core.dispatcher import MessageDispatcher
from app.core.errors import UnsupportedFileType
from app.core.models import SendRequest
from app.core.tabular import FileKind
from app.discord.gate import ConnectionState, ReadinessGate
from app.schemas.messages import (
    BulkErrorOut,
    BulkResultsOut,
    BulkSendOut,
    HealthOut,
    SendMessageIn,
    SendMessageOut,
)

router = APIRouter(tags=["messages"])
logger = structlog.get_logger()


@router.post("/send-message", response_model=SendMessageOut)
async def send_message(
    req: SendMessageIn,
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
    """Send a direct message to a user (by ID or username) or a message to a channel."""
    if req.channel_id:
        request = SendRequest(text=req.text, channel_id=req.channel_id.strip())
    else:
        request = SendRequest.for_reference(req.reference, req.text)

    result = await dispatcher.dispatch(request)
    return SendMessageOut(
        message="Message sent successfully",
        resolved_display_name=result.resolved_display_name,
        resolved_user_id=result.resolved_user_id,
        resolved_channel_id=result.resolved_channel_id,
    )


@router.post("/send-bulk", response_model=BulkSendOut)
async def send_bulk(
    file: UploadFile = File(...),
    text: str | None = Form(None),
    message: str | None = Form(None),
    pipeline: BulkIngestionPipeline = Depends(get_bulk_pipeline),
):
    """Send the same message to every user listed in the `nomeUser` column of an upload."""
    text = (text or message or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message text is required")

    try:
        kind = FileKind.from_filename(file.filename)
    except UnsupportedFileType as e:
        raise HTTPException(status_code=400, detail=str(e))

    data = await file.read(settings.BULK_MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.BULK_MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds the {settings.BULK_MAX_UPLOAD_BYTES} byte upload limit",
        )

    logger.info("api.bulk_upload", filename=file.filename, kind=kind.value, size=len(data))
    report = await pipeline.ingest(data, kind, text)

    return BulkSendOut(
        message=f"Processing finished: {report.succeeded} sent, {report.failed} failed",
        results=BulkResultsOut(
            total=report.total,
            success=report.succeeded,
            failed=report.failed,
            cancelled=report.cancelled,
            errors=[
                BulkErrorOut(row=f.row, user=f.reference, error=f.detail, kind=f.kind.value)
                for f in report.failures
            ],
        ),
    )


@router.get("/health", response_model=HealthOut)
async def health(gate: ReadinessGate = Depends(get_gate)):
    status = "ok" if gate.state is not ConnectionState.FAULTED else "degraded"
    return HealthOut(status=status, discord=gate.state.value, detail=gate.fault_detail)
