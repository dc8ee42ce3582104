from fastapi import Request

from app.core.bulk import BulkIngestionPipeline
from app.core.dispatcher import MessageDispatcher
from app.discord.gate import ReadinessGate


def get_gate(request: Request) -> ReadinessGate:
    return request.app.state.gate


def get_dispatcher(request: Request) -> MessageDispatcher:
    """Dispatcher built in the app lifespan."""
    return request.app.state.dispatcher


def get_bulk_pipeline(request: Request) -> BulkIngestionPipeline:
    return request.app.state.bulk_pipeline
