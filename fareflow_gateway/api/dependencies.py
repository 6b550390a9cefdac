"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from fareflow_gateway.config import settings
from fareflow_gateway.domain.models import FareConfig
from fareflow_gateway.infrastructure.clients.live_state import LiveStateClient
from fareflow_gateway.infrastructure.clients.notifications import NotificationClient
from fareflow_gateway.infrastructure.database.session import get_db
from fareflow_gateway.services.outbox import OutboxProcessor
from fareflow_gateway.services.settlement import FareSettlementService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_live_state_client() -> LiveStateClient:
    """Provide bus live-state client instance"""
    return LiveStateClient()


def get_notification_client() -> NotificationClient:
    """Provide SMS/email client instance"""
    return NotificationClient()


def get_fare_config() -> FareConfig:
    return FareConfig.from_settings(settings)


def get_outbox_processor(
    db: Session = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
) -> OutboxProcessor:
    return OutboxProcessor(db, notifier)


def get_settlement_service(
    db: Session = Depends(get_db),
    live_state: LiveStateClient = Depends(get_live_state_client),
    outbox: OutboxProcessor = Depends(get_outbox_processor),
    config: FareConfig = Depends(get_fare_config),
) -> FareSettlementService:
    """Provide the tap orchestrator wired to this request's session"""
    return FareSettlementService(db, live_state, outbox, config)
