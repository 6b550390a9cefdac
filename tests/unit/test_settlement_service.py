"""Unit tests for the fare transaction orchestrator"""

import asyncio
import pytest
from unittest.mock import AsyncMock
from sqlalchemy.orm import Session
from conftest import TestingSessionLocal, dynamic_route_bus, fixed_route_bus
from fareflow_gateway.domain.exceptions import LiveStateAPIError, NotificationError
from fareflow_gateway.domain.models import BusLiveState
from fareflow_gateway.domain.outcomes import SettlementStatus
from fareflow_gateway.infrastructure.database.models import (
    BusLedger,
    OutboxTask,
    Rider,
    RiderTransaction,
    TransactionLogEntry,
)
from fareflow_gateway.services.settlement import FareSettlementService


async def test_successful_settlement(
    db: Session, service: FareSettlementService, make_rider, bus_ledger: BusLedger, notifier: AsyncMock
):
    """balance=1000, fare=800, minimum=500 -> success, new balance 200"""
    make_rider(balance=1000)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.SUCCESS
    assert outcome.new_balance == 200
    assert outcome.to_response()["hardwareCode"] == "PAYMENT_SUCCESS"

    rider = db.get(Rider, "CARD-001")
    assert rider.balance == 200
    assert len(rider.transactions) == 1
    assert rider.transactions[0].amount == 800

    assert db.query(TransactionLogEntry).count() == 1
    log_entry = db.query(TransactionLogEntry).one()
    assert log_entry.passenger_name == "Jane Okello"
    assert log_entry.transaction_id == outcome.transaction_id

    ledger = db.get(BusLedger, "UAZ-123")
    assert ledger.total_earnings == 800
    assert ledger.weekly_earnings == [{"day": "2025-05-26", "amount": 800}]
    assert ledger.monthly_earnings == [{"month": "May 2025", "amount": 800}]

    notifier.send_sms.assert_awaited_once()
    notifier.send_email.assert_awaited_once()
    assert notifier.send_email.await_args.args[0]["current_balance"] == 200
    assert db.query(OutboxTask).filter(OutboxTask.status != "delivered").count() == 0


async def test_low_balance_rejected_without_debit(
    db: Session, service: FareSettlementService, make_rider, notifier: AsyncMock
):
    """balance=400, minimum=500 -> LOW_BALANCE, balance stays 400, one notification"""
    make_rider(balance=400)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.LOW_BALANCE
    assert outcome.http_status == 400
    assert db.get(Rider, "CARD-001").balance == 400
    assert db.query(RiderTransaction).count() == 0
    assert db.query(TransactionLogEntry).count() == 0
    notifier.send_sms.assert_awaited_once()
    notifier.send_email.assert_awaited_once()
    assert notifier.send_email.await_args.args[0]["status_title"] == "Payment Failed"


async def test_insufficient_fare_rejected_without_debit(
    db: Session, service: FareSettlementService, make_rider, notifier: AsyncMock
):
    """balance=600, fare=800, minimum=500 -> INSUFFICIENT_FARE, balance stays 600"""
    make_rider(balance=600)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.INSUFFICIENT_FARE
    assert db.get(Rider, "CARD-001").balance == 600
    assert db.query(RiderTransaction).count() == 0
    notifier.send_sms.assert_awaited_once()
    notifier.send_email.assert_awaited_once()
    assert notifier.send_email.await_args.args[0]["current_balance"] == 600


async def test_minimum_balance_checked_before_fare(
    db: Session, service: FareSettlementService, make_rider, live_state: AsyncMock
):
    """The reserve applies even when the fare is below it"""
    live_state.get_bus.return_value = fixed_route_bus(fare_amount=300)
    make_rider(balance=400)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.LOW_BALANCE
    assert db.get(Rider, "CARD-001").balance == 400


async def test_unknown_card(service: FareSettlementService, live_state: AsyncMock, notifier: AsyncMock):
    outcome = await service.process_tap("NOPE", "UAZ-123")

    assert outcome.status is SettlementStatus.USER_NOT_FOUND
    assert outcome.http_status == 404
    live_state.get_bus.assert_not_awaited()
    notifier.send_sms.assert_not_awaited()


async def test_blocked_rider_rejected_before_bus_lookup(
    db: Session, service: FareSettlementService, make_rider, live_state: AsyncMock, notifier: AsyncMock
):
    make_rider(balance=5000, blocked=True)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.USER_BLOCKED
    live_state.get_bus.assert_not_awaited()
    notifier.send_sms.assert_not_awaited()
    notifier.send_email.assert_not_awaited()
    assert db.get(Rider, "CARD-001").balance == 5000


async def test_bus_not_found(service: FareSettlementService, make_rider, live_state: AsyncMock, notifier: AsyncMock):
    live_state.get_bus.return_value = None
    make_rider(balance=1000)

    outcome = await service.process_tap("CARD-001", "XYZ")

    assert outcome.status is SettlementStatus.BUS_NOT_FOUND
    assert outcome.http_status == 404
    live_state.get_bus.assert_awaited_once_with("XYZ")
    notifier.send_sms.assert_not_awaited()


async def test_bus_inactive(db: Session, service: FareSettlementService, make_rider, live_state: AsyncMock):
    live_state.get_bus.return_value = fixed_route_bus(status=False)
    make_rider(balance=1000)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.BUS_INACTIVE
    assert outcome.http_status == 403
    assert db.get(Rider, "CARD-001").balance == 1000


@pytest.mark.parametrize("balance", [0, 400, 600, 1000, 100000])
async def test_dynamic_route_never_debits(
    db: Session, service: FareSettlementService, make_rider, live_state: AsyncMock, notifier: AsyncMock, balance: int
):
    live_state.get_bus.return_value = dynamic_route_bus()
    make_rider(balance=balance)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.DYNAMIC_UNSUPPORTED
    assert outcome.http_status == 200
    assert outcome.to_response()["status"] == "info"
    assert db.get(Rider, "CARD-001").balance == balance
    assert db.query(OutboxTask).count() == 0
    notifier.send_sms.assert_not_awaited()


async def test_default_fare_applies_without_route_fare(
    db: Session, service: FareSettlementService, make_rider, live_state: AsyncMock
):
    live_state.get_bus.return_value = fixed_route_bus(fare_amount=None)
    make_rider(balance=2000)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.fare_amount == 1500
    assert db.get(Rider, "CARD-001").balance == 500


async def test_same_day_settlements_share_weekly_entry(
    db: Session, service: FareSettlementService, make_rider, bus_ledger: BusLedger
):
    make_rider(balance=5000)

    await service.process_tap("CARD-001", "UAZ-123")
    await service.process_tap("CARD-001", "UAZ-123")

    ledger = db.get(BusLedger, "UAZ-123")
    assert ledger.weekly_earnings == [{"day": "2025-05-26", "amount": 1600}]
    assert ledger.monthly_earnings == [{"month": "May 2025", "amount": 1600}]
    assert ledger.total_earnings == 1600
    assert db.get(Rider, "CARD-001").balance == 3400
    assert len(db.get(Rider, "CARD-001").transactions) == 2
    assert db.query(TransactionLogEntry).count() == 2


async def test_missing_bus_ledger_does_not_fail_settlement(db: Session, service: FareSettlementService, make_rider):
    make_rider(balance=1000)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.SUCCESS
    assert db.get(Rider, "CARD-001").balance == 200
    assert db.query(BusLedger).count() == 0


async def test_notification_failure_keeps_debit(
    db: Session, service: FareSettlementService, make_rider, notifier: AsyncMock
):
    notifier.send_sms.side_effect = NotificationError("gateway down")
    notifier.send_email.side_effect = NotificationError("gateway down")
    make_rider(balance=1000)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.SUCCESS
    assert db.get(Rider, "CARD-001").balance == 200
    assert db.query(TransactionLogEntry).count() == 1
    pending = db.query(OutboxTask).filter(OutboxTask.status == "pending").all()
    assert sorted(task.event_type for task in pending) == ["notification.email", "notification.sms"]


async def test_live_state_failure_is_server_error(
    db: Session, service: FareSettlementService, make_rider, live_state: AsyncMock
):
    live_state.get_bus.side_effect = LiveStateAPIError("timeout")
    make_rider(balance=1000)

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.SERVER_ERROR
    assert outcome.to_response() == {"status": "error", "message": "Server error", "hardwareCode": "SERVER_ERROR"}
    assert db.get(Rider, "CARD-001").balance == 1000


async def test_concurrent_debit_is_retried_on_fresh_balance(
    db: Session, service: FareSettlementService, make_rider, live_state: AsyncMock
):
    """
    Another tap debits the card while this one waits on the bus lookup.
    The stale debit is refused and the retry sees the real balance.
    """
    make_rider(balance=1000)
    calls = {"count": 0}

    async def lookup_with_competing_tap(plate_number: str) -> BusLiveState:
        calls["count"] += 1
        if calls["count"] == 1:
            other = TestingSessionLocal()
            try:
                other.query(Rider).filter(Rider.card_uid == "CARD-001").update(
                    {Rider.balance: 200, Rider.version: Rider.version + 1},
                    synchronize_session=False,
                )
                other.commit()
            finally:
                other.close()
        return fixed_route_bus(fare_amount=800)

    live_state.get_bus.side_effect = lookup_with_competing_tap

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert calls["count"] == 2
    assert outcome.status is SettlementStatus.LOW_BALANCE
    rider = db.get(Rider, "CARD-001")
    assert rider.balance == 200
    assert db.query(RiderTransaction).count() == 0


async def test_persistent_conflicts_end_in_server_error(
    db: Session, service: FareSettlementService, make_rider, live_state: AsyncMock
):
    make_rider(balance=100000)

    async def lookup_with_competing_tap(plate_number: str) -> BusLiveState:
        other = TestingSessionLocal()
        try:
            other.query(Rider).filter(Rider.card_uid == "CARD-001").update(
                {Rider.version: Rider.version + 1},
                synchronize_session=False,
            )
            other.commit()
        finally:
            other.close()
        return fixed_route_bus(fare_amount=800)

    live_state.get_bus.side_effect = lookup_with_competing_tap

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.SERVER_ERROR
    assert live_state.get_bus.await_count == 3
    assert db.get(Rider, "CARD-001").balance == 100000


async def test_slow_bus_lookup_times_out_as_server_error(
    db: Session, service: FareSettlementService, make_rider, live_state: AsyncMock, notifier: AsyncMock
):
    make_rider(balance=1000)
    service.timeout_seconds = 0.1

    async def slow_lookup(plate_number: str) -> BusLiveState:
        await asyncio.sleep(1)
        return fixed_route_bus(fare_amount=800)

    live_state.get_bus.side_effect = slow_lookup

    outcome = await service.process_tap("CARD-001", "UAZ-123")

    assert outcome.status is SettlementStatus.SERVER_ERROR
    assert outcome.http_status == 500
    assert db.get(Rider, "CARD-001").balance == 1000
    assert db.query(RiderTransaction).count() == 0
    assert db.query(OutboxTask).count() == 0
    notifier.send_sms.assert_not_awaited()
