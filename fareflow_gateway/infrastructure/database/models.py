"""SQLAlchemy ORM models for riders, bus ledgers, the transaction log and the outbox"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    DateTime,
    Integer,
    ForeignKey,
    Text,
    JSON,
    Uuid,
    CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Rider(Base):
    """Rider account keyed by card UID"""

    __tablename__ = "rider_account"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_rider_balance_non_negative"),)

    card_uid = Column(Text, primary_key=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    balance = Column(BigInteger, nullable=False, default=0)
    blocked = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    transactions = relationship(
        "RiderTransaction",
        back_populates="rider",
        order_by="RiderTransaction.created_at",
        cascade="all, delete-orphan",
    )


class RiderTransaction(Base):
    """Entry in a rider's transaction history (append-only)"""

    __tablename__ = "rider_transaction"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(Text, nullable=False, unique=True)
    card_uid = Column(Text, ForeignKey("rider_account.card_uid", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    type = Column(String(16), nullable=False)
    bus_plate_number = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    rider = relationship("Rider", back_populates="transactions")


class BusLedger(Base):
    """Durable earnings rollups for one bus"""

    __tablename__ = "bus_ledger"

    plate_number = Column(Text, primary_key=True)
    weekly_earnings = Column(JSON, nullable=False, default=list)
    monthly_earnings = Column(JSON, nullable=False, default=list)
    total_earnings = Column(BigInteger, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TransactionLogEntry(Base):
    """Global fare log, one row per settled payment"""

    __tablename__ = "transaction_log"

    transaction_id = Column(Text, primary_key=True)
    amount = Column(BigInteger, nullable=False)
    bus_plate_number = Column(Text, nullable=False, index=True)
    card_uid = Column(Text, nullable=False, index=True)
    passenger_name = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)


class OutboxTask(Base):
    """Follow-up work persisted with a settlement, with retry tracking"""

    __tablename__ = "outbox_task"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_type = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False)
    idempotency_key = Column(Text, nullable=False, unique=True)
    status = Column(Text, nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
