from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Index,
    String,
    Text,
    create_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)  # UUID
    email = Column(String, nullable=True, unique=True)
    phone = Column(String, nullable=False)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, index=True)  # resident | collector | admin
    area = Column(String, nullable=True, index=True)
    street = Column(String, nullable=True)
    house_number = Column(String, nullable=True)
    coordinates = Column(String, nullable=True)  # "POINT(lng lat)"
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(String, nullable=False)  # ISO 8601 string
    updated_at = Column(String, nullable=False)  # ISO 8601 string


class PickupRequest(Base):
    __tablename__ = "pickup_requests"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    collector_id = Column(String, nullable=True, index=True)
    scheduled_date = Column(String, nullable=False)  # YYYY-MM-DD
    status = Column(String, nullable=False, default="requested", index=True)  # requested | scheduled | picked_up | missed
    notes = Column(Text, nullable=True)
    completed_at = Column(String, nullable=True)
    created_at = Column(String, nullable=False, index=True)
    updated_at = Column(String, nullable=False)

    # Location snapshot taken at creation; not rewritten when the user's address changes
    area = Column(String, nullable=True, index=True)
    street = Column(String, nullable=True)
    house_number = Column(String, nullable=True)
    coordinates = Column(String, nullable=True)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String, nullable=False, default="NGN")
    payment_method = Column(String, nullable=False)  # cash | transfer | card
    payment_reference = Column(String, nullable=False, unique=True)  # legacy databases call this "reference"
    status = Column(String, nullable=False, default="pending", index=True)  # pending | completed | failed
    metadata_json = Column(Text, nullable=True)
    created_at = Column(String, nullable=False, index=True)
    updated_at = Column(String, nullable=True)


class Complaint(Base):
    __tablename__ = "complaints"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    pickup_id = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    photo_url = Column(String, nullable=True)
    status = Column(String, nullable=False, default="open", index=True)  # open | in_progress | resolved | closed
    priority = Column(String, nullable=False, default="medium")  # low | medium | high
    admin_notes = Column(Text, nullable=True)
    resolved_at = Column(String, nullable=True)
    created_at = Column(String, nullable=False, index=True)
    updated_at = Column(String, nullable=True)


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    plan_type = Column(String, nullable=False)  # weekly | bi-weekly | on-demand
    status = Column(String, nullable=False, default="active", index=True)  # active | paused | cancelled
    amount = Column(Float, nullable=False)
    currency = Column(String, nullable=False, default="NGN")
    billing_cycle = Column(String, nullable=False)
    start_date = Column(String, nullable=False)
    end_date = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class AuditLog(Base):
    """Append-only action log; rows are only removed by the maintenance purge."""
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=True)
    old_data_json = Column(Text, nullable=True)
    new_data_json = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    metadata_json = Column(Text, nullable=True)
    timestamp = Column(String, nullable=False, index=True)

    __table_args__ = (
        Index("idx_audit_logs_entity", "entity_type", "entity_id"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True)
    audience = Column(String, nullable=False, default="user")  # user | system
    user_id = Column(String, nullable=True, index=True)  # NULL for system broadcasts
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    data_json = Column(Text, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False, index=True)

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "read"),
    )


def create_all(engine_url: str) -> None:
    engine = create_engine(engine_url)
    Base.metadata.create_all(engine)
    engine.dispose()
