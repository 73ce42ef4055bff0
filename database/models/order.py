import uuid

from sqlalchemy import (
    Column, Text, Boolean, Integer, Numeric, Date, TIMESTAMP, ForeignKey, Uuid,
    Index, func
)
from sqlalchemy.orm import relationship

from .base import Base
from .enums import DeliveryStatus, MarketplaceStatus, MatchingModeName


class Order(Base):
    """
    A requester's work order.

    The authoritative assignment signal is the pair
    (``open_for_bids``, ``assigned_provider_id``); claim rows are never read
    as the source of truth. ``version`` is bumped by every conditional write
    so claim submission and binding serialize on this row.
    """
    __tablename__ = 'orders'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(Text, nullable=False, unique=True)
    requester_id = Column(Text, nullable=False)

    category = Column(Text, nullable=False)
    urgency = Column(Text, nullable=False)
    target_budget = Column(Numeric(12, 2), nullable=True)
    # Revised bid if there was one, else the original bid; null for overrides without a bid
    agreed_price = Column(Numeric(12, 2), nullable=True)

    open_for_bids = Column(Boolean, nullable=False, default=False)
    assigned_provider_id = Column(Uuid, ForeignKey('providers.id'), nullable=True)
    marketplace_status = Column(Text, nullable=False, default=MarketplaceStatus.DRAFT.value)
    matching_mode = Column(Text, nullable=False, default=MatchingModeName.TRUST_RANKED.value)

    status = Column(Text, nullable=False, default=DeliveryStatus.PENDING.value)
    expected_delivery_date = Column(Date, nullable=True)
    delivered_at = Column(TIMESTAMP(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=0)
    bound_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    assigned_provider = relationship("Provider")
    claims = relationship("Claim", back_populates="order", cascade="all, delete-orphan")
    status_history = relationship("OrderStatusHistory", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_order_marketplace', 'marketplace_status', 'category'),
        Index('idx_order_requester', 'requester_id'),
        Index('idx_order_assigned_provider', 'assigned_provider_id'),
    )

    @property
    def is_bound(self) -> bool:
        return self.assigned_provider_id is not None and not self.open_for_bids


class OrderStatusHistory(Base):
    """Audit trail for binds and delivery-status moves."""
    __tablename__ = 'order_status_history'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    old_status = Column(Text, nullable=True)
    new_status = Column(Text, nullable=False)
    changed_by = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    order = relationship("Order", back_populates="status_history")

    __table_args__ = (
        Index('idx_status_history_order', 'order_id'),
    )
