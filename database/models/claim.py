import uuid

from sqlalchemy import (
    Column, Text, Boolean, Numeric, TIMESTAMP, ForeignKey, Uuid,
    UniqueConstraint, Index, func
)
from sqlalchemy.sql import text as sql_text
from sqlalchemy.orm import relationship

from .base import Base
from .enums import ClaimStatus, BidStatus


class Claim(Base):
    """
    A lab's application to fulfil an order.

    ``bid_status`` tracks price negotiation while the claim is pending:
    the requester may ask for a revision and the lab answers with
    ``revised_price`` or declines.

    ``is_override`` marks the synthetic accepted claim written when an admin
    or auto-assign binds the order without going through a lab application.
    """
    __tablename__ = 'claims'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    provider_id = Column(Uuid, ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    submitted_by = Column(Text, nullable=False)

    status = Column(Text, nullable=False, default=ClaimStatus.PENDING.value)
    proposed_price = Column(Numeric(12, 2), nullable=True)
    terms = Column(Text, nullable=True)
    is_override = Column(Boolean, nullable=False, default=False)

    bid_status = Column(Text, nullable=False, default=BidStatus.SUBMITTED.value)
    revision_note = Column(Text, nullable=True)
    revision_requested_at = Column(TIMESTAMP(timezone=True), nullable=True)
    revised_price = Column(Numeric(12, 2), nullable=True)
    revised_at = Column(TIMESTAMP(timezone=True), nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    order = relationship("Order", back_populates="claims")
    provider = relationship("Provider")

    __table_args__ = (
        UniqueConstraint('order_id', 'provider_id', name='uq_claim_order_provider'),
        # Backstop for the single-winner rule
        Index(
            'uq_claim_one_accepted_per_order', 'order_id',
            unique=True,
            postgresql_where=sql_text("status = 'accepted'"),
            sqlite_where=sql_text("status = 'accepted'"),
        ),
        Index('idx_claim_provider_status', 'provider_id', 'status'),
        Index('idx_claim_order_status', 'order_id', 'status'),
    )
