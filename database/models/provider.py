import uuid

from sqlalchemy import (
    Column, Text, Boolean, Integer, Numeric, TIMESTAMP, ForeignKey, Uuid,
    UniqueConstraint, Index, CheckConstraint, func
)
from sqlalchemy.orm import relationship

from .base import Base
from .enums import VisibilityTier


class Provider(Base):
    """
    A fulfillment lab.

    ``trust_score`` is the maintained composite (0-5) refreshed on delivery;
    ranking reads it as-is. ``current_load`` only moves inside bind and
    delivery transactions.
    """
    __tablename__ = 'providers'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)

    max_capacity = Column(Integer, nullable=False, default=10)
    current_load = Column(Integer, nullable=False, default=0)

    standard_sla_days = Column(Integer, nullable=False, default=7)
    urgent_sla_days = Column(Integer, nullable=False, default=3)
    pricing_tier = Column(Text, nullable=True)  # budget|standard|premium

    trust_score = Column(Numeric(4, 2), nullable=False, default=0)
    visibility_tier = Column(Text, nullable=False, default=VisibilityTier.EMERGING.value)
    is_new = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    specializations = relationship("ProviderSpecialization", back_populates="provider", cascade="all, delete-orphan")
    pricing = relationship("ProviderPricing", back_populates="provider", cascade="all, delete-orphan")
    metrics = relationship("ProviderMetrics", back_populates="provider", uselist=False, cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint('max_capacity > 0', name='ck_provider_capacity_positive'),
        CheckConstraint('current_load >= 0', name='ck_provider_load_non_negative'),
        Index('idx_provider_active', 'is_active'),
        Index('idx_provider_trust_score', 'trust_score'),
    )


class ProviderSpecialization(Base):
    __tablename__ = 'provider_specializations'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    category = Column(Text, nullable=False)
    expertise_level = Column(Text, nullable=False)  # basic|intermediate|expert
    turnaround_days = Column(Integer, nullable=True)

    provider = relationship("Provider", back_populates="specializations")

    __table_args__ = (
        UniqueConstraint('provider_id', 'category', name='uq_specialization_provider_category'),
        Index('idx_specialization_category', 'category'),
    )


class ProviderPricing(Base):
    """
    Published price for one category: either a fixed price or a min/max range.
    A null ``rush_surcharge_percent`` means the configured default applies.
    """
    __tablename__ = 'provider_pricing'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    category = Column(Text, nullable=False)

    fixed_price = Column(Numeric(12, 2), nullable=True)
    min_price = Column(Numeric(12, 2), nullable=True)
    max_price = Column(Numeric(12, 2), nullable=True)
    includes_rush = Column(Boolean, nullable=False, default=False)
    rush_surcharge_percent = Column(Integer, nullable=True)

    provider = relationship("Provider", back_populates="pricing")

    __table_args__ = (
        UniqueConstraint('provider_id', 'category', name='uq_pricing_provider_category'),
    )


class ProviderMetrics(Base):
    """Raw delivery history feeding the trust score."""
    __tablename__ = 'provider_metrics'

    provider_id = Column(Uuid, ForeignKey('providers.id', ondelete='CASCADE'), primary_key=True)
    total_orders = Column(Integer, nullable=False, default=0)
    completed_orders = Column(Integer, nullable=False, default=0)
    on_time_deliveries = Column(Integer, nullable=False, default=0)
    cancellation_rate = Column(Numeric(5, 4), nullable=True)
    rating_sum = Column(Numeric(10, 2), nullable=False, default=0)
    rating_count = Column(Integer, nullable=False, default=0)

    provider = relationship("Provider", back_populates="metrics")


class PreferredProvider(Base):
    """A requester's favourite labs; lower ``priority_order`` ranks first."""
    __tablename__ = 'preferred_providers'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    requester_id = Column(Text, nullable=False)
    provider_id = Column(Uuid, ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    priority_order = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('requester_id', 'provider_id', name='uq_preferred_requester_provider'),
        Index('idx_preferred_requester', 'requester_id'),
    )
