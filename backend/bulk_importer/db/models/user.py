"""SQLAlchemy models for tenant users and their loyalty balance."""

import uuid

from sqlalchemy import Column, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.types import DateTime

from bulk_importer.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    user_type = Column(String(32), nullable=False, default="customer")
    buyer_ntn_cnic = Column(String(64))
    buyer_business_name = Column(String(255))
    buyer_province = Column(String(128))
    buyer_address = Column(Text)
    buyer_registration_type = Column(String(64))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),)


class UserLoyaltyPoints(Base):
    __tablename__ = "user_loyalty_points"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    total_points_earned = Column(Integer, nullable=False, default=0)
    total_points_redeemed = Column(Integer, nullable=False, default=0)
    available_points = Column(Integer, nullable=False, default=0)
    pending_points = Column(Integer, nullable=False, default=0)
    points_expiring_soon = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
