from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    auth_user_id = Column(String, unique=True, index=True, nullable=True)  # hosted auth identity ("userId" in Stripe metadata)
    email = Column(String, unique=True, index=True)
    full_name = Column(String, nullable=True)

    # Entitlement
    current_plan_id = Column(String, nullable=True, default="free")  # free | basic | pro, NULL after cancellation
    generation_limit = Column(Integer, nullable=False, default=1)
    generations_used = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
