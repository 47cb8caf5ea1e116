"""
User model carrying the profile fields that gate admission.

Accounts are created by the identity provider; this service reads the
profile to decide eligibility.
"""

from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin, new_id


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone_number = Column(String(50), nullable=True)
    t_shirt_size = Column(String(10), nullable=True)
    dietary_restrictions = Column(String(500), nullable=True)
    accessibility_needs = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    rsvps = relationship("EventRSVP", back_populates="user", lazy="raise")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
