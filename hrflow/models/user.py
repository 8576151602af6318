"""
User Model with role-based access.
The role only says what a caller may attempt; relationships decide the rest.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from hrflow.database import Base


class UserRole(str, enum.Enum):
    """
    User roles.

    - HR_ADMIN: Full HR access (templates, workflow assignment, all reads)
    - MANAGER: Team manager (reviews, goals, leave decisions for direct reports)
    - EMPLOYEE: Self-service access
    """
    HR_ADMIN = "HR_ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)

    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee_profile = relationship("Employee", back_populates="user", uselist=False)
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def is_hr(self) -> bool:
        return self.role == UserRole.HR_ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role in [UserRole.HR_ADMIN, UserRole.MANAGER]
