from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from hrflow.database import Base


class Employee(Base):
    """Employee record linked to a user account; ``manager_id`` points at another employee."""
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)
    manager_id = Column(Integer, ForeignKey("employees.id"), nullable=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, index=True, nullable=False)
    job_title = Column(String, nullable=True)
    department_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="employee_profile")
    manager = relationship("Employee", remote_side=[id], backref="direct_reports")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
