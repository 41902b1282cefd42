"""User model."""

from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, Integer
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base
from .enums import UserRole


class User(Base):
    """Application user: a student, a teacher or an administrator."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=True)
    role = Column(SQLEnum(UserRole), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    enrollments = relationship("Enrollment", back_populates="student")
    taught_subjects = relationship("ClassSubject", back_populates="teacher")
    group_memberships = relationship("GroupMember", back_populates="student")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.student

    @property
    def is_teacher(self) -> bool:
        return self.role == UserRole.teacher

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin
