"""Academic structure: years, classes, subjects, enrollments and groups."""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, Enum as SQLEnum, Float, ForeignKey, Integer,
    String, Table, UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from ..database import Base
from ..errors import ValidationError
from .enums import EnrollmentStatus


assessment_groups = Table(
    "assessment_groups",
    Base.metadata,
    Column("assessment_id", Integer, ForeignKey("assessments.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
)


class AcademicYear(Base):
    """Academic year model."""
    __tablename__ = "academic_years"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, unique=True)
    start_date = Column(Date)
    end_date = Column(Date)
    is_current = Column(Boolean, default=False)

    # Relationships
    classes = relationship("SchoolClass", back_populates="academic_year")
    groups = relationship("Group", back_populates="academic_year")

    def __repr__(self):
        return f"<AcademicYear(id={self.id}, name='{self.name}')>"


class SchoolClass(Base):
    """A class (cohort of students) within an academic year."""
    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    academic_year_id = Column(Integer, ForeignKey("academic_years.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    academic_year = relationship("AcademicYear", back_populates="classes")
    class_subjects = relationship("ClassSubject", back_populates="school_class")
    enrollments = relationship("Enrollment", back_populates="school_class")

    def __repr__(self):
        return f"<SchoolClass(id={self.id}, name='{self.name}')>"

    @property
    def active_enrollments(self):
        return [e for e in self.enrollments if e.status == EnrollmentStatus.active]


class Subject(Base):
    """Subject model."""
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20), unique=True)

    # Relationships
    class_subjects = relationship("ClassSubject", back_populates="subject")

    def __repr__(self):
        return f"<Subject(id={self.id}, name='{self.name}')>"


class ClassSubject(Base):
    """A subject taught to a class, weighted by ``coefficient`` in the annual average."""
    __tablename__ = "class_subjects"
    __table_args__ = (
        UniqueConstraint("class_id", "subject_id", name="uq_class_subject"),
        CheckConstraint("coefficient > 0", name="ck_class_subject_coefficient_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    teacher_id = Column(Integer, ForeignKey("users.id"))
    coefficient = Column(Float, nullable=False, default=1.0)
    is_active = Column(Boolean, default=True)

    # Relationships
    school_class = relationship("SchoolClass", back_populates="class_subjects")
    subject = relationship("Subject", back_populates="class_subjects")
    teacher = relationship("User", back_populates="taught_subjects")
    assessments = relationship("Assessment", back_populates="class_subject")

    def __repr__(self):
        return f"<ClassSubject(id={self.id}, class_id={self.class_id}, subject_id={self.subject_id})>"

    @validates("coefficient")
    def validate_coefficient(self, key, value):
        if value is None or value <= 0:
            raise ValidationError("Class subject coefficient must be positive")
        return value


class Enrollment(Base):
    """Enrollment of a student in a class; the source of truth for class populations."""
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("student_id", "class_id", name="uq_enrollment_student_class"),)

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    status = Column(SQLEnum(EnrollmentStatus), nullable=False, default=EnrollmentStatus.active)
    enrolled_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    student = relationship("User", back_populates="enrollments")
    school_class = relationship("SchoolClass", back_populates="enrollments")
    assignments = relationship("AssessmentAssignment", back_populates="enrollment")

    def __repr__(self):
        return f"<Enrollment(id={self.id}, student_id={self.student_id}, class_id={self.class_id})>"

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.active


class Group(Base):
    """A cohort of students an assessment can be assigned to."""
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    academic_year_id = Column(Integer, ForeignKey("academic_years.id"))

    # Relationships
    academic_year = relationship("AcademicYear", back_populates="groups")
    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")
    assessments = relationship("Assessment", secondary=assessment_groups, back_populates="groups")

    def __repr__(self):
        return f"<Group(id={self.id}, name='{self.name}')>"

    @property
    def active_student_ids(self):
        return [m.student_id for m in self.members if m.is_active]


class GroupMember(Base):
    """Group membership pivot."""
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "student_id", name="uq_group_member"),)

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    is_active = Column(Boolean, default=True)

    # Relationships
    group = relationship("Group", back_populates="members")
    student = relationship("User", back_populates="group_memberships")
