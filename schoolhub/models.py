import datetime as dt
import enum
from typing import Any

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func, select
from sqlalchemy.orm import Mapped, column_property, mapped_column, relationship

from .database import Base


def utcnow() -> dt.datetime:
    # SQLite drops tzinfo, so timestamps are stored as naive UTC.
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    STUDENT = "Student"
    TEACHER = "Teacher"
    HOD = "HOD"
    PRINCIPAL = "Principal"
    ADMIN = "Admin"


class EnrollmentStatus(str, enum.Enum):
    ENROLLED = "enrolled"
    WAITLIST = "waitlist"


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    __tablename__ = "users"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    grade: Mapped[str | None] = mapped_column(String(32), nullable=True)
    class_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    staff_no: Mapped[str | None] = mapped_column(String(64), nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    identities: Mapped[list["UserIdentity"]] = relationship(
        "UserIdentity", back_populates="user", order_by="UserIdentity.id", cascade="all, delete-orphan"
    )


class UserIdentity(Base):
    __tablename__ = "user_identities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    linked_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    user: Mapped[User] = relationship("User", back_populates="identities")


class Message(Base):
    __tablename__ = "messages"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    recipients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="direct")

    reads: Mapped[list["MessageRead"]] = relationship(
        "MessageRead", order_by="MessageRead.id", cascade="all, delete-orphan"
    )

    @property
    def read_by(self) -> list[str]:
        return [read.user_id for read in self.reads]


class MessageRead(Base):
    __tablename__ = "message_reads"
    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_message_reader"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(ForeignKey("messages.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    read_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("student_id", "course_id", name="uq_student_course"),)

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(ForeignKey("courses.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    enrolled_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Course(Base):
    __tablename__ = "courses"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    grade: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    credit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    teacher_id: Mapped[str] = mapped_column(String(64), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    chapters: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)

    # Derived from enrollment rows on every load; never stored.
    enrolled: Mapped[int] = column_property(
        select(func.count(Enrollment.seq))
        .where(Enrollment.course_id == id, Enrollment.status == EnrollmentStatus.ENROLLED.value)
        .correlate_except(Enrollment)
        .scalar_subquery()
    )


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    person_type: Mapped[str] = mapped_column(String(32), nullable=False, default=Role.STUDENT.value)
    person_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    lesson_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lesson_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    marked_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    marked_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    applicant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    applicant_role: Mapped[str] = mapped_column(String(32), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    start: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=LeaveStatus.PENDING.value, index=True)
    approver_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    decided_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    approver_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)


class KPISnapshot(Base):
    __tablename__ = "kpi_snapshots"

    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    attendance_rate: Mapped[float] = mapped_column(nullable=False)
    leave_rate: Mapped[float] = mapped_column(nullable=False)
    enroll_count: Mapped[int] = mapped_column(Integer, nullable=False)
    dau: Mapped[int] = mapped_column(Integer, nullable=False)
    wau: Mapped[int] = mapped_column(Integer, nullable=False)
    avg_approval_hours: Mapped[float] = mapped_column(nullable=False)
    error_rate: Mapped[float] = mapped_column(nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    actor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(255), nullable=False)
    ip: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
