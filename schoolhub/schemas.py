import datetime as dt
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import Role


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class IdentityOut(ApiModel):
    provider: str
    subject: str
    linked_at: dt.datetime


class UserOut(ApiModel):
    id: str
    name: str
    roles: list[str]
    email: str | None = None
    grade: str | None = None
    class_name: str | None = None
    staff_no: str | None = None
    identities: list[IdentityOut] = Field(default_factory=list)


class LoginRequest(ApiModel):
    provider: Literal["Google", "Singpass", "password"]
    role_override: Role | None = None
    email: str | None = Field(default=None, min_length=5, max_length=255)
    password: str | None = Field(default=None, min_length=1)


class LoginResponse(ApiModel):
    user: UserOut
    permissions: list[str]
    token: str


class MeResponse(ApiModel):
    user: UserOut


class SuccessResponse(ApiModel):
    success: bool = True


class MessageCreateRequest(ApiModel):
    title: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    recipients: list[str] = Field(min_length=1)
    type: str = Field(default="direct", min_length=1, max_length=32)


class MessageOut(ApiModel):
    id: str
    title: str
    body: str
    sender_id: str
    recipients: list[str]
    created_at: dt.datetime
    read_by: list[str]
    type: str


class CourseResource(ApiModel):
    id: str
    title: str
    type: str
    url: str


class CourseChapter(ApiModel):
    id: str
    title: str
    resources: list[CourseResource] = Field(default_factory=list)


class CourseOut(ApiModel):
    id: str
    name: str
    grade: str
    credit: int
    teacher_id: str
    capacity: int
    enrolled: int
    description: str | None = None
    chapters: list[CourseChapter] | None = None


class EnrollRequest(ApiModel):
    course_id: str = Field(min_length=1)


class EnrollmentOut(ApiModel):
    id: str
    student_id: str
    course_id: str
    status: str
    enrolled_at: dt.datetime


class AttendanceMark(ApiModel):
    person_id: str = Field(min_length=1)
    status: str = Field(min_length=1, max_length=16)
    date: dt.date
    person_type: str = "Student"
    reason: str | None = None
    lesson_id: str | None = None
    lesson_name: str | None = None


class AttendanceMarkRequest(ApiModel):
    records: list[AttendanceMark] = Field(min_length=1)


class AttendanceOut(ApiModel):
    id: str
    date: dt.date
    person_type: str
    person_id: str
    status: str
    reason: str | None = None
    lesson_id: str | None = None
    lesson_name: str | None = None
    marked_by: str | None = None
    marked_at: dt.datetime | None = None


class LeaveAttachment(ApiModel):
    id: str | None = None
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)


class LeaveCreateRequest(ApiModel):
    type: str = Field(min_length=1, max_length=32)
    start: dt.datetime
    end: dt.datetime
    reason: str = Field(min_length=1)
    attachments: list[LeaveAttachment] = Field(default_factory=list)

    @field_validator("start", "end")
    @classmethod
    def as_naive_utc(cls, value: dt.datetime) -> dt.datetime:
        if value.tzinfo is not None:
            return value.astimezone(dt.timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def check_range(self) -> "LeaveCreateRequest":
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class LeaveDecisionRequest(ApiModel):
    comment: str | None = None


class LeaveOut(ApiModel):
    id: str
    applicant_id: str
    applicant_role: str
    type: str
    start: dt.datetime
    end: dt.datetime
    reason: str
    status: str
    approver_id: str | None = None
    decided_at: dt.datetime | None = None
    approver_comment: str | None = None
    attachments: list[LeaveAttachment] = Field(default_factory=list)


class KPIOut(ApiModel):
    date: dt.date
    attendance_rate: float
    leave_rate: float
    enroll_count: int
    dau: int
    wau: int
    avg_approval_hours: float
    error_rate: float


class AuditLogOut(ApiModel):
    id: str
    actor_id: str
    actor_name: str
    action: str
    resource: str
    ip: str
    timestamp: dt.datetime
    details: dict[str, Any] | None = None


class IdentityActionRequest(ApiModel):
    user_id: str = Field(min_length=1)
    provider: Literal["Google", "Singpass"]


class HealthResponse(ApiModel):
    status: str
    users: int
