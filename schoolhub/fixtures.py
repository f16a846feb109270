import json
import logging
import os
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from .models import (
    AttendanceRecord,
    AuditLog,
    Course,
    Enrollment,
    KPISnapshot,
    LeaveRequest,
    Message,
    MessageRead,
    User,
    UserIdentity,
)
from .security import hash_password


logger = logging.getLogger(__name__)

FIXTURE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")


def load_fixture(name: str) -> list[dict[str, Any]]:
    path = os.path.join(FIXTURE_DIR, f"{name}.json")
    with open(path, encoding="utf-8") as handle:
        return json.load(handle)


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _seed_users(db: Session, demo_password: str) -> None:
    # One hash shared by every demo account keeps seeding fast.
    password_hash = hash_password(demo_password)
    for row in load_fixture("users"):
        user = User(
            id=row["id"],
            name=row["name"],
            roles=list(row["roles"]),
            email=row.get("email"),
            grade=row.get("grade"),
            class_name=row.get("className"),
            staff_no=row.get("staffNo"),
            password_hash=password_hash,
        )
        for identity in row.get("identities", []):
            user.identities.append(
                UserIdentity(
                    provider=identity["provider"],
                    subject=identity["subject"],
                    linked_at=parse_timestamp(identity["linkedAt"]),
                )
            )
        db.add(user)
    db.flush()


def _seed_courses(db: Session) -> None:
    for row in load_fixture("courses"):
        db.add(
            Course(
                id=row["id"],
                name=row["name"],
                grade=row["grade"],
                credit=row["credit"],
                teacher_id=row["teacherId"],
                capacity=row["capacity"],
                description=row.get("description"),
                chapters=row.get("chapters"),
            )
        )
    db.flush()
    for row in load_fixture("enrollments"):
        db.add(
            Enrollment(
                id=row["id"],
                student_id=row["studentId"],
                course_id=row["courseId"],
                status=row["status"],
                enrolled_at=parse_timestamp(row["enrolledAt"]),
            )
        )


def _seed_messages(db: Session) -> None:
    # Fixture files list newest first; insert oldest first so seq order matches.
    for row in reversed(load_fixture("messages")):
        message = Message(
            id=row["id"],
            title=row["title"],
            body=row["body"],
            sender_id=row["senderId"],
            recipients=list(row["recipients"]),
            created_at=parse_timestamp(row["createdAt"]),
            type=row.get("type", "direct"),
        )
        for reader_id in row.get("readBy", []):
            message.reads.append(MessageRead(user_id=reader_id))
        db.add(message)


def _seed_attendance(db: Session) -> None:
    for row in load_fixture("attendance"):
        db.add(
            AttendanceRecord(
                id=row["id"],
                date=date.fromisoformat(row["date"]),
                person_type=row.get("personType", "Student"),
                person_id=row["personId"],
                status=row["status"],
                reason=row.get("reason"),
                lesson_id=row.get("lessonId"),
                lesson_name=row.get("lessonName"),
                marked_by=row.get("markedBy"),
                marked_at=parse_timestamp(row.get("markedAt")),
            )
        )


def _seed_leaves(db: Session) -> None:
    for row in reversed(load_fixture("leaves")):
        db.add(
            LeaveRequest(
                id=row["id"],
                applicant_id=row["applicantId"],
                applicant_role=row["applicantRole"],
                type=row["type"],
                start=parse_timestamp(row["start"]),
                end=parse_timestamp(row["end"]),
                reason=row["reason"],
                status=row["status"],
                approver_id=row.get("approverId"),
                decided_at=parse_timestamp(row.get("decidedAt")),
                approver_comment=row.get("approverComment"),
                attachments=list(row.get("attachments", [])),
            )
        )


def _seed_kpis(db: Session) -> None:
    for row in load_fixture("kpi"):
        db.add(
            KPISnapshot(
                date=date.fromisoformat(row["date"]),
                attendance_rate=row["attendanceRate"],
                leave_rate=row["leaveRate"],
                enroll_count=row["enrollCount"],
                dau=row["dau"],
                wau=row["wau"],
                avg_approval_hours=row["avgApprovalHours"],
                error_rate=row["errorRate"],
            )
        )


def _seed_audits(db: Session) -> None:
    for row in reversed(load_fixture("audits")):
        db.add(
            AuditLog(
                id=row["id"],
                actor_id=row["actorId"],
                actor_name=row["actorName"],
                action=row["action"],
                resource=row["resource"],
                ip=row["ip"],
                timestamp=parse_timestamp(row["timestamp"]),
                details=row.get("details"),
            )
        )


def seed_fixtures(db: Session, *, demo_password: str) -> None:
    """Load the fixture collections into an empty store."""
    if db.query(User).first() is not None:
        logger.info("Store already seeded, skipping fixtures.")
        return

    _seed_users(db, demo_password)
    _seed_courses(db)
    _seed_messages(db)
    _seed_attendance(db)
    _seed_leaves(db)
    _seed_kpis(db)
    _seed_audits(db)
    db.commit()
    logger.info("Fixture data loaded.")
