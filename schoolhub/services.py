import logging
import math
import threading
import uuid
from datetime import date, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .audit import record_audit
from .config import Settings
from .models import (
    AttendanceRecord,
    Course,
    Enrollment,
    EnrollmentStatus,
    KPISnapshot,
    LeaveRequest,
    LeaveStatus,
    Message,
    MessageRead,
    Role,
    User,
    UserIdentity,
    utcnow,
)
from .permissions import permissions_for
from .schemas import AttendanceMark, LeaveCreateRequest
from .security import issue_session_token, verify_password
from .session import SessionState


logger = logging.getLogger(__name__)

KPI_RANGES = {"week": 7, "month": 30}

# Count-then-insert for a seat must not interleave between requests.
_enrollment_lock = threading.Lock()
# Check-then-write of a pending leave must not interleave either.
_leave_decision_lock = threading.Lock()


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _all_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.seq).all()


# --- AUTH ---

def _user_for_credentials(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return user


def _user_for_login(db: Session, *, provider: str, role_override: Role | None) -> User | None:
    if role_override is not None:
        return next((u for u in _all_users(db) if role_override.value in u.roles), None)
    return (
        db.query(User)
        .join(UserIdentity, UserIdentity.user_id == User.id)
        .filter(UserIdentity.provider == provider)
        .order_by(User.seq)
        .first()
    )


def login_user(
    db: Session,
    settings: Settings,
    session_state: SessionState,
    *,
    provider: str,
    role_override: Role | None,
    email: str | None,
    password: str | None,
    ip: str,
) -> tuple[User, list[str], str]:
    if email or password:
        if provider != "password" or not (email and password):
            raise HTTPException(status_code=422, detail="Email and password are both required for password login")
        user = _user_for_credentials(db, email, password)
    else:
        user = _user_for_login(db, provider=provider, role_override=role_override)
        if user is None:
            if not settings.demo_mode:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No matching account")
            users = _all_users(db)
            if not users:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No matching account")
            user = users[0]

    record_audit(db, actor_id=user.id, action="login", resource="/login", ip=ip, details={"provider": provider})
    db.commit()

    issued = issue_session_token(settings, user_id=user.id, roles=user.roles)
    session_state.sign_in(user.id, token_id=issued.token_id, expires_at=issued.expires_at)
    logger.info(f"User {user.id} logged in via {provider}")
    return user, permissions_for(user.roles), issued.token


def logout_user(
    db: Session,
    session_state: SessionState,
    *,
    ip: str,
    bearer_claims: dict[str, Any] | None = None,
) -> None:
    """Clear the session user and revoke its token, plus any bearer token sent with the call."""
    if bearer_claims:
        session_state.revoke(bearer_claims["jti"], bearer_claims["exp"])

    user_id = session_state.user_id
    if not user_id:
        return
    record_audit(db, actor_id=user_id, action="logout", resource="/logout", ip=ip)
    db.commit()
    session_state.sign_out()
    logger.info(f"User {user_id} logged out")


# --- MESSAGES ---

def list_messages(db: Session, *, user: User, box: str | None = None) -> list[Message]:
    messages = db.query(Message).order_by(Message.seq.desc()).all()
    visible = [m for m in messages if user.id in m.recipients or m.sender_id == user.id]
    if box == "inbox":
        return [m for m in visible if user.id in m.recipients]
    if box == "sent":
        return [m for m in visible if m.sender_id == user.id]
    return visible


def send_message(
    db: Session,
    *,
    sender: User,
    title: str,
    body: str,
    recipients: list[str],
    message_type: str,
    ip: str,
) -> Message:
    message = Message(
        id=_new_id("msg"),
        title=title,
        body=body,
        sender_id=sender.id,
        recipients=list(recipients),
        created_at=utcnow(),
        type=message_type,
    )
    db.add(message)
    record_audit(
        db,
        actor_id=sender.id,
        action="send_message",
        resource="/api/messages",
        ip=ip,
        details={"recipientCount": len(message.recipients), "messageType": message.type},
    )
    db.commit()
    db.refresh(message)
    return message


def mark_message_read(db: Session, *, user: User, message_id: str) -> None:
    message = db.query(Message).filter(Message.id == message_id).first()
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    if user.id in message.read_by:
        return
    db.add(MessageRead(message_id=message.id, user_id=user.id))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent reader already recorded the same (message, user) pair.
        db.rollback()


# --- COURSES & ENROLMENT ---

def list_courses(db: Session, *, grade: str | None = None) -> list[Course]:
    query = db.query(Course).order_by(Course.seq)
    if grade:
        query = query.filter(Course.grade == grade)
    return query.all()


def get_course(db: Session, course_id: str) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return course


def enroll_in_course(db: Session, *, student: User, course_id: str, ip: str) -> Enrollment:
    with _enrollment_lock:
        course = get_course(db, course_id)
        existing = (
            db.query(Enrollment)
            .filter(Enrollment.student_id == student.id, Enrollment.course_id == course_id)
            .first()
        )
        if existing:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already enrolled")

        enrolled_count = (
            db.query(Enrollment)
            .filter(Enrollment.course_id == course_id, Enrollment.status == EnrollmentStatus.ENROLLED.value)
            .count()
        )
        decision = EnrollmentStatus.ENROLLED if enrolled_count < course.capacity else EnrollmentStatus.WAITLIST

        enrollment = Enrollment(
            id=_new_id("enroll"),
            student_id=student.id,
            course_id=course_id,
            status=decision.value,
            enrolled_at=utcnow(),
        )
        db.add(enrollment)
        record_audit(
            db,
            actor_id=student.id,
            action="course_enrollment",
            resource="/api/enroll",
            ip=ip,
            details={"courseId": course_id, "courseName": course.name, "enrollmentStatus": decision.value},
        )
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already enrolled") from exc

    logger.info(f"{student.id} -> {course_id}: {decision.value} ({enrolled_count}/{course.capacity})")
    db.refresh(enrollment)
    return enrollment


# --- ATTENDANCE ---

def list_attendance(
    db: Session,
    *,
    user: User,
    person_type: str | None = None,
    day: date | None = None,
) -> list[AttendanceRecord]:
    query = db.query(AttendanceRecord).order_by(AttendanceRecord.seq)
    if Role.STUDENT.value in user.roles:
        query = query.filter(AttendanceRecord.person_id == user.id)
    if person_type:
        query = query.filter(AttendanceRecord.person_type == person_type)
    if day:
        query = query.filter(AttendanceRecord.date == day)
    return query.all()


def mark_attendance(db: Session, *, marker: User, marks: list[AttendanceMark], ip: str) -> list[AttendanceRecord]:
    marked_at = utcnow()
    records = [
        AttendanceRecord(
            id=_new_id("att"),
            date=mark.date,
            person_type=mark.person_type,
            person_id=mark.person_id,
            status=mark.status,
            reason=mark.reason,
            lesson_id=mark.lesson_id,
            lesson_name=mark.lesson_name,
            marked_by=marker.id,
            marked_at=marked_at,
        )
        for mark in marks
    ]
    db.add_all(records)
    record_audit(
        db,
        actor_id=marker.id,
        action="mark_attendance",
        resource="/api/attendance/mark",
        ip=ip,
        details={"studentsMarked": len(records), "lessonId": records[0].lesson_id if records else None},
    )
    db.commit()
    for record in records:
        db.refresh(record)
    return records


# --- LEAVE ---

def list_leaves(db: Session, *, user: User, leave_status: str | None = None) -> list[LeaveRequest]:
    query = db.query(LeaveRequest).order_by(LeaveRequest.seq.desc())
    if leave_status:
        query = query.filter(LeaveRequest.status == leave_status)
    leaves = query.all()

    if Role.STUDENT.value in user.roles:
        return [leave for leave in leaves if leave.applicant_id == user.id]
    if Role.TEACHER.value in user.roles or Role.HOD.value in user.roles:
        return [
            leave
            for leave in leaves
            if leave.applicant_id == user.id
            or leave.approver_id == user.id
            or leave.status == LeaveStatus.PENDING.value
        ]
    return leaves


def get_leave(db: Session, leave_id: str) -> LeaveRequest:
    leave = db.query(LeaveRequest).filter(LeaveRequest.id == leave_id).first()
    if not leave:
        raise HTTPException(status_code=404, detail="Leave request not found")
    return leave


def submit_leave(db: Session, *, applicant: User, payload: LeaveCreateRequest, ip: str) -> LeaveRequest:
    attachments: list[dict[str, Any]] = [
        {"id": item.id or _new_id("file"), "name": item.name, "url": item.url} for item in payload.attachments
    ]
    applicant_role = Role.STUDENT.value if Role.STUDENT.value in applicant.roles else Role.TEACHER.value
    leave = LeaveRequest(
        id=_new_id("leave"),
        applicant_id=applicant.id,
        applicant_role=applicant_role,
        type=payload.type,
        start=payload.start,
        end=payload.end,
        reason=payload.reason,
        status=LeaveStatus.PENDING.value,
        attachments=attachments,
    )
    db.add(leave)

    days = math.ceil((payload.end - payload.start) / timedelta(days=1))
    record_audit(
        db,
        actor_id=applicant.id,
        action="submit_leave",
        resource="/api/leaves",
        ip=ip,
        details={"leaveType": leave.type, "duration": f"{days} days"},
    )
    db.commit()
    db.refresh(leave)
    return leave


def decide_leave(
    db: Session,
    *,
    approver: User,
    leave_id: str,
    action: str,
    comment: str | None,
    ip: str,
) -> LeaveRequest:
    with _leave_decision_lock:
        leave = get_leave(db, leave_id)
        if leave.status != LeaveStatus.PENDING.value:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Leave request already {leave.status}")

        leave.status = LeaveStatus.APPROVED.value if action == "approve" else LeaveStatus.REJECTED.value
        leave.approver_id = approver.id
        leave.decided_at = utcnow()
        leave.approver_comment = comment

        record_audit(
            db,
            actor_id=approver.id,
            action=f"{action}_leave",
            resource=f"/api/leaves/{leave_id}/{action}",
            ip=ip,
            details={"leaveId": leave_id, "applicantId": leave.applicant_id},
        )
        db.commit()

    db.refresh(leave)
    logger.info(f"Leave {leave_id} {leave.status} by {approver.id}")
    return leave


# --- REPORTS & ADMIN ---

def list_kpis(db: Session, *, viewer: User, range_name: str, ip: str, today: date | None = None) -> list[KPISnapshot]:
    query = db.query(KPISnapshot).order_by(KPISnapshot.date)
    window = KPI_RANGES.get(range_name)
    if window is not None:
        since = (today or utcnow().date()) - timedelta(days=window)
        query = query.filter(KPISnapshot.date >= since)
    snapshots = query.all()

    record_audit(db, actor_id=viewer.id, action="view_reports", resource="/api/kpi", ip=ip, details={"range": range_name})
    db.commit()
    return snapshots


def list_users(db: Session) -> list[User]:
    return _all_users(db)


def record_identity_action(db: Session, *, actor: User, action: str, user_id: str, provider: str, ip: str) -> None:
    """Audit an identity bind/unbind request; linked identities are left as they are."""
    target = db.query(User).filter(User.id == user_id).first()
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    record_audit(
        db,
        actor_id=actor.id,
        action="identity_binding",
        resource=f"/api/admin/identity/{action}",
        ip=ip,
        details={"userId": user_id, "provider": provider, "action": action},
    )
    db.commit()
