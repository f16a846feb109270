from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session

from .audit import search_audits
from .config import Settings
from .database import get_db_session
from .middleware import (
    client_address,
    get_session_state,
    get_settings,
    read_bearer_claims,
    require_permission,
    require_user,
)
from .models import User
from .permissions import ADMIN_WILDCARD
from .schemas import (
    AttendanceMarkRequest,
    AttendanceOut,
    AuditLogOut,
    CourseOut,
    EnrollmentOut,
    EnrollRequest,
    HealthResponse,
    IdentityActionRequest,
    KPIOut,
    LeaveCreateRequest,
    LeaveDecisionRequest,
    LeaveOut,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageCreateRequest,
    MessageOut,
    SuccessResponse,
    UserOut,
)
from .services import (
    decide_leave,
    enroll_in_course,
    get_course,
    list_attendance,
    list_courses,
    list_kpis,
    list_leaves,
    list_messages,
    list_users,
    login_user,
    logout_user,
    mark_attendance,
    mark_message_read,
    record_identity_action,
    send_message,
    submit_leave,
)
from .session import SessionState

router = APIRouter(prefix="/api", tags=["SchoolHub"])


@router.get("/health", response_model=HealthResponse)
def health(db: Session = Depends(get_db_session)):
    return HealthResponse(status="ok", users=db.query(User).count())


# --- AUTH ---

@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    session_state: SessionState = Depends(get_session_state),
):
    user, permissions, token = login_user(
        db,
        settings,
        session_state,
        provider=payload.provider,
        role_override=payload.role_override,
        email=payload.email,
        password=payload.password,
        ip=client_address(request),
    )
    return LoginResponse(user=UserOut.model_validate(user), permissions=permissions, token=token)


@router.post("/logout", response_model=SuccessResponse)
def logout(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
    session_state: SessionState = Depends(get_session_state),
):
    logout_user(
        db,
        session_state,
        ip=client_address(request),
        bearer_claims=read_bearer_claims(request, authorization),
    )
    return SuccessResponse()


@router.get("/me", response_model=MeResponse)
def me(
    db: Session = Depends(get_db_session),
    session_state: SessionState = Depends(get_session_state),
):
    user = db.query(User).filter(User.id == session_state.user_id).first() if session_state.user_id else None
    if user is None:
        raise HTTPException(status_code=401, detail="Not logged in")
    return MeResponse(user=UserOut.model_validate(user))


# --- MESSAGES ---

@router.get("/messages", response_model=list[MessageOut])
def get_messages(
    type: Literal["inbox", "sent"] | None = Query(default=None),
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("messages:read")),
):
    return [MessageOut.model_validate(m) for m in list_messages(db, user=current_user, box=type)]


@router.post("/messages", response_model=MessageOut)
def post_message(
    payload: MessageCreateRequest,
    request: Request,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("messages:write")),
):
    message = send_message(
        db,
        sender=current_user,
        title=payload.title,
        body=payload.body,
        recipients=payload.recipients,
        message_type=payload.type,
        ip=client_address(request),
    )
    return MessageOut.model_validate(message)


@router.patch("/messages/{message_id}/read", response_model=SuccessResponse)
def read_message(
    message_id: str,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_user),
):
    mark_message_read(db, user=current_user, message_id=message_id)
    return SuccessResponse()


# --- COURSES & ENROLMENT ---

@router.get("/courses", response_model=list[CourseOut])
def get_courses(grade: str | None = None, db: Session = Depends(get_db_session)):
    return [CourseOut.model_validate(c) for c in list_courses(db, grade=grade)]


@router.get("/courses/{course_id}", response_model=CourseOut)
def get_course_detail(course_id: str, db: Session = Depends(get_db_session)):
    return CourseOut.model_validate(get_course(db, course_id))


@router.post("/enroll", response_model=EnrollmentOut)
def enroll(
    payload: EnrollRequest,
    request: Request,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("course:enroll", signed_in=True)),
):
    enrollment = enroll_in_course(db, student=current_user, course_id=payload.course_id, ip=client_address(request))
    return EnrollmentOut.model_validate(enrollment)


# --- ATTENDANCE ---

@router.get("/attendance", response_model=list[AttendanceOut])
def get_attendance(
    role: str | None = None,
    date: date | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("attendance:read")),
):
    records = list_attendance(db, user=current_user, person_type=role, day=date)
    return [AttendanceOut.model_validate(r) for r in records]


@router.post("/attendance/mark", response_model=list[AttendanceOut])
def post_attendance(
    payload: AttendanceMarkRequest,
    request: Request,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("attendance:mark", signed_in=True)),
):
    records = mark_attendance(db, marker=current_user, marks=payload.records, ip=client_address(request))
    return [AttendanceOut.model_validate(r) for r in records]


# --- LEAVE ---

@router.get("/leaves", response_model=list[LeaveOut])
def get_leaves(
    status: Literal["pending", "approved", "rejected"] | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_user),
):
    return [LeaveOut.model_validate(leave) for leave in list_leaves(db, user=current_user, leave_status=status)]


@router.post("/leaves", response_model=LeaveOut)
def post_leave(
    payload: LeaveCreateRequest,
    request: Request,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("leave:submit", signed_in=True)),
):
    leave = submit_leave(db, applicant=current_user, payload=payload, ip=client_address(request))
    return LeaveOut.model_validate(leave)


@router.post("/leaves/{leave_id}/{action}", response_model=LeaveOut)
def post_leave_decision(
    leave_id: str,
    action: Literal["approve", "reject"],
    request: Request,
    payload: LeaveDecisionRequest | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("leave:approve", signed_in=True)),
):
    leave = decide_leave(
        db,
        approver=current_user,
        leave_id=leave_id,
        action=action,
        comment=payload.comment if payload else None,
        ip=client_address(request),
    )
    return LeaveOut.model_validate(leave)


# --- REPORTS & ADMIN ---

@router.get("/kpi", response_model=list[KPIOut])
def get_kpis(
    request: Request,
    range: Literal["week", "month", "all"] = "week",
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission("kpi:view", signed_in=True)),
):
    snapshots = list_kpis(db, viewer=current_user, range_name=range, ip=client_address(request))
    return [KPIOut.model_validate(s) for s in snapshots]


@router.get("/audits", response_model=list[AuditLogOut])
def get_audits(
    search: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db_session),
    _: User = Depends(require_permission(ADMIN_WILDCARD, signed_in=True)),
):
    return [AuditLogOut.model_validate(a) for a in search_audits(db, search=search, limit=limit)]


@router.get("/users", response_model=list[UserOut])
def get_users(
    db: Session = Depends(get_db_session),
    _: User = Depends(require_permission(ADMIN_WILDCARD, signed_in=True)),
):
    return [UserOut.model_validate(u) for u in list_users(db)]


@router.post("/admin/identity/{action}", response_model=SuccessResponse)
def identity_action(
    action: Literal["bind", "unbind"],
    payload: IdentityActionRequest,
    request: Request,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_permission(ADMIN_WILDCARD, signed_in=True)),
):
    record_identity_action(
        db,
        actor=current_user,
        action=action,
        user_id=payload.user_id,
        provider=payload.provider,
        ip=client_address(request),
    )
    return SuccessResponse()
