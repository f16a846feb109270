from datetime import date, timedelta

from schoolhub.models import KPISnapshot, User
from schoolhub.services import list_kpis


def add_snapshot(app, day):
    db = app.state.session_factory()
    try:
        db.add(
            KPISnapshot(
                date=day,
                attendance_rate=0.95,
                leave_rate=0.02,
                enroll_count=430,
                dau=300,
                wau=700,
                avg_approval_hours=5.0,
                error_rate=0.001,
            )
        )
        db.commit()
    finally:
        db.close()


def test_kpi_requires_permission(client, login_as):
    login_as("Teacher")
    assert client.get("/api/kpi").status_code == 403


def test_all_range_returns_every_snapshot(client, login_as):
    login_as("Principal")
    snapshots = client.get("/api/kpi", params={"range": "all"}).json()
    assert [s["date"] for s in snapshots] == ["2025-03-01", "2025-03-02", "2025-03-03", "2025-03-04", "2025-03-05"]
    assert snapshots[0]["attendanceRate"] == 0.962
    assert snapshots[0]["avgApprovalHours"] == 6.4


def test_week_range_only_returns_recent_snapshots(app, client, login_as):
    today = date.today()
    add_snapshot(app, today - timedelta(days=2))
    add_snapshot(app, today - timedelta(days=20))

    login_as("HOD")
    week = client.get("/api/kpi").json()
    assert [s["date"] for s in week] == [(today - timedelta(days=2)).isoformat()]

    month = client.get("/api/kpi", params={"range": "month"}).json()
    assert len(month) == 2


def test_kpi_view_is_audited(client, login_as):
    login_as("Admin")
    client.get("/api/kpi", params={"range": "month"})

    entry = client.get("/api/audits").json()[0]
    assert entry["action"] == "view_reports"
    assert entry["details"] == {"range": "month"}


def test_kpi_window_is_anchored_on_today(app):
    db = app.state.session_factory()
    try:
        viewer = db.query(User).filter(User.id == "user-4").one()
        snapshots = list_kpis(db, viewer=viewer, range_name="week", ip="127.0.0.1", today=date(2025, 3, 6))
        assert [s.date for s in snapshots] == [date(2025, 3, d) for d in range(1, 6)]

        snapshots = list_kpis(db, viewer=viewer, range_name="week", ip="127.0.0.1", today=date(2025, 3, 10))
        assert [s.date for s in snapshots] == [date(2025, 3, 3), date(2025, 3, 4), date(2025, 3, 5)]
    finally:
        db.close()
