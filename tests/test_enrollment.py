import threading

from schoolhub.models import User
from schoolhub.services import enroll_in_course


BEN = "ben.koh@students.schoolhub.local"
CHLOE = "chloe.ng@students.schoolhub.local"


def enroll(client, course_id):
    return client.post("/api/enroll", json={"courseId": course_id})


def test_course_list_and_grade_filter(client):
    courses = client.get("/api/courses").json()
    assert [c["id"] for c in courses] == ["course-1", "course-2", "course-3", "course-4", "course-5"]

    sec4 = client.get("/api/courses", params={"grade": "Sec 4"}).json()
    assert [c["id"] for c in sec4] == ["course-3"]


def test_course_detail(client):
    course = client.get("/api/courses/course-1").json()
    assert course["teacherId"] == "user-2"
    assert course["enrolled"] == 2
    assert course["chapters"][0]["resources"][0]["type"] == "video"

    assert client.get("/api/courses/course-404").status_code == 404


def test_last_seat_then_waitlist(client, login_as, login_with_password):
    login_as("Student")
    first = enroll(client, "course-5")
    assert first.status_code == 200
    assert first.json()["status"] == "enrolled"
    assert first.json()["studentId"] == "user-1"

    login_with_password(BEN)
    second = enroll(client, "course-5")
    assert second.status_code == 200
    assert second.json()["status"] == "waitlist"

    login_with_password(CHLOE)
    assert enroll(client, "course-5").json()["status"] == "waitlist"

    # Waitlisted rows never count towards the seat total.
    assert client.get("/api/courses/course-5").json()["enrolled"] == 1


def test_full_course_waitlists_new_students(client, login_as):
    login_as("Student")
    assert client.get("/api/courses/course-4").json()["enrolled"] == 2
    assert enroll(client, "course-4").json()["status"] == "waitlist"


def test_enrolled_count_follows_enrollments(client, login_as):
    login_as("Student")
    enroll(client, "course-2")
    assert client.get("/api/courses/course-2").json()["enrolled"] == 1


def test_duplicate_enrollment_is_a_conflict(client, login_as):
    login_as("Student")
    assert enroll(client, "course-1").status_code == 409

    assert enroll(client, "course-3").status_code == 200
    response = enroll(client, "course-3")
    assert response.status_code == 409
    assert response.json()["detail"] == "Already enrolled"


def test_unknown_course(client, login_as):
    login_as("Student")
    assert enroll(client, "course-404").status_code == 404


def test_teacher_cannot_enroll(client, login_as):
    login_as("Teacher")
    assert enroll(client, "course-2").status_code == 403


def test_enrollment_is_audited(client, login_as):
    login_as("Student")
    enroll(client, "course-5")

    login_as("Admin")
    entry = client.get("/api/audits", params={"search": "course_enrollment"}).json()[0]
    assert entry["actorName"] == "Alice Tan"
    assert entry["details"] == {
        "courseId": "course-5",
        "courseName": "Chinese Calligraphy",
        "enrollmentStatus": "enrolled",
    }


def test_concurrent_requests_cannot_share_last_seat(app):
    start, finish = threading.Barrier(2), threading.Barrier(2)
    statuses = {}

    def attempt(student_id):
        db = app.state.session_factory()
        try:
            student = db.query(User).filter(User.id == student_id).one()
            start.wait(timeout=5)
            statuses[student_id] = enroll_in_course(db, student=student, course_id="course-5", ip="127.0.0.1").status
            finish.wait(timeout=5)
        finally:
            db.close()

    threads = [threading.Thread(target=attempt, args=(student_id,)) for student_id in ("user-1", "user-7")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(statuses.values()) == ["enrolled", "waitlist"]
