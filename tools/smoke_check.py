"""Walk through a demo session against a running SchoolHub server."""

import json
import os

import requests

BASE_URL = os.getenv("SCHOOLHUB_URL", "http://127.0.0.1:8000/api")


def show(label, response):
    print(f"{label}: {response.status_code}")
    if response.headers.get("content-type", "").startswith("application/json"):
        print(json.dumps(response.json(), indent=2)[:800])


def run_checks():
    session = requests.Session()
    try:
        show("Health", session.get(f"{BASE_URL}/health", timeout=10))

        login = session.post(f"{BASE_URL}/login", json={"provider": "Google", "roleOverride": "Student"}, timeout=10)
        show("Login as Student", login)
        show("Enroll in course-5", session.post(f"{BASE_URL}/enroll", json={"courseId": "course-5"}, timeout=10))
        # Forbidden for students
        show("Audit log as Student", session.get(f"{BASE_URL}/audits", timeout=10))

        admin = session.post(f"{BASE_URL}/login", json={"provider": "Google", "roleOverride": "Admin"}, timeout=10)
        token = admin.json()["token"]
        show("Audit log as Admin", session.get(f"{BASE_URL}/audits", params={"limit": 5}, timeout=10))
        show("Logout", session.post(f"{BASE_URL}/logout", timeout=10))
        show(
            "Users with the revoked admin token",
            session.get(f"{BASE_URL}/users", headers={"Authorization": f"Bearer {token}"}, timeout=10),
        )
    except requests.exceptions.ConnectionError:
        print(f"Cannot connect to {BASE_URL}. Start the server with `python -m schoolhub.main`.")


if __name__ == "__main__":
    run_checks()
