from __future__ import annotations

from app.core.security import create_access_token


def _bearer(subject: str, role: str, **kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject, role, **kwargs)}"}


def test_missing_bearer_token(anon_client):
    res = anon_client.get("/resumes")

    assert res.status_code == 401
    assert res.json()["error"] == "UNAUTHORIZED"
    assert res.headers["WWW-Authenticate"] == "Bearer"


def test_garbage_and_expired_tokens(anon_client, people):
    garbage = anon_client.get("/resumes", headers={"Authorization": "Bearer not-a-jwt"})
    expired = anon_client.get("/resumes", headers=_bearer("sub-student", "student", expires_in_seconds=-30))

    assert garbage.status_code == 401
    assert expired.status_code == 401


def test_unknown_subject(anon_client, people):
    res = anon_client.get("/resumes", headers=_bearer("sub-nobody", "student"))

    assert res.status_code == 401
    assert res.json()["message"] == "User not found"


def test_inactive_user(anon_client, db_session, people):
    people.student.is_active = False
    db_session.commit()

    res = anon_client.get("/resumes", headers=_bearer("sub-student", "student"))

    assert res.status_code == 401


def test_token_cannot_claim_a_different_role(anon_client, people):
    res = anon_client.get("/company/resumes/discover", headers=_bearer("sub-student", "company"))

    assert res.status_code == 401


def test_student_token_maps_to_student_actor(anon_client, people, make_resume):
    resume = make_resume(people.student)

    res = anon_client.get("/resumes", headers=_bearer("sub-student", "student"))

    assert res.status_code == 200
    assert [r["id"] for r in res.json()] == [resume.id]


def test_company_token_resolves_company(anon_client, people, make_resume):
    make_resume(people.student, visibility="public")

    # Discovery is only open to actors that resolved to a company.
    res = anon_client.get("/company/resumes/discover", headers=_bearer("sub-acme", "company"))

    assert res.status_code == 200
    assert res.json()["total"] == 1


def test_role_claim_is_optional(anon_client, people):
    from jose import jwt

    from app.core.config import settings

    token = jwt.encode({"sub": "sub-admin", "exp": 4102444800}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    res = anon_client.post(
        "/admin/resume-access-logs/cleanup",
        headers={"Authorization": f"Bearer {token}"},
    )

    assert res.status_code == 200
