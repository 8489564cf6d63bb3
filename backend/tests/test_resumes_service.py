from __future__ import annotations

import pytest

from app.models.application import Application
from app.models.resume import Resume
from app.models.resume_access_log import ResumeAccessLog
from app.models.resume_share import ResumeShare
from app.models.resume_stats import ResumeStats
from app.services.errors import Forbidden, InvalidInput, NotFound, ScanNotClean
from app.services.resume_stats import recompute_resume_stats
from app.services.resumes import (
    create_resume_record,
    delete_resume,
    discover_public_resumes,
    list_owner_resumes,
    record_scan_result,
    set_primary,
    set_visibility,
)
from app.services.signed_links import issue_link
from app.services.storage import build_resume_key


def _primaries(db, owner_id):
    return db.query(Resume).filter(Resume.owner_id == owner_id, Resume.is_primary.is_(True)).all()


def test_set_primary_moves_the_flag(db_session, people, make_resume):
    first = make_resume(people.student, is_primary=True)
    second = make_resume(people.student)

    set_primary(db_session, second.id, people.student.id)

    primaries = _primaries(db_session, people.student.id)
    assert [r.id for r in primaries] == [second.id]
    db_session.refresh(first)
    assert first.is_primary is False


def test_primary_is_per_owner(db_session, people, make_resume):
    mine = make_resume(people.student, is_primary=True)
    theirs = make_resume(people.other_student)

    set_primary(db_session, theirs.id, people.other_student.id)

    db_session.refresh(mine)
    assert mine.is_primary is True
    assert len(_primaries(db_session, people.other_student.id)) == 1


def test_new_primary_upload_clears_previous_primary(db_session, people, make_resume, fake_s3):
    old = make_resume(people.student, is_primary=True)
    key = build_resume_key(people.student.id)
    fake_s3.put(key)

    new = create_resume_record(
        db_session,
        owner_id=people.student.id,
        object_key=key,
        filename="new.pdf",
        size_bytes=100,
        mime_type="application/pdf",
        is_primary=True,
    )
    db_session.commit()

    assert [r.id for r in _primaries(db_session, people.student.id)] == [new.id]
    db_session.refresh(old)
    assert old.is_primary is False


def test_list_puts_primary_first(db_session, people, make_resume):
    make_resume(people.student, file_name="a.pdf")
    primary = make_resume(people.student, file_name="b.pdf", is_primary=True)
    make_resume(people.other_student)

    listed = list_owner_resumes(db_session, people.student.id)

    assert len(listed) == 2
    assert listed[0].id == primary.id


def test_record_for_foreign_key_is_refused_without_deleting(db_session, people, fake_s3):
    key = build_resume_key(people.other_student.id)
    fake_s3.put(key)

    with pytest.raises(InvalidInput):
        create_resume_record(
            db_session,
            owner_id=people.student.id,
            object_key=key,
            filename="cv.pdf",
            size_bytes=100,
            mime_type="application/pdf",
        )

    assert key not in fake_s3.deleted


def test_set_visibility_validates_value(db_session, people, make_resume):
    resume = make_resume(people.student)

    assert set_visibility(db_session, resume.id, people.student.id, "PUBLIC").visibility == "public"
    with pytest.raises(InvalidInput):
        set_visibility(db_session, resume.id, people.student.id, "everyone")


def test_rejected_resume_cannot_be_published(db_session, people, make_resume):
    resume = make_resume(people.student, scan_status="rejected")

    with pytest.raises(ScanNotClean):
        set_visibility(db_session, resume.id, people.student.id, "public")


def test_other_users_resume_looks_missing(db_session, people, make_resume):
    resume = make_resume(people.student)

    with pytest.raises(NotFound):
        set_visibility(db_session, resume.id, people.other_student.id, "public")
    with pytest.raises(NotFound):
        delete_resume(db_session, resume.id, people.other_student.id)


def test_delete_removes_dependents_and_stored_object(db_session, people, make_resume, make_application, fake_s3):
    resume = make_resume(people.student, visibility="public")
    application = make_application(people.acme, people.student, resume)
    db_session.add(
        ResumeShare(
            resume_id=resume.id,
            owner_id=resume.owner_id,
            company_id=people.globex.id,
            access_level="view",
            source="manual",
        )
    )
    db_session.commit()
    issue_link(db_session, resume.id, people.acme_actor, "view")
    recompute_resume_stats(db_session, resume.id)
    resume_id, key = resume.id, resume.object_key

    delete_resume(db_session, resume_id, people.student.id)

    assert db_session.get(Resume, resume_id) is None
    assert db_session.query(ResumeShare).filter(ResumeShare.resume_id == resume_id).count() == 0
    assert db_session.query(ResumeAccessLog).filter(ResumeAccessLog.resume_id == resume_id).count() == 0
    assert db_session.query(ResumeStats).filter(ResumeStats.resume_id == resume_id).count() == 0
    db_session.refresh(application)
    assert application.resume_id is None
    assert key in fake_s3.deleted


def test_delete_survives_storage_failure(db_session, people, make_resume, fake_s3):
    resume = make_resume(people.student)
    resume_id = resume.id
    fake_s3.fail = True

    delete_resume(db_session, resume_id, people.student.id)

    assert db_session.get(Resume, resume_id) is None


def test_clean_verdict_is_sticky(db_session, people, make_resume):
    resume = make_resume(people.student, scan_status="pending")

    assert record_scan_result(db_session, resume.id, "CLEAN", message="ok").scan_status == "clean"
    # Redelivered / conflicting callbacks don't flip a final verdict.
    assert record_scan_result(db_session, resume.id, "infected").scan_status == "clean"


def test_rejected_verdict_removes_stored_object(db_session, people, make_resume, fake_s3):
    resume = make_resume(people.student, scan_status="pending")

    updated = record_scan_result(db_session, resume.id, "infected", message="EICAR")

    assert updated.scan_status == "rejected"
    assert updated.scan_message == "EICAR"
    assert updated.scan_checked_at is not None
    assert resume.object_key in fake_s3.deleted


def test_scan_error_leaves_resume_pending(db_session, people, make_resume):
    resume = make_resume(people.student, scan_status="pending")

    assert record_scan_result(db_session, resume.id, "error", message="timeout").scan_status == "pending"
    assert record_scan_result(db_session, resume.id, "clean").scan_status == "clean"


def test_unknown_verdict_is_invalid(db_session, people, make_resume):
    resume = make_resume(people.student, scan_status="pending")

    with pytest.raises(InvalidInput):
        record_scan_result(db_session, resume.id, "maybe")
    with pytest.raises(NotFound):
        record_scan_result(db_session, 999_999, "clean")


def test_discover_lists_only_public_clean_resumes(db_session, people, make_resume):
    listed = [make_resume(people.student, visibility="public") for _ in range(2)]
    listed.append(make_resume(people.other_student, visibility="public"))
    make_resume(people.student, visibility="public", scan_status="pending")
    make_resume(people.student, visibility="private")
    make_resume(people.other_student, visibility="restricted")

    first = discover_public_resumes(db_session, people.acme_actor, page=1, limit=2)
    second = discover_public_resumes(db_session, people.acme_actor, page=2, limit=2)

    assert first.total == 3
    assert len(first.items) == 2
    assert len(second.items) == 1
    seen = {r.id for r in first.items} | {r.id for r in second.items}
    assert seen == {r.id for r in listed}


def test_discover_is_for_companies_only(db_session, people):
    with pytest.raises(Forbidden) as exc:
        discover_public_resumes(db_session, people.student_actor)

    assert exc.value.reason == "company_required"
