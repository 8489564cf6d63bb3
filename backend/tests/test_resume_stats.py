from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.models.resume_access_log import ResumeAccessLog
from app.services.errors import InvalidInput
from app.services.resume_stats import (
    aggregate_logs,
    cleanup_logs_older_than,
    company_access_analytics,
    get_cached_stats,
    owner_stats_summary,
    recompute_resume_stats,
)

T0 = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


def _log(resume_id, company_id, access_type, at):
    return ResumeAccessLog(
        resume_id=resume_id,
        company_id=company_id,
        access_type=access_type,
        accessed_at=at,
        signed_url_hash="0" * 64,
    )


def _add_logs(db, resume, entries):
    db.add_all([_log(resume.id, company_id, access_type, at) for company_id, access_type, at in entries])
    db.commit()


def _snapshot(stats):
    return {
        "total_views": stats.total_views,
        "total_downloads": stats.total_downloads,
        "unique_company_views": stats.unique_company_views,
        "unique_company_downloads": stats.unique_company_downloads,
        "last_viewed_at": stats.last_viewed_at,
        "last_downloaded_at": stats.last_downloaded_at,
        "viewers": stats.viewers,
        "computed_at": stats.computed_at,
    }


def test_aggregate_is_order_independent():
    logs = [
        _log(1, 7, "view", T0),
        _log(1, 3, "download", T0 + timedelta(minutes=5)),
        _log(1, 7, "view", T0 + timedelta(minutes=9)),
        _log(1, 3, "view", T0 + timedelta(minutes=2)),
    ]

    forward = aggregate_logs(logs)
    backward = aggregate_logs(list(reversed(logs)))

    assert forward == backward
    assert forward.total_views == 3
    assert forward.total_downloads == 1
    assert forward.unique_company_views == 2
    assert forward.unique_company_downloads == 1
    assert forward.last_viewed_at == T0 + timedelta(minutes=9)
    assert forward.last_downloaded_at == T0 + timedelta(minutes=5)
    assert [v["company_id"] for v in forward.viewers] == [3, 7]
    assert forward.viewers[0] == {
        "company_id": 3,
        "view_count": 1,
        "download_count": 1,
        "last_accessed_at": (T0 + timedelta(minutes=5)).isoformat(),
    }


def test_aggregate_of_nothing_is_all_zero():
    agg = aggregate_logs([])

    assert agg.total_views == 0
    assert agg.unique_company_views == 0
    assert agg.last_viewed_at is None
    assert agg.viewers == []


def test_recompute_is_idempotent(db_session, people, make_resume):
    resume = make_resume(people.student, visibility="public")
    _add_logs(
        db_session,
        resume,
        [
            (people.acme.id, "view", T0),
            (people.acme.id, "download", T0 + timedelta(minutes=1)),
            (people.globex.id, "view", T0 + timedelta(minutes=2)),
        ],
    )

    first = _snapshot(recompute_resume_stats(db_session, resume.id, now=T0 + timedelta(hours=1)))
    second = _snapshot(recompute_resume_stats(db_session, resume.id, now=T0 + timedelta(hours=2)))

    assert first == second
    assert first["total_views"] == 2
    assert first["total_downloads"] == 1
    assert first["unique_company_views"] == 2
    assert first["unique_company_downloads"] == 1


def test_recompute_replaces_aggregate_when_log_grows(db_session, people, make_resume):
    resume = make_resume(people.student, visibility="public")
    _add_logs(db_session, resume, [(people.acme.id, "view", T0)])
    before = _snapshot(recompute_resume_stats(db_session, resume.id, now=T0 + timedelta(hours=1)))

    _add_logs(db_session, resume, [(people.globex.id, "download", T0 + timedelta(minutes=30))])
    after = recompute_resume_stats(db_session, resume.id, now=T0 + timedelta(hours=2))

    assert after.total_views == 1
    assert after.total_downloads == 1
    assert [v["company_id"] for v in after.viewers] == sorted([people.acme.id, people.globex.id])
    assert after.computed_at != before["computed_at"]


def test_recompute_for_deleted_resume_is_a_no_op(db_session):
    assert recompute_resume_stats(db_session, 424242) is None


def test_cached_stats_are_absent_until_first_recompute(db_session, people, make_resume):
    resume = make_resume(people.student)

    assert get_cached_stats(db_session, resume.id) is None
    recompute_resume_stats(db_session, resume.id)
    cached = get_cached_stats(db_session, resume.id)
    assert cached is not None
    assert cached.total_views == 0


def test_owner_summary_rolls_up_every_resume(db_session, people, make_resume):
    cv = make_resume(people.student, file_name="cv.pdf")
    portfolio = make_resume(people.student, file_name="portfolio.pdf")
    make_resume(people.other_student)
    _add_logs(db_session, cv, [(people.acme.id, "view", T0), (people.acme.id, "view", T0 + timedelta(minutes=1))])
    _add_logs(db_session, portfolio, [(people.globex.id, "download", T0)])

    summary = owner_stats_summary(db_session, people.student.id)

    assert summary["total_views"] == 2
    assert summary["total_downloads"] == 1
    by_id = {row["resume_id"]: row for row in summary["resumes"]}
    assert by_id[cv.id]["views"] == 2
    assert by_id[portfolio.id]["downloads"] == 1
    assert {c["company_id"] for c in summary["companies"]} == {people.acme.id, people.globex.id}


def test_owner_summary_without_resumes(db_session, people):
    summary = owner_stats_summary(db_session, people.student.id)

    assert summary == {"resumes": [], "total_views": 0, "total_downloads": 0, "companies": []}


def test_company_analytics_only_shows_own_accesses(db_session, people, make_resume):
    first = make_resume(people.student, visibility="public", file_name="first.pdf")
    second = make_resume(people.other_student, visibility="public", file_name="second.pdf")
    _add_logs(db_session, first, [(people.acme.id, "view", T0), (people.acme.id, "download", T0 + timedelta(days=2))])
    _add_logs(db_session, second, [(people.acme.id, "view", T0 + timedelta(days=5))])
    _add_logs(db_session, first, [(people.globex.id, "view", T0)])

    everything = company_access_analytics(db_session, people.acme.id)
    assert everything["total_logs"] == 3
    entry = next(a for a in everything["analytics"] if a["resume_id"] == first.id)
    assert entry["views"] == 1
    assert entry["downloads"] == 1
    assert entry["file_name"] == "first.pdf"

    windowed = company_access_analytics(
        db_session,
        people.acme.id,
        start=T0 + timedelta(days=1),
        end=T0 + timedelta(days=3),
    )
    assert windowed["total_logs"] == 1

    single = company_access_analytics(db_session, people.acme.id, resume_id=second.id)
    assert [a["resume_id"] for a in single["analytics"]] == [second.id]


def test_company_analytics_rejects_inverted_range(db_session, people):
    with pytest.raises(InvalidInput):
        company_access_analytics(db_session, people.acme.id, start=T0, end=T0 - timedelta(days=1))


def test_cleanup_purges_only_old_logs(db_session, people, make_resume):
    now = T0 + timedelta(days=120)
    old = make_resume(people.student, visibility="public")
    recent = make_resume(people.other_student, visibility="public")
    _add_logs(db_session, old, [(people.acme.id, "view", T0), (people.globex.id, "view", T0)])
    _add_logs(db_session, recent, [(people.acme.id, "view", now - timedelta(days=1))])

    deleted, affected = cleanup_logs_older_than(db_session, timedelta(days=90), now=now)

    assert deleted == 2
    assert affected == [old.id]
    assert db_session.query(ResumeAccessLog).count() == 1

    with pytest.raises(InvalidInput):
        cleanup_logs_older_than(db_session, timedelta(0), now=now)
