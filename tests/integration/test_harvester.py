from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import OperationalError

from talentscore.core.harvester import ResultHarvester, round_half_up
from talentscore.db.repositories import Repository

CRITERIA = [
    {"label": "Best Paper Award", "rating": "strong", "score": 90},
    {"label": "Judging panels", "rating": "moderate", "score": 55},
    {"label": "High Salary", "rating": "weak", "score": 12},
]


def _harvester(db, fake_client, settings, observer, sleeper=None, clock=None) -> ResultHarvester:
    return ResultHarvester(
        Repository(db),
        fake_client,
        settings=settings,
        observer=observer,
        sleep=sleeper or (lambda _seconds: None),
        clock=clock,
    )


def _pending(db, session_id: str = "sess-1", *, age: timedelta = timedelta(minutes=5)):
    repo = Repository(db)
    talent = repo.create_talent("Grace", "Hopper")
    job = repo.create_job(talent_id=talent.id, session_id=session_id, created_at=datetime.now(UTC) - age)
    return repo, talent, job


def test_completed_session_updates_job_and_profile(db, fake_client, settings, observer) -> None:
    repo, talent, job = _pending(db)
    fake_client.complete("sess-1", 82.4, CRITERIA)

    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.model_dump() == {"checked": 1, "completed": 1, "failed": 0, "errors": []}
    job = repo.get_job(job.id)
    assert job.status == "completed"
    assert job.overall_score == 82
    assert job.criteria_scores == CRITERIA
    assert job.raw_response["data"]["status"] == "completed"
    assert job.completed_at is not None

    talent = repo.get_talent(talent.id)
    assert talent.score == 82
    assert talent.score_updated_at is not None
    assert talent.criteria_met == ["awards", "judging"]
    assert "harvest.completed" in observer.names()


def test_scores_round_half_up() -> None:
    assert round_half_up(82.4) == 82
    assert round_half_up(82.5) == 83
    assert round_half_up(67.5) == 68
    assert round_half_up(0.49) == 0


def test_explicit_failure_marks_job_failed(db, fake_client, settings, observer) -> None:
    repo, talent, job = _pending(db)
    fake_client.fail("sess-1", "Documents were unreadable")

    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.failed == 1
    job = repo.get_job(job.id)
    assert job.status == "failed"
    assert job.error_message == "Documents were unreadable"
    assert job.raw_response["data"]["status"] == "failed"
    assert repo.get_talent(talent.id).score is None


def test_error_status_without_message_uses_fallback(db, fake_client, settings, observer) -> None:
    repo, _, job = _pending(db)
    fake_client.fail("sess-1", None, status="error")

    _harvester(db, fake_client, settings, observer).harvest()

    assert repo.get_job(job.id).error_message == "Unknown error"


def test_young_processing_job_stays_pending(db, fake_client, settings, observer) -> None:
    repo, _, job = _pending(db, age=timedelta(hours=23))

    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.model_dump() == {"checked": 1, "completed": 0, "failed": 0, "errors": []}
    assert repo.get_job(job.id).status == "pending"
    assert "harvest.pending" in observer.names()


def test_stale_processing_job_times_out(db, fake_client, settings, observer) -> None:
    repo, talent, job = _pending(db, age=timedelta(hours=25))

    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.failed == 1
    job = repo.get_job(job.id)
    assert job.status == "failed"
    assert job.error_message == "Scoring timed out after 24 hours"
    assert repo.get_talent(talent.id).score is None
    assert observer.find("harvest.timeout")[0].fields["age_hours"] == 25


def test_staleness_uses_injected_clock(db, fake_client, settings, observer) -> None:
    repo, _, job = _pending(db, age=timedelta(minutes=1))
    tomorrow = lambda: datetime.now(UTC) + timedelta(hours=24, minutes=5)  # noqa: E731

    _harvester(db, fake_client, settings, observer, clock=tomorrow).harvest()

    assert repo.get_job(job.id).status == "failed"


def test_completed_without_score_keeps_waiting(db, fake_client, settings, observer) -> None:
    repo, _, job = _pending(db)
    fake_client.complete("sess-1", None, CRITERIA)

    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.completed == 0
    assert repo.get_job(job.id).status == "pending"


def test_transient_poll_error_leaves_job_untouched(db, fake_client, settings, observer) -> None:
    repo, _, job = _pending(db, age=timedelta(hours=30))
    fake_client.poll_errors.add("sess-1")

    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.checked == 1
    assert report.failed == 0
    assert report.errors == ["sess-1: connection reset"]
    assert repo.get_job(job.id).status == "pending"


def test_profile_write_failure_still_completes_job(db, fake_client, settings, observer, monkeypatch) -> None:
    repo, talent, job = _pending(db)
    fake_client.complete("sess-1", 91, CRITERIA)

    def broken_update(*args, **kwargs):
        raise OperationalError("UPDATE talent_profiles", {}, Exception("database is locked"))

    harvester = _harvester(db, fake_client, settings, observer)
    monkeypatch.setattr(harvester.repo, "update_talent_score", broken_update)
    report = harvester.harvest()

    assert report.completed == 1
    assert report.errors == [f"{talent.id}: talent update failed"]
    assert repo.get_job(job.id).status == "completed"
    assert repo.get_job(job.id).overall_score == 91
    assert repo.get_talent(talent.id).score is None
    assert observer.find("harvest.profile_write_failed")


def test_one_bad_job_does_not_stop_the_batch(db, fake_client, settings, observer) -> None:
    repo = Repository(db)
    talent = repo.create_talent("Ada")
    now = datetime.now(UTC)
    first = repo.create_job(talent_id=talent.id, session_id="flaky", created_at=now - timedelta(hours=2))
    second = repo.create_job(talent_id=talent.id, session_id="done", created_at=now - timedelta(hours=1))
    fake_client.poll_errors.add("flaky")
    fake_client.complete("done", 77, [])

    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.checked == 2
    assert report.completed == 1
    assert repo.get_job(first.id).status == "pending"
    assert repo.get_job(second.id).status == "completed"


def test_batch_is_capped_oldest_first(db, fake_client, settings, observer) -> None:
    repo = Repository(db)
    talent = repo.create_talent("Ada")
    now = datetime.now(UTC)
    for index in range(6):
        repo.create_job(talent_id=talent.id, session_id=f"s{index}", created_at=now - timedelta(minutes=60 - index))

    capped = settings.model_copy(update={"pending_check_batch": 4})
    report = _harvester(db, fake_client, capped, observer).harvest()

    assert report.checked == 4
    assert fake_client.polled == ["s0", "s1", "s2", "s3"]


def test_delay_after_every_poll(db, fake_client, settings, observer, sleeper) -> None:
    repo = Repository(db)
    talent = repo.create_talent("Ada")
    for index in range(3):
        repo.create_job(talent_id=talent.id, session_id=f"s{index}")
    fake_client.poll_errors.add("s1")

    spaced = settings.model_copy(update={"poll_delay_sec": 0.3})
    _harvester(db, fake_client, spaced, observer, sleeper=sleeper).harvest()

    assert sleeper.calls == [0.3, 0.3, 0.3]


def test_second_harvest_is_a_no_op(db, fake_client, settings, observer) -> None:
    repo = Repository(db)
    talent = repo.create_talent("Ada")
    done = repo.create_job(talent_id=talent.id, session_id="done")
    failed = repo.create_job(talent_id=talent.id, session_id="failed")
    waiting = repo.create_job(talent_id=talent.id, session_id="waiting")
    fake_client.complete("done", 64, CRITERIA)
    fake_client.fail("failed", "bad input")

    harvester = _harvester(db, fake_client, settings, observer)
    harvester.harvest()
    snapshot = [(job.id, job.status, job.updated_at) for job in repo.list_jobs()]
    profile_stamp = repo.get_talent(talent.id).score_updated_at

    second = harvester.harvest()

    assert second.model_dump() == {"checked": 1, "completed": 0, "failed": 0, "errors": []}
    assert [(job.id, job.status, job.updated_at) for job in repo.list_jobs()] == snapshot
    assert repo.get_talent(talent.id).score_updated_at == profile_stamp
    assert fake_client.polled.count("done") == 1
    assert fake_client.polled.count("failed") == 1
    assert repo.get_job(waiting.id).status == "pending"
    assert {repo.get_job(done.id).status, repo.get_job(failed.id).status} == {"completed", "failed"}


def test_empty_ledger_reports_nothing(db, fake_client, settings, observer) -> None:
    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.model_dump() == {"checked": 0, "completed": 0, "failed": 0, "errors": []}
    assert fake_client.calls == []


def test_rejected_poll_on_dead_session_times_out_and_frees_the_batch(db, fake_client, settings, observer) -> None:
    repo = Repository(db)
    talent = repo.create_talent("Ada")
    now = datetime.now(UTC)
    gone = repo.create_job(talent_id=talent.id, session_id="gone", created_at=now - timedelta(hours=30))
    fresh = repo.create_job(talent_id=talent.id, session_id="fresh", created_at=now - timedelta(hours=1))
    fake_client.rejected_polls["gone"] = {"success": False, "error": "Session not found"}
    fake_client.complete("fresh", 70, [])

    one_per_run = settings.model_copy(update={"pending_check_batch": 1})
    harvester = _harvester(db, fake_client, one_per_run, observer)
    first = harvester.harvest()
    second = harvester.harvest()

    assert first.failed == 1
    assert repo.get_job(gone.id).status == "failed"
    assert repo.get_job(gone.id).error_message == "Scoring timed out after 24 hours"
    assert second.completed == 1
    assert repo.get_job(fresh.id).status == "completed"
    assert "harvest.poll_rejected" in observer.names()


def test_rejected_poll_on_young_job_keeps_waiting(db, fake_client, settings, observer) -> None:
    repo, _, job = _pending(db, age=timedelta(hours=2))
    fake_client.rejected_polls["sess-1"] = {"success": False, "error": "Session not found"}

    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.model_dump() == {"checked": 1, "completed": 0, "failed": 0, "errors": []}
    assert repo.get_job(job.id).status == "pending"


def test_rejected_poll_reporting_failure_fails_the_job(db, fake_client, settings, observer) -> None:
    repo, _, job = _pending(db)
    fake_client.rejected_polls["sess-1"] = {"success": False, "data": {"status": "error", "errorMessage": "OCR crashed"}}

    _harvester(db, fake_client, settings, observer).harvest()

    assert repo.get_job(job.id).status == "failed"
    assert repo.get_job(job.id).error_message == "OCR crashed"


def test_non_finite_scores_do_not_stop_the_batch(db, fake_client, settings, observer) -> None:
    repo = Repository(db)
    talent = repo.create_talent("Ada")
    now = datetime.now(UTC)
    infinite = repo.create_job(talent_id=talent.id, session_id="inf", created_at=now - timedelta(hours=3))
    not_a_number = repo.create_job(talent_id=talent.id, session_id="nan", created_at=now - timedelta(hours=2))
    good = repo.create_job(talent_id=talent.id, session_id="good", created_at=now - timedelta(hours=1))
    fake_client.complete("inf", float("inf"), [])
    fake_client.complete("nan", float("nan"), [])
    fake_client.complete("good", 70, [])

    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.model_dump() == {"checked": 3, "completed": 1, "failed": 0, "errors": []}
    assert repo.get_job(infinite.id).status == "pending"
    assert repo.get_job(not_a_number.id).status == "pending"
    assert repo.get_job(good.id).overall_score == 70


def test_unexpected_error_on_one_job_is_recorded_and_skipped(db, fake_client, settings, observer, monkeypatch) -> None:
    repo = Repository(db)
    talent = repo.create_talent("Ada")
    now = datetime.now(UTC)
    broken = repo.create_job(talent_id=talent.id, session_id="broken", created_at=now - timedelta(hours=2))
    done = repo.create_job(talent_id=talent.id, session_id="done", created_at=now - timedelta(hours=1))
    fake_client.complete("done", 55, [])
    real_get_session = fake_client.get_session

    def flaky_get_session(session_id):
        if session_id == "broken":
            raise RuntimeError("decoder exploded")
        return real_get_session(session_id)

    monkeypatch.setattr(fake_client, "get_session", flaky_get_session)
    report = _harvester(db, fake_client, settings, observer).harvest()

    assert report.checked == 2
    assert report.completed == 1
    assert report.errors == ["broken: decoder exploded"]
    assert repo.get_job(broken.id).status == "pending"
    assert repo.get_job(done.id).status == "completed"
    assert observer.find("harvest.job_crashed")
