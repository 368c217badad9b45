from datetime import timedelta

from hirebit.db.base import as_utc, utcnow
from hirebit.db.repositories import Repository
from hirebit.types import InterviewStatus, ScheduleType


def test_create_job_posting_writes_schedule_and_audit(db) -> None:
    repo = Repository(db)
    deadline = utcnow() + timedelta(days=2)

    job = repo.create_job_posting(
        company_name="Globex",
        title="  QA Engineer ",
        company_email="Jobs@Globex.test",
        required_skills=["Selenium", "selenium", " Python "],
        application_deadline=deadline,
    )

    assert job.title == "QA Engineer"
    assert job.required_skills_json == ["selenium", "python"]
    schedules = repo.due_schedules(deadline + timedelta(seconds=1), 10)
    assert [(schedule.job_posting_id, schedule.type) for schedule in schedules] == [(job.id, ScheduleType.DEADLINE)]
    assert abs(as_utc(schedules[0].run_at) - deadline) < timedelta(seconds=1)
    assert len(repo.list_audit(job_posting_id=job.id, action="job_created")) == 1

    again = repo.create_job_posting(company_name="Globex", title="QA Lead", hr_email="people@globex.test")
    assert again.company_id == job.company_id
    assert repo.get_company(job.company_id).hr_email == "people@globex.test"


def test_schedule_interview_only_once(db, make_job) -> None:
    job = make_job()
    repo = Repository(db)
    application, created = repo.insert_application_if_absent(
        {"job_posting_id": job.id, "company_id": job.company_id, "email": "ada@example.com"}
    )
    assert created

    when = utcnow() + timedelta(days=1)
    assert repo.schedule_interview(application.id, interview_time=when, interview_link="https://meet.example/1")
    assert not repo.schedule_interview(application.id, interview_time=when, interview_link="https://meet.example/2")

    refreshed = repo.get_application(application.id)
    assert refreshed.interview_status == InterviewStatus.SCHEDULED
    assert refreshed.interview_link == "https://meet.example/1"


def test_insert_application_if_absent_normalizes_email(db, make_job) -> None:
    job = make_job()
    repo = Repository(db)

    first, created = repo.insert_application_if_absent({"job_posting_id": job.id, "email": " Ada@Example.com "})
    second, created_again = repo.insert_application_if_absent({"job_posting_id": job.id, "email": "ada@example.com"})

    assert created and not created_again
    assert first.id == second.id
    assert len(repo.list_applications(job.id)) == 1
