from app.core.database.connection import SessionLocal
from app.core.jobs.manager import JobManager
from app.core.jobs.types import JobType, JobStatus
from app.core.jobs.models import JobModel
from app.features.storage.domain.models import FileInput
from app.features.storage.service import api


def test_job_submission_flow():
    """
    Verifies that a job can be created and stored in the database.
    """
    manager = JobManager()
    job_id = manager.submit_job(job_type=JobType.STORAGE_PURGE, params={"min_age_seconds": 0})

    assert job_id is not None

    with SessionLocal() as db:
        job = db.get(JobModel, job_id)
        assert job is not None
        assert job.job_type == JobType.STORAGE_PURGE
        assert job.status == JobStatus.PENDING
        assert job.payload == {"min_age_seconds": 0}


def test_run_purge_job(service, backend, monkeypatch):
    """
    A purge job sweeps orphaned blobs and records the outcome.
    """
    monkeypatch.setattr(api, "storage", service)

    kept = service.upload(FileInput(data=b"kept", name="kept.txt", mime_type="text/plain"))
    gone = service.upload(FileInput(data=b"gone", name="gone.txt", mime_type="text/plain"))
    service.delete_nodes([gone.id])

    manager = JobManager()
    job_id = manager.submit_job(job_type=JobType.STORAGE_PURGE, params={"min_age_seconds": 0})
    manager.run_job(job_id)

    with SessionLocal() as db:
        job = db.get(JobModel, job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.result_meta == {"count": 1, "size_bytes": 4}
        assert job.finished_at is not None

    keys = [obj.key for obj in backend.list_objects()]
    assert keys == [kept.key]


def test_run_job_handler_failure(service, monkeypatch):
    """
    Errors raised by a handler mark the job as FAILED instead of propagating.
    """
    def broken_sweep(min_age_seconds=None):
        raise RuntimeError("bucket unreachable")

    monkeypatch.setattr(service, "sweep_orphans", broken_sweep)
    monkeypatch.setattr(api, "storage", service)

    manager = JobManager()
    job_id = manager.submit_job(job_type=JobType.STORAGE_PURGE)
    manager.run_job(job_id)

    with SessionLocal() as db:
        job = db.get(JobModel, job_id)
        assert job.status == JobStatus.FAILED
        assert "bucket unreachable" in job.error_message


def test_run_unknown_job_is_ignored():
    import uuid

    # Nothing to route, nothing raised.
    JobManager().run_job(uuid.uuid4())
