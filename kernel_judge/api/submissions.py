from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from kernel_judge.api.dependencies import get_current_user, get_job_queue, get_job_status, get_storage
from kernel_judge.domain.submit_archive import SubmitArchive
from kernel_judge.ports.job_queue_port import JobQueuePort
from kernel_judge.ports.job_status_port import JobStatusPort, PersistenceError
from kernel_judge.ports.storage_port import StoragePort

router = APIRouter()


class SubmissionAccepted(BaseModel):
    job_id: str
    owner: str


storage_dep = Depends(get_storage)
queue_dep = Depends(get_job_queue)
status_dep = Depends(get_job_status)


def get_submit_archive(
    storage: StoragePort = storage_dep,
    queue: JobQueuePort = queue_dep,
    status: JobStatusPort = status_dep,
) -> SubmitArchive:
    return SubmitArchive(storage, queue, status)


file_dep = File(...)
current_user_dep = Depends(get_current_user)
submit_archive_dep = Depends(get_submit_archive)


@router.post("/submissions", status_code=202)
async def create_submission(
    file: UploadFile = file_dep,
    owner: str = current_user_dep,
    submit_archive: SubmitArchive = submit_archive_dep,
) -> SubmissionAccepted:
    try:
        job_id = submit_archive.execute(owner, file.filename or "", file.file)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail="job store unavailable") from exc
    finally:
        await file.close()
    return SubmissionAccepted(job_id=job_id, owner=owner)
