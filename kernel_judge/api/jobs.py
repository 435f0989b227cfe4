from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from kernel_judge.api.dependencies import get_current_user, get_job_status
from kernel_judge.domain.read_jobs import GetJobStatus, ListJobs
from kernel_judge.ports.job_status_port import JobStatusPort

router = APIRouter()

status_dep = Depends(get_job_status)


def get_job_status_use_case(status: JobStatusPort = status_dep) -> GetJobStatus:
    return GetJobStatus(status)


def get_list_jobs_use_case(status: JobStatusPort = status_dep) -> ListJobs:
    return ListJobs(status)


current_user_dep = Depends(get_current_user)
job_status_use_case_dep = Depends(get_job_status_use_case)
list_jobs_use_case_dep = Depends(get_list_jobs_use_case)


@router.get("/jobs")
async def list_jobs(
    owner: str = current_user_dep,
    list_jobs_use_case: ListJobs = list_jobs_use_case_dep,
) -> dict[str, Any]:
    return {"jobs": list_jobs_use_case.execute(owner)}


@router.get("/jobs/{job_id}/status")
async def get_job_status_endpoint(
    job_id: str,
    owner: str = current_user_dep,
    job_status_use_case: GetJobStatus = job_status_use_case_dep,
) -> dict[str, Any]:
    record = job_status_use_case.execute(job_id, owner)
    if record is None:
        raise HTTPException(status_code=404, detail="job not found")
    return record
