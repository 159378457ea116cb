"""DUCO pool protocol handling module."""

from duco_fleet.duco.protocol import DucoProtocol
from duco_fleet.duco.messages import (
    AckStatus,
    Job,
    build_job_request,
    build_result,
    classify_ack,
    parse_job,
)

__all__ = [
    "DucoProtocol",
    "AckStatus",
    "Job",
    "build_job_request",
    "build_result",
    "classify_ack",
    "parse_job",
]
