from .model import BackendKind, ExecutionConfig, Failure, JobResult, JobSpec, Success
from .plan import build_plan
from .runner import CancelToken, dispatch, run_plan
from .backends import make_backend

__all__ = [
    "BackendKind",
    "CancelToken",
    "ExecutionConfig",
    "Failure",
    "JobResult",
    "JobSpec",
    "Success",
    "build_plan",
    "dispatch",
    "make_backend",
    "run_plan",
]
