"""Platform abstraction layer: subprocesses and HTTP."""

from .http import HttpClient, HttpError, MockHttpClient, RealHttpClient
from .process import CommandRunner, ProcessError, merged_env, run

__all__ = [
    # http
    "HttpClient",
    "HttpError",
    "MockHttpClient",
    "RealHttpClient",
    # process
    "CommandRunner",
    "ProcessError",
    "merged_env",
    "run",
]
