"""Background job execution."""

from .executor import execute_job

__all__ = ["execute_job"]
