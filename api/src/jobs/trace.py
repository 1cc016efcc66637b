"""Progress trace for batch jobs.

Collects the human-readable lines a job emits and mirrors each one to the
structured log, so the same trace is visible in job reports and in logs.
"""

from src.core.logging import get_logger


logger = get_logger(__name__)


class ProgressTrace:
    """Ordered list of trace lines for one job run."""

    def __init__(self, job: str):
        self.job = job
        self.lines: list[str] = []

    def output(self, line: str, depth: int = 0) -> None:
        """Record a line; depth indents it under the previous heading."""
        self.lines.append("  " * depth + line)
        logger.info("job_trace", job=self.job, line=line, depth=depth)
