"""
Prometheus metrics for the branch bot.

This module defines the metrics collected while receiving webhooks, running the
git pipeline and posting commit statuses.
"""

from prometheus_client import Counter, Histogram
import time


# Webhook reception metrics
webhooks_received_total = Counter(
    'branch_bot_webhooks_received_total',
    'Total number of webhooks received',
    ['event_type']  # event_type = push|ping|etc
)

# Pipeline run metrics
pipeline_runs_total = Counter(
    'branch_bot_pipeline_runs_total',
    'Total number of handled events by outcome',
    ['outcome']  # outcome = success|failure|ignored|invalid
)

git_step_duration_seconds = Histogram(
    'branch_bot_git_step_duration_seconds',
    'Time spent in each git pipeline step',
    ['step']
)

git_step_errors_total = Counter(
    'branch_bot_git_step_errors_total',
    'Total number of failed git pipeline steps',
    ['step', 'error_type']
)

workspace_cleanup_errors_total = Counter(
    'branch_bot_workspace_cleanup_errors_total',
    'Total number of workspace removals that failed',
)

# Commit status metrics
github_status_updates_total = Counter(
    'branch_bot_github_status_updates_total',
    'Total number of commit statuses posted',
    ['state']  # state = pending|success|failure
)

github_status_update_errors_total = Counter(
    'branch_bot_github_status_update_errors_total',
    'Total number of commit status errors',
    ['state', 'error_type']
)


class MetricsContext:
    """Context manager for timing operations and handling errors with metrics."""

    def __init__(self, histogram, error_counter, error_labels=None):
        self.histogram = histogram
        self.error_counter = error_counter
        self.error_labels = error_labels or []
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            duration = time.time() - self.start_time
            self.histogram.observe(duration)

        if exc_type is not None:
            error_type = exc_type.__name__
            self.error_counter.labels(*self.error_labels, error_type).inc()

        return False  # Don't suppress exceptions


def track_git_step(step: str):
    """Context manager for tracking git step metrics."""
    return MetricsContext(
        git_step_duration_seconds.labels(step),
        git_step_errors_total,
        error_labels=[step],
    )
