"""Operational reporting over scheduler job records."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from .models import Job, JobPriority, JobStatus, Source, queue_name

JOB_COLUMNS = [
    "id",
    "queue",
    "source",
    "priority",
    "status",
    "attempts_made",
    "enqueued_at",
    "finished_at",
    "duration_s",
    "last_error",
    "url",
]


def jobs_to_dataframe(jobs: Iterable[Job]) -> pd.DataFrame:
    """Convert job records into a :class:`~pandas.DataFrame`, one row per job."""

    records: List[Dict[str, object]] = []
    for job in jobs:
        duration = (job.finished_at - job.enqueued_at).total_seconds() if job.finished_at else None
        records.append(
            {
                "id": job.id,
                "queue": job.queue,
                "source": job.source.value,
                "priority": job.priority.value,
                "status": job.status.value,
                "attempts_made": job.attempts_made,
                "enqueued_at": job.enqueued_at,
                "finished_at": job.finished_at,
                "duration_s": duration,
                "last_error": job.last_error,
                "url": job.url,
            }
        )
    return pd.DataFrame.from_records(records, columns=JOB_COLUMNS)


def summarise_queues(df: pd.DataFrame) -> pd.DataFrame:
    """Return job counts per queue (rows) and status (columns), including empty queues."""

    queues = [queue_name(source, priority) for source in Source for priority in JobPriority]
    statuses = [status.value for status in JobStatus]
    if df.empty:
        return pd.DataFrame(0, index=pd.Index(queues, name="queue"), columns=statuses)
    counts = pd.crosstab(df["queue"], df["status"])
    return counts.reindex(index=queues, columns=statuses, fill_value=0).rename_axis(index="queue", columns=None)


def generate_queue_table(summary: pd.DataFrame) -> str:
    """Return a markdown-style table of per-queue status counts."""

    headers = ["Queue"] + [str(column) for column in summary.columns]
    rows: List[str] = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join(["---"] * len(headers)) + " |",
    ]
    for queue, counts in summary.iterrows():
        rows.append("| " + " | ".join([str(queue)] + [str(int(value)) for value in counts]) + " |")
    return "\n".join(rows)


def recent_failures(df: pd.DataFrame, limit: int = 5) -> pd.DataFrame:
    if df.empty:
        return df
    failed = df[df["status"] == JobStatus.FAILED.value]
    return failed.sort_values("finished_at", ascending=False).head(limit)


def build_report(
    jobs: Iterable[Job],
    pool_stats: Optional[Mapping[str, Any]] = None,
    failure_limit: int = 5,
) -> str:
    """Create a plain-text report of queue health and the latest failures."""

    df = jobs_to_dataframe(jobs)
    lines: List[str] = ["Scraper report", "=============="]

    if pool_stats:
        lines.append("")
        lines.append(
            "Browser pool: {in_use}/{capacity} in use, {idle} idle, {waiting} waiting".format(
                in_use=pool_stats.get("in_use", 0),
                capacity=pool_stats.get("capacity", 0),
                idle=pool_stats.get("idle", 0),
                waiting=pool_stats.get("waiting", 0),
            )
        )

    lines.append("")
    lines.append("Queues:")
    lines.append(generate_queue_table(summarise_queues(df)))

    finished = df.dropna(subset=["duration_s"]) if not df.empty else df
    if not finished.empty:
        lines.append("")
        lines.append(f"Average time to finish: {finished['duration_s'].mean():.1f}s")

    failures = recent_failures(df, failure_limit)
    lines.append("")
    lines.append("Recent failures:")
    if failures.empty:
        lines.append("- none")
    else:
        for row in failures.to_dict("records"):
            lines.append(f"- [{row['queue']}] {row['url']} after {row['attempts_made']} attempt(s): {row['last_error']}")
    return "\n".join(lines)


__all__ = ["build_report", "generate_queue_table", "jobs_to_dataframe", "recent_failures", "summarise_queues"]
