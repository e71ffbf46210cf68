"""Rental offer scraping core: queues, browser pool, adapters and offer store."""
from .config import ScraperConfig, create_config, create_config_from_env, create_config_from_mapping
from .models import CanonicalOffer, Job, JobPriority, JobStatus, Source
from .scheduler import QueueScheduler
from .workflow import PipelineResult, ScrapePipeline, build_pipeline, build_scheduler

__all__ = [
    "CanonicalOffer",
    "Job",
    "JobPriority",
    "JobStatus",
    "PipelineResult",
    "QueueScheduler",
    "ScrapePipeline",
    "ScraperConfig",
    "Source",
    "build_pipeline",
    "build_scheduler",
    "create_config",
    "create_config_from_env",
    "create_config_from_mapping",
]
