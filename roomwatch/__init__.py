"""Rental listing watcher: crawl, deduplicate, classify and notify."""

from .classifier import Classifier, ClassifyResult
from .config import Settings, SiteConfig, load_sites_yaml, parse_sites_yaml
from .crawler import Crawler, CrawlResult
from .digest import NotificationDigest
from .errors import ErrorBuffer
from .models import HuurwoningenRecord, KamernetRecord, ListingRecord
from .oracle import ChatCompletionOracle, Verdict, parse_verdict
from .scheduler import ActivityState, Scheduler, activity_state
from .sites import available_sites
from .stores import QueueStore, ViewedStore
from .workflow import CycleResult, build_runtime, run_cycle

__all__ = [
    "Settings",
    "SiteConfig",
    "parse_sites_yaml",
    "load_sites_yaml",
    "ListingRecord",
    "KamernetRecord",
    "HuurwoningenRecord",
    "QueueStore",
    "ViewedStore",
    "NotificationDigest",
    "ErrorBuffer",
    "Verdict",
    "parse_verdict",
    "ChatCompletionOracle",
    "Crawler",
    "CrawlResult",
    "Classifier",
    "ClassifyResult",
    "ActivityState",
    "activity_state",
    "Scheduler",
    "CycleResult",
    "build_runtime",
    "run_cycle",
    "available_sites",
]
