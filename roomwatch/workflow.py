"""High-level helpers wiring sites, stores and stages into pipeline cycles."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from .browser import BrowserSession
from .classifier import Classifier, ClassifyResult, load_prompt
from .config import Settings, load_site_configs
from .crawler import Crawler, CrawlResult, SessionFactory
from .digest import NotificationDigest
from .errors import ErrorBuffer
from .mailer import Mailer, SmtpTransport
from .oracle import ChatCompletionOracle, ClassificationOracle
from .sites import SiteAdapter, available_sites, build_sites
from .stores import QueueStore, ViewedStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SitePipeline:
    """The crawl and classify stages of one site, sharing its stores."""

    site: SiteAdapter
    crawler: Crawler
    classifier: Classifier


@dataclass(slots=True)
class SiteCycleResult:
    """Outcome of one cycle for a single site."""

    site: str
    crawl: Optional[CrawlResult] = None
    classify: Optional[ClassifyResult] = None
    errors: List[str] = field(default_factory=list)


@dataclass(slots=True)
class CycleResult:
    """Aggregated results for one crawl, classify and notify pass."""

    site_results: Dict[str, SiteCycleResult] = field(default_factory=dict)
    message_id: Optional[str] = None

    @property
    def queued(self) -> int:
        return sum(r.crawl.queued for r in self.site_results.values() if r.crawl)

    @property
    def promoted(self) -> int:
        return sum(len(r.classify.promoted) for r in self.site_results.values() if r.classify)

    def for_site(self, slug: str) -> SiteCycleResult:
        return self.site_results.setdefault(slug, SiteCycleResult(site=slug))


@dataclass(slots=True)
class Runtime:
    """Everything a cycle needs, built once per process."""

    settings: Settings
    errors: ErrorBuffer
    digest: NotificationDigest
    pipelines: List[SitePipeline]
    mailer: Mailer
    oracle: Optional[ChatCompletionOracle] = None

    def close(self) -> None:
        if self.oracle is not None:
            self.oracle.close()


def build_oracle(settings: Settings) -> Optional[ChatCompletionOracle]:
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; classification stays dormant.")
        return None
    return ChatCompletionOracle(
        settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        timeout=settings.openai_timeout,
    )


def build_pipelines(
    settings: Settings,
    sites: Sequence[SiteAdapter],
    digest: NotificationDigest,
    errors: ErrorBuffer,
    oracle: Optional[ClassificationOracle],
    system_prompt: Optional[str],
    *,
    session_factory: Optional[SessionFactory] = None,
) -> List[SitePipeline]:
    """Create the crawler and classifier of every site in *sites*."""

    if session_factory is None:

        def session_factory(site: SiteAdapter) -> BrowserSession:
            return BrowserSession(site, settings.auth_state_path(site.slug))

    pipelines: List[SitePipeline] = []
    for site in sites:
        viewed = ViewedStore(settings.viewed_path(site.slug))
        queue = QueueStore(settings.queue_path(site.slug), site.record_model, viewed)
        pipelines.append(
            SitePipeline(
                site=site,
                crawler=Crawler(site, queue, viewed, errors, session_factory),
                classifier=Classifier(site, queue, digest, oracle, system_prompt, errors),
            )
        )
    return pipelines


def build_runtime(
    settings: Settings,
    *,
    env: Optional[Mapping[str, str]] = None,
    only: Optional[Sequence[str]] = None,
) -> Runtime:
    """Load the site registry and assemble every component from *settings*.

    Sites with missing configuration are logged, buffered and left out;
    they never stop the others.
    """

    errors = ErrorBuffer()
    registry = available_sites()
    configs = load_site_configs(settings, list(registry))
    if only:
        configs = [config for config in configs if config.slug in only]

    sites, dormant = build_sites(configs, env)
    for slug, exc in dormant.items():
        errors.capture(logger, f"{slug.capitalize()}.Setup", exc, "Site disabled")

    digest = NotificationDigest(settings.digest_path)
    oracle = build_oracle(settings)
    pipelines = build_pipelines(
        settings,
        sites,
        digest,
        errors,
        oracle,
        load_prompt(settings.prompt_path),
    )
    mailer = Mailer(
        SmtpTransport.from_settings(settings),
        digest,
        errors,
        error_digest_enabled=settings.error_digest_enabled,
    )
    return Runtime(settings, errors, digest, pipelines, mailer, oracle)


def crawl_all(
    pipelines: Sequence[SitePipeline],
    errors: ErrorBuffer,
    result: Optional[CycleResult] = None,
) -> CycleResult:
    result = result or CycleResult()
    for pipeline in pipelines:
        site_result = result.for_site(pipeline.site.slug)
        try:
            site_result.crawl = pipeline.crawler.crawl()
        except Exception as exc:
            errors.capture(logger, pipeline.crawler.scope, exc, "Crawl failed")
            site_result.errors.append(f"crawl: {exc}")
    return result


def classify_all(
    pipelines: Sequence[SitePipeline],
    errors: ErrorBuffer,
    result: Optional[CycleResult] = None,
) -> CycleResult:
    result = result or CycleResult()
    for pipeline in pipelines:
        site_result = result.for_site(pipeline.site.slug)
        try:
            site_result.classify = pipeline.classifier.classify()
        except Exception as exc:
            errors.capture(logger, pipeline.classifier.scope, exc, "Classification failed")
            site_result.errors.append(f"classify: {exc}")
    return result


def run_cycle(pipelines: Sequence[SitePipeline], mailer: Mailer, errors: ErrorBuffer) -> CycleResult:
    """Crawl every site, classify every site, then mail the digest.

    Each site and each stage is isolated: a failure is logged and buffered
    and the remaining work still runs.
    """

    result = CycleResult()
    crawl_all(pipelines, errors, result)
    classify_all(pipelines, errors, result)
    result.message_id = mailer.send_notification_digest()
    logger.info(
        "Cycle finished: %d queued, %d promoted across %d site(s)",
        result.queued,
        result.promoted,
        len(pipelines),
    )
    return result


__all__ = [
    "SitePipeline",
    "SiteCycleResult",
    "CycleResult",
    "Runtime",
    "build_oracle",
    "build_pipelines",
    "build_runtime",
    "crawl_all",
    "classify_all",
    "run_cycle",
]
