"""Site registry mapping slugs to adapter classes."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Tuple, Type

from ..config import SiteConfig, overlay_env
from ..errors import SiteConfigError
from .base import SiteAdapter
from .huurwoningen import HuurwoningenSite
from .kamernet import KamernetSite

logger = logging.getLogger(__name__)

_REGISTRY: Dict[str, Type[SiteAdapter]] = {
    KamernetSite.slug: KamernetSite,
    HuurwoningenSite.slug: HuurwoningenSite,
}


def available_sites() -> Dict[str, Type[SiteAdapter]]:
    """Return a copy of the built-in adapter registry."""

    return dict(_REGISTRY)


def build_sites(
    configs: List[SiteConfig],
    env: Optional[Mapping[str, str]] = None,
) -> Tuple[List[SiteAdapter], Dict[str, SiteConfigError]]:
    """Instantiate adapters for *configs*.

    Sites with missing configuration are returned separately with their
    error so they can stay dormant without stopping the others.
    """

    sites: List[SiteAdapter] = []
    dormant: Dict[str, SiteConfigError] = {}
    for config in configs:
        adapter_cls = _REGISTRY.get(config.slug)
        if adapter_cls is None:
            dormant[config.slug] = SiteConfigError(f"No adapter registered for site slug '{config.slug}'")
            continue
        try:
            sites.append(adapter_cls(overlay_env(config, adapter_cls.env_prefix, env)))
        except SiteConfigError as exc:
            logger.warning("Site '%s' will stay dormant: %s", config.slug, exc)
            dormant[config.slug] = exc
    return sites, dormant


__all__ = ["SiteAdapter", "KamernetSite", "HuurwoningenSite", "available_sites", "build_sites"]
