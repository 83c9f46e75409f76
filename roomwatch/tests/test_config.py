"""Tests for settings and the site registry."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from roomwatch.config import (
    Settings,
    SiteConfig,
    load_site_configs,
    load_sites_yaml,
    overlay_env,
    parse_sites_yaml,
)
from roomwatch.errors import SiteConfigError
from roomwatch.sites import build_sites

SAMPLE_YAML = textwrap.dedent(
    """
    # comment line
    sites:
      - slug: kamernet
        page_delay: [1, 3]

      - slug: Huurwoningen   # trailing comment
        enabled: false
        detail_delay: [3, 5]
    """
)


def test_parse_sites_yaml_extracts_sites():
    sites = parse_sites_yaml(SAMPLE_YAML)

    assert [site.slug for site in sites] == ["kamernet", "huurwoningen"]
    assert sites[0].page_delay == (1.0, 3.0)
    assert sites[0].enabled is True
    assert sites[1].enabled is False
    assert sites[1].detail_delay == (3.0, 5.0)


def test_parse_sites_yaml_rejects_missing_slug():
    with pytest.raises(ValueError):
        parse_sites_yaml("sites:\n  - enabled: true")


def test_parse_sites_yaml_rejects_duplicates():
    duplicated = textwrap.dedent(
        """
        sites:
          - slug: kamernet
          - slug: kamernet
        """
    )
    with pytest.raises(ValueError):
        parse_sites_yaml(duplicated)


@pytest.mark.parametrize(
    "text",
    [
        "- slug: kamernet",
        "sites: kamernet",
        "sites:\n  - slug: kamernet\n    colour: blue",
        "sites:\n  - slug: kamernet\n    page_delay: [5, 2]",
    ],
)
def test_parse_sites_yaml_rejects_malformed_documents(text):
    with pytest.raises(ValueError):
        parse_sites_yaml(text)


def test_load_sites_yaml_reads_file(tmp_path):
    yaml_file = tmp_path / "sites.yml"
    yaml_file.write_text(SAMPLE_YAML, encoding="utf-8")

    sites = load_sites_yaml(yaml_file)

    assert len(sites) == 2


def test_load_site_configs_filters_disabled_and_unknown(tmp_path):
    yaml_file = tmp_path / "sites.yml"
    yaml_file.write_text(SAMPLE_YAML, encoding="utf-8")
    settings = Settings(sites_config=yaml_file)

    configs = load_site_configs(settings, ["kamernet", "huurwoningen"])
    assert [config.slug for config in configs] == ["kamernet"]

    with pytest.raises(ValueError):
        load_site_configs(settings, ["huurwoningen"])


def test_load_site_configs_defaults_to_every_known_site(tmp_path):
    settings = Settings(sites_config=tmp_path / "absent.yml")

    configs = load_site_configs(settings, ["kamernet", "huurwoningen"])

    assert [config.slug for config in configs] == ["kamernet", "huurwoningen"]


def test_settings_defaults_and_blank_values():
    settings = Settings.from_env({"TIME_START": "  ", "OPENAI_API_KEY": ""})

    assert settings.time_start == 8
    assert settings.time_end == 1
    assert settings.openai_api_key is None
    assert settings.openai_model == "gpt-4o"
    assert settings.email_port == 587
    assert settings.error_digest_enabled is False
    assert (settings.cycle_delay_min, settings.cycle_delay_max) == (240.0, 720.0)


def test_settings_read_environment_names(tmp_path):
    settings = Settings.from_env(
        {
            "TIME_START": "9",
            "TIME_END": "0",
            "DATA_DIR": str(tmp_path),
            "ERROR_DIGEST_ENABLED": "true",
            "EMAIL_PORT": "465",
            "UNRELATED": "ignored",
        }
    )

    assert settings.time_start == 9
    assert settings.time_end == 0
    assert settings.error_digest_enabled is True
    assert settings.email_port == 465
    assert settings.digest_path == tmp_path / "notification-queue.html"
    assert settings.queue_path("kamernet") == tmp_path / "kamernet" / "kamernet-new-listings.ndjson"
    assert settings.viewed_path("kamernet") == tmp_path / "kamernet" / "kamernet-viewed.ndjson"
    assert settings.auth_state_path("kamernet") == Path("auth") / "kamernet-auth.json"


@pytest.mark.parametrize(
    "env",
    [
        {"TIME_START": "24"},
        {"CYCLE_DELAY_MIN": "600", "CYCLE_DELAY_MAX": "300"},
        {"EMAIL_PORT": "smtp"},
    ],
)
def test_settings_reject_invalid_values(env):
    with pytest.raises(ValidationError):
        Settings.from_env(env)


def test_overlay_env_fills_urls_and_credentials():
    config = overlay_env(
        SiteConfig(slug="kamernet", base_url="https://configured.example"),
        "KAMERNET",
        {
            "KAMERNET_SEARCH_BASE_URL": "https://kamernet.nl/en/for-rent/rooms-amsterdam",
            "KAMERNET_EMAIL": "tenant@example.com",
            "KAMERNET_PASSWORD": "secret",
            "KAMERNET_BASE_URL": " ",
        },
    )

    assert config.base_url == "https://configured.example"
    assert config.search_url == "https://kamernet.nl/en/for-rent/rooms-amsterdam"
    assert config.email == "tenant@example.com"
    assert config.password == "secret"


def test_build_sites_keeps_misconfigured_sites_dormant():
    env = {
        "HUURWO_BASE_URL": "https://www.huurwoningen.nl",
        "HUURWO_SEARCH_BASE_URL": "https://www.huurwoningen.nl/en/in/amsterdam/",
        "KAMERNET_BASE_URL": "https://kamernet.nl",
        "KAMERNET_SEARCH_BASE_URL": "https://kamernet.nl/en/for-rent/rooms-amsterdam",
    }

    sites, dormant = build_sites([SiteConfig(slug="kamernet"), SiteConfig(slug="huurwoningen")], env)

    assert [site.slug for site in sites] == ["huurwoningen"]
    assert set(dormant) == {"kamernet"}
    assert isinstance(dormant["kamernet"], SiteConfigError)
