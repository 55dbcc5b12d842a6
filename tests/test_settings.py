"""
Tests for loading station settings from config.ini.
"""

from pathlib import Path

from container_tracker import ContainerTracker
from settings import ReconcilerSettings, load_settings


CONFIG = """
[Backend]
BaseUrl = https://erp.test/api/
TimeoutSeconds = 10
MaxRetries = 3
RetryDelaySeconds = 0.5

[Incidents]
AuthorizationSecret = s3cret

[Scanner]
HighlightSeconds = 2.5

[Labels]
Dpi = 300

[Drafts]
DraftDir = {draft_dir}

[Containers]
CAJA-CH = small box
"""


class TestLoadSettings:

    def test_reads_every_section(self, tmp_path):
        config_path = tmp_path / "config.ini"
        config_path.write_text(CONFIG.format(draft_dir=tmp_path / "drafts"), encoding='utf-8')

        settings = load_settings(str(config_path))

        assert settings.base_url == "https://erp.test/api"
        assert settings.timeout_seconds == 10
        assert settings.max_retries == 3
        assert settings.retry_delay_seconds == 0.5
        assert settings.authorization_secret == "s3cret"
        assert settings.highlight_seconds == 2.5
        assert settings.label_dpi == 300
        assert settings.label_width_mm == 65
        assert settings.draft_dir == Path(tmp_path / "drafts")
        assert settings.container_catalog == {'caja-ch': 'small box'}

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_settings(str(tmp_path / "absent.ini"))
        defaults = ReconcilerSettings()

        assert settings.base_url is None
        assert settings.max_retries == defaults.max_retries
        assert settings.authorization_secret == ''
        assert settings.container_catalog == {}

    def test_blank_base_url_is_none(self, tmp_path):
        config_path = tmp_path / "config.ini"
        config_path.write_text("[Backend]\nBaseUrl =\n", encoding='utf-8')
        assert load_settings(str(config_path)).base_url is None

    def test_lower_cased_catalog_still_matches_scans(self, tmp_path):
        config_path = tmp_path / "config.ini"
        config_path.write_text(CONFIG.format(draft_dir=tmp_path / "drafts"), encoding='utf-8')

        tracker = ContainerTracker(load_settings(str(config_path)).container_catalog)

        assert tracker.is_container_code("CAJA-CH")
        assert tracker.is_container_code("caja-ch")
        assert tracker.open("CAJA-CH").container_type == "small box"
