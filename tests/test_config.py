# tests/test_config.py
#
# Tests for configuration constants and the startup check that decides
# whether the daemon may start.

from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import settings
from config.goals import get_goals_for_tags, load_goals


class TestConfigConstants:
    """Validate configuration values."""

    def test_token_prefix(self):
        assert settings.TOKEN_PREFIX == "IMPACT"

    def test_timezone_is_a_real_zone(self):
        ZoneInfo(settings.TIMEZONE)

    def test_intervals_are_valid_crontab(self):
        CronTrigger.from_crontab(settings.CHECK_INTERVAL)
        CronTrigger.from_crontab(settings.POLL_INTERVAL)

    def test_gmail_scopes_allow_send_and_modify(self):
        assert any(scope.endswith('gmail.send') for scope in settings.GMAIL_SCOPES)
        assert any(scope.endswith('gmail.modify') for scope in settings.GMAIL_SCOPES)

    def test_health_port_is_valid(self):
        assert 0 < settings.HEALTH_PORT < 65536


class TestMissingSettings:

    def _patched(self, tmp_path, **overrides):
        values = {
            'GMAIL_USER_EMAIL': 'me@example.com',
            'GMAIL_CLIENT_ID': 'id',
            'GMAIL_CLIENT_SECRET': 'secret',
            'GMAIL_REFRESH_TOKEN': 'refresh',
            'TOKEN_PATH': tmp_path / 'token.pickle',
            'OPENROUTER_API_KEY': 'or-key',
            'ANTHROPIC_API_KEY': '',
        }
        values.update(overrides)
        return patch.multiple('config.settings', **values)

    def test_fully_configured(self, tmp_path):
        with self._patched(tmp_path):
            assert settings.missing_settings() == []

    def test_missing_recipient(self, tmp_path):
        with self._patched(tmp_path, GMAIL_USER_EMAIL=''):
            assert settings.missing_settings() == ['GMAIL_USER_EMAIL']

    def test_saved_token_replaces_refresh_token(self, tmp_path):
        token = tmp_path / 'token.pickle'
        token.write_bytes(b'saved')
        with self._patched(tmp_path, GMAIL_REFRESH_TOKEN='', TOKEN_PATH=token):
            assert settings.missing_settings() == []

    def test_no_gmail_credentials(self, tmp_path):
        with self._patched(tmp_path, GMAIL_REFRESH_TOKEN=''):
            missing = settings.missing_settings()
        assert len(missing) == 1
        assert 'GMAIL_REFRESH_TOKEN' in missing[0]

    def test_anthropic_alone_is_enough(self, tmp_path):
        with self._patched(tmp_path, OPENROUTER_API_KEY='', ANTHROPIC_API_KEY='sk-ant'):
            assert settings.missing_settings() == []

    def test_no_llm_key(self, tmp_path):
        with self._patched(tmp_path, OPENROUTER_API_KEY=''):
            assert settings.missing_settings() == ['OPENROUTER_API_KEY or ANTHROPIC_API_KEY']


class TestGoals:

    def test_load_goals_from_file(self, tmp_path):
        path = tmp_path / 'goals.yaml'
        path.write_text("Health:\n  - Run a half marathon\nwriting: Finish the draft\n",
                        encoding='utf-8')

        assert load_goals(path) == {
            'health': ['Run a half marathon'],
            'writing': ['Finish the draft'],
        }

    def test_missing_file_means_no_goals(self, tmp_path):
        assert load_goals(tmp_path / 'nope.yaml') == {}

    def test_malformed_file_means_no_goals(self, tmp_path):
        path = tmp_path / 'goals.yaml'
        path.write_text("- just\n- a list\n", encoding='utf-8')
        assert load_goals(path) == {}

    def test_goals_for_tags(self):
        goals = {'health': ['Run a half marathon'], 'career': ['Ship the project']}

        text = get_goals_for_tags(['Health', 'career'], goals)

        assert text == "Relevant goals:\n- Run a half marathon\n- Ship the project"

    def test_no_matching_tags(self):
        assert get_goals_for_tags(['travel'], {'health': ['Run']}) == ''
        assert get_goals_for_tags([], {'health': ['Run']}) == ''
