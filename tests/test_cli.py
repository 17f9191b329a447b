"""Tests for the patternsense command line."""

import json
import re

import pytest
from click.testing import CliRunner

from patternsense import cli as cli_module

PATTERN_ID = re.compile(r"pattern_[0-9a-f]{32}")


class TestCLI:
    """Commands run against a throwaway SQLite data directory."""

    @pytest.fixture
    def runner(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv('PATTERNSENSE_DATA_DIR', str(tmp_path / 'data'))
        monkeypatch.delenv('PATTERNSENSE_LOG_LEVEL', raising=False)
        return CliRunner()

    def invoke(self, runner, *args):
        return runner.invoke(cli_module.cli, ['--quiet', *args], obj={})

    def observe(self, runner, content='prefer const'):
        result = self.invoke(runner, 'observe', 'syntax', content, '-l', 'javascript', '-x', 'file_name=app.js')
        assert result.exit_code == 0, result.output
        return PATTERN_ID.search(result.output).group(0)

    def test_observe(self, runner):
        result = self.invoke(runner, 'observe', 'naming', 'camelCase', '--language', 'javascript')

        assert result.exit_code == 0
        assert PATTERN_ID.search(result.output)
        assert "confidence 0.50" in result.output

    def test_observe_is_idempotent(self, runner):
        assert self.observe(runner) == self.observe(runner)

    def test_observe_rejects_bad_input(self, runner):
        result = self.invoke(runner, 'observe', 'horoscope', 'x', '-l', 'javascript')
        assert result.exit_code == 1
        assert "not recorded" in result.output

        result = self.invoke(runner, 'observe', 'syntax', 'x', '-l', 'javascript', '-x', 'novalue')
        assert result.exit_code == 2

    def test_feedback(self, runner):
        pattern_id = self.observe(runner)

        result = self.invoke(runner, 'feedback', pattern_id, 'accept')

        assert result.exit_code == 0
        assert "0.50 -> 0.60" in result.output

    def test_feedback_unknown_pattern(self, runner):
        result = self.invoke(runner, 'feedback', 'pattern_missing', 'reject')

        assert result.exit_code == 1
        assert "Unknown pattern id" in result.output

    def test_feedback_in_domain(self, runner):
        result = self.invoke(runner, '--domain', 'testing', 'observe', 'test', 'arrange act assert', '-l', 'python')
        pattern_id = PATTERN_ID.search(result.output).group(0)

        result = self.invoke(runner, '--domain', 'testing', 'feedback', pattern_id, 'reject')
        assert "0.50 -> 0.45" in result.output

        # Other domains keep their own state
        result = self.invoke(runner, 'feedback', pattern_id, 'reject')
        assert result.exit_code == 1

    def test_suggest_json(self, runner):
        pattern_id = self.observe(runner)
        self.invoke(runner, 'observe', 'syntax', 'semicolons', '-l', 'javascript')

        result = self.invoke(runner, 'suggest', 'javascript', '-x', 'file_name=app.js',
                             '--min-confidence', '0.3', '--limit', '1', '--format', 'json')

        assert result.exit_code == 0
        suggestions = json.loads(result.output)
        assert len(suggestions) == 1
        assert suggestions[0]['pattern_id'] == pattern_id
        assert suggestions[0]['score'] == pytest.approx(0.75, abs=0.01)

    def test_suggest_table(self, runner):
        self.observe(runner)

        result = self.invoke(runner, 'suggest', 'javascript')
        assert result.exit_code == 0
        assert "prefer const" in result.output

        result = self.invoke(runner, 'suggest', 'python')
        assert "No suggestions" in result.output

    def test_stats(self, runner):
        pattern_id = self.observe(runner)
        self.invoke(runner, 'feedback', pattern_id, 'accept')
        self.invoke(runner, 'feedback', pattern_id, 'accept')

        result = self.invoke(runner, 'stats', '--format', 'json')

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data['adaptation']['total_patterns'] == 1
        assert data['acceptance']['accepted'] == 2
        assert data['behavior']['preferred_categories'] == ['syntax']

        result = self.invoke(runner, 'stats')
        assert "Pattern Statistics" in result.output

    def test_maintain(self, runner):
        self.observe(runner)

        result = self.invoke(runner, 'maintain')

        assert result.exit_code == 0
        assert "Decayed 0 patterns, removed 0" in result.output

    def test_config_show_and_init(self, runner, tmp_path):
        result = self.invoke(runner, 'config', 'show')
        assert result.exit_code == 0
        assert "min_confidence: 0.1" in result.output

        result = self.invoke(runner, 'config', 'init')
        assert result.exit_code == 0
        assert (tmp_path / '.patternsense.yaml').exists()

        result = self.invoke(runner, 'config', 'init')
        assert "already exists" in result.output
