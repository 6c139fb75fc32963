"""vcgen Configuration Tests — CFG-001 through CFG-004."""

from __future__ import annotations

import json
import logging

from vcgen.config import VCGenConfig, _dict_to_config, find_config, load_config
from vcgen.simplify import RULE_NAMES


class TestDefaults:
    """CFG-001: No config file means defaults."""

    def test_defaults(self, tmp_path):
        config = load_config(start_dir=str(tmp_path))
        assert config == VCGenConfig()
        assert config.simplify_rules == RULE_NAMES
        assert config.collect_all_errors is True

    def test_empty_dict(self):
        assert _dict_to_config({}) == VCGenConfig()


class TestDiscovery:
    """CFG-002: The nearest config file wins."""

    def test_walks_up(self, tmp_path):
        (tmp_path / ".vcgenrc.yml").write_text("format: json\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(str(nested)) == str(tmp_path / ".vcgenrc.yml")
        assert load_config(start_dir=str(nested)).format == "json"

    def test_yml_before_json(self, tmp_path):
        (tmp_path / ".vcgenrc.json").write_text(json.dumps({"format": "json"}))
        (tmp_path / ".vcgenrc.yml").write_text("format: table\n")
        assert find_config(str(tmp_path)).endswith(".vcgenrc.yml")

    def test_json_file(self, tmp_path):
        path = tmp_path / ".vcgenrc.json"
        path.write_text(json.dumps({"solver_timeout_ms": 250, "collect_all_errors": False}))
        config = load_config(str(path))
        assert config.solver_timeout_ms == 250
        assert config.collect_all_errors is False


class TestParsing:
    """CFG-003: Values are read and normalized."""

    def test_full_yaml(self, tmp_path):
        path = tmp_path / ".vcgenrc.yml"
        path.write_text(
            "simplify: false\n"
            "simplify_rules:\n"
            "  - cursor\n"
            "  - sequence\n"
            "max_simplify_rounds: 3\n"
            "log_level: DEBUG\n"
        )
        config = load_config(str(path))
        assert config.simplify is False
        assert config.simplify_rules == ("cursor", "sequence")
        assert config.max_simplify_rounds == 3
        assert config.log_level == "debug"

    def test_rounds_clamped(self):
        assert _dict_to_config({"max_simplify_rounds": 0}).max_simplify_rounds == 1


class TestBadInput:
    """CFG-004: Bad input falls back to defaults with a warning."""

    def test_unknown_rule(self, caplog):
        with caplog.at_level(logging.WARNING, logger="vcgen.config"):
            config = _dict_to_config({"simplify_rules": ["cursor", "magic"]})
        assert config.simplify_rules == ("cursor",)
        assert "magic" in caplog.text

    def test_unknown_format(self, caplog):
        with caplog.at_level(logging.WARNING, logger="vcgen.config"):
            config = _dict_to_config({"format": "xml"})
        assert config.format == "table"
        assert "xml" in caplog.text

    def test_unparseable_yaml(self, tmp_path, caplog):
        path = tmp_path / ".vcgenrc.yml"
        path.write_text("simplify: [unclosed\n")
        with caplog.at_level(logging.WARNING, logger="vcgen.config"):
            assert load_config(str(path)) == VCGenConfig()
        assert "cannot parse" in caplog.text

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / ".vcgenrc.yml"
        path.write_text("- just\n- a list\n")
        assert load_config(str(path)) == VCGenConfig()

    def test_missing_file(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING, logger="vcgen.config"):
            assert load_config(str(tmp_path / "nope.yml")) == VCGenConfig()
        assert "cannot read" in caplog.text

    def test_non_integer_settings(self, caplog):
        with caplog.at_level(logging.WARNING, logger="vcgen.config"):
            config = _dict_to_config({"solver_timeout_ms": "fast", "max_simplify_rounds": None})
        assert config.solver_timeout_ms == 5000
        assert config.max_simplify_rounds == 8
        assert "solver_timeout_ms 'fast'" in caplog.text
        assert "max_simplify_rounds None" in caplog.text

    def test_non_integer_in_file(self, tmp_path, caplog):
        path = tmp_path / ".vcgenrc.yml"
        path.write_text("solver_timeout_ms: soon\nformat: json\n")
        with caplog.at_level(logging.WARNING, logger="vcgen.config"):
            config = load_config(str(path))
        assert config.solver_timeout_ms == 5000
        assert config.format == "json"
        assert "soon" in caplog.text
