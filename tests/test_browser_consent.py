# Linkpeek
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for consent cookie rules."""

import json

import pytest

from linkpeek.browser.consent import ConsentCookies
from linkpeek.errors import ConfigError

YAML_RULES = """
patterns:
  - match: ["youtube.com", "youtu.be"]
    cookies:
      - {name: CONSENT, value: "YES+1", domain: ".youtube.com", path: "/"}
  - match: ["google."]
    cookies:
      - {name: SOCS, value: "CAI", domain: ".google.com", path: "/"}
"""


class TestConsentCookies:
    def test_missing_file_is_empty(self, tmp_path):
        consent = ConsentCookies.load(tmp_path / "nope.yaml")
        assert consent.pattern_count == 0
        assert consent.cookies_for("https://www.youtube.com/") == []

    def test_yaml_rules(self, tmp_path):
        path = tmp_path / "consent.yaml"
        path.write_text(YAML_RULES)
        consent = ConsentCookies.load(path)
        assert consent.pattern_count == 2
        cookies = consent.cookies_for("https://www.youtube.com/watch?v=1")
        assert cookies == [
            {"name": "CONSENT", "value": "YES+1", "domain": ".youtube.com", "path": "/"}
        ]

    def test_json_rules(self, tmp_path):
        path = tmp_path / "consent.json"
        path.write_text(
            json.dumps(
                {
                    "patterns": [
                        {
                            "match": ["example.org"],
                            "cookies": [
                                {"name": "ok", "value": "1", "domain": ".example.org", "path": "/"}
                            ],
                        }
                    ]
                }
            )
        )
        consent = ConsentCookies.load(path)
        assert len(consent.cookies_for("https://example.org/")) == 1

    def test_no_match(self, tmp_path):
        path = tmp_path / "consent.yaml"
        path.write_text(YAML_RULES)
        assert ConsentCookies.load(path).cookies_for("https://example.com/") == []

    def test_empty_file_is_empty(self, tmp_path):
        path = tmp_path / "consent.yaml"
        path.write_text("")
        assert ConsentCookies.load(path).pattern_count == 0

    def test_invalid_structure_raises(self, tmp_path):
        path = tmp_path / "consent.yaml"
        path.write_text("patterns:\n  - match: youtube.com\n")
        with pytest.raises(ConfigError):
            ConsentCookies.load(path)

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "consent.yaml"
        path.write_text("patterns: [unclosed\n")
        with pytest.raises(ConfigError):
            ConsentCookies.load(path)

    def test_default_is_empty(self):
        assert ConsentCookies().cookies_for("https://www.youtube.com/") == []
