"""Tests for registration generation and loading."""

from __future__ import annotations

import yaml
import pytest

from discord_bridge.errors import RegistrationError
from discord_bridge.registration import (
    AppServiceRegistration,
    generate_registration,
    load_registration,
)

# ── Generation ───────────────────────────────────────────────────────────


class TestGenerateRegistration:
    def test_fixed_fields(self):
        reg = generate_registration()
        assert reg.sender_localpart == "_discord_bot"
        assert reg.rate_limited is False
        assert reg.protocols == ["discord"]
        assert reg.url is None

    def test_namespaces_are_exclusive(self):
        reg = generate_registration()
        assert [(p.regex, p.exclusive) for p in reg.namespaces.users] == [("@_discord_.*", True)]
        assert [(p.regex, p.exclusive) for p in reg.namespaces.aliases] == [
            ("#_discord_.*", True)
        ]
        assert reg.namespaces.rooms == []

    def test_tokens_are_distinct_and_non_empty(self):
        reg = generate_registration()
        assert reg.id and reg.hs_token and reg.as_token
        assert len({reg.id, reg.hs_token, reg.as_token}) == 3

    def test_each_call_draws_new_tokens(self):
        a = generate_registration()
        b = generate_registration()
        assert a.id != b.id
        assert a.as_token != b.as_token
        assert a.hs_token != b.hs_token

    def test_url_is_kept(self):
        reg = generate_registration(url="http://bridge:9005")
        assert reg.url == "http://bridge:9005"

    def test_namespace_matching(self):
        reg = generate_registration()
        assert reg.is_user_in_namespace("@_discord_123:example.org")
        assert not reg.is_user_in_namespace("@alice:example.org")
        assert reg.is_alias_in_namespace("#_discord_1_2:example.org")
        assert not reg.is_alias_in_namespace("#general:example.org")


# ── Loading ──────────────────────────────────────────────────────────────


class TestLoadRegistration:
    def test_save_then_load(self, tmp_path):
        reg = generate_registration(url="http://localhost:9005")
        path = tmp_path / "reg.yaml"
        reg.save(str(path))

        raw = yaml.safe_load(path.read_text())
        assert raw["sender_localpart"] == "_discord_bot"
        assert raw["rate_limited"] is False

        loaded = load_registration(str(path))
        assert loaded == reg

    def test_missing_file(self, tmp_path):
        with pytest.raises(RegistrationError, match="does not exist"):
            load_registration(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "reg.yaml"
        path.write_text("id: [unclosed\n  - : :")
        with pytest.raises(RegistrationError):
            load_registration(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "reg.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(RegistrationError, match="Failed to parse registration file"):
            load_registration(str(path))

    def test_missing_tokens(self, tmp_path):
        path = tmp_path / "reg.yaml"
        path.write_text("id: abc\nsender_localpart: _discord_bot\n")
        with pytest.raises(RegistrationError, match="Failed to parse registration file"):
            load_registration(str(path))

    def test_bad_regex_is_rejected(self):
        data = generate_registration().to_object()
        data["namespaces"]["users"][0]["regex"] = "@_discord_(("
        assert AppServiceRegistration.from_object(data) is None

    def test_registration_is_immutable(self):
        reg = generate_registration()
        with pytest.raises(Exception):
            reg.as_token = "changed"  # type: ignore[misc]
