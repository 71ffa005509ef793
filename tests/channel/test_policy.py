"""Tests for inbound access policy."""

import pytest

from channel.policy import (
    is_group_allowed,
    is_group_sender_allowed,
    is_sender_allowed,
    resolve_group_config,
    resolve_require_mention,
)
from config.settings import GroupSettings, Settings


@pytest.mark.parametrize(
    "policy, allow_from, sender, expected",
    [
        ("open", [], "1", True),
        ("disabled", ["1"], "1", False),
        ("allowlist", ["1", "2"], "2", True),
        ("allowlist", ["1"], "3", False),
        ("allowlist", ["*"], "3", True),
        ("allowlist", [], "3", False),
        ("allowlist", [" 7 "], "7", True),
    ],
)
def test_is_sender_allowed(policy, allow_from, sender, expected):
    assert is_sender_allowed(sender, policy, allow_from) is expected


def test_is_group_allowed_checks_chat_id():
    assert is_group_allowed("-100", "allowlist", ["-100"])
    assert not is_group_allowed("-200", "allowlist", ["-100"])


def test_group_sender_allowlist():
    assert is_group_sender_allowed("u1", None)
    assert is_group_sender_allowed("u1", GroupSettings())
    assert is_group_sender_allowed("u1", GroupSettings(allow_from=["u1"]))
    assert not is_group_sender_allowed("u2", GroupSettings(allow_from=["u1"]))


def test_resolve_group_config_falls_back_to_wildcard():
    settings = Settings(
        _env_file=None,
        groups={"-100": GroupSettings(require_mention=False), "*": GroupSettings(enabled=False)},
    )

    assert resolve_group_config(settings, "-100").require_mention is False
    assert resolve_group_config(settings, "-999").enabled is False


def test_resolve_group_config_without_groups():
    assert resolve_group_config(Settings(_env_file=None), "-100") is None


def test_resolve_require_mention_prefers_group_override():
    settings = Settings(_env_file=None, require_mention=True)

    assert resolve_require_mention(settings, None) is True
    assert resolve_require_mention(settings, GroupSettings()) is True
    assert resolve_require_mention(settings, GroupSettings(require_mention=False)) is False
