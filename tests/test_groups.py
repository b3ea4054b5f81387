"""Tests for the groups file parser and store."""

from __future__ import annotations

from pathlib import Path

import pytest

from fanssh.errors import ConfigError
from fanssh.groups import GroupStore, Member, parse_groups

GROUPS = """
# frontends
[web]
web1-3 : FRONT PROD
Web9

[db]
db1 : PROD
db2 : STAGING   # replica

[all]
@WEB
@db
"""


def test_sections_and_members():
    groups = parse_groups(GROUPS.splitlines())
    assert list(groups) == ["WEB", "DB", "ALL"]
    assert groups["WEB"].hostnames == ["web1", "web2", "web3", "web9"]
    assert groups["WEB"].members[0] == Member("web1", frozenset({"FRONT", "PROD"}))
    assert groups["WEB"].members[3].attrs == frozenset()


def test_inclusion_concatenates_in_order():
    groups = parse_groups(GROUPS.splitlines())
    assert groups["ALL"].hostnames == ["web1", "web2", "web3", "web9", "db1", "db2"]


def test_inclusion_keeps_duplicates():
    groups = parse_groups("[a]\nh1\n[b]\nh1\nh2\n[c]\n@a\n@b\n".splitlines())
    assert groups["C"].hostnames == ["h1", "h1", "h2"]


def test_forward_reference():
    groups = parse_groups("[outer]\n@inner\nx1\n[inner]\ny1\n".splitlines())
    assert groups["OUTER"].hostnames == ["y1", "x1"]


def test_local_attributes_win_over_included():
    text = "[base]\nh1 : REMOTE\nh2 : REMOTE\n[mine]\nh1 : LOCAL\n@base\n"
    groups = parse_groups(text.splitlines())
    assert groups["MINE"].attrs["h1"] == frozenset({"LOCAL"})
    assert groups["MINE"].attrs["h2"] == frozenset({"REMOTE"})


def test_member_before_section():
    with pytest.raises(ConfigError, match="outside"):
        parse_groups(["orphan1", "[g]", "h1"])


def test_undefined_reference():
    with pytest.raises(ConfigError, match="undefined group @NOPE"):
        parse_groups(["[g]", "@nope"])


def test_unparseable_line():
    with pytest.raises(ConfigError, match="cannot parse"):
        parse_groups(["[g]", "two words"])


def test_cycle():
    with pytest.raises(ConfigError, match="includes itself"):
        parse_groups(["[a]", "@b", "[b]", "@a"])


def test_bad_member_range():
    with pytest.raises(ConfigError):
        parse_groups(["[g]", "h9-3"])


def test_store_lookup_is_case_insensitive():
    store = GroupStore.from_text(GROUPS)
    assert store.get("Web") is store.get("WEB")
    assert store.get("missing") is None
    assert store.names() == ["WEB", "DB", "ALL"]


def test_store_loads_file_once(tmp_path: Path):
    path = tmp_path / "groups"
    path.write_text("[g]\nh1\n")
    store = GroupStore(path)
    first = store.load()

    path.write_text("[g]\nh2\n")
    assert store.load() is first
    assert store.get("g").hostnames == ["h1"]


def test_missing_file_is_empty(tmp_path: Path):
    store = GroupStore(tmp_path / "absent")
    assert store.load() == {}


def test_no_path_is_empty():
    assert GroupStore().load() == {}


def test_attributes_on_reference_rejected():
    with pytest.raises(ConfigError, match="attributes are not allowed"):
        parse_groups(["[g1]", "h1", "[g2]", "@g1 : UP"])


def test_groups_file_not_utf8(tmp_path: Path):
    path = tmp_path / "groups"
    path.write_bytes(b"[WEB]\nweb\xff1\n")
    with pytest.raises(ConfigError, match="Cannot read groups file"):
        GroupStore(path).load()


def test_groups_path_is_a_directory(tmp_path: Path):
    with pytest.raises(ConfigError):
        GroupStore(tmp_path).load()
