"""Tests for cache key derivation."""

import re

from dbhub.access import QueryTemplate
from dbhub.cache_keys import derive_keys, namespace_for, resolved_query_text

_MD5 = r"[0-9a-f]{32}"


def test_owner_view_keys():
    keys = derive_keys("alice", "alice", "db", "t", QueryTemplate.OWNER)

    assert re.fullmatch(rf"alice/{_MD5}", keys.metadata_key)
    assert re.fullmatch(rf"tbl-{_MD5}", keys.output_key)


def test_public_view_keys():
    keys = derive_keys("bob", "alice", "db", "t", QueryTemplate.PUBLIC)

    assert re.fullmatch(rf"pub/{_MD5}", keys.metadata_key)
    assert re.fullmatch(rf"tbl-pub-{_MD5}", keys.output_key)


def test_public_keys_shared_between_non_owners():
    """Every non-owner (including anonymous) shares the public entries."""
    bob = derive_keys("bob", "alice", "db", "t", QueryTemplate.PUBLIC)
    anon = derive_keys("", "alice", "db", "t", QueryTemplate.PUBLIC)

    assert bob == anon


def test_owner_and_public_keys_never_collide():
    owner = derive_keys("alice", "alice", "db", "t", QueryTemplate.OWNER)
    public = derive_keys("bob", "alice", "db", "t", QueryTemplate.PUBLIC)

    assert owner.metadata_key != public.metadata_key
    assert owner.output_key != public.output_key


def test_keys_are_deterministic():
    first = derive_keys("alice", "alice", "db", "t", QueryTemplate.OWNER, extra_params=(10,))
    second = derive_keys("alice", "alice", "db", "t", QueryTemplate.OWNER, extra_params=(10,))
    assert first == second


def test_output_key_varies_with_request_shape():
    base = derive_keys("bob", "alice", "db", "t", QueryTemplate.PUBLIC, extra_params=(10,))

    assert derive_keys("bob", "alice", "db", "other", QueryTemplate.PUBLIC, extra_params=(10,)).output_key != base.output_key
    assert derive_keys("bob", "alice", "db", "t", QueryTemplate.PUBLIC, extra_params=(25,)).output_key != base.output_key
    assert derive_keys("bob", "alice", "db", "t", QueryTemplate.PUBLIC, version=2, extra_params=(10,)).output_key != base.output_key


def test_kind_prefixes_output_key():
    keys = derive_keys("bob", "alice", "db", "t", QueryTemplate.PUBLIC, kind="visdat")
    assert keys.output_key.startswith("visdat-pub-")


def test_length_prefixing_prevents_ambiguity():
    """("ab", "c") and ("a", "bc") must not hash alike."""
    one = derive_keys("bob", "ab", "c", "t", QueryTemplate.PUBLIC)
    two = derive_keys("bob", "a", "bc", "t", QueryTemplate.PUBLIC)
    assert one.output_key != two.output_key


def test_metadata_key_derived_from_resolved_query():
    text = resolved_query_text(QueryTemplate.PUBLIC, "alice", "db")
    assert "'alice'" in text and "'db'" in text

    other_db = derive_keys("bob", "alice", "other", "t", QueryTemplate.PUBLIC)
    this_db = derive_keys("bob", "alice", "db", "t", QueryTemplate.PUBLIC)
    assert other_db.metadata_key != this_db.metadata_key


def test_namespace_for():
    assert namespace_for("alice", QueryTemplate.OWNER) == "alice"
    assert namespace_for("alice", QueryTemplate.PUBLIC) == "pub"
