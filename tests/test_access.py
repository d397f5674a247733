"""Tests for access resolution and version lookup."""

import pytest

from dbhub import access
from dbhub.access import QueryTemplate, StorageLocation
from dbhub.errors import NotFound


class TestResolve:
    def test_owner_gets_owner_template(self):
        assert access.resolve("alice", "alice", "db") is QueryTemplate.OWNER

    def test_other_user_gets_public_template(self):
        assert access.resolve("bob", "alice", "db") is QueryTemplate.PUBLIC

    def test_anonymous_gets_public_template(self):
        assert access.resolve("", "alice", "db") is QueryTemplate.PUBLIC

    def test_anonymous_never_owns_empty_owner(self):
        """An empty acting user is anonymous even when the owner is empty."""
        assert access.resolve("", "", "db") is QueryTemplate.PUBLIC

    def test_owner_match_is_case_sensitive(self):
        assert access.resolve("Alice", "alice", "db") is QueryTemplate.PUBLIC


class TestQueryTemplate:
    def test_latest_queries_use_max_version(self):
        for template in QueryTemplate:
            assert "MAX(v2.version)" in template.sql()

    def test_public_queries_filter_on_public(self):
        assert "public = true" in QueryTemplate.PUBLIC.sql()
        assert "public = true" in QueryTemplate.PUBLIC.sql(version=2)
        assert "public = true" not in QueryTemplate.OWNER.sql()

    def test_params(self):
        assert QueryTemplate.OWNER.params("alice", "db") == ["alice", "db"]
        assert QueryTemplate.PUBLIC.params("alice", "db", 3) == ["alice", "db", 3]


class TestLookup:
    def test_owner_sees_newest_version_even_if_private(self, metadata_db, seed_database):
        seed_database("alice", "db", public=True)
        seed_database("alice", "db", public=False)

        location = access.lookup(metadata_db, QueryTemplate.OWNER, "alice", "db")

        assert location == StorageLocation(bucket="dbhub-test", object_id="alice-0002")

    def test_public_view_sees_newest_public_version(self, metadata_db, seed_database):
        seed_database("alice", "db", public=True)
        seed_database("alice", "db", public=False)

        location = access.lookup(metadata_db, QueryTemplate.PUBLIC, "alice", "db")

        assert location.object_id == "alice-0001"

    def test_newest_is_by_version_not_insertion(self, metadata_db, seed_database):
        seed_database("alice", "db", public=True)
        seed_database("alice", "db", public=True)
        seed_database("alice", "db", public=True)

        location = access.lookup(metadata_db, QueryTemplate.PUBLIC, "alice", "db")

        assert location.object_id == "alice-0003"

    def test_private_only_database_is_not_found(self, metadata_db, seed_database):
        seed_database("alice", "secret", public=False)

        with pytest.raises(NotFound) as private_exc:
            access.lookup(metadata_db, QueryTemplate.PUBLIC, "alice", "secret")
        with pytest.raises(NotFound) as missing_exc:
            access.lookup(metadata_db, QueryTemplate.PUBLIC, "alice", "missing")

        # Private and absent are indistinguishable to the caller
        assert private_exc.value.client_message() == missing_exc.value.client_message()
        assert private_exc.value.status_code == missing_exc.value.status_code == 404

    def test_unknown_owner_is_not_found(self, metadata_db):
        with pytest.raises(NotFound):
            access.lookup(metadata_db, QueryTemplate.OWNER, "nobody", "db")

    def test_explicit_version(self, metadata_db, seed_database):
        seed_database("alice", "db", public=True)
        seed_database("alice", "db", public=True)

        location = access.lookup(metadata_db, QueryTemplate.PUBLIC, "alice", "db", version=1)

        assert location.object_id == "alice-0001"

    def test_explicit_private_version_hidden_from_public(self, metadata_db, seed_database):
        seed_database("alice", "db", public=True)
        seed_database("alice", "db", public=False)

        with pytest.raises(NotFound):
            access.lookup(metadata_db, QueryTemplate.PUBLIC, "alice", "db", version=2)
        assert access.lookup(metadata_db, QueryTemplate.OWNER, "alice", "db", version=2).object_id == "alice-0002"


def test_storage_location_round_trip():
    location = StorageLocation(bucket="b", object_id="o")
    assert StorageLocation.from_dict(location.to_dict()) == location
