"""Access resolution: who may read which version of a database.

The rule is simple and deliberately asymmetric:

- The owner sees their newest version, public or not.
- Everyone else (other users and anonymous visitors) sees the newest
  *public* version.

"Newest" is the maximum version number that satisfies the visibility
predicate. It is expressed as a MAX() sub-select rather than relying on
ORDER BY ... LIMIT 1, so the rule holds regardless of the storage engine.

When nothing matches, NotFound is raised. A private database and a missing
database are indistinguishable to the caller.
"""

import enum
from dataclasses import dataclass

import structlog

from dbhub.database import MetadataDB
from dbhub.errors import NotFound

logger = structlog.get_logger()

_BASE_QUERY = """
SELECT db.minio_bucket, ver.minioid
FROM database_versions AS ver
JOIN sqlite_databases AS db ON ver.db = db.idnum
WHERE db.username = ?
    AND db.dbname = ?"""

_OWNER_LATEST = _BASE_QUERY + """
    AND ver.version = (
        SELECT MAX(v2.version)
        FROM database_versions AS v2
        WHERE v2.db = db.idnum
    )"""

_PUBLIC_LATEST = _BASE_QUERY + """
    AND ver.public = true
    AND ver.version = (
        SELECT MAX(v2.version)
        FROM database_versions AS v2
        WHERE v2.db = db.idnum
            AND v2.public = true
    )"""

_OWNER_EXACT = _BASE_QUERY + """
    AND ver.version = ?"""

_PUBLIC_EXACT = _BASE_QUERY + """
    AND ver.version = ?
    AND ver.public = true"""


class QueryTemplate(enum.Enum):
    """Version-selection rule for a request."""

    OWNER = "owner"
    PUBLIC = "public"

    @property
    def is_owner_view(self) -> bool:
        return self is QueryTemplate.OWNER

    def sql(self, version: int | None = None) -> str:
        """Return the parameterised query text for this template."""
        if version is None:
            return _OWNER_LATEST if self.is_owner_view else _PUBLIC_LATEST
        return _OWNER_EXACT if self.is_owner_view else _PUBLIC_EXACT

    def params(self, owner: str, db_name: str, version: int | None = None) -> list:
        """Bound parameters matching sql()."""
        if version is None:
            return [owner, db_name]
        return [owner, db_name, version]


@dataclass(frozen=True)
class StorageLocation:
    """Where a resolved database version lives in object storage."""

    bucket: str
    object_id: str

    def to_dict(self) -> dict[str, str]:
        return {"bucket": self.bucket, "object_id": self.object_id}

    @classmethod
    def from_dict(cls, data: dict) -> "StorageLocation":
        return cls(bucket=data["bucket"], object_id=data["object_id"])


def resolve(acting_user: str, owner: str, db_name: str) -> QueryTemplate:
    """
    Pick the version-selection rule for a request.

    Args:
        acting_user: Verified username, or "" for anonymous
        owner: Owner of the requested database
        db_name: Requested database name (only used for logging)

    Returns:
        QueryTemplate.OWNER when the actor owns the database, else PUBLIC
    """
    template = QueryTemplate.OWNER if acting_user and acting_user == owner else QueryTemplate.PUBLIC
    logger.debug(
        "access_resolved",
        actor=acting_user or "-",
        owner=owner,
        db_name=db_name,
        template=template.value,
    )
    return template


def lookup(
    metadata: MetadataDB,
    template: QueryTemplate,
    owner: str,
    db_name: str,
    version: int | None = None,
) -> StorageLocation:
    """
    Execute the selected template against the metadata store.

    Raises:
        NotFound: No version visible under this template
    """
    row = metadata.execute_one(template.sql(version), template.params(owner, db_name, version))
    if not row or not row[1]:
        logger.warning(
            "database_not_found",
            owner=owner,
            db_name=db_name,
            version=version,
            template=template.value,
        )
        raise NotFound(owner=owner, db_name=db_name, version=version)

    return StorageLocation(bucket=row[0], object_id=row[1])
