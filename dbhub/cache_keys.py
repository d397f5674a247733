"""Deterministic cache keys for the metadata and output cache tiers.

Both tiers are partitioned by who is asking:

- Owner views are keyed under the acting user's namespace, so one user's
  cached private view can never be served to somebody else.
- Public views share a single "pub" namespace, so every non-owner gets the
  same cached response.

Keys are md5 fingerprints of length-delimited components. md5 is used as a
fingerprint here, not for security: the inputs are not secret and the only
requirement is a fixed-length, stable, well-distributed key.
"""

import hashlib
from dataclasses import dataclass

from dbhub.access import QueryTemplate

PUBLIC_NAMESPACE = "pub"


@dataclass(frozen=True)
class CacheKeys:
    metadata_key: str
    output_key: str


def _fingerprint(*parts: object) -> str:
    """md5 hex of the parts, each prefixed with its length."""
    digest = hashlib.md5()
    for part in parts:
        text = "" if part is None else str(part)
        encoded = text.encode("utf-8")
        digest.update(f"{len(encoded)}:".encode())
        digest.update(encoded)
    return digest.hexdigest()


def namespace_for(acting_user: str, template: QueryTemplate) -> str:
    """Cache namespace for a request."""
    return acting_user if template.is_owner_view else PUBLIC_NAMESPACE


def resolved_query_text(template: QueryTemplate, owner: str, db_name: str, version: int | None = None) -> str:
    """The concrete query text a metadata lookup will run, parameters included."""
    params = ", ".join(repr(p) for p in template.params(owner, db_name, version))
    return f"{template.sql(version)}\n-- params: [{params}]"


def derive_keys(
    acting_user: str,
    owner: str,
    db_name: str,
    table: str,
    template: QueryTemplate,
    kind: str = "tbl",
    version: int | None = None,
    extra_params: tuple = (),
) -> CacheKeys:
    """
    Build the metadata-tier and output-tier keys for a request.

    Args:
        acting_user: Verified username, or "" for anonymous
        owner: Owner of the requested database
        db_name: Requested database name
        table: Requested table ("" when defaulting to the first table)
        template: Result of access.resolve()
        kind: Output family ("tbl", "visdat", "csv")
        version: Explicit version, if the request pinned one
        extra_params: Projection/filter values and the effective row limit

    Returns:
        CacheKeys with both keys
    """
    namespace = namespace_for(acting_user, template)

    query_text = resolved_query_text(template, owner, db_name, version)
    metadata_key = f"{namespace}/{_fingerprint(query_text)}"

    output_hash = _fingerprint(namespace, owner, db_name, table, version, *extra_params)
    if template.is_owner_view:
        output_key = f"{kind}-{output_hash}"
    else:
        output_key = f"{kind}-pub-{output_hash}"

    return CacheKeys(metadata_key=metadata_key, output_key=output_key)
