"""
Issue identity.

Internal IDs (``is-<ulid>``) never change; display IDs (``<prefix>-<code>``)
are short codes recorded in the mapping table on the sync branch.
"""

from gitrack.core.ids.codes import candidate_codes, code_digest
from gitrack.core.ids.mapper import MAPPING_FILE, IdMapper
from gitrack.core.ids.mapping import (
    IdMapping,
    MappingFormatError,
    merge_mappings,
    reconcile_mappings,
)
from gitrack.core.ids.models import (
    CodeRename,
    DisplayId,
    InternalId,
    MappingEntry,
    is_internal_id,
    is_ulid,
)

__all__ = [
    "MAPPING_FILE",
    "CodeRename",
    "DisplayId",
    "IdMapper",
    "IdMapping",
    "InternalId",
    "MappingEntry",
    "MappingFormatError",
    "candidate_codes",
    "code_digest",
    "is_internal_id",
    "is_ulid",
    "merge_mappings",
    "reconcile_mappings",
]
