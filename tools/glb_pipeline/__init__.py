"""Binary glTF container decoder with KHR_technique_webgl migration."""
from .errors import (
    GlbError,
    InvalidMagic,
    MalformedJson,
    MissingJsonChunk,
    TruncatedContainer,
    UnsupportedContentFormat,
    UnsupportedVersion,
)
from .glb_parser import GlbParser, parse_glb
from .glb_types import GlbChunk, GlbDocument, GlbHeader, MigrationDiagnostic
from .technique_migrator import LegacyTechniqueMigrator, ValueKeyRule, migrate_techniques

__all__ = [
    "GlbError",
    "InvalidMagic",
    "MalformedJson",
    "MissingJsonChunk",
    "TruncatedContainer",
    "UnsupportedContentFormat",
    "UnsupportedVersion",
    "GlbParser",
    "parse_glb",
    "GlbChunk",
    "GlbDocument",
    "GlbHeader",
    "MigrationDiagnostic",
    "LegacyTechniqueMigrator",
    "ValueKeyRule",
    "migrate_techniques",
]
