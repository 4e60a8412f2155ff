"""Type definitions for the binary glTF container format."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

GLB_MAGIC = "glTF"
HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8

# Version 1 header: magic, version, length, content_length, content_format
HEADER_V1_SIZE = 20
CONTENT_FORMAT_JSON = 0

CHUNK_TYPE_JSON = 0x4E4F534A  # "JSON" little-endian
CHUNK_TYPE_BIN = 0x004E4942  # "BIN\0" little-endian


@dataclass
class GlbHeader:
    """GLB container header."""

    magic: str
    version: int
    length: int
    content_length: int = 0
    content_format: int = 0


@dataclass
class GlbChunk:
    """Version 2 container chunk."""

    type: int
    offset: int
    length: int
    data: Optional[memoryview] = None

    @property
    def is_json(self) -> bool:
        return self.type == CHUNK_TYPE_JSON

    @property
    def is_binary(self) -> bool:
        return self.type == CHUNK_TYPE_BIN


@dataclass
class MigrationDiagnostic:
    """A legacy reference the technique migration could not resolve."""

    kind: str
    path: str
    key: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class GlbDocument:
    """Decoded container: glTF JSON with the embedded binary attached."""

    gltf: Dict[str, Any]
    version: int
    binary: Optional[memoryview] = None
    diagnostics: List[MigrationDiagnostic] = field(default_factory=list)

    @property
    def has_diagnostics(self) -> bool:
        return bool(self.diagnostics)
