"""Parser for binary glTF (GLB) containers, versions 1 and 2."""
import json
import logging
import struct
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import (
    InvalidMagic,
    MalformedJson,
    MissingJsonChunk,
    TruncatedContainer,
    UnsupportedContentFormat,
    UnsupportedVersion,
)
from .glb_types import (
    CHUNK_HEADER_SIZE,
    CONTENT_FORMAT_JSON,
    GLB_MAGIC,
    HEADER_SIZE,
    HEADER_V1_SIZE,
    GlbChunk,
    GlbDocument,
    GlbHeader,
)
from .gltf_utils import (
    BytesLike,
    add_pipeline_extras,
    get_json_from_bytes,
    get_magic,
    remove_extensions_used,
    set_pipeline_source,
)
from .technique_migrator import LegacyTechniqueMigrator

logger = logging.getLogger(__name__)


class GlbParser:
    """Decodes GLB containers into glTF JSON with the binary payload attached."""

    SUPPORTED_VERSIONS = (1, 2)

    # In some older models the embedded buffer is named KHR_binary_glTF
    BINARY_BUFFER_NAMES = ("binary_glTF", "KHR_binary_glTF")
    BINARY_EXTENSION = "KHR_binary_glTF"

    def __init__(self, migrator: Optional[LegacyTechniqueMigrator] = None):
        self.migrator = migrator or LegacyTechniqueMigrator()

    def parse_header_bytes(self, data: BytesLike) -> GlbHeader:
        """Parse and validate the container header.

        Args:
            data: Container bytes

        Returns:
            GlbHeader with parsed data

        Raises:
            InvalidMagic: If the data does not start with "glTF"
            UnsupportedVersion: If the version is not 1 or 2
            TruncatedContainer: If the header or declared length does not fit
        """
        magic = get_magic(data)
        if magic != GLB_MAGIC:
            raise InvalidMagic(f"Invalid glTF magic: {magic!r}")

        if len(data) < HEADER_SIZE:
            raise TruncatedContainer(f"Header data too short: {len(data)} bytes")

        version, length = struct.unpack_from("<II", data, 4)
        if version not in self.SUPPORTED_VERSIONS:
            raise UnsupportedVersion(f"Binary glTF version is not 1 or 2: {version}")

        if length < HEADER_SIZE:
            raise TruncatedContainer(f"Declared length {length} is smaller than the header")
        if length > len(data):
            raise TruncatedContainer(
                f"Declared length {length} exceeds data size {len(data)}"
            )

        content_length = 0
        content_format = 0
        if version == 1:
            if length < HEADER_V1_SIZE:
                raise TruncatedContainer(
                    f"Declared length {length} is smaller than the version 1 header"
                )
            content_length, content_format = struct.unpack_from("<II", data, 12)

        return GlbHeader(
            magic=magic,
            version=version,
            length=length,
            content_length=content_length,
            content_format=content_format,
        )

    def parse_chunks(self, data: BytesLike, header: GlbHeader) -> List[GlbChunk]:
        """Walk the version 2 chunk table.

        Chunk payloads are memoryview slices of data, not copies.

        Raises:
            TruncatedContainer: If a chunk runs past the declared length
        """
        view = memoryview(data)
        chunks = []
        offset = HEADER_SIZE
        while offset < header.length:
            if offset + CHUNK_HEADER_SIZE > header.length:
                raise TruncatedContainer(f"Chunk header at offset {offset} is truncated")

            chunk_length, chunk_type = struct.unpack_from("<II", view, offset)
            start = offset + CHUNK_HEADER_SIZE
            end = start + chunk_length
            if end > header.length:
                raise TruncatedContainer(
                    f"Chunk at offset {offset} declares {chunk_length} bytes, "
                    f"only {header.length - start} remain"
                )

            chunks.append(
                GlbChunk(
                    type=chunk_type,
                    offset=start,
                    length=chunk_length,
                    data=view[start:end],
                )
            )
            offset = end

        return chunks

    def parse(self, data: BytesLike) -> GlbDocument:
        """Decode a complete container.

        Version 2 documents are migrated from KHR_technique_webgl on the way.

        Raises:
            GlbError: On any decode failure
        """
        header = self.parse_header_bytes(data)
        if header.version == 1:
            return self._parse_version1(data, header)
        return self._parse_version2(data, header)

    def parse_file(self, path: Union[str, Path]) -> GlbDocument:
        """Read a .glb file and decode it."""
        with open(path, "rb") as f:
            return self.parse(f.read())

    def _parse_json(self, payload: BytesLike) -> Dict[str, Any]:
        try:
            gltf = get_json_from_bytes(payload)
        except UnicodeDecodeError as e:
            raise MalformedJson("JSON content is not valid UTF-8") from e
        except json.JSONDecodeError as e:
            raise MalformedJson(f"Invalid JSON content: {e}") from e

        if not isinstance(gltf, dict):
            raise MalformedJson(f"JSON content is {type(gltf).__name__}, expected an object")
        return gltf

    def _parse_version1(self, data: BytesLike, header: GlbHeader) -> GlbDocument:
        if header.content_format != CONTENT_FORMAT_JSON:
            raise UnsupportedContentFormat(
                f"Binary glTF scene format is not JSON: {header.content_format}"
            )

        json_start = HEADER_V1_SIZE
        binary_start = json_start + header.content_length
        if binary_start > header.length:
            raise TruncatedContainer(
                f"Content length {header.content_length} exceeds declared length {header.length}"
            )

        view = memoryview(data)
        gltf = self._parse_json(view[json_start:binary_start])
        add_pipeline_extras(gltf)

        binary = view[binary_start:header.length]

        buffers = gltf.get("buffers")
        if isinstance(buffers, dict) and buffers:
            binary_buffer = None
            for name in self.BINARY_BUFFER_NAMES:
                if isinstance(buffers.get(name), dict):
                    binary_buffer = buffers[name]
                    break
            if binary_buffer is not None:
                set_pipeline_source(binary_buffer, binary)
                # Placeholder uri, must not be resolved
                binary_buffer.pop("uri", None)

        remove_extensions_used(gltf, self.BINARY_EXTENSION)
        return GlbDocument(gltf=gltf, version=1, binary=binary)

    def _parse_version2(self, data: BytesLike, header: GlbHeader) -> GlbDocument:
        gltf = None
        binary = None
        diagnostics = []

        for chunk in self.parse_chunks(data, header):
            if chunk.is_json:
                if gltf is not None:
                    logger.debug("Ignoring extra JSON chunk at offset %d", chunk.offset)
                    continue
                gltf = self._parse_json(chunk.data)
                diagnostics = self.migrator.migrate(gltf)
                add_pipeline_extras(gltf)
            elif chunk.is_binary:
                if binary is not None:
                    logger.debug("Ignoring extra BIN chunk at offset %d", chunk.offset)
                    continue
                binary = chunk.data
            else:
                logger.debug("Skipping unknown chunk type 0x%08X", chunk.type)

        if gltf is None:
            raise MissingJsonChunk("Binary glTF has no JSON chunk")

        buffers = gltf.get("buffers")
        if binary is not None and isinstance(buffers, list) and buffers:
            if isinstance(buffers[0], dict):
                set_pipeline_source(buffers[0], binary)

        return GlbDocument(gltf=gltf, version=2, binary=binary, diagnostics=diagnostics)


def parse_glb(data: BytesLike) -> GlbDocument:
    """Decode a GLB container with the default migrator."""
    return GlbParser().parse(data)
