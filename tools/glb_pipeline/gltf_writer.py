"""Write decoded GLB documents back out as GLB or glTF + bin."""
import json
from pathlib import Path
from typing import Any, Dict, Union

from pygltflib import GLTF2

from .glb_parser import GlbParser
from .glb_types import GlbDocument
from .gltf_utils import remove_pipeline_extras


def _clean_json(document: GlbDocument) -> Dict[str, Any]:
    """Copy of the document JSON without pipeline extras."""
    def strip(value):
        if isinstance(value, dict):
            return {
                k: strip(v) for k, v in value.items()
                if not isinstance(v, (bytes, bytearray, memoryview))
            }
        if isinstance(value, list):
            return [strip(v) for v in value]
        return value

    return remove_pipeline_extras(strip(document.gltf))


def write_glb(document: GlbDocument, output_path: Union[str, Path]):
    """Write a version 2 document as a GLB file.

    Args:
        document: Decoded container
        output_path: Path for output .glb file

    Raises:
        ValueError: If the document is glTF 1.0
    """
    if document.version != 2:
        raise ValueError(f"Cannot write glTF version {document.version} document as GLB")

    gltf_json = _clean_json(document)
    blob = bytes(document.binary) if document.binary is not None else b""

    buffers = gltf_json.get("buffers")
    if blob and isinstance(buffers, list) and buffers:
        buffers[0].pop("uri", None)
        buffers[0]["byteLength"] = len(blob)

    gltf = GLTF2.from_json(json.dumps(gltf_json))
    if blob:
        gltf.set_binary_blob(blob)
    gltf.save(str(output_path))


def write_gltf(document: GlbDocument, output_path: Union[str, Path]):
    """Write a document as .gltf JSON with the binary payload in a sibling .bin.

    Args:
        document: Decoded container
        output_path: Path for output .gltf file
    """
    output_path = Path(output_path)
    gltf_json = _clean_json(document)

    if document.binary is not None and len(document.binary) > 0:
        bin_path = output_path.with_suffix(".bin")
        with open(bin_path, "wb") as f:
            f.write(document.binary)

        buffer = None
        buffers = gltf_json.get("buffers")
        if document.version == 1 and isinstance(buffers, dict):
            for name in GlbParser.BINARY_BUFFER_NAMES:
                if isinstance(buffers.get(name), dict):
                    buffer = buffers[name]
                    break
        elif isinstance(buffers, list) and buffers and isinstance(buffers[0], dict):
            buffer = buffers[0]

        if buffer is not None:
            buffer["uri"] = bin_path.name
            buffer["byteLength"] = len(document.binary)

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(gltf_json, f, indent=2)
