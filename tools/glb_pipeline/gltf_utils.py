"""Small helpers shared by the GLB parser, migrator and writer."""
import json
from typing import Any, Dict, Iterator, Union

BytesLike = Union[bytes, bytearray, memoryview]

TECHNIQUES_EXTENSION = "KHR_techniques_webgl"


def get_magic(data: BytesLike, offset: int = 0) -> str:
    """Return the four-character magic at offset, or fewer if data is short."""
    raw = bytes(data[offset:offset + 4])
    return raw.decode("latin-1")


def get_string_from_bytes(data: BytesLike, offset: int = 0, length: int = None) -> str:
    """Decode a UTF-8 byte range.

    Raises:
        UnicodeDecodeError: If the range is not valid UTF-8
    """
    end = len(data) if length is None else offset + length
    return bytes(data[offset:end]).decode("utf-8")


def get_json_from_bytes(data: BytesLike, offset: int = 0, length: int = None) -> Any:
    """Decode a UTF-8 byte range and parse it as JSON."""
    return json.loads(get_string_from_bytes(data, offset, length))


def remove_extensions_used(gltf: Dict[str, Any], extension: str):
    """Remove an extension name from extensionsUsed, dropping the list if emptied."""
    extensions_used = gltf.get("extensionsUsed")
    if not isinstance(extensions_used, list):
        return

    if extension in extensions_used:
        extensions_used.remove(extension)
    if not extensions_used:
        del gltf["extensionsUsed"]


def iter_collection(gltf: Dict[str, Any], name: str) -> Iterator[Dict[str, Any]]:
    """Yield objects of a top-level collection.

    glTF 2.0 stores collections as arrays, glTF 1.0 as objects keyed by id.
    Entries that are not objects are skipped.
    """
    collection = gltf.get(name)
    if isinstance(collection, dict):
        items = collection.values()
    elif isinstance(collection, list):
        items = collection
    else:
        return

    for item in items:
        if isinstance(item, dict):
            yield item


def _iter_shaders(gltf: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    yield from iter_collection(gltf, "shaders")

    extensions = gltf.get("extensions")
    if not isinstance(extensions, dict):
        return
    extension = extensions.get(TECHNIQUES_EXTENSION)
    if isinstance(extension, dict):
        yield from iter_collection(extension, "shaders")


def _iter_extras_owners(gltf: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    yield from _iter_shaders(gltf)
    yield from iter_collection(gltf, "buffers")
    yield from iter_collection(gltf, "images")
    yield gltf


def add_pipeline_extras(gltf: Dict[str, Any]) -> Dict[str, Any]:
    """Ensure extras._pipeline exists on the root, buffers, images and shaders.

    The pipeline object is where loaders keep data that is not part of the
    glTF JSON, such as the binary source of an embedded buffer.
    """
    for owner in _iter_extras_owners(gltf):
        extras = owner.get("extras")
        if not isinstance(extras, dict):
            extras = {}
            owner["extras"] = extras
        if not isinstance(extras.get("_pipeline"), dict):
            extras["_pipeline"] = {}
    return gltf


def remove_pipeline_extras(gltf: Dict[str, Any]) -> Dict[str, Any]:
    """Strip extras._pipeline everywhere add_pipeline_extras puts it."""
    for owner in _iter_extras_owners(gltf):
        extras = owner.get("extras")
        if not isinstance(extras, dict):
            continue
        extras.pop("_pipeline", None)
        if not extras:
            del owner["extras"]
    return gltf


def get_pipeline_source(item: Dict[str, Any]):
    """Return extras._pipeline.source of a buffer/image/shader, if any."""
    extras = item.get("extras")
    if not isinstance(extras, dict):
        return None
    pipeline = extras.get("_pipeline")
    if not isinstance(pipeline, dict):
        return None
    return pipeline.get("source")


def set_pipeline_source(item: Dict[str, Any], source):
    """Attach a binary source to extras._pipeline of an item."""
    extras = item.setdefault("extras", {})
    pipeline = extras.setdefault("_pipeline", {})
    pipeline["source"] = source
