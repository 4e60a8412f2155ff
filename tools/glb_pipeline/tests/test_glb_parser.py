"""Tests for the GLB container parser."""
import json
import os
import struct
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from glb_pipeline.errors import (
    InvalidMagic,
    MalformedJson,
    MissingJsonChunk,
    TruncatedContainer,
    UnsupportedContentFormat,
    UnsupportedVersion,
)
from glb_pipeline.glb_parser import GlbParser, parse_glb
from glb_pipeline.glb_types import CHUNK_TYPE_BIN, CHUNK_TYPE_JSON

CHUNK_TYPE_UNKNOWN = 0x12345678


def make_chunk(chunk_type, payload):
    """Build a version 2 chunk: length + type + payload."""
    return struct.pack("<II", len(payload), chunk_type) + payload


def json_payload(gltf):
    """Encode glTF JSON, space-padded to 4 bytes."""
    text = json.dumps(gltf).encode("utf-8")
    if len(text) % 4:
        text += b" " * (4 - len(text) % 4)
    return text


def create_glb_v2(chunks):
    """Assemble a version 2 container from prebuilt chunks."""
    body = b"".join(chunks)
    return b"glTF" + struct.pack("<II", 2, 12 + len(body)) + body


def create_glb_v1(gltf, binary=b"", content_format=0):
    """Assemble a version 1 container: 20-byte header, JSON, binary."""
    content = json.dumps(gltf).encode("utf-8")
    length = 20 + len(content) + len(binary)
    header = b"glTF" + struct.pack("<IIII", 1, length, len(content), content_format)
    return header + content + binary


@pytest.mark.parametrize("data", [
    b"GLTF" + struct.pack("<II", 2, 12),
    b"glb " + struct.pack("<II", 2, 12),
    b"",
    b"gl",
])
def test_parse_invalid_magic(data):
    """Should raise InvalidMagic for anything not starting with glTF."""
    with pytest.raises(InvalidMagic):
        parse_glb(data)


def test_parse_header_too_short():
    """Should raise on a header cut short after the magic."""
    with pytest.raises(TruncatedContainer, match="too short"):
        parse_glb(b"glTF\x02\x00\x00\x00")


def test_parse_unsupported_version():
    """Should reject versions other than 1 and 2."""
    with pytest.raises(UnsupportedVersion, match="not 1 or 2"):
        parse_glb(b"glTF" + struct.pack("<II", 3, 12))


def test_parse_declared_length_below_header():
    """Should raise when the declared length is smaller than the header."""
    with pytest.raises(TruncatedContainer):
        parse_glb(b"glTF" + struct.pack("<II", 2, 8) + b"\x00" * 32)


def test_parse_declared_length_beyond_data():
    """Should raise when the declared length exceeds the buffer."""
    with pytest.raises(TruncatedContainer, match="exceeds data size"):
        parse_glb(b"glTF" + struct.pack("<II", 2, 100))


def test_errors_are_value_errors():
    """Decode errors should be catchable as ValueError."""
    with pytest.raises(ValueError):
        parse_glb(b"XXXX" + b"\x00" * 100)


def test_parse_header_bytes():
    """Should parse header fields of a version 2 container."""
    data = create_glb_v2([make_chunk(CHUNK_TYPE_JSON, json_payload({}))])
    header = GlbParser().parse_header_bytes(data)

    assert header.magic == "glTF"
    assert header.version == 2
    assert header.length == len(data)


def test_parse_chunks():
    """Should list chunks with offsets, lengths and payload views."""
    json_chunk = json_payload({"asset": {"version": "2.0"}})
    binary = b"\x01\x02\x03\x04\x05\x06\x07\x08"
    data = create_glb_v2([
        make_chunk(CHUNK_TYPE_JSON, json_chunk),
        make_chunk(CHUNK_TYPE_BIN, binary),
    ])

    parser = GlbParser()
    chunks = parser.parse_chunks(data, parser.parse_header_bytes(data))

    assert len(chunks) == 2
    assert chunks[0].is_json
    assert chunks[0].offset == 20
    assert chunks[0].length == len(json_chunk)
    assert chunks[1].is_binary
    assert chunks[1].offset == 20 + len(json_chunk) + 8
    assert bytes(chunks[1].data) == binary


def test_parse_empty_document():
    """Should decode a JSON-only container with no diagnostics."""
    data = create_glb_v2([
        make_chunk(CHUNK_TYPE_JSON, json_payload({"materials": [], "buffers": []})),
    ])

    document = parse_glb(data)

    assert document.version == 2
    assert document.gltf["materials"] == []
    assert document.gltf["buffers"] == []
    assert document.binary is None
    assert document.diagnostics == []
    assert not document.has_diagnostics


def test_parse_v2_attaches_binary_to_first_buffer():
    """First buffer's pipeline source should equal the BIN chunk payload."""
    binary = bytes(range(16))
    gltf = {"buffers": [{"byteLength": 16}, {"byteLength": 4, "uri": "other.bin"}]}
    data = create_glb_v2([
        make_chunk(CHUNK_TYPE_JSON, json_payload(gltf)),
        make_chunk(CHUNK_TYPE_BIN, binary),
    ])

    document = parse_glb(data)
    buffers = document.gltf["buffers"]
    source = buffers[0]["extras"]["_pipeline"]["source"]

    assert bytes(source) == binary
    assert bytes(document.binary) == binary
    assert "source" not in buffers[1]["extras"]["_pipeline"]
    assert buffers[1]["uri"] == "other.bin"


def test_parse_v2_binary_is_zero_copy():
    """Binary payload should be a view over the input buffer."""
    binary = b"\xAA" * 8
    data = create_glb_v2([
        make_chunk(CHUNK_TYPE_JSON, json_payload({"buffers": [{"byteLength": 8}]})),
        make_chunk(CHUNK_TYPE_BIN, binary),
    ])

    document = parse_glb(data)

    assert isinstance(document.binary, memoryview)
    assert document.binary.obj is data


def test_parse_v2_binary_without_buffers():
    """Binary payload is kept on the document even with no buffers to attach to."""
    data = create_glb_v2([
        make_chunk(CHUNK_TYPE_JSON, json_payload({"buffers": []})),
        make_chunk(CHUNK_TYPE_BIN, b"\x00" * 4),
    ])

    document = parse_glb(data)

    assert document.gltf["buffers"] == []
    assert bytes(document.binary) == b"\x00" * 4


def test_parse_v2_adds_root_pipeline_extras():
    """Root document should carry extras._pipeline."""
    data = create_glb_v2([make_chunk(CHUNK_TYPE_JSON, json_payload({"asset": {}}))])

    document = parse_glb(data)

    assert document.gltf["extras"]["_pipeline"] == {}


def test_parse_v2_missing_json_chunk():
    """Should raise when there is only a BIN chunk."""
    data = create_glb_v2([make_chunk(CHUNK_TYPE_BIN, b"\x00" * 8)])

    with pytest.raises(MissingJsonChunk):
        parse_glb(data)


def test_parse_v2_no_chunks():
    """A bare 12-byte header has no JSON chunk."""
    with pytest.raises(MissingJsonChunk):
        parse_glb(b"glTF" + struct.pack("<II", 2, 12))


def test_parse_v2_chunk_overruns_length():
    """Should raise when a chunk declares more bytes than remain."""
    chunk = struct.pack("<II", 64, CHUNK_TYPE_JSON) + b"{}  "
    data = b"glTF" + struct.pack("<II", 2, 12 + len(chunk)) + chunk

    with pytest.raises(TruncatedContainer, match="declares 64 bytes"):
        parse_glb(data)


def test_parse_v2_truncated_chunk_header():
    """Should raise when fewer than 8 bytes remain for a chunk header."""
    body = make_chunk(CHUNK_TYPE_JSON, json_payload({})) + b"\x00\x00\x00\x00"
    data = b"glTF" + struct.pack("<II", 2, 12 + len(body)) + body

    with pytest.raises(TruncatedContainer, match="Chunk header"):
        parse_glb(data)


@pytest.mark.parametrize("payload", [
    b"{not json}",
    b"\xff\xfe\x00\x00",
    b"[1, 2, 3]",
])
def test_parse_v2_malformed_json(payload):
    """Should raise MalformedJson for bad text, bad UTF-8, or non-objects."""
    data = create_glb_v2([make_chunk(CHUNK_TYPE_JSON, payload)])

    with pytest.raises(MalformedJson):
        parse_glb(data)


def test_parse_v2_duplicate_chunks_first_wins():
    """Later JSON and BIN chunks should be ignored."""
    data = create_glb_v2([
        make_chunk(CHUNK_TYPE_JSON, json_payload({"buffers": [{}], "asset": {"generator": "first"}})),
        make_chunk(CHUNK_TYPE_BIN, b"\x01" * 4),
        make_chunk(CHUNK_TYPE_JSON, json_payload({"asset": {"generator": "second"}})),
        make_chunk(CHUNK_TYPE_BIN, b"\x02" * 4),
    ])

    document = parse_glb(data)

    assert document.gltf["asset"]["generator"] == "first"
    assert bytes(document.binary) == b"\x01" * 4


def test_parse_v2_duplicate_chunk_still_validated():
    """A discarded chunk must still fit in the container."""
    bad_chunk = struct.pack("<II", 100, CHUNK_TYPE_JSON)
    body = make_chunk(CHUNK_TYPE_JSON, json_payload({})) + bad_chunk
    data = b"glTF" + struct.pack("<II", 2, 12 + len(body)) + body

    with pytest.raises(TruncatedContainer):
        parse_glb(data)


def test_parse_v2_skips_unknown_chunks():
    """Unknown chunk types should be skipped."""
    data = create_glb_v2([
        make_chunk(CHUNK_TYPE_UNKNOWN, b"\xff" * 4),
        make_chunk(CHUNK_TYPE_JSON, json_payload({"buffers": [{}]})),
        make_chunk(CHUNK_TYPE_BIN, b"\x07" * 4),
    ])

    document = parse_glb(data)

    assert bytes(document.binary) == b"\x07" * 4


def test_parse_v2_runs_technique_migration():
    """Version 2 documents should be migrated and diagnostics returned."""
    gltf = {
        "extensionsUsed": ["KHR_technique_webgl"],
        "extensionsRequired": ["KHR_technique_webgl"],
        "shaders": [{"type": 35633, "bufferView": 0}],
        "programs": [{"vertexShader": 0, "fragmentShader": 0}],
        "techniques": [{
            "program": 0,
            "attributes": {},
            "uniforms": {"u_diffuse": "diffuse"},
            "parameters": {"diffuse": {"type": 35666}},
        }],
        "materials": [{"technique": 0, "values": {"diffuse": [1, 0, 0, 1], "unknown": 3}}],
    }
    data = create_glb_v2([make_chunk(CHUNK_TYPE_JSON, json_payload(gltf))])

    document = parse_glb(data)
    extension = document.gltf["extensions"]["KHR_techniques_webgl"]

    assert document.gltf["extensionsUsed"] == ["KHR_techniques_webgl"]
    assert "techniques" not in document.gltf
    assert extension["shaders"][0]["extras"]["_pipeline"] == {}
    assert len(document.diagnostics) == 1
    assert document.diagnostics[0].key == "unknown"


def test_parse_v1_binary_slice():
    """Binary payload should be bytes 20 + contentLength .. length."""
    binary = bytes(range(32))
    gltf = {
        "buffers": {"binary_glTF": {"byteLength": 32, "uri": "data:,"}},
        "extensionsUsed": ["KHR_binary_glTF"],
    }
    data = create_glb_v1(gltf, binary)
    content_length = struct.unpack_from("<I", data, 12)[0]

    document = parse_glb(data)
    buffer = document.gltf["buffers"]["binary_glTF"]

    assert document.version == 1
    assert bytes(buffer["extras"]["_pipeline"]["source"]) == data[20 + content_length:len(data)]
    assert bytes(buffer["extras"]["_pipeline"]["source"]) == binary
    assert "uri" not in buffer
    assert "extensionsUsed" not in document.gltf


def test_parse_v1_khr_binary_gltf_buffer_name():
    """Older files name the embedded buffer KHR_binary_glTF."""
    gltf = {
        "buffers": {"KHR_binary_glTF": {"uri": "data:,"}},
        "extensionsUsed": ["KHR_binary_glTF", "KHR_materials_common"],
    }
    document = parse_glb(create_glb_v1(gltf, b"\x09" * 8))
    buffer = document.gltf["buffers"]["KHR_binary_glTF"]

    assert bytes(buffer["extras"]["_pipeline"]["source"]) == b"\x09" * 8
    assert "uri" not in buffer
    assert document.gltf["extensionsUsed"] == ["KHR_materials_common"]


def test_parse_v1_ignores_trailing_bytes():
    """Bytes beyond the declared length are not part of the payload."""
    data = create_glb_v1({"buffers": {"binary_glTF": {}}}, b"\x01" * 4) + b"\xee" * 4

    document = parse_glb(data)

    assert bytes(document.binary) == b"\x01" * 4


def test_parse_v1_other_buffers_untouched():
    """Buffers with other ids keep their uri."""
    gltf = {"buffers": {"external": {"uri": "external.bin"}}}
    document = parse_glb(create_glb_v1(gltf, b"\x00" * 4))
    buffer = document.gltf["buffers"]["external"]

    assert buffer["uri"] == "external.bin"
    assert "source" not in buffer["extras"]["_pipeline"]


def test_parse_v1_does_not_migrate():
    """Technique migration only runs on version 2 containers."""
    gltf = {"extensionsUsed": ["KHR_technique_webgl"], "techniques": {"t0": {}}}
    document = parse_glb(create_glb_v1(gltf))

    assert document.gltf["extensionsUsed"] == ["KHR_technique_webgl"]
    assert "techniques" in document.gltf
    assert document.diagnostics == []


def test_parse_v1_unsupported_content_format():
    """Should reject version 1 content that is not JSON."""
    with pytest.raises(UnsupportedContentFormat):
        parse_glb(create_glb_v1({}, content_format=1))


def test_parse_v1_content_length_overrun():
    """Should raise when the content length runs past the container."""
    data = b"glTF" + struct.pack("<IIII", 1, 24, 50, 0) + b"{}  "

    with pytest.raises(TruncatedContainer):
        parse_glb(data)


def test_parse_file(tmp_path):
    """Should read and decode a .glb file from disk."""
    path = tmp_path / "model.glb"
    path.write_bytes(create_glb_v2([make_chunk(CHUNK_TYPE_JSON, json_payload({"asset": {"version": "2.0"}}))]))

    document = GlbParser().parse_file(path)

    assert document.gltf["asset"]["version"] == "2.0"
