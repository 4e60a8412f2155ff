"""Errors raised while decoding binary glTF containers."""


class GlbError(ValueError):
    """Base class for container decode failures."""


class InvalidMagic(GlbError):
    """The first four bytes are not the glTF magic."""


class UnsupportedVersion(GlbError):
    """Container version is neither 1 nor 2."""


class UnsupportedContentFormat(GlbError):
    """Version 1 scene content is not JSON."""


class MissingJsonChunk(GlbError):
    """Version 2 container has no JSON chunk."""


class MalformedJson(GlbError):
    """JSON content is not UTF-8 or does not parse to an object."""


class TruncatedContainer(GlbError):
    """A declared length runs past the end of the container."""
