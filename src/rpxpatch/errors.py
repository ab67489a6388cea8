"""Error types for the patch pipeline.

All errors inherit from PatchError so callers can catch one type.
Every error carries a short ``code`` naming the failure and a
human-readable message.
"""


class PatchError(Exception):
    """Base exception for all rpxpatch failures."""

    code = "PatchError"

    def __init__(self, message: str, code: str | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)


class ConfigError(PatchError):
    """Malformed rules, template or legacy file, or a missing required field."""

    code = "ConfigError"


class AssemblyError(PatchError):
    """The assembler rejected an instruction."""

    code = "AssemblyFailed"

    def __init__(self, address: int, message: str):
        self.address = address
        self.reason = message
        super().__init__(f"Failed to assemble at 0x{address:08X}: {message}")


class AddressError(PatchError):
    """Malformed hex address or an offset outside the image."""

    code = "AddressError"


class UnsupportedFeatureError(PatchError):
    """The template uses a directive this tool does not handle."""

    code = "UnsupportedFeature"


class PatchIOError(PatchError):
    """Filesystem or subprocess failure."""

    code = "IoError"


class ExternalToolError(PatchError):
    """An external tool wrote to its error stream."""

    code = "ExternalToolError"

    def __init__(self, tool: str, stderr: str):
        self.tool = tool
        self.stderr = stderr
        super().__init__(f"{tool} failed: {stderr.strip()}")
