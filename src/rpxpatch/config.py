"""Configuration and environment loading."""

import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

load_dotenv()


@dataclass(frozen=True)
class TargetProfile:
    """Address constants tying patch files to one specific binary.

    Logical addresses map to file offsets in the decompressed image as
    ``address - logical_base + physical_bias``. Legacy ``.hax`` lists store
    addresses offset by ``legacy_address_bias``.
    """

    legacy_address_bias: int = 0xA900000
    logical_base: int = 0x2000000
    physical_bias: int = 0x48B5E0
    module_id: str = "0x6267BFD0"

    def physical_offset(self, address: int) -> int:
        return address - self.logical_base + self.physical_bias


# U-King.rpx v1.5.0
DEFAULT_TARGET = TargetProfile()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Target binary
    legacy_address_bias: int = Field(
        default=DEFAULT_TARGET.legacy_address_bias, alias="RPXPATCH_LEGACY_ADDRESS_BIAS"
    )
    logical_base: int = Field(default=DEFAULT_TARGET.logical_base, alias="RPXPATCH_LOGICAL_BASE")
    physical_bias: int = Field(
        default=DEFAULT_TARGET.physical_bias, alias="RPXPATCH_PHYSICAL_BIAS"
    )
    module_id: str = Field(default=DEFAULT_TARGET.module_id, alias="RPXPATCH_MODULE_ID")

    # Paths
    rpxtool_path: Path | None = Field(default=None, alias="RPXPATCH_RPXTOOL")
    cache_path: Path = Field(default=Path.home() / "U-King.elf", alias="RPXPATCH_CACHE")

    model_config = {"env_file": ".env", "extra": "ignore", "populate_by_name": True}

    @field_validator("legacy_address_bias", "logical_base", "physical_bias", mode="before")
    @classmethod
    def _parse_hex(cls, value):
        # Env values are usually written in hex ("0x48B5E0").
        if isinstance(value, str):
            return int(value, 0)
        return value

    @property
    def target(self) -> TargetProfile:
        return TargetProfile(
            legacy_address_bias=self.legacy_address_bias,
            logical_base=self.logical_base,
            physical_bias=self.physical_bias,
            module_id=self.module_id,
        )

    def find_rpxtool(self) -> Path | None:
        """Locate the wiiurpxtool executable.

        Checks the configured path, then beside the running interpreter's
        script, then the current directory.
        """
        if self.rpxtool_path and self.rpxtool_path.exists():
            return self.rpxtool_path

        exe = "wiiurpxtool.exe" if sys.platform == "win32" else "wiiurpxtool"
        search_paths = [
            Path(sys.argv[0]).resolve().parent / exe,
            Path.cwd() / exe,
        ]
        for path in search_paths:
            if path.exists():
                return path
        return None


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get application settings singleton."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
