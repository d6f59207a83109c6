"""Library settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``PSBT_``, nested via ``__``)
2. YAML config file (``PsbtConfig.from_yaml`` or ``PSBT_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from psbt_core.bitcoin.primitives import SEQUENCE_FINAL, UINT8_MAX, UINT32_MAX

# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class CodecConfig(BaseSettings):
    """Resource limits applied while decoding untrusted bytes."""

    model_config = SettingsConfigDict(
        env_prefix="PSBT_CODEC__",
        case_sensitive=False,
    )

    max_encoded_size: int = Field(
        default=16 * 1024 * 1024,
        gt=0,
        description="Largest binary PSBT accepted by decode, in bytes",
    )
    max_map_entries: int = Field(
        default=10_000,
        gt=0,
        description="Largest number of key-value pairs accepted in one map",
    )


class ConversionConfig(BaseSettings):
    """Policy defaults used when converting between PSBT versions."""

    model_config = SettingsConfigDict(
        env_prefix="PSBT_CONVERSION__",
        case_sensitive=False,
    )

    default_sequence: int = Field(
        default=SEQUENCE_FINAL,
        ge=0,
        le=UINT32_MAX,
        description="Sequence written for V2 inputs without one when downgrading",
    )
    require_sequence: bool = Field(
        default=False,
        description="Refuse to downgrade inputs without an explicit sequence",
    )
    default_tx_modifiable: int | None = Field(
        default=None,
        ge=0,
        le=UINT8_MAX,
        description="Modification flags set when upgrading; None leaves them absent",
    )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class PsbtConfig(BaseSettings):
    """Top-level library configuration.

    Loads settings from environment variables (``PSBT_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="PSBT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    config_path: str = ""

    codec: CodecConfig = Field(default_factory=CodecConfig)
    conversion: ConversionConfig = Field(default_factory=ConversionConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``PsbtConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
