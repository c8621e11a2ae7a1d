"""Feature schemas and the tagged config value type."""
import math
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from control_plane.exceptions import ValidationError

PLATFORMS = ("web", "mobile", "admin_dashboard")

Category = Literal["payment", "lending", "investment", "savings", "admin", "security", "communication", "other"]
Platform = Literal["web", "mobile", "admin_dashboard"]
Status = Literal["planning", "development", "testing", "active", "paused", "deprecated"]
Priority = Literal["low", "medium", "high", "critical"]

NAME_PATTERN = r"^[a-z0-9][a-z0-9_.-]{0,127}$"
MAX_CONFIG_KEY_LENGTH = 128


# ─── Config values ───

class BoolValue(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["bool"] = "bool"
    value: StrictBool


class NumberValue(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["number"] = "number"
    value: Union[StrictInt, StrictFloat]

    @field_validator("value")
    @classmethod
    def _finite(cls, v):
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("number config values must be finite")
        return v


class StringValue(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["string"] = "string"
    value: StrictStr


ConfigValue = Annotated[Union[BoolValue, NumberValue, StringValue], Field(discriminator="type")]
_config_value_adapter = TypeAdapter(ConfigValue)


def to_config_value(key: str, raw: Any) -> Union[BoolValue, NumberValue, StringValue]:
    """Convert a raw scalar (or an already tagged value) into a ConfigValue."""
    if isinstance(raw, (BoolValue, NumberValue, StringValue)):
        return raw
    try:
        if isinstance(raw, dict) and "type" in raw:
            return _config_value_adapter.validate_python(raw)
        # bool is an int subclass, check it first
        if isinstance(raw, bool):
            return BoolValue(value=raw)
        if isinstance(raw, (int, float)):
            return NumberValue(value=raw)
        if isinstance(raw, str):
            return StringValue(value=raw)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid value for config key '{key}'",
            [{"field": f"config.{key}", "error": exc.errors()[0]["msg"]}],
        ) from exc
    raise ValidationError(
        f"Config key '{key}' must be a boolean, number or string",
        [{"field": f"config.{key}", "error": "unsupported_type"}],
    )


def to_config(raw: Optional[Dict[str, Any]]) -> Dict[str, Union[BoolValue, NumberValue, StringValue]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("config must be a mapping", [{"field": "config", "error": "not_a_mapping"}])
    converted = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key.strip() or len(key) > MAX_CONFIG_KEY_LENGTH:
            raise ValidationError(
                "Config keys must be non-empty strings",
                [{"field": "config", "error": "invalid_key"}],
            )
        converted[key] = to_config_value(key, value)
    return converted


def _dedupe(values: List[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


# ─── Inputs ───

class FeatureCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(pattern=NAME_PATTERN)
    display_name: str = Field(min_length=1, max_length=255)
    description: str = ""
    category: Category
    platforms: List[Platform] = Field(min_length=1)
    status: Status = "planning"
    priority: Priority = "medium"
    enabled: bool = False
    rollout_percentage: int = Field(default=0, ge=0, le=100)
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("display_name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("display_name must not be blank")
        return v.strip()

    @field_validator("platforms")
    @classmethod
    def _unique_platforms(cls, v: List[str]) -> List[str]:
        return _dedupe(v)


class FeatureUpdate(BaseModel):
    """Partial update of mutable descriptive fields.

    ``name`` is accepted only so that an attempt to change it can be rejected
    explicitly; enabled state and rollout have dedicated operations.
    """
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[Category] = None
    platforms: Optional[List[Platform]] = Field(default=None, min_length=1)
    status: Optional[Status] = None
    priority: Optional[Priority] = None
    config: Optional[Dict[str, Any]] = None

    @field_validator("display_name")
    @classmethod
    def _not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not v.strip():
            raise ValueError("display_name must not be blank")
        return v.strip()

    @field_validator("platforms")
    @classmethod
    def _unique_platforms(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _dedupe(v) if v is not None else v


class RolloutUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rollout_percentage: StrictInt = Field(ge=0, le=100)


class ConfigUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    config: Dict[str, Any]


class FeatureFilter(BaseModel):
    category: Optional[Category] = None
    status: Optional[Status] = None
    enabled: Optional[bool] = None
    platform: Optional[Platform] = None
    priority: Optional[Priority] = None
    search: Optional[str] = None
    include_retired: bool = False
    sort: Literal["created", "name", "priority", "updated"] = "created"


# ─── Records ───

class FeatureRecord(BaseModel):
    """Immutable snapshot of a feature as stored."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: UUID
    name: str
    display_name: str
    description: str = ""
    category: Category
    platforms: List[Platform]
    status: Status
    priority: Priority = "medium"
    enabled: bool = False
    rollout_percentage: int = Field(ge=0, le=100)
    config: Dict[str, ConfigValue] = Field(default_factory=dict)
    retired: bool = False
    retired_at: Optional[datetime] = None
    toggle_count: int = 0
    last_toggled_at: Optional[datetime] = None
    created_by: str
    updated_by: str
    created_at: datetime
    updated_at: datetime
    version: int = 1


class PlatformFeature(BaseModel):
    """Public projection used by the platform listing; no config values."""
    name: str
    display_name: str
    description: str = ""


class CategoryStats(BaseModel):
    total: int = 0
    enabled: int = 0


class FeatureStats(BaseModel):
    total_features: int
    enabled_features: int
    disabled_features: int
    retired_features: int
    by_category: Dict[str, CategoryStats]


class FeatureEvaluation(BaseModel):
    name: str
    platform: str
    enabled: bool
