"""
Data models for the Tool Registry component.
"""

import math
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from toolmarket.config import settings
from toolmarket.utils.eth import is_valid_wei, wei_to_eth_string


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_tool_id() -> str:
    return f"tool_{uuid.uuid4().hex}"


class HttpMethod(str, Enum):
    """HTTP methods a tool endpoint may be called with."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


class ApiConfig(BaseModel):
    """How to call the tool's upstream endpoint."""
    endpoint: str
    method: HttpMethod = HttpMethod.POST
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_ms: int = Field(default_factory=lambda: settings.default_timeout_ms, gt=0)
    max_retries: int = Field(default_factory=lambda: settings.default_max_retries, ge=0)

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v):
        return v.upper() if isinstance(v, str) else v


class _ParameterBase(BaseModel):
    # Unknown keys (e.g. rules on a type that has none) are rejected, not dropped
    model_config = ConfigDict(extra="forbid")

    name: str
    required: bool = False
    description: str = ""
    default_value: Any = None

    def type_error(self) -> str:
        return f"Parameter '{self.name}' must be of type '{self.type}'"

    def check_type(self, value: Any) -> bool:
        raise NotImplementedError

    def check_rules(self, value: Any) -> List[str]:
        return []

    def validate_value(self, value: Any) -> List[str]:
        """
        Check a supplied (non-missing) value against this parameter.

        Returns:
            Human-readable messages, empty when the value is acceptable
        """
        if not self.check_type(value):
            return [self.type_error()]
        return self.check_rules(value)

    def _check_enum(self, value: Any, choices: Optional[List[Any]]) -> List[str]:
        if choices and value not in choices:
            return [f"Parameter '{self.name}' must be one of: {', '.join(str(c) for c in choices)}"]
        return []


class StringRules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pattern: Optional[str] = None
    enum: Optional[List[str]] = None

    @field_validator("pattern")
    @classmethod
    def compilable(cls, v):
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid regular expression {v!r}: {e}")
        return v


class NumberRules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min: Optional[float] = None
    max: Optional[float] = None
    enum: Optional[List[float]] = None

    @model_validator(mode="after")
    def ordered_bounds(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must not be greater than max")
        return self


class ChoiceRules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enum: Optional[List[Any]] = None


class StringParameter(_ParameterBase):
    type: Literal["string"] = "string"
    validation: Optional[StringRules] = None

    def check_type(self, value: Any) -> bool:
        return isinstance(value, str)

    def check_rules(self, value: str) -> List[str]:
        if self.validation is None:
            return []
        errors = []
        if self.validation.pattern and not re.search(self.validation.pattern, value):
            errors.append(f"Parameter '{self.name}' must match pattern {self.validation.pattern}")
        errors.extend(self._check_enum(value, self.validation.enum))
        return errors


class NumberParameter(_ParameterBase):
    type: Literal["number"] = "number"
    validation: Optional[NumberRules] = None

    def check_type(self, value: Any) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return not (isinstance(value, float) and math.isnan(value))

    def check_rules(self, value: float) -> List[str]:
        if self.validation is None:
            return []
        errors = []
        if self.validation.min is not None and value < self.validation.min:
            errors.append(f"Parameter '{self.name}' must be at least {_num(self.validation.min)}")
        if self.validation.max is not None and value > self.validation.max:
            errors.append(f"Parameter '{self.name}' must be at most {_num(self.validation.max)}")
        errors.extend(self._check_enum(value, self.validation.enum))
        return errors


class BooleanParameter(_ParameterBase):
    type: Literal["boolean"] = "boolean"
    validation: Optional[ChoiceRules] = None

    def check_type(self, value: Any) -> bool:
        return isinstance(value, bool)

    def check_rules(self, value: bool) -> List[str]:
        if self.validation is None:
            return []
        return self._check_enum(value, self.validation.enum)


class ObjectParameter(_ParameterBase):
    type: Literal["object"] = "object"

    def check_type(self, value: Any) -> bool:
        return isinstance(value, dict)


class ArrayParameter(_ParameterBase):
    type: Literal["array"] = "array"

    def check_type(self, value: Any) -> bool:
        return isinstance(value, (list, tuple))


ParameterSpec = Annotated[
    Union[StringParameter, NumberParameter, BooleanParameter, ObjectParameter, ArrayParameter],
    Field(discriminator="type")
]


def _num(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


class Pricing(BaseModel):
    """Price per execution; wei amounts are integer strings, never floats."""
    cost_in_wei: str
    eth_cost: Optional[str] = None

    @field_validator("cost_in_wei", mode="before")
    @classmethod
    def integer_wei(cls, v):
        if not is_valid_wei(v):
            raise ValueError("Cost must be a valid wei amount (non-negative integer)")
        return str(int(v))

    @model_validator(mode="after")
    def fill_eth_cost(self):
        if self.eth_cost is None:
            self.eth_cost = wei_to_eth_string(self.cost_in_wei, decimals=18)
        return self

    @property
    def cost_wei(self) -> int:
        return int(self.cost_in_wei)


class RateLimits(BaseModel):
    requests: int = Field(gt=0)
    window_seconds: int = Field(gt=0)


class ToolMetadata(BaseModel):
    """Tags, version and lifecycle flags."""
    tags: List[str] = Field(default_factory=list)
    version: str = "1.0.0"
    is_active: bool = True
    is_public: bool = True
    rate_limits: Optional[RateLimits] = None
    last_tested: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def unique_tags(cls, v):
        return list(dict.fromkeys(tag.strip() for tag in v if tag.strip()))


class ToolMetadataUpdate(BaseModel):
    """
    Partial change to a tool's metadata.

    Only the fields actually sent are applied. ``is_active`` is not accepted
    here; deactivation goes through the registry's deactivate operation.
    """
    model_config = ConfigDict(extra="forbid")

    tags: Optional[List[str]] = None
    version: Optional[str] = None
    is_public: Optional[bool] = None
    rate_limits: Optional[RateLimits] = None
    last_tested: Optional[datetime] = None

    def apply_to(self, metadata: ToolMetadata) -> ToolMetadata:
        """Return ``metadata`` with the sent fields merged in."""
        merged = metadata.model_dump()
        merged.update(self.model_dump(include=self.model_fields_set))
        for field in ("tags", "version", "is_public"):
            if merged[field] is None:
                merged[field] = getattr(metadata, field)
        return ToolMetadata.model_validate(merged)


class ResponseSchema(BaseModel):
    structure: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""


class ToolSpec(BaseModel):
    """What a registrant submits to put a tool on the marketplace."""
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    api_config: ApiConfig
    parameters: List[ParameterSpec] = Field(default_factory=list)
    response_schema: Optional[ResponseSchema] = None
    pricing: Pricing
    metadata: ToolMetadata = Field(default_factory=ToolMetadata)

    @field_validator("parameters")
    @classmethod
    def unique_parameter_names(cls, v):
        names = [p.name for p in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate parameter names: {', '.join(duplicates)}")
        return v

    def embedding_text(self) -> str:
        """Text used to compute the tool's search vector."""
        parts = [self.name, self.description, self.category]
        parts.extend(p.description for p in self.parameters)
        return " ".join(part for part in parts if part)


class ToolDefinition(ToolSpec):
    """A registered tool, as stored in the registry."""
    tool_id: str = Field(default_factory=new_tool_id)
    owner_id: str
    embedding: Optional[List[float]] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def cost_wei(self) -> int:
        return self.pricing.cost_wei


class ToolUpdate(BaseModel):
    """Partial update of a tool; unset fields are left alone."""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = Field(default=None, min_length=1)
    api_config: Optional[ApiConfig] = None
    parameters: Optional[List[ParameterSpec]] = None
    response_schema: Optional[ResponseSchema] = None
    pricing: Optional[Pricing] = None
    metadata: Optional[ToolMetadataUpdate] = None

    EMBEDDED_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "description", "category")

    def changes(self) -> Dict[str, Any]:
        return {
            field: getattr(self, field)
            for field in self.model_fields_set
            if getattr(self, field) is not None
        }

    def touches_embedding(self) -> bool:
        return any(field in self.changes() for field in self.EMBEDDED_FIELDS)


class ToolFilter(BaseModel):
    """Criteria for listing tools."""
    owner_id: Optional[str] = None
    category: Optional[str] = None
    is_active: Optional[bool] = True
    is_public: Optional[bool] = None
    max_cost_wei: Optional[int] = None
    tags: Optional[List[str]] = None
    limit: Optional[int] = Field(default=None, gt=0)

    @field_validator("max_cost_wei", mode="before")
    @classmethod
    def integer_cost(cls, v):
        if v is None:
            return v
        if not is_valid_wei(v):
            raise ValueError("max_cost_wei must be a non-negative integer")
        return int(v)

    def matches(self, tool: ToolDefinition) -> bool:
        if self.owner_id is not None and tool.owner_id != self.owner_id:
            return False
        if self.is_active is not None and tool.metadata.is_active != self.is_active:
            return False
        if self.is_public is not None and tool.metadata.is_public != self.is_public:
            return False
        if self.category and self.category.lower() not in tool.category.lower():
            return False
        if self.max_cost_wei is not None and tool.cost_wei > self.max_cost_wei:
            return False
        if self.tags and not set(self.tags) & set(tool.metadata.tags):
            return False
        return True
