"""
Tool Registry component.

Maintain the canonical definitions of marketplace tools: schema, pricing,
API call template, lifecycle flags and search embedding.
"""

from toolmarket.tool_registry.registry import ToolRegistry
from toolmarket.tool_registry.models import (
    ApiConfig,
    ArrayParameter,
    BooleanParameter,
    HttpMethod,
    NumberParameter,
    ObjectParameter,
    ParameterSpec,
    Pricing,
    ResponseSchema,
    StringParameter,
    ToolDefinition,
    ToolFilter,
    ToolMetadata,
    ToolMetadataUpdate,
    ToolSpec,
    ToolUpdate,
)

__all__ = [
    "ToolRegistry",
    "ApiConfig",
    "ArrayParameter",
    "BooleanParameter",
    "HttpMethod",
    "NumberParameter",
    "ObjectParameter",
    "ParameterSpec",
    "Pricing",
    "ResponseSchema",
    "StringParameter",
    "ToolDefinition",
    "ToolFilter",
    "ToolMetadata",
    "ToolMetadataUpdate",
    "ToolSpec",
    "ToolUpdate",
]
