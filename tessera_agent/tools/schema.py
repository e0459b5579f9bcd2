"""
Tool Input Validation
=====================
Checks a tool call's payload against the tool's declared input schema before
the tool runs, so a malformed call from the model becomes a readable error in
the transcript instead of a TypeError deep inside a tool.

Schemas are the JSON-Schema subset tools actually declare:
    {"type": "object",
     "properties": {"path": {"type": "string", "description": "..."},
                    "mode": {"type": "string", "enum": ["r", "w"]},
                    "limit": {"type": "integer", "default": 50}},
     "required": ["path"]}

A pydantic model is generated per schema and cached on the tool.
"""

import json
import logging
from typing import Any, Dict, List, Literal, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from .base import Tool, ToolInputError

log = logging.getLogger("tessera.tools.schema")

_TYPE_MAP: Dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": Dict[str, Any],
}


def _python_type(prop: Dict[str, Any]) -> Any:
    if prop.get("enum"):
        return Literal[tuple(prop["enum"])]
    kind = prop.get("type")
    if kind == "array" and isinstance(prop.get("items"), dict):
        return List[_python_type(prop["items"])]
    return _TYPE_MAP.get(kind, Any)


def build_input_model(name: str, schema: Optional[Dict[str, Any]]) -> Type[BaseModel]:
    """Generate a pydantic model for a tool input schema."""
    schema = schema or {}
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or [])
    extra = "forbid" if schema.get("additionalProperties") is False else "allow"

    fields: Dict[str, Any] = {}
    # Property names go through aliases so keys like "json" or "schema"
    # never collide with BaseModel attributes.
    for i, (prop_name, prop) in enumerate(properties.items()):
        prop = prop if isinstance(prop, dict) else {}
        py_type = _python_type(prop)
        if prop_name in required:
            fields[f"f{i}"] = (py_type, Field(..., alias=prop_name))
        else:
            fields[f"f{i}"] = (Optional[py_type], Field(prop.get("default"), alias=prop_name))

    return create_model(
        f"{name.title().replace('_', '')}Input",
        __config__=ConfigDict(extra=extra),
        **fields,
    )


def _model_for(tool: Tool) -> Type[BaseModel]:
    cached = getattr(tool, "_input_model", None)
    if cached is not None and getattr(tool, "_input_model_schema", None) is tool.input_schema:
        return cached
    model = build_input_model(tool.name, tool.input_schema)
    tool._input_model = model
    tool._input_model_schema = tool.input_schema
    return model


def validate_tool_input(tool: Tool, payload: Any) -> Dict[str, Any]:
    """
    Validate and normalize a call payload. Returns the kwargs dict to pass to
    the tool. Raises ToolInputError with a model-readable message on failure.
    """
    if payload is None:
        payload = {}
    if isinstance(payload, str):
        # Some backends hand over arguments as a JSON string
        try:
            payload = json.loads(payload) if payload.strip() else {}
        except json.JSONDecodeError as e:
            raise ToolInputError(f"Invalid input for tool '{tool.name}': arguments are not valid JSON ({e})")
    if not isinstance(payload, Mapping):
        raise ToolInputError(
            f"Invalid input for tool '{tool.name}': expected an object, got {type(payload).__name__}"
        )

    model = _model_for(tool)
    try:
        parsed = model.model_validate(dict(payload))
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
        )
        raise ToolInputError(f"Invalid input for tool '{tool.name}': {details}")

    data = parsed.model_dump(by_alias=True, exclude_unset=True)
    data.update(parsed.model_extra or {})
    properties = (tool.input_schema or {}).get("properties") or {}
    for prop_name, prop in properties.items():
        if prop_name not in data and isinstance(prop, dict) and "default" in prop:
            data[prop_name] = prop["default"]
    return data
