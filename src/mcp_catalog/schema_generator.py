"""Generate JSON schemas from Python type annotations and docstrings."""

import inspect
from typing import Any, Dict, List, Optional, Union, get_args, get_origin, get_type_hints

# Sections that end an Args: block
_SECTION_HEADERS = {"Returns:", "Raises:", "Yields:", "Example:", "Examples:", "Note:"}
_ARGS_HEADERS = {"Args:", "Arguments:", "Parameters:", "Params:"}


def _is_optional(type_hint: Any) -> bool:
    return get_origin(type_hint) is Union and type(None) in get_args(type_hint)


def python_type_to_json_schema(type_hint: Any) -> Dict[str, Any]:
    """Convert a Python type hint to a JSON schema definition.

    Args:
        type_hint: The Python type annotation

    Returns:
        JSON schema dictionary
    """
    if type_hint is str:
        return {"type": "string"}
    if type_hint is bool:
        return {"type": "boolean"}
    if type_hint is int:
        return {"type": "integer"}
    if type_hint is float:
        return {"type": "number"}

    origin = get_origin(type_hint)
    args = get_args(type_hint)

    # Optional[T] is just T; optionality is expressed by leaving it out of "required"
    if origin is Union:
        non_none = [arg for arg in args if arg is not type(None)]
        if len(non_none) == 1:
            return python_type_to_json_schema(non_none[0])
        return {"oneOf": [python_type_to_json_schema(arg) for arg in non_none]}

    if origin is list:
        schema: Dict[str, Any] = {"type": "array"}
        if args:
            schema["items"] = python_type_to_json_schema(args[0])
        return schema

    if origin is dict:
        schema = {"type": "object"}
        if len(args) == 2 and args[0] is str:
            schema["additionalProperties"] = python_type_to_json_schema(args[1])
        return schema

    # Default to string for unknown types
    return {"type": "string"}


def extract_parameter_schema(func: Any) -> Dict[str, Any]:
    """Build an object schema for a function's parameters.

    A parameter is required when it has no default and is not ``Optional``.
    Descriptions are filled in from the docstring's ``Args:`` section.

    Args:
        func: The function (or bound method) to describe

    Returns:
        JSON schema for the function's parameters
    """
    signature = inspect.signature(func)
    hints = get_type_hints(func)
    descriptions = parse_docstring_params(func.__doc__)
    properties: Dict[str, Any] = {}
    required: List[str] = []

    for param_name, param in signature.parameters.items():
        if param_name == "self" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        type_hint = hints.get(param_name, str)
        param_schema = python_type_to_json_schema(type_hint)
        param_schema["description"] = descriptions.get(param_name, f"Parameter: {param_name}")
        properties[param_name] = param_schema

        if param.default is inspect.Parameter.empty and not _is_optional(type_hint):
            required.append(param_name)

    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def parse_docstring_params(docstring: Optional[str]) -> Dict[str, str]:
    """Parse parameter descriptions from a Google-style docstring.

    Args:
        docstring: The function's docstring

    Returns:
        Dictionary mapping parameter names to descriptions
    """
    if not docstring:
        return {}

    params: Dict[str, str] = {}
    in_args = False
    current: Optional[str] = None

    for raw_line in inspect.cleandoc(docstring).splitlines():
        line = raw_line.strip()
        if line in _ARGS_HEADERS:
            in_args = True
            continue
        if line in _SECTION_HEADERS:
            in_args = False
            continue
        if not in_args or not line:
            continue

        indented = raw_line.startswith("        ")
        if not indented and ":" in line:
            name, _, desc = line.partition(":")
            current = name.split("(")[0].strip()
            params[current] = desc.strip()
        elif current:
            params[current] = f"{params[current]} {line}".strip()

    return params


def first_docstring_line(func: Any) -> Optional[str]:
    if not func.__doc__:
        return None
    return inspect.cleandoc(func.__doc__).split("\n")[0]
