"""
schemas/__init__.py

JSON Schema for the persisted Excalidraw scene envelope and validation
helpers used when reading scene documents back.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator

# Schema file paths
SCHEMA_DIR = os.path.dirname(os.path.abspath(__file__))
SCENE_SCHEMA_PATH = os.path.join(SCHEMA_DIR, "scene_schema.json")

# Cached schema
_scene_schema: Optional[Dict[str, Any]] = None


def get_scene_schema() -> Dict[str, Any]:
    """Load and return the scene envelope schema."""
    global _scene_schema
    if _scene_schema is None:
        with open(SCENE_SCHEMA_PATH, "r", encoding="utf-8") as f:
            _scene_schema = json.load(f)
    return _scene_schema


def validate_scene(data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate a scene envelope against the schema.

    Besides the schema, every image element's ``fileId`` must resolve in
    the ``files`` table.

    Args:
        data: The decoded envelope.

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    validator = Draft202012Validator(get_scene_schema())
    error_messages = []
    for error in validator.iter_errors(data):
        path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "root"
        error_messages.append(f"{path}: {error.message}")

    if isinstance(data, dict):
        files = data.get("files") or {}
        for idx, el in enumerate(data.get("elements") or []):
            if isinstance(el, dict) and el.get("type") == "image":
                if el.get("fileId") not in files:
                    error_messages.append(
                        f"elements -> {idx}: fileId {el.get('fileId')!r} not in files"
                    )

    return not error_messages, error_messages
