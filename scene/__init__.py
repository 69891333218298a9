"""
scene package

Diagram model -> Excalidraw scene conversion and scene persistence.
"""

from scene.converters import convert
from scene.factory import ElementFactory, ElementSpec, LabelSpec
from scene.serializer import read_scene_document, render_scene_document

__all__ = [
    "convert",
    "ElementFactory",
    "ElementSpec",
    "LabelSpec",
    "read_scene_document",
    "render_scene_document",
]
