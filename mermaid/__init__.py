"""
mermaid package

Mermaid source handling: entity protection, block extraction, rendering
through the Mermaid CLI and parsing the rendered SVG into diagram models.
"""
