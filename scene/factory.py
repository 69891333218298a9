"""
scene/factory.py

Build Excalidraw elements from ``ElementSpec`` skeletons.

Every converter describes what it wants drawn as ``ElementSpec`` records;
``ElementFactory`` turns each one into a concrete element with the fixed
default style, fresh ``seed``/``versionNonce`` values and, for labelled
specs, a bound text element.

Image specs refer to the *diagram's* file table.  The factory mints a new
file id for each image and returns a ``FileReference`` pairing the new id
with the original; ``resolve_file_references`` then builds the scene's
file table from those pairs.
"""

from __future__ import annotations

import random
import string
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from models import (
    SHAPE_TYPES,
    ArrowElement,
    Binding,
    FrameElement,
    ImageElement,
    LineElement,
    Position,
    SceneContractError,
    SceneElement,
    SceneFile,
    ShapeElement,
    TextElement,
    DEFAULT_LINE_HEIGHT,
)

# Excalidraw draws seeds from [0, 2**31)
SEED_RANGE = 2 ** 31

ID_ALPHABET = string.ascii_letters + string.digits + "_-"
ID_LENGTH = 21

DEFAULT_FONT_SIZE = 16

# Average glyph width as a fraction of the font size.  Real text metrics
# are not available at conversion time.
TEXT_WIDTH_FACTOR = 0.6

class _Default:
    """Marker for "use the element type's default" on optional fields."""

    def __repr__(self) -> str:
        return "DEFAULT"


DEFAULT: Any = _Default()


@dataclass
class LabelSpec:
    """Text to bind to a shape or arrow."""
    text: str
    font_size: Optional[float] = None
    group_ids: Optional[List[str]] = None


@dataclass
class ElementSpec:
    """Closed description of one element to build.

    Attributes:
        type: Excalidraw element type (``rectangle``, ``ellipse``,
            ``diamond``, ``text``, ``arrow``, ``line``, ``frame``, ``image``).
        id: Element id; generated when ``None``.
        points: Path for arrows/lines, relative to ``(x, y)``.
        start_id / end_id: Shape ids the arrow ends bind to.
        start_arrowhead / end_arrowhead: ``DEFAULT`` keeps the type default
            (arrow: ``None`` / ``"arrow"``, line: ``None`` / ``None``).
        file_id: For images, the id in the diagram's own file table.
    """
    type: str
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    id: Optional[str] = None
    label: Optional[LabelSpec] = None
    text: str = ""
    font_size: Optional[float] = None
    text_align: Optional[str] = None
    vertical_align: Optional[str] = None
    points: Optional[List[Position]] = None
    start_id: Optional[str] = None
    end_id: Optional[str] = None
    start_arrowhead: Any = DEFAULT
    end_arrowhead: Any = DEFAULT
    stroke_width: Optional[float] = None
    roundness: Optional[Dict[str, Any]] = None
    group_ids: List[str] = field(default_factory=list)
    frame_id: Optional[str] = None
    link: Optional[str] = None
    name: Optional[str] = None
    children: Optional[List[str]] = None
    file_id: Optional[str] = None


@dataclass
class FileReference:
    """Pending image file: new scene file id -> diagram file id."""
    file_id: str
    original_file_id: str


@dataclass
class BuildResult:
    elements: List[SceneElement] = field(default_factory=list)
    file_refs: List[FileReference] = field(default_factory=list)

    def extend(self, other: "BuildResult") -> None:
        self.elements.extend(other.elements)
        self.file_refs.extend(other.file_refs)


def estimate_text_size(text: str, font_size: float) -> tuple:
    """Approximate ``(width, height)`` of *text*: characters x font size x factor."""
    lines = text.split("\n") or [""]
    longest = max(len(line) for line in lines)
    width = longest * font_size * TEXT_WIDTH_FACTOR
    height = len(lines) * font_size * DEFAULT_LINE_HEIGHT
    return width, height


class ElementFactory:
    """Builds scene elements, drawing ids and seeds from *rng*.

    Args:
        rng: Random source.  Pass a seeded ``random.Random`` for
            reproducible output; defaults to an OS-seeded generator.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random()
        self._used_seeds: Set[int] = set()

    # ── Randomness ──

    def new_id(self) -> str:
        return "".join(self.rng.choice(ID_ALPHABET) for _ in range(ID_LENGTH))

    def new_seed(self) -> int:
        while True:
            seed = self.rng.randrange(SEED_RANGE)
            if seed not in self._used_seeds:
                self._used_seeds.add(seed)
                return seed

    def _identity(self) -> Dict[str, int]:
        return {"seed": self.new_seed(), "version_nonce": self.rng.randrange(SEED_RANGE)}

    # ── Building ──

    def build(self, spec: ElementSpec) -> BuildResult:
        """Build the element for *spec*, plus its bound label if it has one."""
        result = BuildResult()

        if spec.type == "image":
            element, ref = self._build_image(spec)
            result.elements.append(element)
            result.file_refs.append(ref)
            return result

        element = self._build_primitive(spec)
        result.elements.append(element)

        if spec.label is not None and spec.label.text:
            text_el = self._build_label(element, spec)
            element.bind(text_el.id, "text")
            result.elements.append(text_el)
        return result

    def build_all(self, specs: Iterable[ElementSpec]) -> BuildResult:
        result = BuildResult()
        for spec in specs:
            result.extend(self.build(spec))
        return result

    def _common(self, spec: ElementSpec, element_id: str) -> Dict[str, Any]:
        return {
            "id": element_id,
            "type": spec.type,
            "x": spec.x,
            "y": spec.y,
            "width": spec.width or 0,
            "height": spec.height or 0,
            "stroke_width": spec.stroke_width or 2,
            "roundness": spec.roundness,
            "group_ids": list(spec.group_ids),
            "frame_id": spec.frame_id,
            "link": spec.link,
            **self._identity(),
        }

    def _build_primitive(self, spec: ElementSpec) -> SceneElement:
        common = self._common(spec, spec.id or self.new_id())

        if spec.type in SHAPE_TYPES:
            return ShapeElement(**common)

        if spec.type == "text":
            font_size = spec.font_size or DEFAULT_FONT_SIZE
            if not common["width"] or not common["height"]:
                common["width"], common["height"] = estimate_text_size(spec.text, font_size)
            return TextElement(
                **common,
                text=spec.text,
                original_text=spec.text,
                font_size=font_size,
                text_align=spec.text_align or "center",
                vertical_align=spec.vertical_align or "middle",
            )

        if spec.type in ("arrow", "line"):
            points = [Position(p.x, p.y) for p in spec.points or []]
            if len(points) < 2:
                points = [Position(0.0, 0.0), Position(0.0, 0.0)]
            if spec.type == "arrow":
                start_head = None if spec.start_arrowhead is DEFAULT else spec.start_arrowhead
                end_head = "arrow" if spec.end_arrowhead is DEFAULT else spec.end_arrowhead
                return ArrowElement(
                    **common,
                    points=points,
                    start_binding=Binding(spec.start_id) if spec.start_id else None,
                    end_binding=Binding(spec.end_id) if spec.end_id else None,
                    start_arrowhead=start_head,
                    end_arrowhead=end_head,
                )
            return LineElement(
                **common,
                points=points,
                start_arrowhead=None if spec.start_arrowhead is DEFAULT else spec.start_arrowhead,
                end_arrowhead=None if spec.end_arrowhead is DEFAULT else spec.end_arrowhead,
            )

        if spec.type == "frame":
            return FrameElement(
                **common,
                name=spec.name or "",
                children=list(spec.children or []),
            )

        raise SceneContractError(f"cannot build element of type {spec.type!r}")

    def _build_image(self, spec: ElementSpec) -> tuple:
        if not spec.file_id:
            raise SceneContractError("image element spec has no file id")
        common = self._common(spec, spec.id or self.new_id())
        common.update(stroke_width=0)
        new_file_id = self.new_id()
        element = ImageElement(
            **common,
            stroke_color="transparent",
            roughness=0,
            file_id=new_file_id,
        )
        return element, FileReference(new_file_id, spec.file_id)

    def _build_label(self, container: SceneElement, spec: ElementSpec) -> TextElement:
        label = spec.label
        font_size = label.font_size or spec.font_size or DEFAULT_FONT_SIZE
        width, height = estimate_text_size(label.text, font_size)

        if isinstance(container, (ArrowElement, LineElement)):
            xs = [container.x + p.x for p in container.points]
            ys = [container.y + p.y for p in container.points]
            center_x = (min(xs) + max(xs)) / 2
            center_y = (min(ys) + max(ys)) / 2
        else:
            center_x = container.x + container.width / 2
            center_y = container.y + container.height / 2

        group_ids = label.group_ids if label.group_ids is not None else container.group_ids
        return TextElement(
            id=f"{container.id}_text",
            type="text",
            x=center_x - width / 2,
            y=center_y - height / 2,
            width=width,
            height=height,
            group_ids=list(group_ids),
            frame_id=container.frame_id,
            text=label.text,
            original_text=label.text,
            font_size=font_size,
            container_id=container.id,
            **self._identity(),
        )


def resolve_file_references(
    refs: Iterable[FileReference], files: Dict[str, SceneFile]
) -> Dict[str, SceneFile]:
    """Build the scene file table for the images built by the factory.

    Args:
        refs: Pending references returned by ``ElementFactory.build``.
        files: The diagram's file table keyed by original file id.

    Returns:
        New file table keyed by the minted file ids.

    Raises:
        SceneContractError: If a reference has no entry in *files*.
    """
    resolved: Dict[str, SceneFile] = {}
    for ref in refs:
        original = files.get(ref.original_file_id)
        if original is None:
            raise SceneContractError(
                f"image file {ref.original_file_id!r} missing from file table"
            )
        resolved[ref.file_id] = SceneFile(
            id=ref.file_id,
            mime_type=original.mime_type,
            data_url=original.data_url,
            created_at=original.created_at,
        )
    return resolved
