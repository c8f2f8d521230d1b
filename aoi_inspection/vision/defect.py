"""
Defect Data Model
Located, classified, confidence-scored defect regions and their JSON form.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

import numpy as np


class DefectType(Enum):
    """Defect classification."""
    SCRATCH = "Scratch"
    STAIN = "Stain"
    DISCOLORATION = "Discoloration"
    DEFORMATION = "Deformation"
    UNKNOWN = "Unknown"

    @classmethod
    def from_string(cls, value: str) -> 'DefectType':
        """Map a type name to a DefectType (Unknown for anything else)."""
        for member in cls:
            if member.value == value:
                return member
        return cls.UNKNOWN

    @property
    def color(self) -> Tuple[int, int, int]:
        """BGR visualization color."""
        return DEFECT_COLORS[self]


DEFECT_COLORS = {
    DefectType.SCRATCH: (0, 0, 255),
    DefectType.STAIN: (0, 165, 255),
    DefectType.DISCOLORATION: (0, 255, 255),
    DefectType.DEFORMATION: (255, 0, 255),
    DefectType.UNKNOWN: (128, 128, 128),
}


@dataclass
class BoundingBox:
    """Axis-aligned defect bounding box in pixels."""
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def aspect_ratio(self) -> float:
        """Long side over short side (>= 1), 0 for a degenerate box."""
        if self.width <= 0 or self.height <= 0:
            return 0.0
        ratio = self.width / self.height
        return ratio if ratio >= 1.0 else 1.0 / ratio

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    @classmethod
    def from_rect(cls, rect) -> 'BoundingBox':
        """Build from an OpenCV (x, y, w, h) rectangle."""
        x, y, w, h = rect
        return cls(int(x), int(y), int(w), int(h))


@dataclass
class Defect:
    """A detected defect region."""
    type: DefectType = DefectType.UNKNOWN
    bbox: BoundingBox = field(default_factory=BoundingBox)
    confidence: float = 0.0
    center: Tuple[float, float] = (0.0, 0.0)
    area: float = 0.0
    circularity: float = 0.0
    contour: List[Tuple[int, int]] = field(default_factory=list)

    @classmethod
    def from_bbox(cls, defect_type: DefectType, bbox: BoundingBox,
                  confidence: float) -> 'Defect':
        """Create a defect whose center and area are derived from its box."""
        return cls(
            type=defect_type,
            bbox=bbox,
            confidence=confidence,
            center=bbox.center(),
            area=float(bbox.area()),
        )

    @property
    def type_name(self) -> str:
        return self.type.value

    @property
    def color(self) -> Tuple[int, int, int]:
        return self.type.color

    def is_valid(self) -> bool:
        """A defect is reportable only with positive confidence and a non-empty box."""
        return self.confidence > 0.0 and self.bbox.area() > 0

    def contour_array(self) -> np.ndarray:
        """Contour as an OpenCV-style (N, 1, 2) int32 array."""
        if not self.contour:
            return np.empty((0, 1, 2), dtype=np.int32)
        return np.array(self.contour, dtype=np.int32).reshape(-1, 1, 2)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'type': self.type_name,
            'bbox': {
                'x': self.bbox.x,
                'y': self.bbox.y,
                'width': self.bbox.width,
                'height': self.bbox.height,
            },
            'confidence': float(self.confidence),
            'center': {'x': float(self.center[0]), 'y': float(self.center[1])},
            'area': float(self.area),
            'circularity': float(self.circularity),
            'contour': [{'x': int(x), 'y': int(y)} for x, y in self.contour],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Defect':
        """Create from dictionary; missing fields take their defaults."""
        defect = cls()

        if isinstance(data.get('type'), str):
            defect.type = DefectType.from_string(data['type'])

        bbox = data.get('bbox')
        if isinstance(bbox, dict):
            defect.bbox = BoundingBox(
                int(bbox.get('x', 0)), int(bbox.get('y', 0)),
                int(bbox.get('width', 0)), int(bbox.get('height', 0))
            )

        defect.confidence = float(data.get('confidence', 0.0))

        center = data.get('center')
        if isinstance(center, dict):
            defect.center = (float(center.get('x', 0.0)), float(center.get('y', 0.0)))

        defect.area = float(data.get('area', 0.0))
        defect.circularity = float(data.get('circularity', 0.0))

        contour = data.get('contour')
        if isinstance(contour, list):
            defect.contour = [
                (int(pt.get('x', 0)), int(pt.get('y', 0)))
                for pt in contour if isinstance(pt, dict)
            ]

        return defect


def contour_to_points(contour: np.ndarray) -> List[Tuple[int, int]]:
    """Flatten an OpenCV contour into a list of (x, y) tuples."""
    return [(int(pt[0]), int(pt[1])) for pt in contour.reshape(-1, 2)]


def defects_to_list(defects: List[Defect]) -> List[Dict]:
    """Convert a list of defects to a JSON-ready list."""
    return [d.to_dict() for d in defects]


def defects_from_list(data) -> List[Defect]:
    """
    Build defects from a JSON array.

    Raises:
        ValueError: if data is not a list
    """
    if not isinstance(data, list):
        raise ValueError("Defect JSON must be an array")
    return [Defect.from_dict(item) for item in data]
