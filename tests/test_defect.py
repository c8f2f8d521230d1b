"""Defect data model tests."""

import json

import numpy as np
import pytest

from aoi_inspection.vision.defect import (
    BoundingBox, Defect, DefectType, contour_to_points, defects_from_list, defects_to_list
)


class TestBoundingBox:
    """BoundingBox geometry."""

    def test_area_and_center(self):
        bbox = BoundingBox(10, 20, 30, 40)
        assert bbox.area() == 1200
        assert bbox.center() == (25.0, 40.0)

    def test_aspect_ratio_is_at_least_one(self):
        assert BoundingBox(0, 0, 10, 40).aspect_ratio() == pytest.approx(4.0)
        assert BoundingBox(0, 0, 40, 10).aspect_ratio() == pytest.approx(4.0)

    def test_degenerate_box(self):
        bbox = BoundingBox(5, 5, 0, 10)
        assert bbox.area() == 0
        assert bbox.aspect_ratio() == 0.0

    def test_from_rect(self):
        assert BoundingBox.from_rect((1, 2, 3, 4)).as_tuple() == (1, 2, 3, 4)


class TestDefectType:
    """DefectType names and colors."""

    def test_from_string(self):
        assert DefectType.from_string("Scratch") is DefectType.SCRATCH
        assert DefectType.from_string("Stain") is DefectType.STAIN
        assert DefectType.from_string("bogus") is DefectType.UNKNOWN

    def test_every_type_has_a_color(self):
        for defect_type in DefectType:
            assert len(defect_type.color) == 3


class TestDefect:
    """Defect validity and JSON form."""

    def test_is_valid_requires_confidence_and_box(self, make_defect):
        assert make_defect(confidence=0.7).is_valid()
        assert not make_defect(confidence=0.0).is_valid()
        assert not make_defect(width=0).is_valid()

    def test_from_bbox_derives_center_and_area(self):
        defect = Defect.from_bbox(DefectType.SCRATCH, BoundingBox(0, 0, 10, 20), 0.8)
        assert defect.center == (5.0, 10.0)
        assert defect.area == 200.0
        assert defect.type_name == "Scratch"

    def test_json_round_trip_preserves_fields(self):
        defect = Defect(
            type=DefectType.DEFORMATION,
            bbox=BoundingBox(3, 4, 50, 60),
            confidence=0.625,
            center=(28.0, 34.0),
            area=2500.5,
            circularity=0.3125,
            contour=[(3, 4), (53, 4), (53, 64), (3, 64)],
        )

        restored = Defect.from_dict(json.loads(json.dumps(defect.to_dict())))

        assert restored.type is defect.type
        assert restored.bbox == defect.bbox
        assert restored.confidence == defect.confidence
        assert restored.center == defect.center
        assert restored.area == defect.area
        assert restored.circularity == defect.circularity
        assert len(restored.contour) == len(defect.contour)

    def test_to_dict_keys(self, make_defect):
        data = make_defect().to_dict()
        assert set(data) == {'type', 'bbox', 'confidence', 'center', 'area', 'circularity', 'contour'}
        assert set(data['bbox']) == {'x', 'y', 'width', 'height'}

    def test_from_dict_missing_fields_use_defaults(self):
        defect = Defect.from_dict({'type': 'Stain'})
        assert defect.type is DefectType.STAIN
        assert defect.confidence == 0.0
        assert defect.bbox.area() == 0
        assert defect.contour == []

    def test_contour_array_shape(self, make_defect):
        defect = make_defect()
        assert defect.contour_array().shape == (0, 1, 2)
        defect.contour = [(0, 0), (5, 0), (5, 5)]
        assert defect.contour_array().shape == (3, 1, 2)


class TestDefectLists:
    """List helpers."""

    def test_list_round_trip(self, make_defect):
        defects = [make_defect(confidence=0.6), make_defect(confidence=0.9, x=40)]
        restored = defects_from_list(defects_to_list(defects))
        assert [d.confidence for d in restored] == [0.6, 0.9]
        assert restored[1].bbox.x == 40

    def test_non_array_is_rejected(self):
        with pytest.raises(ValueError):
            defects_from_list({'type': 'Stain'})

    def test_contour_to_points(self):
        contour = np.array([[[1, 2]], [[3, 4]]], dtype=np.int32)
        assert contour_to_points(contour) == [(1, 2), (3, 4)]
