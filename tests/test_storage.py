"""Result persistence tests."""

import base64
import codecs
import csv
import threading

import cv2
import numpy as np
import pytest

from aoi_inspection.controller import InspectionResult
from aoi_inspection.storage import (
    CSVWriter, ImageSaver, decode_base64_image, encode_image_base64, load_image, save_image
)
from aoi_inspection.storage.csv_writer import DEFECT_HEADER, SUMMARY_HEADER


@pytest.fixture
def ng_result(make_defect):
    return InspectionResult(
        success=True,
        is_ok=False,
        defects=[make_defect(0.9), make_defect(0.7, x=50)],
        total_time=12.5,
        timestamp="2024-01-31 12:00:00.123",
    )


@pytest.fixture
def ok_result(gray_image):
    return InspectionResult(
        success=True,
        is_ok=True,
        original_image=gray_image,
        processed_image=gray_image[:, :, 0].copy(),
        total_time=3.0,
        timestamp="2024-01-31 12:00:01.000",
    )


def read_rows(path):
    with open(path, newline='', encoding='utf-8-sig') as f:
        return list(csv.reader(f))


class TestCSVWriter:
    """CSV output."""

    def test_file_starts_with_bom(self, tmp_path, ng_result):
        path = CSVWriter(tmp_path).write_result(ng_result, "part.png")
        assert path.read_bytes().startswith(codecs.BOM_UTF8)

    def test_one_row_per_defect(self, tmp_path, ng_result):
        path = CSVWriter(tmp_path).write_result(ng_result, "part.png")
        rows = read_rows(path)

        assert rows[0] == DEFECT_HEADER
        assert len(rows) == 3
        assert rows[1][:5] == ["2024-01-31 12:00:00.123", "part.png", "NG", "2", "12.500"]
        assert rows[1][5:7] == ["0", "Stain"]
        assert rows[2][5] == "1"

    def test_result_without_defects(self, tmp_path, ok_result):
        rows = read_rows(CSVWriter(tmp_path).write_result(ok_result, "good.png"))
        assert len(rows) == 2
        assert rows[1][2:4] == ["OK", "0"]
        assert rows[1][5:] == [''] * 9

    def test_summary_only(self, tmp_path, ng_result):
        writer = CSVWriter(tmp_path, include_defect_details=False)
        rows = read_rows(writer.write_result(ng_result))
        assert rows[0] == SUMMARY_HEADER
        assert len(rows) == 2

    def test_append_writes_header_once(self, tmp_path, ng_result, ok_result):
        writer = CSVWriter(tmp_path)
        path = tmp_path / "nested" / "results.csv"
        assert writer.append_result(ng_result, "a.png", path)
        assert writer.append_result(ok_result, "b.png", path)

        rows = read_rows(path)
        assert rows.count(DEFECT_HEADER) == 1
        assert len(rows) == 4
        assert path.read_bytes().count(codecs.BOM_UTF8) == 1

    def test_write_results_batch(self, tmp_path, ng_result, ok_result):
        writer = CSVWriter(tmp_path, prefix="batch")
        path = writer.write_results([ng_result, ok_result], ["a.png", "b.png"])
        assert path.name.startswith("batch_")
        assert writer.last_written_file == path
        assert len(read_rows(path)) == 4


class TestImageSaver:
    """Archiving result images."""

    def test_saves_available_kinds(self, tmp_path, ok_result):
        saver = ImageSaver(tmp_path)
        paths = saver.save_images(ok_result)

        # No visualized image on this result
        assert [p.parent.name for p in paths] == ['original', 'processed']
        assert all(p.exists() and p.suffix == '.png' for p in paths)

    def test_selected_kinds(self, tmp_path, ok_result):
        paths = ImageSaver(tmp_path).save_images(ok_result, kinds=['processed', 'bogus'])
        assert len(paths) == 1

    def test_flat_jpeg(self, tmp_path, ok_result):
        saver = ImageSaver(tmp_path, image_format='jpg', create_subdirectories=False)
        paths = saver.save_images(ok_result, kinds=['original'])
        assert paths[0].parent == tmp_path
        assert paths[0].suffix == '.jpg'

    def test_filenames_are_unique(self, tmp_path):
        saver = ImageSaver(tmp_path)
        names = {saver.save(np.zeros((5, 5), np.uint8), 'original').name for _ in range(3)}
        assert len(names) == 3


def run_together(count, target):
    """Start count threads at the same instant and collect their return values."""
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(index):
        barrier.wait()
        results[index] = target()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


class TestConcurrentPersistence:
    """Writers shared by several request threads."""

    def test_concurrent_appends_write_one_header(self, tmp_path, ok_result):
        writer = CSVWriter(tmp_path)
        path = tmp_path / "shared.csv"

        outcomes = run_together(16, lambda: writer.append_result(ok_result, "a.png", path))

        assert all(outcomes)
        rows = read_rows(path)
        assert rows.count(DEFECT_HEADER) == 1
        assert len(rows) == 17
        assert path.read_bytes().count(codecs.BOM_UTF8) == 1

    def test_concurrent_saves_return_own_paths(self, tmp_path, ok_result):
        saver = ImageSaver(tmp_path)

        saved = run_together(16, lambda: saver.save_images(ok_result))

        assert [len(paths) for paths in saved] == [2] * 16
        all_paths = [p for paths in saved for p in paths]
        assert len(set(all_paths)) == 32
        assert all(p.exists() for p in all_paths)


class TestImageIO:
    """Loading, saving and base64 transport."""

    def test_save_and_load(self, tmp_path, gray_image):
        path = tmp_path / "deep" / "dir" / "img.png"
        assert save_image(gray_image, path)
        assert np.array_equal(load_image(path), gray_image)

    def test_load_missing(self, tmp_path):
        assert load_image(tmp_path / "nothing.png") is None
        assert load_image("") is None

    def test_load_unreadable(self, tmp_path):
        path = tmp_path / "text.png"
        path.write_text("not an image")
        assert load_image(path) is None

    def test_save_empty(self, tmp_path):
        assert not save_image(np.array([], dtype=np.uint8), tmp_path / "x.png")

    def test_base64_round_trip(self, gray_image):
        encoded = encode_image_base64(gray_image)
        assert np.array_equal(decode_base64_image(encoded), gray_image)
        assert np.array_equal(decode_base64_image("data:image/png;base64," + encoded), gray_image)

    def test_invalid_base64(self):
        assert decode_base64_image("") is None
        assert decode_base64_image(base64.b64encode(b"hello").decode()) is None
        assert decode_base64_image("!!!") is None
