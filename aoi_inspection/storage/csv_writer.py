"""
CSV Result Writer
Writes inspection results as Excel-friendly CSV (UTF-8 with BOM),
either one row per defect or one summary row per result.
"""

import csv
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Union

if TYPE_CHECKING:
    from ..controller.inspection_controller import InspectionResult

logger = logging.getLogger(__name__)

SUMMARY_HEADER = ['Timestamp', 'Image Path', 'Judgment', 'Total Defects', 'Processing Time (ms)']
DEFECT_HEADER = SUMMARY_HEADER + ['Defect Index', 'Defect Type', 'Confidence',
                                  'X', 'Y', 'Width', 'Height', 'Area', 'Circularity']

# utf-8-sig writes the BOM so spreadsheet tools detect the encoding
CSV_ENCODING = 'utf-8-sig'


class CSVWriter:
    """Writes inspection results to CSV files."""

    def __init__(self, output_dir: Union[str, Path], include_defect_details: bool = True,
                 prefix: str = "inspection"):
        self.output_dir = Path(output_dir)
        self.include_defect_details = include_defect_details
        self.prefix = prefix
        self.last_written_file: Optional[Path] = None
        # serializes appends so only the first writer of a file emits the header
        self._append_lock = threading.Lock()

    @property
    def header(self) -> List[str]:
        return DEFECT_HEADER if self.include_defect_details else SUMMARY_HEADER

    def generate_filename(self) -> str:
        return f"{self.prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}.csv"

    def write_result(self, result: 'InspectionResult', image_path: str = "") -> Optional[Path]:
        """Write one result to a new timestamped CSV file."""
        return self.write_results([result], [image_path])

    def write_results(self, results: Sequence['InspectionResult'],
                      image_paths: Optional[Sequence[str]] = None) -> Optional[Path]:
        """
        Write several results to a new timestamped CSV file.

        Returns:
            Path of the written file, or None on failure
        """
        image_paths = list(image_paths or [])
        csv_path = self.output_dir / self.generate_filename()

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with open(csv_path, 'w', newline='', encoding=CSV_ENCODING) as f:
                writer = csv.writer(f)
                writer.writerow(self.header)
                for i, result in enumerate(results):
                    path = image_paths[i] if i < len(image_paths) else ""
                    writer.writerows(self.result_rows(result, path))
        except OSError as e:
            logger.error(f"Failed to write CSV file {csv_path}: {e}")
            return None

        self.last_written_file = csv_path
        logger.info(f"CSV file written with {len(results)} results: {csv_path}")
        return csv_path

    def append_result(self, result: 'InspectionResult', image_path: str,
                      csv_path: Union[str, Path]) -> bool:
        """Append a result to a CSV file, creating it with a header if needed."""
        csv_path = Path(csv_path)
        rows = self.result_rows(result, image_path)
        with self._append_lock:
            try:
                csv_path.parent.mkdir(parents=True, exist_ok=True)
                is_new = not csv_path.exists() or csv_path.stat().st_size == 0
                # The BOM belongs only at the start of a new file
                encoding = CSV_ENCODING if is_new else 'utf-8'
                with open(csv_path, 'a', newline='', encoding=encoding) as f:
                    writer = csv.writer(f)
                    if is_new:
                        writer.writerow(self.header)
                        logger.info(f"New CSV file created: {csv_path}")
                    writer.writerows(rows)
            except OSError as e:
                logger.error(f"Failed to append to CSV file {csv_path}: {e}")
                return False

            self.last_written_file = csv_path
        return True

    def result_rows(self, result: 'InspectionResult', image_path: str) -> List[List]:
        """CSV rows for one result."""
        summary = [result.timestamp, image_path, result.status,
                   result.defect_count, f"{result.total_time:.3f}"]

        if not self.include_defect_details:
            return [summary]

        if not result.defects:
            return [summary[:3] + [0, summary[4]] + [''] * 9]

        rows = []
        for i, defect in enumerate(result.defects):
            rows.append(summary + [
                i,
                defect.type_name,
                f"{defect.confidence:.4f}",
                defect.bbox.x,
                defect.bbox.y,
                defect.bbox.width,
                defect.bbox.height,
                f"{defect.area:.2f}",
                f"{defect.circularity:.4f}",
            ])
        return rows
