"""
Defect Visualization
Draws contours, boxes, labels and a defect count banner onto a copy of an image.
"""

from typing import List, Optional

import cv2
import numpy as np

from .defect import Defect
from .filters import is_valid_image

FONT = cv2.FONT_HERSHEY_SIMPLEX
WHITE = (255, 255, 255)
BLACK = (0, 0, 0)


def visualize_defects(image: np.ndarray, defects: List[Defect], draw_contour: bool = True,
                      draw_bbox: bool = True, draw_label: bool = True) -> Optional[np.ndarray]:
    """
    Render defects onto a BGR copy of the image.

    Args:
        image: Source image (grayscale is converted to BGR)
        defects: Defects to draw, numbered from 1
        draw_contour: Draw each defect's contour
        draw_bbox: Draw bounding box and center dot
        draw_label: Draw "<Type> NN.NN%" label and "#i" marker

    Returns:
        New annotated image, or None for an empty input
    """
    if not is_valid_image(image):
        return None

    if image.ndim == 2:
        result = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    else:
        result = image.copy()

    for i, defect in enumerate(defects):
        color = defect.color
        bbox = defect.bbox

        if draw_contour and defect.contour:
            cv2.drawContours(result, [defect.contour_array()], 0, color, 2)

        if draw_bbox and bbox.area() > 0:
            cv2.rectangle(result, (bbox.x, bbox.y), (bbox.x + bbox.width, bbox.y + bbox.height),
                          color, 2)
            cv2.circle(result, (int(defect.center[0]), int(defect.center[1])), 3, color, -1)

        if draw_label:
            _draw_label(result, defect, i + 1)

    if defects:
        _draw_summary(result, len(defects))

    return result


def _draw_label(canvas: np.ndarray, defect: Defect, number: int):
    bbox = defect.bbox
    label = f"{defect.type_name} {defect.confidence * 100.0:.2f}%"
    (text_w, text_h), _ = cv2.getTextSize(label, FONT, 0.5, 1)

    # Above the box, or below it when there is no room
    label_x, label_y = bbox.x, bbox.y - 5
    if label_y < text_h + 5:
        label_y = bbox.y + bbox.height + text_h + 5

    rect_x = max(0, label_x)
    rect_y = max(0, label_y - text_h - 3)
    rect_w = min(canvas.shape[1] - rect_x, text_w + 6)
    rect_h = min(canvas.shape[0] - rect_y, text_h + 6)
    if rect_w > 0 and rect_h > 0:
        cv2.rectangle(canvas, (rect_x, rect_y), (rect_x + rect_w, rect_y + rect_h), defect.color, -1)
    cv2.putText(canvas, label, (label_x + 3, label_y - 3), FONT, 0.5, WHITE, 1, cv2.LINE_AA)

    marker = f"#{number}"
    (num_w, num_h), _ = cv2.getTextSize(marker, FONT, 0.5, 1)
    position = (int(defect.center[0] - num_w / 2), int(defect.center[1] + num_h / 2))
    cv2.putText(canvas, marker, position, FONT, 0.5, WHITE, 2, cv2.LINE_AA)


def _draw_summary(canvas: np.ndarray, count: int):
    summary = f"Defects: {count}"
    (text_w, text_h), _ = cv2.getTextSize(summary, FONT, 0.7, 2)
    top_left = (10, 10)
    bottom_right = (10 + text_w + 20, 10 + text_h + 20)
    cv2.rectangle(canvas, top_left, bottom_right, BLACK, -1)
    cv2.rectangle(canvas, top_left, bottom_right, WHITE, 2)
    cv2.putText(canvas, summary, (20, 20 + text_h), FONT, 0.7, WHITE, 2, cv2.LINE_AA)
