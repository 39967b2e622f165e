"""
Image Rectifier

Turns a photographed ID card into a flat, axis-aligned, binarized image ready
for region cropping and OCR.

Pipeline:
    grayscale -> blur -> edges -> largest contour -> 4-point perspective warp
    -> adaptive threshold -> deskew

Every stage degrades to the best image produced so far: no contour, a
non-quadrilateral approximation or a degenerate rotation never abort the run.
The only hard failure is an undecodable input, raised by the image loader.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from utils.config import MAX_IMAGE_DIMENSION
from utils.image_manager import limit_image_size
from utils.ocr_utils import to_grayscale

logger = logging.getLogger(__name__)

# Edge detection
BLUR_KERNEL = (5, 5)
CANNY_LOW = 50
CANNY_HIGH = 150
APPROX_EPSILON = 0.02

# Adaptive threshold
THRESHOLD_BLOCK_SIZE = 31
THRESHOLD_C = 7

# Deskew is skipped when fewer foreground pixels than this remain
MIN_DESKEW_PIXELS = 10


@dataclass
class RectifiedDocument:
    """Output of one rectification run."""
    rectified: np.ndarray
    binarized: np.ndarray
    quad: Optional[np.ndarray] = None
    deskew_angle: float = 0.0
    processing_time_ms: float = 0.0

    @property
    def was_warped(self) -> bool:
        return self.quad is not None


def order_points(pts: np.ndarray) -> np.ndarray:
    """
    Order 4 corners as top-left, top-right, bottom-right, bottom-left.
    """
    pts = np.asarray(pts, dtype="float32").reshape(4, 2)
    rect = np.zeros((4, 2), dtype="float32")

    # Top-left has the smallest x+y, bottom-right the largest
    s = pts.sum(axis=1)
    rect[0] = pts[np.argmin(s)]
    rect[2] = pts[np.argmax(s)]

    # Top-right has the smallest y-x, bottom-left the largest
    diff = np.diff(pts, axis=1).ravel()
    rect[1] = pts[np.argmin(diff)]
    rect[3] = pts[np.argmax(diff)]

    return rect


def four_point_transform(image: np.ndarray, pts: np.ndarray) -> np.ndarray:
    """
    Warp the quadrilateral ``pts`` of ``image`` to a top-down rectangle.

    Output size is the longer of each pair of opposite sides.
    """
    rect = order_points(pts)
    (tl, tr, br, bl) = rect

    width_a = np.hypot(br[0] - bl[0], br[1] - bl[1])
    width_b = np.hypot(tr[0] - tl[0], tr[1] - tl[1])
    max_width = max(1, int(round(max(width_a, width_b))))

    height_a = np.hypot(tr[0] - br[0], tr[1] - br[1])
    height_b = np.hypot(tl[0] - bl[0], tl[1] - bl[1])
    max_height = max(1, int(round(max(height_a, height_b))))

    dst = np.array([
        [0, 0],
        [max_width - 1, 0],
        [max_width - 1, max_height - 1],
        [0, max_height - 1]
    ], dtype="float32")

    matrix = cv2.getPerspectiveTransform(rect, dst)
    return cv2.warpPerspective(image, matrix, (max_width, max_height))


def find_document_quad(gray: np.ndarray) -> Optional[np.ndarray]:
    """
    Find the document outline as 4 corner points, or None.

    Takes the largest external contour of the edge map and keeps it only if
    its polygon approximation has exactly 4 vertices.
    """
    blurred = cv2.GaussianBlur(gray, BLUR_KERNEL, 0)
    edges = cv2.Canny(blurred, CANNY_LOW, CANNY_HIGH)

    contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return None

    largest = max(contours, key=cv2.contourArea)
    perimeter = cv2.arcLength(largest, True)
    approx = cv2.approxPolyDP(largest, APPROX_EPSILON * perimeter, True)

    if len(approx) != 4:
        return None
    return approx.reshape(4, 2).astype("float32")


def binarize(gray: np.ndarray) -> np.ndarray:
    return cv2.adaptiveThreshold(
        gray, 255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
        cv2.THRESH_BINARY,
        THRESHOLD_BLOCK_SIZE,
        THRESHOLD_C
    )


def deskew_binary(binary: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Rotate a binarized document so its dominant content is axis-aligned.

    Foreground is the dark text on a white background. Returns
    ``(image, angle)``; the input is returned unchanged with angle 0 when
    there is too little foreground or OpenCV rejects the geometry.
    """
    try:
        coords = cv2.findNonZero(255 - binary)
        if coords is None or len(coords) < MIN_DESKEW_PIXELS:
            return binary, 0.0

        angle = cv2.minAreaRect(coords)[-1]
        if angle < -45:
            angle += 90
        # OpenCV >= 4.5 reports angles in (0, 90]
        elif angle > 45:
            angle -= 90

        if abs(angle) < 1e-3:
            return binary, 0.0

        h, w = binary.shape[:2]
        matrix = cv2.getRotationMatrix2D((w / 2, h / 2), angle, 1.0)
        rotated = cv2.warpAffine(
            binary, matrix, (w, h),
            flags=cv2.INTER_CUBIC,
            borderMode=cv2.BORDER_REPLICATE
        )
        return rotated, float(angle)
    except cv2.error as e:
        logger.debug(f"Deskew skipped: {e}")
        return binary, 0.0


class ImageRectifier:
    """
    One rectification context.

    Contexts are held by a ``ResourcePool`` and used by one request at a
    time; ``reset()`` clears whatever the previous request left behind.
    """

    def __init__(self, max_dimension: int = MAX_IMAGE_DIMENSION):
        self.max_dimension = max_dimension
        self.runs = 0
        self._last: Optional[RectifiedDocument] = None

    def reset(self) -> None:
        self._last = None

    def close(self) -> None:
        self.reset()

    def rectify(self, image: np.ndarray) -> RectifiedDocument:
        start = time.time()
        image = limit_image_size(image, self.max_dimension)
        gray = to_grayscale(image)

        quad = None
        rectified = gray
        try:
            quad = find_document_quad(gray)
            if quad is not None:
                rectified = four_point_transform(gray, quad)
        except cv2.error as e:
            logger.warning(f"Perspective correction failed, using original image: {e}")
            quad, rectified = None, gray

        if quad is None:
            logger.debug("No document quadrilateral found; using grayscale image")

        binarized, angle = deskew_binary(binarize(rectified))

        result = RectifiedDocument(
            rectified=rectified,
            binarized=binarized,
            quad=quad,
            deskew_angle=angle,
            processing_time_ms=round((time.time() - start) * 1000, 2),
        )
        self.runs += 1
        self._last = result
        return result


def unrectified_document(image: np.ndarray, max_dimension: int = MAX_IMAGE_DIMENSION) -> RectifiedDocument:
    """Grayscale and binarized input with no perspective or skew correction."""
    gray = to_grayscale(limit_image_size(image, max_dimension))
    return RectifiedDocument(rectified=gray, binarized=binarize(gray))
