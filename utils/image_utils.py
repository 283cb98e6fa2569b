# Image Utilities
"""
Image decoding, preprocessing and cropping helpers.
Uses Pillow for decode/resize/crop and OpenCV for contrast normalisation
and thresholding.
"""

import base64
import io
import logging
import re
from typing import Sequence, Union

import cv2
import numpy as np
from PIL import Image, ImageFilter

from data_models import CropRect

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r'^data:image/[a-zA-Z+.-]+;base64,')

PREPROCESS_OPERATIONS = ('grayscale', 'normalize', 'sharpen', 'threshold')


def decode_image_data(image_data: Union[bytes, str]) -> bytes:
    """Accept raw bytes, a base64 string or a data URL and return raw bytes"""
    if isinstance(image_data, (bytes, bytearray)):
        return bytes(image_data)
    return base64.b64decode(DATA_URL_PREFIX.sub('', image_data.strip()))


def load_image(image_bytes: bytes) -> Image.Image:
    """Open image bytes as a fully loaded PIL image"""
    image = Image.open(io.BytesIO(image_bytes))
    image.load()
    return image


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, 'PNG')
    return buffer.getvalue()


def preprocess_image(image_bytes: bytes, operations: Sequence[str], resize_factor: float = 2) -> bytes:
    """
    Upscale an image by `resize_factor` and apply operations in order.
    Supported operations: grayscale, normalize, sharpen, threshold.
    Returns PNG bytes.
    """
    image = load_image(image_bytes).convert('RGB')
    width, height = image.size
    image = image.resize(
        (max(1, int(round(width * resize_factor))), max(1, int(round(height * resize_factor)))),
        Image.LANCZOS
    )

    for op in operations:
        if op == 'grayscale':
            image = image.convert('L')
        elif op == 'normalize':
            # Stretch intensities to the full 0-255 range
            array = np.array(image)
            array = cv2.normalize(array, None, 0, 255, cv2.NORM_MINMAX)
            image = Image.fromarray(array)
        elif op == 'sharpen':
            image = image.filter(ImageFilter.SHARPEN)
        elif op == 'threshold':
            gray = np.array(image.convert('L'))
            _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
            image = Image.fromarray(binary)
        else:
            raise ValueError(f"Unknown preprocessing operation: {op}")

    return encode_png(image)


def crop_to_png(image: Image.Image, rect: CropRect) -> bytes:
    """Crop an image to an integer rectangle and encode as PNG"""
    return encode_png(image.crop(rect.to_pil_box()))
