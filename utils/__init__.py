# Utils package
"""
Utility modules for the recognition pipeline.
- Coordinate utilities
- Image decoding and preprocessing
- Visualization helpers
"""

from .coordinate_utils import CoordinateConverter
from .image_utils import decode_image_data, load_image, encode_png, preprocess_image, crop_to_png
from .visualization import get_font, save_cluster_visualization

__all__ = [
    'CoordinateConverter',
    'decode_image_data',
    'load_image',
    'encode_png',
    'preprocess_image',
    'crop_to_png',
    'get_font',
    'save_cluster_visualization',
]
