# Homework Markup OCR Configuration
"""
Configuration settings for the recognition and markup pipeline.
Contains stage parameters, collaborator credentials, and logging setup.
"""

import logging
import os
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ============================================================================
# CONFIGURATION
# ============================================================================

# Base directory (where this config file is located)
BASE_DIR = Path(__file__).parent

CONFIG = {
    # Stage 1: multi-pass text detection
    "enable_preprocessing": True,  # Set to False to run the clean pass only
    "resize_factor": 2,  # Upscale factor for the enhanced/aggressive passes
    "line_group_tolerance_y": 10,  # px tolerance to group words into one line

    # Stage 2: clustering
    "dbscan_eps_px": 40,
    "dbscan_min_pts": 2,
    "max_merge_iterations": 20,
    "dedupe_merged_text": True,

    # Stage 3: math detection
    "math_threshold": 0.35,

    # Stage 4: math triage
    "min_math_block_size": 20,
    "max_math_block_size": 2000,
    "triage_confidence_threshold": 0.9,
    "specialized_call_delay_s": 0.2,

    # Mathpix (specialized math recognizer)
    "mathpix_api_url": "https://api.mathpix.com/v3/text",
    "mathpix_timeout_s": 30,

    # PaddleOCR (local text detection)
    "paddleocr_det_model": "PP-OCRv5_server_det",
    "paddleocr_rec_model": "PP-OCRv5_server_rec",
}

MATHPIX_APP_ID = os.getenv("MATHPIX_APP_ID", "")
MATHPIX_API_KEY = os.getenv("MATHPIX_API_KEY", "")

# Overlay styling
OVERLAY_STYLE = {
    "mark_color": (220, 0, 0),
    "circle_color": (255, 170, 0),
    "underline_color": (0, 102, 255),
    "comment_color": (220, 0, 0),
    "base_reference_height": 2000,  # font sizes below are for a page this tall
    "font_sizes": {
        "mark_code": 40,
        "reasoning": 28,
        "comment": 32,
    },
}


@dataclass
class OCROptions:
    """Per-call options for the recognition pipeline (defaults from CONFIG)"""
    enable_preprocessing: bool = CONFIG["enable_preprocessing"]
    math_threshold: float = CONFIG["math_threshold"]
    min_math_block_size: int = CONFIG["min_math_block_size"]
    max_math_block_size: int = CONFIG["max_math_block_size"]
    dbscan_eps_px: float = CONFIG["dbscan_eps_px"]
    dbscan_min_pts: int = CONFIG["dbscan_min_pts"]
    resize_factor: float = CONFIG["resize_factor"]
    line_group_tolerance_y: float = CONFIG["line_group_tolerance_y"]
    max_merge_iterations: int = CONFIG["max_merge_iterations"]
    dedupe_merged_text: bool = CONFIG["dedupe_merged_text"]
    triage_confidence_threshold: float = CONFIG["triage_confidence_threshold"]
    specialized_call_delay_s: float = CONFIG["specialized_call_delay_s"]

    @classmethod
    def from_overrides(cls, **overrides) -> "OCROptions":
        """Build options from CONFIG defaults, ignoring overrides set to None"""
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown OCR options: {sorted(unknown)}")
        return cls(**{k: v for k, v in overrides.items() if v is not None})

    def with_overrides(self, **overrides) -> "OCROptions":
        """Copy of these options with the non-None overrides applied"""
        merged = self.to_dict()
        merged.update({k: v for k, v in overrides.items() if v is not None})
        return OCROptions.from_overrides(**merged)

    def to_dict(self) -> Dict:
        return asdict(self)


# ============================================================================
# LOGGING SETUP
# ============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Setup and return the logger for the pipeline."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        force=True
    )
    return logging.getLogger(__name__)
