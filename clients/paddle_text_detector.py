# PaddleOCR Text Detection Client
"""
Local text detection collaborator backed by PaddleOCR.
Runs TextDetection + TextRecognition in sequence and reports the result
as a full-text structure with one paragraph per detected line.
"""

import logging
import threading
from typing import Dict, List, Tuple

import cv2
import numpy as np

# PaddleOCR for text detection and recognition
try:
    from paddleocr import TextDetection, TextRecognition
    PADDLEOCR_AVAILABLE = True
except ImportError:
    TextDetection = None
    TextRecognition = None
    PADDLEOCR_AVAILABLE = False
    logging.warning("paddleocr not available. Install with: pip install paddleocr")

from config import CONFIG

logger = logging.getLogger(__name__)


class PaddleTextDetector:
    """TextDetectionClient using PaddleOCR TextDetection + TextRecognition"""

    def __init__(self, det_model: str = None, rec_model: str = None):
        if not PADDLEOCR_AVAILABLE:
            raise ImportError("paddleocr not available")

        det_model = det_model or CONFIG['paddleocr_det_model']
        rec_model = rec_model or CONFIG['paddleocr_rec_model']

        logger.info(f"Loading PaddleOCR TextDetection (model={det_model})")
        self.detector = TextDetection(model_name=det_model)

        logger.info(f"Loading PaddleOCR TextRecognition (model={rec_model})")
        self.recognizer = TextRecognition(model_name=rec_model)

        # Predictors are shared by every pass and are not safe to call concurrently
        self._lock = threading.Lock()

        logger.info("PaddleOCR loaded successfully (TextDetection + TextRecognition)")

    def detect_text(self, image_bytes: bytes) -> Dict:
        """Detect and recognize text lines, returning {'pages': [...]}"""
        img = cv2.imdecode(np.frombuffer(image_bytes, dtype=np.uint8), cv2.IMREAD_COLOR)
        if img is None:
            raise ValueError("Could not decode image bytes")
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

        with self._lock:
            lines = self._run_ocr(img)
        blocks = [
            {
                'paragraphs': [{
                    'lines': [{
                        'text': text,
                        'confidence': conf,
                        'boundingBox': {'vertices': [
                            {'x': x0, 'y': y0}, {'x': x1, 'y': y0},
                            {'x': x1, 'y': y1}, {'x': x0, 'y': y1},
                        ]},
                    }]
                }]
            }
            for (x0, y0, x1, y1), text, conf in lines
        ]
        return {'pages': [{'blocks': blocks}]}

    def _run_ocr(self, img: np.ndarray) -> List[Tuple[List[int], str, float]]:
        """
        1. Detect text line polygons with TextDetection
        2. Crop all detected boxes
        3. Run TextRecognition in batch on all crops
        Returns list of (bbox, text, confidence).
        """
        img_height, img_width = img.shape[:2]
        det_output = self.detector.predict(input=img, batch_size=1)

        detected_boxes = []  # (bbox, det_score)
        crops = []

        for res in det_output:
            dt_polys = res.get('dt_polys', []) if hasattr(res, 'get') else getattr(res, 'dt_polys', [])
            dt_scores = res.get('dt_scores', []) if hasattr(res, 'get') else getattr(res, 'dt_scores', [])
            if dt_polys is None or len(dt_polys) == 0:
                continue

            for idx, poly in enumerate(dt_polys):
                points = np.array(poly).astype(np.int32)
                x0 = max(0, int(np.min(points[:, 0])))
                y0 = max(0, int(np.min(points[:, 1])))
                x1 = min(img_width, int(np.max(points[:, 0])))
                y1 = min(img_height, int(np.max(points[:, 1])))
                if x1 <= x0 or y1 <= y0:
                    continue

                det_score = float(dt_scores[idx]) if idx < len(dt_scores) else 0.9
                crop = img[y0:y1, x0:x1]
                if crop.size == 0:
                    continue
                detected_boxes.append(([x0, y0, x1, y1], det_score))
                crops.append(crop)

        if not crops:
            return []

        rec_output = self.recognizer.predict(input=crops, batch_size=len(crops))
        rec_texts = []
        rec_scores = []
        for rec_res in rec_output:
            text = rec_res.get('rec_text', '') if hasattr(rec_res, 'get') else getattr(rec_res, 'rec_text', '')
            score = rec_res.get('rec_score') if hasattr(rec_res, 'get') else getattr(rec_res, 'rec_score', None)
            rec_texts.append(text if isinstance(text, str) else str(text))
            rec_scores.append(score)

        results = []
        for i, (bbox, det_score) in enumerate(detected_boxes):
            text = rec_texts[i] if i < len(rec_texts) else ""
            score = rec_scores[i] if i < len(rec_scores) and rec_scores[i] is not None else det_score
            results.append((bbox, text, float(score)))

        logger.debug(f"PaddleOCR recognized {len(results)} lines")
        return results
