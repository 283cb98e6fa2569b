# Recognition Pipeline Main Orchestrator
"""
Main pipeline class that orchestrates all stages:
- Stage 1: Multi-pass text detection (3 concurrent passes)
- Stage 2: Cluster merging (DBSCAN + overlap coalescing)
- Stage 3: Math region classification
- Stage 4: Math recognition triage (specialized recognizer)
- Stage 5: Result assembly

And the markup path:
- Annotation mapping (instructions -> page coordinates)
- Overlay rendering (marks burned into a copy of the page)

Supports single images and folders of images from the CLI.
"""

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from PIL import Image

from clients import MathpixClient, PaddleTextDetector, PADDLEOCR_AVAILABLE
from config import CONFIG, OCROptions
from data_models import OCRResult
from errors import AllPassesFailure, DetectorUnavailable
from stages import (
    AnnotationMapper,
    ClusterMerger,
    MappingResult,
    MathRegionClassifier,
    MathTriageStage,
    MultiPassTextDetector,
    OverlayRenderer,
    ResultAssembler,
)
from utils.image_utils import decode_image_data, encode_png, load_image
from utils.visualization import save_cluster_visualization

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.webp'}


@dataclass
class AnnotatedImage:
    """Rendered page plus the mapping diagnostics that produced it"""
    image: Image.Image
    mapping: MappingResult

    def to_png(self) -> bytes:
        return encode_png(self.image)


class RecognitionPipeline:
    """Recognition pipeline: detect -> cluster -> classify -> triage -> assemble

    Collaborators are injected; `from_config` builds the default PaddleOCR
    detector and Mathpix recognizer. Options passed per call override the
    pipeline's defaults for that call only.
    """

    def __init__(self, text_detector=None, math_recognizer=None, options: Optional[OCROptions] = None,
                 sleep=asyncio.sleep, rng: Optional[random.Random] = None):
        self.text_detector = text_detector
        self.math_recognizer = math_recognizer
        self.options = options or OCROptions()
        self._sleep = sleep
        self.rng = rng
        self.assembler = ResultAssembler()
        self.mapper = AnnotationMapper()

    @classmethod
    def from_config(cls, options: Optional[OCROptions] = None, seed: Optional[int] = None) -> "RecognitionPipeline":
        """Pipeline with the locally available collaborators"""
        text_detector = None
        if PADDLEOCR_AVAILABLE:
            text_detector = PaddleTextDetector(
                det_model=CONFIG['paddleocr_det_model'],
                rec_model=CONFIG['paddleocr_rec_model']
            )
        else:
            logger.warning("PaddleOCR unavailable - text detection disabled")

        math_recognizer = MathpixClient()
        if not math_recognizer.is_available():
            logger.warning("Mathpix credentials not set - specialized math recognition disabled")
            math_recognizer = None

        rng = random.Random(seed) if seed is not None else None
        pipeline = cls(text_detector, math_recognizer, options=options, rng=rng)
        logger.info("Recognition pipeline initialized successfully")
        return pipeline

    # =========================================================================
    # Recognition
    # =========================================================================

    async def process_image(self, image_data: Union[bytes, str], **overrides) -> OCRResult:
        """
        Run all five stages on one image (raw bytes or base64 data URL).

        Raises:
            AllPassesFailure: every pass failed and no specialized recognizer is configured
            FallbackFailure: every pass failed and the whole-image fallback failed too
        """
        start_time = time.time()
        options = self.options.with_overrides(**overrides)

        image_bytes = decode_image_data(image_data)
        image = load_image(image_bytes)
        img_width, img_height = image.size
        logger.info(f"Processing image {img_width}x{img_height}")

        if self.text_detector is None:
            raise DetectorUnavailable("No text detection client configured; install paddleocr or pass a client")

        detector = MultiPassTextDetector(
            self.text_detector,
            resize_factor=options.resize_factor,
            line_group_tolerance_y=options.line_group_tolerance_y,
            enable_preprocessing=options.enable_preprocessing
        )
        triage = MathTriageStage(
            self.math_recognizer,
            confidence_threshold=options.triage_confidence_threshold,
            call_delay_s=options.specialized_call_delay_s,
            min_block_size=options.min_math_block_size,
            max_block_size=options.max_math_block_size,
            sleep=self._sleep
        )

        # =====================================================================
        # STAGE 1: Multi-pass text detection
        # =====================================================================
        try:
            raw_regions = await detector.detect(image_bytes)
        except AllPassesFailure as e:
            if not triage.available:
                logger.error(f"{e} - no specialized recognizer for fallback")
                raise
            logger.warning(f"{e} - falling back to whole-image math recognition")
            block = await triage.recognize_whole_image(image)
            return self.assembler.assemble([block], img_width, img_height, start_time, specialized_calls=1)

        # =====================================================================
        # STAGES 2-3: Cluster merging and math classification
        # =====================================================================
        merger = ClusterMerger(
            eps_px=options.dbscan_eps_px,
            min_pts=options.dbscan_min_pts,
            max_iterations=options.max_merge_iterations,
            dedupe_text=options.dedupe_merged_text
        )
        merged = merger.merge(raw_regions)
        blocks = MathRegionClassifier(options.math_threshold).classify(merged)

        # =====================================================================
        # STAGE 4: Math recognition triage
        # =====================================================================
        outcome = await triage.run(blocks, image)

        # =====================================================================
        # STAGE 5: Result assembly
        # =====================================================================
        result = self.assembler.assemble(
            outcome.blocks, img_width, img_height, start_time,
            specialized_calls=outcome.specialized_calls,
            pre_cluster_regions=raw_regions
        )
        logger.info(f"✓ Processed image: {len(result.math_blocks)} blocks in {result.processing_time_ms:.0f}ms")
        return result

    def run(self, image_data: Union[bytes, str], **overrides) -> OCRResult:
        """Blocking wrapper around process_image"""
        return asyncio.run(self.process_image(image_data, **overrides))

    # =========================================================================
    # Markup
    # =========================================================================

    def annotate(self, image_data: Union[bytes, str, Image.Image], instructions: Sequence[Any],
                 step_records: Sequence[Any], source_dimensions=None) -> AnnotatedImage:
        """
        Map instructions onto step geometry and render them onto a copy of the image.
        Unplaceable instructions are dropped; rendering errors raise OverlayRenderFailure.
        """
        if isinstance(image_data, Image.Image):
            image = image_data
        else:
            image = load_image(decode_image_data(image_data))

        mapping = self.mapper.map_annotations(instructions, step_records)
        renderer = OverlayRenderer(rng=self.rng)
        rendered = renderer.render(image, mapping.placed, source_dimensions)
        return AnnotatedImage(image=rendered, mapping=mapping)

    # =========================================================================
    # File and folder processing (CLI)
    # =========================================================================

    def process_file(self, image_path: str, output_folder: Path,
                     instructions: Optional[List[Dict]] = None,
                     step_records: Optional[List[Dict]] = None, **overrides) -> OCRResult:
        """Process one image file and write its outputs into output_folder"""
        output_folder = Path(output_folder)
        output_folder.mkdir(exist_ok=True, parents=True)

        logger.info(f"\n{'='*60}")
        logger.info(f"Processing: {image_path}")
        logger.info(f"{'='*60}")

        image_bytes = Path(image_path).read_bytes()
        result = self.run(image_bytes, **overrides)

        json_output = output_folder / "final_result.json"
        with open(json_output, 'w', encoding='utf-8') as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info(f"✓ Saved JSON: {json_output}")

        image = load_image(image_bytes)
        vis_output = output_folder / "clusters.png"
        save_cluster_visualization(image, result.pre_cluster_regions, result.math_blocks, vis_output)
        logger.info(f"✓ Saved visualization: {vis_output}")

        if instructions:
            if step_records is None:
                step_records = steps_from_result(result)
            annotated = self.annotate(image, instructions, step_records, result.dimensions)
            annotated_output = output_folder / "annotated.png"
            annotated.image.save(str(annotated_output), 'PNG')
            logger.info(f"✓ Saved annotated image: {annotated_output} "
                        f"({len(annotated.mapping.placed)} placed, {len(annotated.mapping.failures)} dropped)")

        return result

    def process_folder(self, input_folder: str, output_folder: str, **overrides) -> Dict:
        """Process all images in a folder, one output subfolder per image"""
        logger.info(f"\n{'='*80}")
        logger.info("RECOGNITION PIPELINE - BATCH PROCESSING")
        logger.info(f"Input: {input_folder}")
        logger.info(f"Output: {output_folder}")
        logger.info(f"{'='*80}\n")

        input_path = Path(input_folder)
        output_path = Path(output_folder)
        output_path.mkdir(exist_ok=True, parents=True)

        image_files = sorted([
            f for f in input_path.iterdir()
            if f.suffix.lower() in IMAGE_EXTENSIONS and f.is_file()
        ])
        if not image_files:
            logger.error(f"No images found in: {input_folder}")
            return {}

        pages = []
        failed = []
        for idx, image_file in enumerate(image_files, 1):
            logger.info(f"\n[{idx}/{len(image_files)}] {image_file.name}")
            try:
                result = self.process_file(str(image_file), output_path / image_file.stem, **overrides)
                pages.append({'image': image_file.name, **result.to_dict()})
            except Exception as e:
                logger.error(f"✗ Failed {image_file.name}: {e}")
                failed.append({'image': image_file.name, 'error': str(e)})

        summary = {
            'metadata': {
                'input_folder': str(input_folder),
                'output_folder': str(output_folder),
                'total_images': len(image_files),
                'processed': len(pages),
                'specialized_calls': sum(p['usage']['specialized_calls'] for p in pages),
            },
            'pages': pages,
            'failed': failed,
        }

        summary_path = output_path / "batch_summary.json"
        with open(summary_path, 'w', encoding='utf-8') as f:
            json.dump(summary, f, indent=2, ensure_ascii=False)

        logger.info(f"\n{'='*80}")
        logger.info(f"COMPLETE: {len(pages)}/{len(image_files)} images processed")
        logger.info(f"Summary: {summary_path}")
        logger.info(f"{'='*80}\n")
        return summary


def steps_from_result(result: OCRResult) -> List[Dict]:
    """Step records for the recognized blocks, ids block_1, block_2, ... in reading order"""
    return [
        {'step_id': f"block_{idx}", 'bbox': block.box.to_list()}
        for idx, block in enumerate(result.math_blocks, 1)
    ]
