# Recognition Pipeline - Main Entry Point
"""
Main entry point for the homework markup recognition pipeline.
Provides CLI interface for processing single images or folders.

Usage:
    python main.py --input <image_or_folder> --output <output_folder>
    python main.py --input ./page.png --output ./output
    python main.py --input ./page.png --output ./output --annotations marks.json --steps steps.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from config import OCROptions, setup_logging
from errors import OCRPipelineError
from pipeline import RecognitionPipeline


def _load_json_list(path: str, key: str):
    """Read a JSON list, or a JSON object holding the list under `key`"""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of {key}")
    return data


def main():
    """Main entry point with CLI argument parsing"""
    parser = argparse.ArgumentParser(
        description="Homework markup OCR - multi-pass detection + math recognition + annotation overlay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Process a single image:
    python main.py --input ./page.png --output ./output

  Process a folder of images:
    python main.py --input ./pages --output ./output

  Burn mark-up instructions into the page:
    python main.py --input ./page.png --output ./output --annotations marks.json --steps steps.json

  Clean pass only, lower math threshold:
    python main.py --input ./page.png --output ./output --no-preprocessing --math-threshold 0.1
        """
    )

    parser.add_argument(
        '--input', '-i',
        type=str,
        required=True,
        help='Input image file or folder path'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        required=True,
        help='Output folder path'
    )

    parser.add_argument(
        '--annotations',
        type=str,
        default=None,
        help='JSON file with annotation instructions (list, or {"annotations": [...]})'
    )

    parser.add_argument(
        '--steps',
        type=str,
        default=None,
        help='JSON file with step geometry records (default: the recognized blocks)'
    )

    parser.add_argument(
        '--math-threshold',
        type=float,
        default=None,
        help='Minimum math-likeness score for a math block (default: 0.35)'
    )

    parser.add_argument(
        '--no-preprocessing',
        action='store_true',
        help='Run the clean pass only (skip enhanced and aggressive passes)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Seed for the overlay jitter (reproducible renders)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    logger = setup_logging(logging.DEBUG if args.debug else logging.INFO)

    input_path = Path(args.input)
    output_path = Path(args.output)

    if not input_path.exists():
        logger.error(f"Input path does not exist: {args.input}")
        sys.exit(1)

    output_path.mkdir(exist_ok=True, parents=True)

    options = OCROptions.from_overrides(
        math_threshold=args.math_threshold,
        enable_preprocessing=False if args.no_preprocessing else None
    )
    pipeline = RecognitionPipeline.from_config(options=options, seed=args.seed)

    instructions = _load_json_list(args.annotations, 'annotations') if args.annotations else None
    step_records = _load_json_list(args.steps, 'steps') if args.steps else None

    try:
        if input_path.is_file():
            logger.info(f"Processing single image: {input_path}")
            pipeline.process_file(str(input_path), output_path, instructions=instructions, step_records=step_records)
        elif input_path.is_dir():
            logger.info(f"Processing folder: {input_path}")
            pipeline.process_folder(str(input_path), str(output_path))
        else:
            logger.error(f"Invalid input path: {args.input}")
            sys.exit(1)
    except OCRPipelineError as e:
        logger.error(f"Pipeline failed: {e}")
        sys.exit(2)

    logger.info("Pipeline completed successfully!")


if __name__ == "__main__":
    main()
