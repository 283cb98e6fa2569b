# Visualization Utilities
"""
Visualization functions for the recognition pipeline.
Generates a side-by-side image of raw pass regions and the merged result.
"""

import textwrap
from pathlib import Path
from typing import List, Sequence

from PIL import Image, ImageDraw, ImageFont

from data_models import MathBlock, TextRegion


def get_font(size: int) -> ImageFont.FreeTypeFont:
    """Try to load a font with the given size, fallback to default.
    Prioritizes fonts with wide Unicode coverage for math symbols.
    """
    font_paths = [
        # Linux
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf",
        "/usr/share/fonts/google-noto/NotoSans-Regular.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        # Windows
        "C:\\Windows\\Fonts\\arial.ttf",
        "C:\\Windows\\Fonts\\seguisym.ttf",  # Segoe UI Symbol
        # Mac
        "/System/Library/Fonts/Supplemental/Arial Unicode.ttf",
        "/Library/Fonts/Arial Unicode.ttf",
        # Fallback
        "arial.ttf",
    ]

    for font_path in font_paths:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError:
            continue

    # Final fallback
    return ImageFont.load_default()


def _text_width(font, text: str, font_size: int) -> float:
    try:
        return font.getlength(text)
    except AttributeError:
        return len(text) * font_size * 0.6


def fit_text_in_box(text: str, bbox: List[int], max_font_size: int = 20, min_font_size: int = 6):
    """Find the largest font size that fits text in the bounding box"""
    x0, y0, x1, y1 = bbox
    box_width = x1 - x0 - 4  # Padding
    box_height = y1 - y0 - 4

    if box_width <= 0 or box_height <= 0:
        return None, ""

    text = text.strip() if text else ""
    if not text:
        return None, ""

    for font_size in range(max_font_size, min_font_size - 1, -1):
        font = get_font(font_size)
        avg_char_width = max(1.0, _text_width(font, "x", font_size))
        chars_per_line = max(1, int(box_width / avg_char_width))

        wrapped_lines = textwrap.wrap(text, width=chars_per_line) or [text[:chars_per_line]]
        if len(wrapped_lines) * (font_size + 2) <= box_height:
            return font, "\n".join(wrapped_lines)

    # Fallback: truncate
    return get_font(min_font_size), text[:20] + "..."


# One outline color per detection pass
PASS_COLORS = {
    'pass_A_clean_scan': (78, 205, 196),
    'pass_B_enhanced_scan': (255, 165, 0),
    'pass_C_aggressive_scan': (187, 143, 206),
}
DEFAULT_PASS_COLOR = (149, 165, 166)


def save_cluster_visualization(image: Image.Image, raw_regions: Sequence[TextRegion],
                               blocks: Sequence[MathBlock], output_path: Path) -> None:
    """
    Save side-by-side visualization:
    - LEFT: original image with every raw pass region outlined, colored by pass
    - RIGHT: blank canvas with the final blocks and their resolved text
    """
    original = image.convert('RGB')
    width, height = original.size

    left_panel = original.copy()
    left_draw = ImageDraw.Draw(left_panel)
    for region in raw_regions:
        box = region.box
        color = PASS_COLORS.get(region.source_pass, DEFAULT_PASS_COLOR)
        left_draw.rectangle([box.min_x, box.min_y, box.max_x, box.max_y], outline=color, width=2)

    right_panel = Image.new('RGB', original.size, (255, 255, 255))
    right_draw = ImageDraw.Draw(right_panel)
    id_font = get_font(10)

    for idx, block in enumerate(blocks, start=1):
        box = block.box
        bbox = [int(box.min_x), int(box.min_y), int(box.max_x), int(box.max_y)]
        outline = (220, 0, 0) if block.suspicious else (0, 102, 255)
        right_draw.rectangle(bbox, outline=outline, width=2)

        font, fitted_text = fit_text_in_box(block.resolved_text, bbox)
        if font and fitted_text:
            # Specialized recognitions in dark green, primary text in black
            text_color = (0, 100, 0) if block.specialized_text is not None else (0, 0, 0)
            right_draw.text((bbox[0] + 2, bbox[1] + 2), fitted_text, fill=text_color, font=font)

        label = f"{idx} ({block.math_likeness_score:.1f})"
        right_draw.text((bbox[0], max(0, bbox[1] - 12)), label, fill=(80, 80, 80), font=id_font)

    # Create side-by-side image
    combined = Image.new('RGB', (width * 2 + 20, height), (240, 240, 240))
    combined.paste(left_panel, (0, 0))
    combined.paste(right_panel, (width + 20, 0))

    label_draw = ImageDraw.Draw(combined)
    title_font = get_font(16)
    label_draw.text((10, 5), f"Raw pass regions ({len(raw_regions)})", fill=(50, 50, 50), font=title_font)
    label_draw.text((width + 30, 5), f"Math blocks ({len(blocks)})", fill=(50, 50, 50), font=title_font)

    # Legend at bottom
    legend_y = height - 25
    legend_font = get_font(10)
    legend_x = 10
    for name, color in PASS_COLORS.items():
        label_draw.rectangle([(legend_x, legend_y), (legend_x + 15, legend_y + 15)], fill=color)
        label_draw.text((legend_x + 20, legend_y + 2), name, fill=(50, 50, 50), font=legend_font)
        legend_x += 170

    combined.save(str(output_path), 'PNG')
