import os
from pathlib import Path
from typing import Optional, Sequence

import PIL
from PIL import Image, ImageDraw, ImageFont

from country_api.config import settings

MAX_ROWS = 5


def _text(draw: ImageDraw.ImageDraw, xy, text: str, fill=(34, 34, 34), font=None):
    draw.text(xy, text, fill=fill, font=font)


def _right_text(draw: ImageDraw.ImageDraw, x_right: int, y: int, text: str, fill=(34, 34, 34), font=None):
    bbox = draw.textbbox((0, 0), text, font=font)
    _text(draw, (x_right - (bbox[2] - bbox[0]), y), text, fill=fill, font=font)


def _load_ttf(name: str, size: int):
    base = Path(PIL.__file__).parent
    for p in (base / name, base / "fonts" / name, base.parent / name):
        if p.exists():
            try:
                return ImageFont.truetype(str(p), size)
            except OSError:
                continue
    return ImageFont.load_default()


def format_gdp(val) -> str:
    """Compact USD rendering: 1234567890 -> "$1.2B"; None -> "-"."""
    if val is None:
        return "-"
    n = float(val)
    absn = abs(n)
    for div, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if absn >= div:
            s = f"{n / div:.1f}".rstrip("0").rstrip(".")
            return f"${s}{suffix}"
    return f"${n:,.0f}"


def generate_summary_image(top_countries: Sequence, total: int, timestamp: str, path: Optional[Path] = None) -> Path:
    """Render the refresh summary PNG and swap it into place.

    Layout: "Countries: N" title, last refresh timestamp, then a
    Rank | Country | Estimated GDP table of up to five rows.
    The image is written next to the target and renamed over it, so readers
    see either the previous file or the new one.
    """
    path = Path(path or settings.CACHE_IMAGE_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)

    # Canvas
    W, H = 800, 480
    fg = (34, 34, 34)
    grid = (225, 230, 240)
    header_bg = (245, 247, 250)
    accent = (60, 99, 243)

    img = Image.new("RGB", (W, H), color=(255, 255, 255))
    draw = ImageDraw.Draw(img)

    font_title = _load_ttf("DejaVuSans-Bold.ttf", 22)
    font_meta = _load_ttf("DejaVuSans.ttf", 16)
    font_header = _load_ttf("DejaVuSans-Bold.ttf", 16)
    font_cell = _load_ttf("DejaVuSans.ttf", 16)

    margin = 24
    y = margin
    _text(draw, (margin, y), f"Countries: {total}", fill=accent, font=font_title)
    y += 32
    _text(draw, (margin, y), f"Last refresh: {timestamp}", fill=(90, 90, 90), font=font_meta)
    y += 24
    rows = list(top_countries[:MAX_ROWS])
    _text(draw, (margin, y), f"Top {len(rows)} by estimated GDP", fill=(90, 90, 90), font=font_meta)
    y += 24

    # Table geometry
    table_top = y + 10
    table_left = margin
    table_right = W - margin
    row_h = 38
    header_h = 40

    col_rank_w = 70
    col_country_w = int((table_right - table_left - col_rank_w) * 0.6)
    col_gdp_w = (table_right - table_left) - col_rank_w - col_country_w

    x_rank = table_left
    x_country = x_rank + col_rank_w
    x_gdp = x_country + col_country_w

    draw.rectangle([table_left, table_top, table_right, table_top + header_h], fill=header_bg)
    _text(draw, (x_rank + 12, table_top + 11), "#", fill=fg, font=font_header)
    _text(draw, (x_country + 12, table_top + 11), "Country", fill=fg, font=font_header)
    _right_text(draw, x_gdp + col_gdp_w - 12, table_top + 11, "Estimated GDP (USD)", fill=fg, font=font_header)
    draw.line([table_left, table_top + header_h, table_right, table_top + header_h], fill=grid, width=1)

    y_row = table_top + header_h
    for i in range(MAX_ROWS):
        if i % 2 == 0:
            draw.rectangle([table_left, y_row, table_right, y_row + row_h], fill=(252, 253, 255))

        if i < len(rows):
            c = rows[i]
            _text(draw, (x_rank + 12, y_row + 10), str(i + 1), fill=fg, font=font_cell)
            _text(draw, (x_country + 12, y_row + 10), getattr(c, "name", None) or "-", fill=fg, font=font_cell)
            _right_text(draw, x_gdp + col_gdp_w - 12, y_row + 10, format_gdp(getattr(c, "estimated_gdp", None)), fill=fg, font=font_cell)

        draw.line([table_left, y_row + row_h, table_right, y_row + row_h], fill=grid, width=1)
        y_row += row_h

    draw.rectangle([table_left, table_top, table_right, y_row], outline=grid, width=1)

    _text(draw, (margin, y_row + 16), "Data sources: Rest Countries API, Exchange Rates API (base USD)", fill=(110, 110, 110), font=font_meta)

    tmp_path = path.with_name(path.name + ".tmp")
    try:
        img.save(str(tmp_path), format="PNG")
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    return path
