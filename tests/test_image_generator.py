from types import SimpleNamespace

from PIL import Image

from country_api.services.image_generator import format_gdp, generate_summary_image


def test_image_generation_creates_png(tmp_path):
    top = [SimpleNamespace(name="A", estimated_gdp=1000), SimpleNamespace(name="B", estimated_gdp=None)]
    path = tmp_path / "cache" / "summary.png"

    assert generate_summary_image(top, total=2, timestamp="2025-10-22 12:00:00 UTC", path=path) == path
    with Image.open(path) as img:
        assert img.format == "PNG"
        assert img.size == (800, 480)
    assert list(path.parent.iterdir()) == [path]


def test_image_replaces_existing_file(tmp_path):
    path = tmp_path / "summary.png"
    path.write_bytes(b"stale")

    generate_summary_image([], total=0, timestamp="now", path=path)

    assert path.read_bytes().startswith(b"\x89PNG")
    assert not (tmp_path / "summary.png.tmp").exists()


def test_image_defaults_to_configured_path(image_path):
    generate_summary_image([], total=0, timestamp="now")
    assert image_path.exists()


def test_format_gdp():
    assert format_gdp(None) == "-"
    assert format_gdp(950) == "$950"
    assert format_gdp(1_500) == "$1.5K"
    assert format_gdp(2_000_000) == "$2M"
    assert format_gdp(1_234_567_890) == "$1.2B"
    assert format_gdp(3.1e12) == "$3.1T"


def test_empty_summary_shows_zero_count(tmp_path, monkeypatch):
    from country_api.services import image_generator

    drawn = []
    real_text = image_generator._text

    def recording_text(draw, xy, text, **kwargs):
        drawn.append(text)
        real_text(draw, xy, text, **kwargs)

    monkeypatch.setattr(image_generator, "_text", recording_text)
    generate_summary_image([], total=0, timestamp="2025-10-22 12:00:00 UTC", path=tmp_path / "summary.png")

    assert drawn[0] == "Countries: 0"
    assert "Last refresh: 2025-10-22 12:00:00 UTC" in drawn
    assert "Top 0 by estimated GDP" in drawn
