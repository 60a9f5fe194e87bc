"""
Tests for the built-in palette and the palette file readers.
"""

from __future__ import annotations

import json
import struct

import pytest

from pxlsrender.exceptions import PaletteError
from pxlsrender.palette import (
    DEFAULT_PALETTE,
    load_palette,
    parse_aco,
    parse_csv,
    parse_gpl,
    parse_json,
    parse_txt,
)
from pxlsrender.pixel import Rgba


def _make_aco(*colors, version=1, space=0):
    data = struct.pack(">HH", version, len(colors))
    for r, g, b in colors:
        data += struct.pack(">HHHHH", space, r * 257, g * 257, b * 257, 0)
    return data


class TestDefaultPalette:
    def test_size_and_ends(self):
        assert len(DEFAULT_PALETTE) == 32
        assert DEFAULT_PALETTE[0] == Rgba(0, 0, 0, 255)
        assert DEFAULT_PALETTE[5] == Rgba(255, 255, 255, 255)
        assert DEFAULT_PALETTE[31] == Rgba(116, 12, 0, 255)

    def test_all_opaque(self):
        assert all(c.a == 255 for c in DEFAULT_PALETTE)


class TestParsers:
    def test_json(self):
        text = json.dumps({"palette": [{"name": "Red", "value": "FF0000"},
                                       {"name": "Teal", "value": "#32b69f"}]})
        assert parse_json(text) == [Rgba(255, 0, 0), Rgba(50, 182, 159)]

    @pytest.mark.parametrize("text", ["{", "[]", '{"palette": [{"name": "x"}]}',
                                      '{"palette": [{"value": "12"}]}'])
    def test_json_invalid(self, text):
        with pytest.raises(PaletteError):
            parse_json(text)

    def test_csv(self):
        text = "Name,#hexadecimal,R,G,B\nBlack,#000000,0,0,0\nPeach,#FFB783,255,183,131\n"
        assert parse_csv(text) == [Rgba(0, 0, 0), Rgba(255, 183, 131)]

    def test_csv_invalid(self):
        with pytest.raises(PaletteError):
            parse_csv("header\nBlack,#000000,0,0\n")

    def test_gpl(self):
        text = ("GIMP Palette\nName: pxls\nColumns: 4\n#\n"
                "  0   0   0\tBlack\n255 213 188\tBeige\n")
        assert parse_gpl(text) == [Rgba(0, 0, 0), Rgba(255, 213, 188)]

    def test_gpl_missing_magic(self):
        with pytest.raises(PaletteError):
            parse_gpl("Name: pxls\n#\n0 0 0\n")

    def test_gpl_channel_out_of_range(self):
        with pytest.raises(PaletteError):
            parse_gpl("GIMP Palette\n#\n256 0 0 Too bright\n")

    def test_txt(self):
        text = "; paint.net palette\nFF000000\n80FFFFFF ; half white\n\n"
        assert parse_txt(text) == [Rgba(0, 0, 0, 255), Rgba(255, 255, 255, 128)]

    def test_txt_invalid(self):
        with pytest.raises(PaletteError):
            parse_txt("FFFFFF\n")

    def test_aco(self):
        assert parse_aco(_make_aco((1, 2, 3), (255, 0, 128))) == [
            Rgba(1, 2, 3), Rgba(255, 0, 128),
        ]

    def test_aco_wrong_version(self):
        with pytest.raises(PaletteError):
            parse_aco(_make_aco((1, 2, 3), version=2))

    def test_aco_wrong_color_space(self):
        with pytest.raises(PaletteError):
            parse_aco(_make_aco((1, 2, 3), space=1))

    def test_aco_truncated(self):
        with pytest.raises(PaletteError):
            parse_aco(_make_aco((1, 2, 3))[:-4])


class TestLoadPalette:
    def test_dispatch_by_extension(self, tmp_path):
        (tmp_path / "p.gpl").write_text("GIMP Palette\n#\n1 2 3\n", encoding="utf-8")
        (tmp_path / "p.aco").write_bytes(_make_aco((4, 5, 6)))
        assert load_palette(tmp_path / "p.gpl") == [Rgba(1, 2, 3)]
        assert load_palette(tmp_path / "p.aco") == [Rgba(4, 5, 6)]

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "p.pal"
        path.write_text("", encoding="utf-8")
        with pytest.raises(PaletteError):
            load_palette(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(PaletteError):
            load_palette(tmp_path / "missing.json")

    def test_not_utf8(self, tmp_path):
        path = tmp_path / "p.gpl"
        path.write_bytes(b"GIMP Palette\n\xff\xfe 1 2 3\n")
        with pytest.raises(PaletteError):
            load_palette(path)

    def test_empty_palette(self, tmp_path):
        path = tmp_path / "p.txt"
        path.write_text("; nothing\n", encoding="utf-8")
        with pytest.raises(PaletteError):
            load_palette(path)
