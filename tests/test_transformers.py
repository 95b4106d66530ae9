"""Tests for the transformers module."""
import unittest

from scoreboard_tracker.errors import BadFilenameError
from scoreboard_tracker.transformers import (
    parse_filename_timestamp, convert_numeric, convert_leading_int, convert_float, normalize_modifier,
    is_uuid, strip_color_codes, generate_bot_identifier, clean_display_name,
    expand_child_display_name, mission_display_name, difficulty_display_name,
)


class TestTransformers(unittest.TestCase):
    """Test the transformer functions."""

    def test_parse_filename_timestamp(self):
        assert parse_filename_timestamp("1700000000.lua") == 1700000000
        assert parse_filename_timestamp("1700000000.LUA") == 1700000000

        with self.assertRaises(BadFilenameError):
            parse_filename_timestamp("notes.lua")
        with self.assertRaises(BadFilenameError):
            parse_filename_timestamp("17000abc.lua")

    def test_convert_numeric(self):
        assert convert_numeric("123") == 123
        assert convert_numeric(" 4 ") == 4
        assert convert_numeric("abc") is None
        assert convert_numeric("") is None
        assert convert_numeric(None) is None

    def test_convert_leading_int(self):
        assert convert_leading_int("1500.7") == 1500
        assert convert_leading_int("2.0") == 2
        assert convert_leading_int(" 3x") == 3
        assert convert_leading_int("-4") == -4
        assert convert_leading_int("x3") is None
        assert convert_leading_int("") is None
        assert convert_leading_int(None) is None

    def test_convert_float(self):
        assert convert_float("250") == 250.0
        assert convert_float("-1.5") == -1.5
        assert convert_float("abc") is None
        assert convert_float("nan") is None
        assert convert_float(None) is None

    def test_normalize_modifier(self):
        assert normalize_modifier("nil") == ""
        assert normalize_modifier("default") == ""
        assert normalize_modifier("") == ""
        assert normalize_modifier("havoc") == "havoc"

    def test_is_uuid(self):
        assert is_uuid("11111111-1111-1111-1111-111111111111")
        assert is_uuid("0a1b2c3d-4e5f-6a7b-8c9d-0e1f2a3b4c5d")
        assert not is_uuid("Grunt [BOT]")
        assert not is_uuid("11111111-1111-1111-1111-11111111111")

    def test_strip_color_codes(self):
        assert strip_color_codes("{#color(255,0,0)}Grunt{#reset()}") == "Grunt"
        assert strip_color_codes("  Plain ") == "Plain"

    def test_generate_bot_identifier(self):
        assert generate_bot_identifier("{#color(1)}Grunt{#reset()} [BOT]") == "bot_grunt"
        assert generate_bot_identifier("Veteran Sharpshooter [BOT]") == "bot_veteran_sharpshooter"

        # Same name with different markup maps to the same id
        assert (generate_bot_identifier("{#color(2)}Grunt{#reset()} [BOT]")
                == generate_bot_identifier("GRUNT [bot]"))

    def test_clean_display_name(self):
        assert clean_display_name("<damage_dealt>") == "Damage Dealt"
        assert clean_display_name("<Damage>") == "Damage"
        assert clean_display_name("<Mixed_Case>") == "Mixed_Case"
        assert clean_display_name("Damage Dealt") == "Damage Dealt"

    def test_expand_child_display_name(self):
        assert expand_child_display_name("Melee", "Melee / Ranged Kills", ["Ranged"]) == "Melee Kills"
        assert expand_child_display_name("Ranged", "Melee / Ranged Kills", ["Melee"]) == "Ranged Kills"

        # Multi-word children and names absent from the parent are kept
        assert expand_child_display_name("Melee Hits", "Melee / Ranged Kills", []) == "Melee Hits"
        assert expand_child_display_name("Special", "Melee / Ranged Kills", []) == "Special"

        # Removing every word falls back to the original name
        assert expand_child_display_name("Melee", "Melee / Ranged", ["Melee", "Ranged"]) == "Melee"

    def test_lookups(self):
        assert mission_display_name("cm_habs") == "Hab Dreyko"
        assert mission_display_name("new_map") == "new_map"
        assert difficulty_display_name(4) == "Damnation"
        assert difficulty_display_name(9) == "9"
