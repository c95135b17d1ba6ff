"""Tests for OCR text correction and field parsing."""

import pytest

from artiscan.core.artifact import UNKNOWN, Slot, Stat, StatKind
from artiscan.core.parser import (
    RecordParser,
    apply_corrections,
    is_empty_item,
    parse_equip,
    parse_inventory_count,
    parse_level,
    parse_lock,
    parse_main_stat,
    parse_number,
    parse_rarity,
    parse_set_name,
    parse_slot,
    parse_stat_line,
)
from artiscan.core.vocabulary import load_vocabulary
from artiscan.errors import ParseError
from artiscan.layout import EQUIP, LEVEL, LOCK, MAIN_STAT_VALUE, RARITY, REQUIRED_REGIONS, SUB_STATS
from artiscan.ocr.recognizer import EMPTY_RESULT

from conftest import flower_item, ok


class TestCorrections:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("4,780", "4780"),
            ("3,9", "3.9"),
            ("4O", "40"),
            ("l6", "16"),
            ("46．6％", "46.6%"),
            ("1,234.5", "1234.5"),
        ],
    )
    def test_apply_corrections(self, raw, expected):
        assert apply_corrections(raw) == expected

    def test_parse_number_percent(self):
        assert parse_number("46.6%") == (46.6, True)
        assert parse_number("+3.9%") == (3.9, True)
        assert parse_number("4,780") == (4780.0, False)

    @pytest.mark.parametrize("raw", ["", "abc", "4.7.8", "++3.9%"])
    def test_parse_number_rejects(self, raw):
        with pytest.raises(ParseError):
            parse_number(raw)


class TestScalarFields:
    @pytest.mark.parametrize("raw,expected", [("+20", 20), ("+2O", 20), ("Lv. 16", 16), ("0", 0)])
    def test_level(self, raw, expected):
        assert parse_level(raw) == expected

    def test_level_rejects_text(self):
        with pytest.raises(ParseError) as exc_info:
            parse_level("+twenty")
        assert exc_info.value.field == "level"

    @pytest.mark.parametrize("raw,expected", [("5", 5), ("★★★★", 4), ("S", 5), ("4★", 4)])
    def test_rarity(self, raw, expected):
        assert parse_rarity(raw) == expected

    def test_rarity_out_of_range_still_parses(self):
        assert parse_rarity("6") == 6

    def test_rarity_rejects_text(self):
        with pytest.raises(ParseError):
            parse_rarity("gold")

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Artifacts 1234/2100", 1234),
            ("Artifacts l234/2100", 1234),
            ("Artifacts 12 / 2100", 12),
            ("Artifacts 9999/2100", 2100),
        ],
    )
    def test_inventory_count(self, raw, expected):
        assert parse_inventory_count(raw) == expected

    def test_inventory_count_missing(self):
        assert parse_inventory_count("Artifacts") is None


class TestVocabularyFields:
    def test_stat_line(self, vocabulary):
        assert parse_stat_line(vocabulary, "CRIT Rate+3.9%") == Stat(StatKind.CRIT_RATE, 3.9)
        assert parse_stat_line(vocabulary, "ATK+19") == Stat(StatKind.ATK, 19)
        assert parse_stat_line(vocabulary, "ATK+5.8%") == Stat(StatKind.ATK_PERCENT, 5.8)

    def test_stat_line_tolerates_bullet_and_dropped_percent(self, vocabulary):
        assert parse_stat_line(vocabulary, "· CRIT DMG+7.8") == Stat(StatKind.CRIT_DMG, 7.8)

    def test_stat_line_fuzzy_name(self, vocabulary):
        stat = parse_stat_line(vocabulary, "Energy Recharg+11.0%")
        assert stat.kind == StatKind.ENERGY_RECHARGE

    @pytest.mark.parametrize(
        "raw",
        ["CRIT Rate 3.9%", "+3.9%", "Luck+3.9%", "Elemental Mastery+23%", "CRIT Rate++3.9%"],
    )
    def test_stat_line_rejects(self, vocabulary, raw):
        with pytest.raises(ParseError):
            parse_stat_line(vocabulary, raw)

    def test_main_stat(self, vocabulary):
        assert parse_main_stat(vocabulary, "HP", "4,780") == Stat(StatKind.HP, 4780)
        assert parse_main_stat(vocabulary, "HP", "46.6%") == Stat(StatKind.HP_PERCENT, 46.6)

    def test_flat_value_with_dot_thousands(self, vocabulary):
        assert parse_main_stat(vocabulary, "HP", "4.780") == Stat(StatKind.HP, 4780)
        assert parse_main_stat(vocabulary, "ATK", "+1.234") == Stat(StatKind.ATK, 1234)

    def test_flat_value_with_decimals_rejected(self, vocabulary):
        with pytest.raises(ParseError, match="whole number"):
            parse_stat_line(vocabulary, "DEF+19.5")

    def test_main_stat_empty_value(self, vocabulary):
        with pytest.raises(ParseError) as exc_info:
            parse_main_stat(vocabulary, "HP", " ")
        assert exc_info.value.field == "main-stat-value"

    def test_slot_and_set(self, vocabulary):
        assert parse_slot(vocabulary, "Flower of Life") == Slot.FLOWER
        assert parse_slot(vocabulary, "Sands of Eon") == Slot.SANDS
        assert parse_set_name(vocabulary, "Gladiator's Finale:") == "GladiatorsFinale"
        with pytest.raises(ParseError):
            parse_set_name(vocabulary, "Completely Unknown Set")

    def test_equip(self, vocabulary):
        assert parse_equip(vocabulary, "Equipped: Furina") == "Furina"
        assert parse_equip(vocabulary, "   ") is None
        with pytest.raises(ParseError):
            parse_equip(vocabulary, "Furina")

    def test_lock(self, vocabulary):
        assert parse_lock(vocabulary, "locked") is True
        assert parse_lock(vocabulary, "Unlocked") is False
        with pytest.raises(ParseError):
            parse_lock(vocabulary, "maybe")


class TestRecordParser:
    def _results(self, **overrides):
        return flower_item(**overrides)

    def test_full_record(self, vocabulary):
        candidate = RecordParser(vocabulary).parse(self._results())

        assert candidate.set_key == "GladiatorsFinale"
        assert candidate.slot == Slot.FLOWER
        assert candidate.rarity == 5
        assert candidate.level == 20
        assert candidate.main_stat == Stat(StatKind.HP, 4780)
        assert len(candidate.sub_stats) == 4
        assert candidate.location == "Furina"
        assert candidate.lock is True
        assert not candidate.errors
        assert not candidate.low_confidence

    def test_low_confidence_required_field_is_reported(self, vocabulary):
        results = self._results(**{LEVEL: ok("+20", 0.5)})
        candidate = RecordParser(vocabulary, threshold=0.7).parse(results)

        assert candidate.low_confidence == [LEVEL]
        assert candidate.level is None

    def test_low_confidence_optional_field_is_unknown(self, vocabulary):
        results = self._results(**{SUB_STATS[3]: ok("DEF+19", 0.2), EQUIP: ok("Equipped: Furina", 0.3)})
        candidate = RecordParser(vocabulary).parse(results)

        assert not candidate.low_confidence
        assert len(candidate.sub_stats) == 3
        assert candidate.location is UNKNOWN
        assert candidate.unknown_fields == {SUB_STATS[3], EQUIP}

    def test_unparsable_optional_field_is_unknown(self, vocabulary):
        candidate = RecordParser(vocabulary).parse(self._results(**{LOCK: ok("???")}))

        assert candidate.lock is UNKNOWN
        assert LOCK in candidate.unknown_fields
        assert LOCK in candidate.errors

    def test_unparsable_required_field_kept_as_error(self, vocabulary):
        candidate = RecordParser(vocabulary).parse(self._results(**{MAIN_STAT_VALUE: ok("4,7?0")}))

        assert candidate.main_stat is None
        assert MAIN_STAT_VALUE in candidate.errors

    def test_dotted_flat_main_stat_reads_as_thousands(self, vocabulary):
        candidate = RecordParser(vocabulary).parse(self._results(**{MAIN_STAT_VALUE: ok("4.780")}))

        assert candidate.main_stat == Stat(StatKind.HP, 4780)
        assert not candidate.errors

    def test_impossible_rarity_still_parsed(self, vocabulary):
        candidate = RecordParser(vocabulary).parse(self._results(**{RARITY: ok("6")}))
        assert candidate.rarity == 6


class TestEmptyItem:
    def test_all_required_blank(self):
        assert is_empty_item({region_id: EMPTY_RESULT for region_id in REQUIRED_REGIONS})

    def test_any_required_present(self):
        results = {region_id: EMPTY_RESULT for region_id in REQUIRED_REGIONS}
        results[LEVEL] = ok("+0")
        assert not is_empty_item(results)

    def test_no_results(self):
        assert not is_empty_item({})


class TestVocabulary:
    def test_match_returns_label_and_score(self, vocabulary):
        label, score = vocabulary.match("Noblesse 0blige", vocabulary.sets)
        assert label == "Noblesse Oblige"
        assert 80 <= score < 100

    def test_match_below_cutoff(self, vocabulary):
        assert vocabulary.match("xyz", vocabulary.sets) is None
        assert vocabulary.match("  ", vocabulary.sets) is None

    def test_phrase_falls_back_to_key(self, vocabulary):
        assert vocabulary.phrase("equipped") == "Equipped"
        assert vocabulary.phrase("missing-phrase") == "missing-phrase"

    def test_missing_file(self, tmp_path):
        with pytest.raises(RuntimeError, match="not found"):
            load_vocabulary(tmp_path / "nope.json")

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "vocab.json"
        path.write_text('{"slots": {"Flower of Life": "trumpet"}}', encoding="utf-8")
        with pytest.raises(RuntimeError, match="invalid vocabulary"):
            load_vocabulary(path)
