"""Tests for line-item normalization."""

import math

import pytest

from budgetbook.receipts.normalizer import (
    normalize_item,
    normalize_items,
    parse_number,
    parse_weight_detail,
    round_money,
)


class TestParseNumber:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (3, 3.0),
            (2.5, 2.5),
            ("$3.49", 3.49),
            ("USD 12", 12.0),
            ("-1.25", -1.25),
            ("1,234.50", 1234.5),
            ("0.69 lb", 0.69),
            (".99", 0.99),
            ("$.99", 0.99),
            ("-.5", -0.5),
        ],
    )
    def test_numbers(self, value, expected):
        assert parse_number(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [None, "", "abc", True, float("inf"), float("nan")])
    def test_not_a_number(self, value):
        assert math.isnan(parse_number(value))


class TestRoundMoney:
    def test_half_up(self):
        assert round_money(0.69 * 0.5) == 0.35
        assert round_money(2.675) == 2.68
        assert round_money(6) == 6.0


class TestNormalizeItem:
    def test_backfill_total_from_quantity_and_price(self):
        item = normalize_item({"description": "Apples", "quantity": 3, "unit_price": 2.00, "total_price": 0})
        assert item.total_price == 6.00

    def test_backfill_price_from_total(self):
        item = normalize_item({"description": "Eggs", "quantity": 4, "unit_price": 0, "total_price": 10.00})
        assert item.unit_price == 2.50

    def test_defaults(self):
        item = normalize_item({"description": "  Mystery   item "})
        assert item.description == "Mystery item"
        assert item.quantity == 1.0
        assert item.quantity_unit == "ea"
        assert item.unit_price == 0.0
        assert item.total_price == 0.0

    def test_invalid_values_fall_back(self):
        item = normalize_item({
            "description": "Cheese",
            "quantity": -2,
            "quantity_unit": "  ",
            "unit_price": "-3",
            "total_price": "n/a",
        })
        assert item.quantity == 1.0
        assert item.quantity_unit == "ea"
        assert item.unit_price == 0.0
        assert item.total_price == 0.0

    def test_currency_strings(self):
        item = normalize_item({"description": "Wine", "quantity": "2", "unit_price": "$9.99", "total_price": "$19.98"})
        assert item.quantity == 2.0
        assert item.unit_price == 9.99
        assert item.total_price == 19.98

    def test_leading_dot_price(self):
        item = normalize_item({"description": "Gum", "quantity": 1, "unit_price": "$.99"})
        assert item.unit_price == 0.99
        assert item.total_price == 0.99

    def test_unit_lowercased(self):
        assert normalize_item({"description": "Beef", "quantity_unit": "LB"}).quantity_unit == "lb"

    def test_description_falls_back_to_raw(self):
        item = normalize_item({"raw_description": "ORG BNNA"})
        assert item.description == "ORG BNNA"
        assert normalize_item({}).description == "Unknown Item"


class TestParseWeightDetail:
    def test_slash_price(self):
        detail = parse_weight_detail("0.690 lb @ 1 lb /0.50")
        assert detail.quantity == pytest.approx(0.69)
        assert detail.unit == "lb"
        assert detail.unit_price == 0.50
        assert detail.line_total is None

    def test_at_price_with_total(self):
        detail = parse_weight_detail("1.25 kg @ $3.00 3.75")
        assert detail.quantity == 1.25
        assert detail.unit == "kg"
        assert detail.unit_price == 3.00
        assert detail.line_total == 3.75

    def test_lbs_canonicalized(self):
        assert parse_weight_detail("2 LBS @ 1.99").unit == "lb"

    def test_leading_dot_unit_price(self):
        detail = parse_weight_detail("0.50 lb @ $.99/lb")
        assert detail.quantity == 0.50
        assert detail.unit_price == 0.99

    def test_requires_price_marker(self):
        assert parse_weight_detail("0.69 lb 0.35") is None

    def test_requires_quantity(self):
        assert parse_weight_detail("lb @ 0.50") is None

    def test_requires_unit_price(self):
        assert parse_weight_detail("0.69 lb @ each") is None


class TestNormalizeItems:
    def test_weight_detail_merges_into_previous(self):
        items = normalize_items([
            {"description": "Bananas", "quantity": 1, "unit_price": 0, "total_price": 0},
            {"raw_description": "0.690 lb @ 1 lb /0.50"},
        ])
        assert len(items) == 1
        bananas = items[0]
        assert bananas.description == "Bananas"
        assert bananas.quantity == pytest.approx(0.69)
        assert bananas.quantity_unit == "lb"
        assert bananas.unit_price == 0.50
        assert bananas.total_price == 0.35

    def test_merge_uses_line_total(self):
        items = normalize_items([
            {"description": "Grapes", "total_price": 9.99},
            {"raw_description": "2.10 lb @ $2.49/lb 5.23"},
        ])
        assert len(items) == 1
        assert items[0].quantity == 2.1
        assert items[0].unit_price == 2.49
        assert items[0].total_price == 5.23

    def test_merge_keeps_existing_total_without_line_total(self):
        items = normalize_items([
            {"description": "Tomatoes", "quantity": 1, "unit_price": 1.0, "total_price": 1.57},
            {"raw_description": "1.57 lb @ 1 lb /1.00"},
        ])
        assert items[0].quantity == 1.57
        assert items[0].unit_price == 1.00
        assert items[0].total_price == 1.57

    def test_first_item_is_never_merged(self):
        items = normalize_items([{"raw_description": "0.690 lb @ 1 lb /0.50", "description": "Loose produce"}])
        assert len(items) == 1
        assert items[0].description == "Loose produce"

    def test_weight_line_without_price_marker_is_standalone(self):
        items = normalize_items([
            {"description": "Milk", "total_price": 3.99},
            {"description": "Ground Beef 1 lb", "quantity": 1, "quantity_unit": "lb", "total_price": 5.99},
        ])
        assert [i.description for i in items] == ["Milk", "Ground Beef 1 lb"]

    def test_gram_word_not_a_weight_token(self):
        items = normalize_items([
            {"description": "Milk", "total_price": 3.99},
            {"description": "Greek yogurt @ sale", "total_price": 1.00},
        ])
        assert len(items) == 2

    def test_non_dict_entries_ignored(self):
        items = normalize_items(["junk", None, {"description": "Bread", "total_price": 2.5}])
        assert len(items) == 1

    def test_output_is_finite_and_non_negative(self):
        items = normalize_items([
            {"description": "A", "quantity": "nan", "unit_price": "-5", "total_price": None},
            {"description": "B", "quantity": 0, "unit_price": 2, "total_price": "x"},
        ])
        for item in items:
            assert math.isfinite(item.quantity) and item.quantity > 0
            assert math.isfinite(item.unit_price) and item.unit_price >= 0
            assert math.isfinite(item.total_price) and item.total_price >= 0

    def test_pure(self):
        raw = [
            {"description": "Bananas", "quantity": 1, "unit_price": 0, "total_price": 0},
            {"raw_description": "0.690 lb @ 1 lb /0.50"},
        ]
        snapshot = [dict(r) for r in raw]
        assert normalize_items(raw) == normalize_items(raw)
        assert raw == snapshot

    def test_best_effort_count_and_weight_line(self):
        """Known limitation: the last number is taken as the line total.

        With a count and a weight on one detail line the trailing count is
        read as the total. This pins the heuristic, not the ideal parse.
        """
        items = normalize_items([
            {"description": "Onions", "total_price": 0},
            {"raw_description": "1.20 lb @ 0.99 /lb x 2"},
        ])
        assert items[0].quantity == 1.2
        assert items[0].unit_price == 0.99
        assert items[0].total_price == 2.00
