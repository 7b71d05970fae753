"""Tests for country / category / year-segment aggregation."""

import pytest

from market_core.aggregate import (
    aggregate_by_country,
    aggregate_by_year_segment,
    share_pcts,
    summarize_by_segment,
    top_n_with_share,
)
from market_core.records import MarketFigure


class TestAggregateByCountry:
    def test_groups_on_normalized_country(self) -> None:
        rows = [{"country": "USA"}, {"country": "United States"}, {"country": "germany"}, {"country": "UK"}]
        result = aggregate_by_country(rows)
        assert [r["country"] for r in result] == ["United States", "Germany", "United Kingdom"]
        assert result[0]["company_count"] == 2
        assert len({r["country"] for r in result}) == len(result)

    def test_skips_rows_without_country(self) -> None:
        rows = [{"country": None}, {"country": "  "}, {}, {"country": "France"}]
        result = aggregate_by_country(rows)
        assert result == [{"country": "France", "company_count": 1, "total_machines": 0.0, "percentage": 100.0}]

    def test_sums_measure_with_coercion(self) -> None:
        rows = [
            {"country": "Germany", "number_of_printers": "10"},
            {"country": "Germany", "number_of_printers": "garbage"},
            {"country": "Germany", "number_of_printers": None},
            {"country": "Norway", "number_of_printers": 4},
        ]
        result = aggregate_by_country(rows, measure_field="number_of_printers")
        by_country = {r["country"]: r for r in result}
        assert by_country["Germany"]["total_machines"] == 10.0
        assert by_country["Germany"]["company_count"] == 3
        assert by_country["Norway"]["total_machines"] == 4.0

    def test_percentages_sum_to_100(self) -> None:
        rows = [{"country": c} for c in ["A", "B", "B", "C", "C", "C"]]
        total = sum(r["percentage"] for r in aggregate_by_country(rows))
        assert total == pytest.approx(100.0, abs=0.1)

    def test_sixty_countries_sum_to_exactly_100(self) -> None:
        result = aggregate_by_country([{"country": f"Country {i}"} for i in range(60)])
        assert len(result) == 60
        assert sum(r["percentage"] for r in result) == pytest.approx(100.0, abs=1e-9)

    def test_ties_sorted_by_name(self) -> None:
        rows = [{"country": "Spain"}, {"country": "Austria"}]
        assert [r["country"] for r in aggregate_by_country(rows)] == ["Austria", "Spain"]

    def test_empty(self) -> None:
        assert aggregate_by_country([]) == []


class TestTopNWithShare:
    def test_denominator_includes_dropped_categories(self) -> None:
        pairs = [("A", 50), ("B", 30), ("C", 20)]
        top = top_n_with_share(pairs, n=2)
        assert [t["category"] for t in top] == ["A", "B"]
        assert top[0]["percentage"] == 50.0
        assert top[1]["percentage"] == 30.0

    def test_merges_duplicates(self) -> None:
        top = top_n_with_share([("A", 10), ("B", 15), ("A", 10)], n=10)
        assert top[0] == {"category": "A", "value": 20.0, "percentage": pytest.approx(57.14)}

    def test_zero_total(self) -> None:
        top = top_n_with_share([("A", 0), ("B", "n/a")], n=5)
        assert all(t["percentage"] == 0.0 for t in top)

    def test_custom_key_and_blank_categories(self) -> None:
        top = top_n_with_share([("France", 3), (None, 100), ("", 5)], key_name="country")
        assert top == [{"country": "France", "value": 3.0, "percentage": 100.0}]

    def test_sixty_equal_categories_sum_to_exactly_100(self) -> None:
        pairs = [(f"Country {i}", 1) for i in range(60)]
        top = top_n_with_share(pairs, n=60, key_name="country")
        assert sum(t["percentage"] for t in top) == pytest.approx(100.0, abs=1e-9)
        assert {t["percentage"] for t in top} == {1.66, 1.67}

    def test_top_slice_keeps_shares_of_full_set(self) -> None:
        pairs = [(f"Country {i:02d}", 1) for i in range(60)]
        top = top_n_with_share(pairs, n=5, key_name="country")
        assert [t["percentage"] for t in top] == [1.67] * 5


class TestSharePcts:
    def test_largest_remainder(self) -> None:
        assert share_pcts([1, 1, 1]) == [33.34, 33.33, 33.33]
        assert share_pcts([2, 1]) == [66.67, 33.33]

    def test_zero_total_and_empty(self) -> None:
        assert share_pcts([0, 0]) == [0.0, 0.0]
        assert share_pcts([]) == []


class TestYearSegment:
    def test_pivot_with_total(self) -> None:
        figures = [
            MarketFigure(year=2023, segment="Materials", value=100),
            MarketFigure(year=2023, segment="Materials", value=50),
            MarketFigure(year=2023, segment="Software", value=25),
            MarketFigure(year=2024, segment="Materials", value=10),
        ]
        rows = aggregate_by_year_segment(figures)
        assert rows == [
            {"year": 2023, "Materials": 150.0, "Software": 25.0, "total": 175.0},
            {"year": 2024, "Materials": 10.0, "total": 10.0},
        ]

    def test_total_segment_only_without_breakdown(self) -> None:
        figures = [
            MarketFigure(year=2024, segment="Materials", value=10),
            MarketFigure(year=2024, segment="Total", value=999),
            MarketFigure(year=2026, segment="Total", value=900),
        ]
        rows = aggregate_by_year_segment(figures)
        assert rows[0] == {"year": 2024, "Materials": 10.0, "total": 10.0}
        assert rows[1] == {"year": 2026, "total": 900.0}

    def test_missing_segment_and_year(self) -> None:
        figures = [MarketFigure(year=2024, segment=None, value=5), MarketFigure(year=None, segment="Materials", value=7)]
        assert aggregate_by_year_segment(figures) == [{"year": 2024, "Other": 5.0, "total": 5.0}]

    def test_summarize_by_segment(self) -> None:
        figures = [
            MarketFigure(year=2024, segment="Materials", value=10, country="Japan"),
            MarketFigure(year=2024, segment="Materials", value=5, country="China"),
            MarketFigure(year=2024, segment="Software", value=1, country="China"),
        ]
        assert summarize_by_segment(figures) == [
            {"segment": "Materials", "value": 15.0, "countries": 2},
            {"segment": "Software", "value": 1.0, "countries": 1},
        ]
