import locale
from datetime import date

import pytest

from periods import (
    MONTH_ABBREVIATIONS,
    InvalidReportRange,
    add_months,
    long_month_label,
    month_abbr,
    month_key,
    parse_month,
    resolve_range,
    short_month_label,
)
from rollup import (
    UNCATEGORIZED,
    CategoryNode,
    build_category_index,
    category_name,
    resolve_display_category,
)
from schemas import (
    AnomalyParams,
    DuplicateParams,
    InvalidReportParameter,
    YearOverYearParams,
    parse_params,
)


def make_index():
    return build_category_index(
        [
            CategoryNode(id=1, parent_id=None, name="Food", color="#ff0000"),
            CategoryNode(id=2, parent_id=1, name="Groceries", color="#00ff00"),
            CategoryNode(id=3, parent_id=1, name="Restaurants"),
            CategoryNode(id=4, parent_id=2, name="Organic"),
        ]
    )


def test_parent_resolves_to_itself() -> None:
    index = make_index()
    display = resolve_display_category(1, index)
    assert (display.display_id, display.display_name, display.color) == (
        1,
        "Food",
        "#ff0000",
    )


def test_siblings_share_display_category() -> None:
    index = make_index()
    assert resolve_display_category(2, index) == resolve_display_category(3, index)
    assert resolve_display_category(2, index).display_id == 1


def test_rollup_is_exactly_one_hop() -> None:
    index = make_index()
    display = resolve_display_category(4, index)
    assert display.display_id == 2
    assert display.display_name == "Groceries"


def test_unknown_category_is_uncategorized() -> None:
    index = make_index()
    for category_id in (None, 99):
        display = resolve_display_category(category_id, index)
        assert display.display_id is None
        assert display.display_name == UNCATEGORIZED
        assert display.color is None
    assert category_name(None, index) == UNCATEGORIZED
    assert category_name(2, index) == "Groceries"


def test_add_months_clamps_to_month_end() -> None:
    assert add_months(date(2025, 8, 31), -6) == date(2025, 2, 28)
    assert add_months(date(2024, 8, 31), -6) == date(2024, 2, 29)
    assert add_months(date(2025, 1, 15), -1) == date(2024, 12, 15)
    assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)
    assert month_key(date(2025, 3, 9)) == "2025-03"


def test_resolve_range_parses_and_validates() -> None:
    window = resolve_range("2025-01-01", "2025-01-31")
    assert window.start == date(2025, 1, 1)
    assert window.end == date(2025, 1, 31)
    assert resolve_range(None, date(2025, 1, 31)).start is None

    with pytest.raises(InvalidReportRange):
        resolve_range("2025-02-01", "2025-01-31")
    with pytest.raises(InvalidReportRange):
        resolve_range("2025-01-01", None)
    with pytest.raises(InvalidReportRange):
        resolve_range("yesterday", "2025-01-31")


def test_parse_params_applies_defaults() -> None:
    assert parse_params(YearOverYearParams, years_to_compare=None).years_to_compare == 2
    assert parse_params(AnomalyParams).threshold == 2
    assert parse_params(DuplicateParams, sensitivity="high").sensitivity == "high"


def test_parse_params_rejects_out_of_range_values() -> None:
    with pytest.raises(InvalidReportParameter) as excinfo:
        parse_params(YearOverYearParams, years_to_compare=0)
    assert "years_to_compare" in str(excinfo.value)
    with pytest.raises(InvalidReportParameter):
        parse_params(AnomalyParams, threshold=-1)
    with pytest.raises(InvalidReportParameter):
        parse_params(DuplicateParams, sensitivity="extreme")
    assert issubclass(InvalidReportParameter, ValueError)


def test_month_labels_are_fixed_english() -> None:
    assert MONTH_ABBREVIATIONS[0] == "Jan"
    assert MONTH_ABBREVIATIONS[-1] == "Dec"
    assert short_month_label(date(2025, 1, 31)) == "Jan 25"
    assert short_month_label(date(2009, 12, 1)) == "Dec 09"
    assert long_month_label(date(2025, 5, 1)) == "May 2025"
    assert month_abbr(date(2024, 9, 15)) == "Sep"


def test_month_labels_ignore_process_locale() -> None:
    previous = locale.setlocale(locale.LC_TIME)
    try:
        locale.setlocale(locale.LC_TIME, "de_DE.UTF-8")
    except locale.Error:
        pytest.skip("de_DE locale not installed")
    try:
        assert short_month_label(date(2025, 3, 1)) == "Mar 25"
        assert long_month_label(date(2025, 10, 1)) == "October 2025"
    finally:
        locale.setlocale(locale.LC_TIME, previous)


def test_parse_month() -> None:
    assert parse_month("2025-03") == date(2025, 3, 1)
    assert parse_month(" 2024-12 ") == date(2024, 12, 1)
    for bad in ("2025-13", "2025", "March", "2025-03-01", ""):
        with pytest.raises(InvalidReportRange):
            parse_month(bad)
