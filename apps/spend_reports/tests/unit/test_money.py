from decimal import Decimal

from spend_reports.domain.money import format_money, format_yen, parse_money


def test_parse_money_rounds_half_up_to_whole_yen() -> None:
    assert parse_money("1234.5") == Decimal("1235")
    assert parse_money(-300) == Decimal("-300")


def test_format_money_drops_database_scale() -> None:
    assert format_money(Decimal("6000.00")) == "6000"
    assert format_money(Decimal("-1500.00")) == "-1500"


def test_format_yen_adds_separators_and_suffix() -> None:
    assert format_yen(Decimal("12345")) == "12,345円"
    assert format_yen(0) == "0円"
