from datetime import date
from decimal import Decimal

from aggregation import Normalizer
from anomalies import detect_anomalies, population_stats
from ledger import ExpenseRow
from rollup import CategoryNode, build_category_index

TODAY = date(2025, 6, 15)
USD = Normalizer("USD")


def expense(tx_id, day, amount, payee="Cafe", category_id=1):
    return ExpenseRow(
        id=tx_id,
        transaction_date=day,
        payee_id=None,
        payee_name=payee,
        currency_code="USD",
        category_id=category_id,
        amount=Decimal(str(amount)),
    )


def make_index():
    return build_category_index(
        [
            CategoryNode(id=1, parent_id=None, name="Dining"),
            CategoryNode(id=2, parent_id=None, name="Fitness"),
            CategoryNode(id=3, parent_id=None, name="Home"),
        ]
    )


def test_fewer_than_ten_rows_yields_empty_result() -> None:
    rows = [expense(i, date(2025, 3, i), 10) for i in range(1, 9)]
    rows.append(expense(99, date(2025, 3, 20), 5_000))
    result = detect_anomalies(rows, make_index(), USD, today=TODAY)
    assert result == {
        "statistics": {"mean": 0.0, "std_dev": 0.0},
        "anomalies": [],
        "counts": {"high": 0, "medium": 0, "low": 0},
    }


def test_large_transaction_flagged_by_z_score() -> None:
    rows = [expense(i, date(2025, 2, i), 10) for i in range(1, 11)]
    rows.append(expense(11, date(2025, 3, 1), 1_000, payee="Jeweller"))

    result = detect_anomalies(rows, make_index(), USD, today=TODAY)

    assert result["statistics"] == {"mean": 100.0, "std_dev": 284.6}
    assert result["anomalies"] == [
        {
            "type": "large_transaction",
            "severity": "medium",
            "title": "Unusually large transaction",
            "description": "Jeweller - Mar 1, 2025",
            "amount": 1000.0,
            "transaction_id": 11,
            "transaction_date": "2025-03-01",
            "payee_name": "Jeweller",
        }
    ]
    assert result["counts"] == {"high": 0, "medium": 1, "low": 0}


def test_identical_amounts_skip_z_score_detector() -> None:
    rows = [expense(i, date(2025, 2, i), 25) for i in range(1, 13)]
    result = detect_anomalies(rows, make_index(), USD, today=TODAY)
    assert result["statistics"] == {"mean": 25.0, "std_dev": 0.0}
    assert result["anomalies"] == []


def test_anomalies_are_ordered_by_severity_then_amount() -> None:
    rows = [expense(i, date(2025, 1 + i % 4, 5), 20) for i in range(1, 11)]
    rows += [
        expense(20, date(2025, 5, 10), 60, payee="Gym", category_id=2),
        expense(21, date(2025, 6, 2), 300, payee="Gym", category_id=2),
        expense(22, date(2025, 6, 10), 250, payee="Furniture Store", category_id=3),
    ]

    result = detect_anomalies(rows, make_index(), USD, today=TODAY)
    anomalies = result["anomalies"]

    assert [(a["type"], a["severity"]) for a in anomalies] == [
        ("category_spike", "high"),
        ("unusual_payee", "medium"),
        ("large_transaction", "low"),
        ("large_transaction", "low"),
    ]
    assert [a.get("amount") for a in anomalies[2:]] == [300.0, 250.0]
    assert result["counts"] == {"high": 1, "medium": 1, "low": 2}

    spike = anomalies[0]
    assert spike["category_name"] == "Fitness"
    assert spike["current_period_amount"] == 300.0
    assert spike["previous_period_amount"] == 60.0
    assert spike["percent_change"] == 400
    assert spike["description"] == "400% increase from last month"

    new_payee = anomalies[1]
    assert new_payee["payee_name"] == "Furniture Store"
    assert new_payee["amount"] == 250.0
    assert new_payee["transaction_id"] == 22


def test_spike_needs_meaningful_baseline() -> None:
    rows = [expense(i, date(2025, 1, i), 20) for i in range(1, 11)]
    rows += [
        expense(20, date(2025, 5, 10), 40, payee="Gym", category_id=2),
        expense(21, date(2025, 6, 2), 120, payee="Gym", category_id=2),
    ]
    result = detect_anomalies(rows, make_index(), USD, today=TODAY)
    assert all(a["type"] != "category_spike" for a in result["anomalies"])


def test_population_stats_divides_by_count() -> None:
    mean, std_dev = population_stats([Decimal("2"), Decimal("4")])
    assert mean == Decimal("3")
    assert std_dev == Decimal("1")
    assert population_stats([]) == (Decimal("0"), Decimal("0"))
