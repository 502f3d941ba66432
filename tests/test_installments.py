from datetime import date
from decimal import Decimal

import pytest

from oficina.core.cashflow import build_installments, split_amount
from oficina.core.errors import ValidationError

D = Decimal


def test_split_default_repeats_rounded_share():
    assert split_amount(D("300.00"), 3) == [D("100.00")] * 3
    # comportamento padrão: a soma pode não fechar com o total
    parts = split_amount(D("100.00"), 3)
    assert parts == [D("33.33")] * 3
    assert sum(parts) == D("99.99")


def test_split_default_rounds_half_up():
    assert split_amount(D("0.05"), 2) == [D("0.03"), D("0.03")]


@pytest.mark.parametrize("total,n", [
    ("100.00", 3), ("10.00", 7), ("0.05", 2), ("1999.99", 24), ("150.00", 1),
])
def test_split_exact_sums_to_total(total, n):
    parts = split_amount(D(total), n, exact=True)
    assert len(parts) == n
    assert sum(parts) == D(total)
    assert len(set(parts[:-1])) <= 1
    assert parts[-1] >= parts[0]


def test_split_exact_last_takes_remainder():
    assert split_amount(D("100.00"), 3, exact=True) == [D("33.33"), D("33.33"), D("33.34")]


def test_split_rejects_zero_count():
    with pytest.raises(ValidationError):
        split_amount(D("10"), 0)


def test_single_installment_has_no_group():
    (row,) = build_installments("Troca de óleo", [D("150.00")], date(2024, 3, 10))
    assert row["description"] == "Troca de óleo"
    assert row["date"] == date(2024, 3, 10)
    assert row["cash_flow_group_id"] is None
    assert row["installment_index"] is None


def test_installments_share_group_and_clip_month_end():
    rows = build_installments("Retífica", [D("100.00")] * 3, date(2024, 1, 31))
    assert [r["date"] for r in rows] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]
    assert [r["installment_index"] for r in rows] == [1, 2, 3]
    assert [r["description"] for r in rows] == ["Retífica (1/3)", "Retífica (2/3)", "Retífica (3/3)"]
    assert len({r["cash_flow_group_id"] for r in rows}) == 1
    assert rows[0]["cash_flow_group_id"] is not None


def test_each_batch_gets_a_fresh_group():
    a = build_installments("x", [D("1.00")] * 2, date(2024, 1, 1))
    b = build_installments("x", [D("1.00")] * 2, date(2024, 1, 1))
    assert a[0]["cash_flow_group_id"] != b[0]["cash_flow_group_id"]
