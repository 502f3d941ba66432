from decimal import Decimal

import pytest

from oficina.core.cashflow import PIVOT_ROWS, PivotMode, pivot_scan
from oficina.core.errors import ValidationError

D = Decimal
Z = D("0.00")


def test_zero_fill_keeps_balance_constant():
    r = pivot_scan(["2024-01", "2024-02", "2024-03"], {})
    assert r.recebimentos == [Z, Z, Z]
    assert r.pagamentos == [Z, Z, Z]
    assert r.saldo_final == [Z, Z, Z]


def test_balance_carries_left_to_right():
    totals = {
        "2024-01": (D("1000.00"), D("300.00")),
        "2024-03": (D("0.00"), D("500.00")),
    }
    r = pivot_scan(["2024-01", "2024-02", "2024-03"], totals)
    assert r.geracao_caixa == [D("700.00"), Z, D("-500.00")]
    assert r.saldo_inicial == [Z, D("700.00"), D("700.00")]
    assert r.saldo_final == [D("700.00"), D("700.00"), D("200.00")]


def test_opening_balance():
    r = pivot_scan(["2024-01"], {"2024-01": (D("10"), D("0"))}, opening=D("5"))
    assert r.saldo_inicial == [D("5.00")]
    assert r.saldo_final == [D("15.00")]


def test_closing_equals_opening_plus_generation():
    totals = {"a": (D("12.34"), D("1.11")), "b": (D("0.01"), D("99.99")), "c": (D("50"), D("50"))}
    r = pivot_scan(["a", "b", "c"], totals)
    for i in range(3):
        assert r.saldo_final[i] == r.saldo_inicial[i] + r.recebimentos[i] - r.pagamentos[i]
        if i:
            assert r.saldo_inicial[i] == r.saldo_final[i - 1]


def test_to_dict_serializes_money_as_strings():
    out = pivot_scan(["2024-01"], {"2024-01": (D("150"), D("0"))}).to_dict()
    assert out["periods"] == ["2024-01"]
    assert set(out["rows"]) == set(PIVOT_ROWS)
    assert out["rows"]["recebimentos"] == ["150.00"]
    assert out["byPeriod"]["2024-01"]["saldo_final"] == "150.00"


def test_mode_selects_reference_date():
    assert PivotMode.parse("previsao").date_field == "date"
    assert PivotMode.parse("realizado").date_field == "paid_at"
    assert PivotMode.parse(None) is PivotMode.PREVISAO
    with pytest.raises(ValidationError):
        PivotMode.parse("projetado")
