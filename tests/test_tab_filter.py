from datetime import date

import pytest

from oficina.core.cashflow import CashFlowTab, tab_filter
from oficina.core.errors import ValidationError

HOJE = date(2024, 5, 15)


@pytest.mark.parametrize("tab,type_,paid,date_field", [
    ("all", None, None, "date"),
    ("IN", "IN", None, "date"),
    ("OUT", "OUT", None, "date"),
    ("receivable", "IN", False, "date"),
    ("payable", "OUT", False, "date"),
    ("received", "IN", True, "paid_at"),
    ("paid", "OUT", True, "paid_at"),
    ("pending", None, None, "date"),
])
def test_tab_mapping(tab, type_, paid, date_field):
    f = tab_filter(tab, HOJE)
    assert (f.type, f.paid, f.date_field) == (type_, paid, date_field)


def test_every_tab_is_mapped():
    for tab in CashFlowTab:
        tab_filter(tab, HOJE)


def test_pending_is_forward_looking():
    assert tab_filter("pending", HOJE).min_date == HOJE
    assert tab_filter("all", HOJE).min_date is None


def test_paid_tabs_sort_by_paid_at():
    assert tab_filter("received", HOJE).sort_desc_by_paid_at
    assert not tab_filter("receivable", HOJE).sort_desc_by_paid_at


def test_blank_tab_means_all():
    assert CashFlowTab.parse("") is CashFlowTab.ALL
    assert CashFlowTab.parse(None) is CashFlowTab.ALL


def test_unknown_tab_is_rejected():
    with pytest.raises(ValidationError) as exc:
        tab_filter("overdue", HOJE)
    assert "tab" in exc.value.fields
