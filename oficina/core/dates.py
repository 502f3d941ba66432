# oficina/core/dates.py
"""
Datas de calendário do financeiro.

Tudo aqui trabalha com ``datetime.date`` puro: as strings ``YYYY-MM-DD`` e
``YYYY-MM`` que chegam da interface são lidas campo a campo, sem passar por
fuso horário, para que 2024-03-10 continue sendo 10/03 no banco.
"""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Iterator, List, Optional

from dateutil.relativedelta import relativedelta

from oficina.core.errors import ValidationError

_DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_day(value, field: str = "date") -> date:
    """Converte ``YYYY-MM-DD`` em date. Um sufixo de horário ISO é ignorado, nunca convertido."""
    if isinstance(value, date):
        return value
    m = _DAY_RE.match((value or "").strip()) if isinstance(value, str) else None
    if not m:
        raise ValidationError("Data inválida, use o formato AAAA-MM-DD.", {field: "Data inválida"})
    y, mo, d = (int(g) for g in m.groups())
    try:
        return date(y, mo, d)
    except ValueError:
        raise ValidationError("Data inexistente no calendário.", {field: "Data inválida"})


def parse_optional_day(value, field: str = "date") -> Optional[date]:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    return parse_day(value, field)


def parse_month(value, field: str = "month") -> date:
    """Converte ``YYYY-MM`` no primeiro dia do mês."""
    m = _MONTH_RE.match((value or "").strip()) if isinstance(value, str) else None
    if not m:
        raise ValidationError("Mês inválido, use o formato AAAA-MM.", {field: "Mês inválido"})
    try:
        return date(int(m.group(1)), int(m.group(2)), 1)
    except ValueError:
        raise ValidationError("Mês inválido, use o formato AAAA-MM.", {field: "Mês inválido"})


def add_months(base: date, months: int, field: str = "date") -> date:
    # relativedelta corta no último dia do mês: 31/01 + 1 mês -> 29/02 em ano bissexto
    try:
        return base + relativedelta(months=months)
    except (ValueError, OverflowError):
        raise ValidationError("Data fora do intervalo suportado.", {field: "Data fora do intervalo"})


def month_end(first_day: date) -> date:
    return first_day + relativedelta(day=31)


def months_between(start: date, end: date) -> int:
    """Quantidade de meses de ``start`` a ``end``, contando os dois."""
    return (end.year - start.year) * 12 + end.month - start.month + 1


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def day_key(d: date) -> str:
    return d.isoformat()


# os iteradores param no último item sem avançar, 9999-12-31 não tem sucessor
def iter_months(start: date, end: date) -> Iterator[date]:
    cur = start.replace(day=1)
    last = end.replace(day=1)
    while cur <= last:
        yield cur
        if cur == last:
            return
        cur = add_months(cur, 1)


def iter_days(start: date, end: date) -> Iterator[date]:
    cur = start
    while cur <= end:
        yield cur
        if cur == end:
            return
        cur += timedelta(days=1)


def month_keys(start: date, end: date) -> List[str]:
    return [month_key(d) for d in iter_months(start, end)]


def day_keys(start: date, end: date) -> List[str]:
    return [day_key(d) for d in iter_days(start, end)]
