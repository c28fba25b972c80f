"""Import payable accounts from the semicolon-separated spreadsheet export.

Column order (first line is a header and is skipped)::

    movement date; location; supplier; title; company; due date; amount; type; status; note

Dates come as ``DD/MM/YYYY`` and amounts as ``R$ 1.234,56``. Files are
read as ISO-8859-1, which is what the spreadsheet tool saves by default.
"""
from __future__ import annotations

import csv
import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import ValidationError

from installments import round2
from schemas import AccountIn, Vocabularies

logger = logging.getLogger(__name__)

ENCODING = "ISO-8859-1"
DEFAULT_SUPPLIER = "Não informado"


class ImportFormatError(ValueError):
    pass


def parse_br_date(raw: Optional[str], today: Optional[date] = None) -> date:
    today = today or date.today()
    text = (raw or "").strip()
    if not text:
        return today
    for parse in (lambda s: datetime.strptime(s, "%d/%m/%Y").date(), date.fromisoformat):
        try:
            return parse(text)
        except ValueError:
            continue
    logger.warning("Unrecognized date %r, using %s", text, today)
    return today


def parse_br_currency(raw: Optional[str]) -> Decimal:
    text = re.sub(r"\s", "", (raw or "").replace("R$", ""))
    if not text:
        return Decimal("0.00")
    return round2(text.replace(".", "").replace(",", "."))


def _accounting_type(raw: str) -> str:
    raw = raw.upper()
    return "PURCHASE" if "COMPRA" in raw or "PURCHASE" in raw else "EXPENSE"


def _status(raw: str) -> str:
    raw = raw.upper()
    if "PAGO" in raw or "PAID" in raw:
        return "PAID"
    if "CANCEL" in raw:
        return "CANCELED"
    return "PENDING"


def _parse_line(line: str, today: date) -> AccountIn:
    values = [value.strip() for value in next(csv.reader([line], delimiter=";"))]
    values += [""] * (10 - len(values))
    return AccountIn(
        movement_date=parse_br_date(values[0], today),
        location=values[1],
        supplier=values[2] or DEFAULT_SUPPLIER,
        title=values[3],
        company=values[4],
        due_date=parse_br_date(values[5], today),
        amount=parse_br_currency(values[6]),
        accounting_type=_accounting_type(values[7]),
        category="OTHER",
        status=_status(values[8]),
        note=values[9],
    )


def parse_accounts_csv(
    data: bytes | str,
    today: Optional[date] = None,
    vocabularies: Optional[Vocabularies] = None,
) -> List[AccountIn]:
    """Parse the whole file or raise ``ImportFormatError`` naming the bad lines.

    With ``vocabularies`` every row must use values the register currently
    accepts; a file written against renamed codes is refused as a whole.
    """
    today = today or date.today()
    text = data.decode(ENCODING) if isinstance(data, bytes) else data
    lines = text.splitlines()
    if len(lines) < 2:
        raise ImportFormatError("File is empty or has no data rows.")

    accounts: List[AccountIn] = []
    problems: List[str] = []
    for number, line in enumerate(lines[1:], start=2):
        if not line.strip() or ";" not in line:
            continue
        try:
            account = _parse_line(line, today)
        except ValidationError as exc:
            problems.append(f"line {number}: " + "; ".join(err["msg"] for err in exc.errors()))
            continue
        issues = vocabularies.check(account) if vocabularies is not None else []
        if issues:
            problems.append(f"line {number}: " + "; ".join(issues))
            continue
        accounts.append(account)

    if problems:
        raise ImportFormatError("Import refused. " + " | ".join(problems))
    if not accounts:
        raise ImportFormatError("No valid rows found to import.")
    logger.info("Parsed %d accounts from import file", len(accounts))
    return accounts
