"""
Heuristic field parser for Chilean electronic invoices (facturas electrónicas).

Parsing is a fold over the trimmed, non-empty lines of the extracted text.
Each LineRule looks for an anchor token on a line and, when its pattern
captures a value, proposes that value for one field. Whether a later
proposal replaces an earlier one is decided per rule by its MergePolicy,
so the outcome does not depend on rule execution order.

A few fields need the whole text rather than a single line:

- RUTs: every "R.U.T.:" match is collected; the first belongs to the
  issuer and the second to the client.
- Description: when no short "Estado de pago" line exists, the lines
  below the item table header are used.

The parser never raises. Unmatched fields are simply absent.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Callable

from loguru import logger

from .invoice_types import ParsedFieldSet
from .normalizer import MAX_REASONABLE_AMOUNT, fold_accents, is_reasonable_amount


class MergePolicy(str, Enum):
    FIRST = "first"
    LAST = "last"


@dataclass(frozen=True)
class LineRule:
    field: str
    anchor: str
    patterns: tuple[re.Pattern, ...]
    policy: MergePolicy = MergePolicy.FIRST
    excludes: tuple[str, ...] = ()
    accept: Callable[[str], bool] | None = None

    def applies_to(self, line: str) -> bool:
        return self.anchor in line and not any(token in line for token in self.excludes)

    def extract(self, line: str) -> str | None:
        """First pattern capture that survives ``accept``, trimmed"""
        for pattern in self.patterns:
            match = pattern.search(line)
            if not match:
                continue
            value = (match.group(1) if match.groups() else match.group(0)).strip()
            if not value:
                continue
            if self.accept is None or self.accept(value):
                return value
            logger.debug("Candidate rejected", field=self.field, value=value)
        return None


def _amount_patterns(anchor: str) -> tuple[re.Pattern, ...]:
    # Every capture must run to the end of the number, so a rejected
    # amount is never retried as a shorter prefix of itself.
    end = r"(?![\d.,])"
    return (
        re.compile(anchor + r"\s*\$?\s*([\d.,]+)" + end),
        re.compile(anchor + r"\s*\$?\s*(\d[\d\s.,]*)" + end),
        re.compile(anchor + r"\s*\$?\s*([\d.]+)" + end),
        re.compile(anchor + r"\s*\$?\s*([\d,]+)" + end),
    )


RUT_PATTERN = re.compile(r"R\.\s?U\.\s?T\.?\s*:?\s*(\d{1,2}\.?\d{3}\.?\d{3}\s?-\s?[\dkK])")

DESCRIPTION_SINGLE_LINE_MAX = 200
DESCRIPTION_WINDOW = 4


def build_line_rules(max_amount: float = MAX_REASONABLE_AMOUNT) -> tuple[LineRule, ...]:
    def reasonable(value: str) -> bool:
        return is_reasonable_amount(value, maximum=max_amount)

    return (
        LineRule("issuer_name", "Giro:", (re.compile(r"Giro:\s*(.+)$"),)),
        LineRule(
            "issuer_address",
            "",
            (re.compile(r"\b((?:PASAJE|AVENIDA|AV\.|CALLE|CAMINO)\s[^-\n]+)"),),
            excludes=("DIRECCION",),
        ),
        LineRule(
            "issuer_email",
            "",
            (re.compile(r"(?i)e-?mail\s*:?\s*([\w.+-]+@[\w-]+(?:\.[\w-]+)+)"),),
        ),
        LineRule(
            "client_name",
            "(ES)",
            (re.compile(r"SE[ÑN]OR\(ES\)\s*:\s*(.+?)(?:\s+R\.U\.T\..*)?$"),),
        ),
        LineRule("client_address", "DIRECCION", (re.compile(r"DIRECCION\s*:\s*(.+)$"),)),
        LineRule("client_city", "CIUDAD", (re.compile(r"CIUDAD\s*:\s*(.+)$"),)),
        LineRule(
            "invoice_number",
            "",
            (
                re.compile(r"FACTURA\s+ELECTRONICA\s*N[º°o]?\.?\s*(\d+)"),
                re.compile(r"(?:^|\s)N[º°]\s*(\d+)"),
            ),
            excludes=("Contrato", "Estado de pago"),
        ),
        LineRule(
            "issue_date",
            "Fecha Emisi",
            (re.compile(r"Fecha Emisi[oó]n\s*:\s*(.*\d.*)$"),),
        ),
        LineRule(
            "description",
            "Estado de pago",
            (re.compile(r"(Estado de pago.*)$"),),
            accept=lambda value: len(value) <= DESCRIPTION_SINGLE_LINE_MAX,
        ),
        LineRule("contract_number", "Contrato N", (re.compile(r"Contrato\s+N[°º]\s*(.+)$"),)),
        LineRule("payment_method", "Forma de Pago", (re.compile(r"Forma de Pago\s*:\s*(.+)$"),)),
        LineRule("net_amount", "MONTO NETO", _amount_patterns(r"MONTO NETO"), accept=reasonable),
        LineRule(
            "iva_percentage",
            "I.V.A.",
            (re.compile(r"I\.V\.A\.\s*(\d{1,2}(?:[.,]\d{1,2})?)\s*%"),),
        ),
        LineRule(
            "iva_amount",
            "I.V.A.",
            _amount_patterns(r"I\.V\.A\.\s*\d{1,2}(?:[.,]\d{1,2})?\s*%"),
            accept=reasonable,
        ),
        LineRule(
            "additional_tax",
            "IMPUESTO ADICIONAL",
            _amount_patterns(r"IMPUESTO ADICIONAL"),
            accept=reasonable,
        ),
        LineRule(
            "total_amount",
            "TOTAL",
            _amount_patterns(r"\bTOTAL"),
            policy=MergePolicy.LAST,
            excludes=("NETO", "IVA", "I.V.A.", "ADICIONAL"),
            accept=reasonable,
        ),
    )


LINE_RULES = build_line_rules()


def split_lines(text: str) -> list[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def _merge(fields: dict, update: tuple[str, str, MergePolicy]) -> dict:
    name, value, policy = update
    if name in fields and policy is MergePolicy.FIRST:
        return fields
    return {**fields, name: value}


def _line_updates(line: str, rules: tuple[LineRule, ...]):
    for rule in rules:
        if rule.applies_to(line):
            value = rule.extract(line)
            if value is not None:
                yield rule.field, value, rule.policy


def find_ruts(text: str) -> list[str]:
    """All RUTs introduced by an "R.U.T." label, in document order"""
    return [re.sub(r"\s", "", m.group(1)).upper() for m in RUT_PATTERN.finditer(text or "")]


def assign_ruts(ruts: list[str], known_issuer_rut: str | None = None) -> dict:
    """
    Issuer RUT is the first one found, client RUT the second.

    A configured known issuer RUT only confirms the assignment; it never
    reorders it.
    """
    assigned = {}
    if ruts:
        assigned["issuer_rut"] = ruts[0]
    if len(ruts) >= 2:
        assigned["client_rut"] = ruts[1]

    if known_issuer_rut and ruts:
        if _rut_key(ruts[0]) == _rut_key(known_issuer_rut):
            logger.debug("Issuer RUT confirmed against configured tenant", rut=ruts[0])
        else:
            logger.info("Issuer RUT differs from configured tenant", found=ruts[0], known=known_issuer_rut)
    return assigned


def _rut_key(rut: str) -> str:
    return re.sub(r"[^\dK]", "", rut.upper())


def _is_table_header(line: str) -> bool:
    folded = fold_accents(line)
    return "descripcion" in folded and ("codigo" in folded or "cantidad" in folded)


NUMERIC_ROW = re.compile(r"[\d\s.,$%-]+")


def _is_amount_line(line: str) -> bool:
    return "$" in line or "MONTO" in line or NUMERIC_ROW.fullmatch(line) is not None


def description_from_table(lines: list[str]) -> str | None:
    """The one or two non-amount lines right below the item table header"""
    for index, line in enumerate(lines):
        if not _is_table_header(line):
            continue
        picked = [
            candidate
            for candidate in lines[index + 1:index + 1 + DESCRIPTION_WINDOW]
            if not _is_amount_line(candidate)
        ][:2]
        if picked:
            return re.sub(r"\s+", " ", " ".join(picked)).strip()
    return None


def parse_invoice_text(
    text: str,
    known_issuer_rut: str | None = None,
    rules: tuple[LineRule, ...] = LINE_RULES,
) -> ParsedFieldSet:
    """
    Recover invoice fields from extracted PDF text.

    Args:
        text: Raw text from the extraction adapter
        known_issuer_rut: The tenant's own RUT, used to confirm the issuer RUT
        rules: Line rules to fold over the text (defaults to LINE_RULES)

    Returns:
        ParsedFieldSet with only the fields that were found
    """
    lines = split_lines(text)

    updates = (update for line in lines for update in _line_updates(line, rules))
    fields = reduce(_merge, updates, {})

    fields.update(assign_ruts(find_ruts(text), known_issuer_rut))

    if "description" not in fields:
        description = description_from_table(lines)
        if description:
            fields["description"] = description

    parsed = ParsedFieldSet(**fields)
    logger.info(
        "Invoice fields parsed",
        lines=len(lines),
        found=sorted(parsed.found()),
    )
    return parsed
