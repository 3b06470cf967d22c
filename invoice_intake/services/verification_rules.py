"""
Consistency checks for extracted invoices.

The extraction pipeline does not enforce that the amounts add up; these
rules report whether they do so the verification UI (or an API client)
can decide whether a human needs to look at the invoice.
"""

import re
from typing import Any, Dict

from loguru import logger
from pydantic import BaseModel


def rut_check_digit(body: str) -> str:
    """Modulo-11 check digit of a RUT body (digits only)"""
    total = 0
    factor = 2
    for digit in reversed(body):
        total += int(digit) * factor
        factor = 2 if factor == 7 else factor + 1
    remainder = 11 - (total % 11)
    if remainder == 11:
        return "0"
    if remainder == 10:
        return "K"
    return str(remainder)


def is_valid_rut(rut: str | None) -> bool:
    """
    Validate a Chilean RUT such as "77.567.635-3".

    Dots are optional; the check digit may be "k" or "K".
    """
    if not rut:
        return False
    match = re.fullmatch(r"(\d{1,2}\.?\d{3}\.?\d{3})-?([\dkK])", rut.strip())
    if not match:
        return False
    body = match.group(1).replace(".", "")
    return rut_check_digit(body) == match.group(2).upper()


def _same_rut(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    key = lambda rut: re.sub(r"[^\dK]", "", rut.upper())
    return key(a) == key(b)


class VerificationResult(BaseModel):
    """Result of the consistency checks with explanation"""
    verified: bool
    reason: str
    checks: Dict[str, bool]
    metadata: Dict[str, Any] = {}


class VerificationRulesConfig(BaseModel):
    amount_tolerance: float = 1.0
    known_issuer_rut: str | None = None


class InvoiceVerificationRules:
    """
    Checks an assembled invoice record for internal consistency.

    Checks:
    - total_reconciles: net + IVA + additional tax equals the total
    - iva_matches_rate: IVA equals net x iva_percentage
    - required_fields_present: invoice number, issue date and a total
    - issuer_rut_valid / client_rut_valid: modulo-11 check digit
    - issuer_rut_matches_known: issuer is the configured tenant (if any)
    """

    def __init__(self, config: VerificationRulesConfig = None):
        self.config = config or VerificationRulesConfig()

    def evaluate(self, record) -> VerificationResult:
        """
        Evaluate an invoice record.

        Args:
            record: NormalizedInvoiceRecord, or a dict with the same keys

        Returns:
            VerificationResult with a verified flag, reason and check details
        """
        data = record if isinstance(record, dict) else record.model_dump()
        net = float(data.get("net_amount") or 0)
        iva = float(data.get("iva_amount") or 0)
        additional = float(data.get("additional_tax") or 0)
        total = float(data.get("total_amount") or 0)
        percentage = float(data.get("iva_percentage") or 19.0)
        tolerance = self.config.amount_tolerance

        checks = {}
        reasons = []

        # Amount checks only make sense when the breakdown was extracted
        amounts_present = net > 0 and iva > 0 and total > 0

        checks["total_reconciles"] = (
            not amounts_present or abs(net + iva + additional - total) <= tolerance
        )
        if not checks["total_reconciles"]:
            reasons.append(
                f"Neto {net:,.0f} + IVA {iva:,.0f} + adicional {additional:,.0f} no cuadra con total {total:,.0f}"
            )

        checks["iva_matches_rate"] = (
            not amounts_present or abs(net * percentage / 100 - iva) <= tolerance
        )
        if not checks["iva_matches_rate"]:
            reasons.append(f"IVA {iva:,.0f} no corresponde al {percentage:g}% del neto")

        missing = [
            name for name, present in (
                ("invoice_number", bool(data.get("invoice_number"))),
                ("issue_date", bool(data.get("issue_date"))),
                ("total_amount", total > 0),
            ) if not present
        ]
        checks["required_fields_present"] = not missing
        if missing:
            reasons.append("Faltan campos: " + ", ".join(missing))

        issuer_rut = data.get("issuer_rut")
        client_rut = data.get("client_rut")

        checks["issuer_rut_valid"] = is_valid_rut(issuer_rut)
        if not checks["issuer_rut_valid"]:
            reasons.append(f"RUT emisor inválido: {issuer_rut or 'vacío'}")

        checks["client_rut_valid"] = not client_rut or is_valid_rut(client_rut)
        if not checks["client_rut_valid"]:
            reasons.append(f"RUT cliente inválido: {client_rut}")

        if self.config.known_issuer_rut:
            checks["issuer_rut_matches_known"] = _same_rut(issuer_rut, self.config.known_issuer_rut)
            if not checks["issuer_rut_matches_known"]:
                reasons.append(f"RUT emisor {issuer_rut or 'vacío'} no es {self.config.known_issuer_rut}")

        verified = all(checks.values())
        reason = "Factura consistente" if verified else "Requiere revisión: " + "; ".join(reasons)

        logger.info(
            "Invoice verification",
            verified=verified,
            invoice_number=data.get("invoice_number"),
            checks=checks,
        )

        return VerificationResult(
            verified=verified,
            reason=reason,
            checks=checks,
            metadata={
                "computed_total": round(net + iva + additional, 2),
                "expected_iva": round(net * percentage / 100, 2),
                "config": self.config.model_dump(),
            },
        )


def create_verification_rules(
    amount_tolerance: float = None,
    known_issuer_rut: str = None,
) -> InvoiceVerificationRules:
    """
    Factory function to create verification rules with optional overrides.

    Uses environment variables as defaults, can be overridden per request.
    """
    from ..core.config import settings

    config = VerificationRulesConfig(
        amount_tolerance=amount_tolerance if amount_tolerance is not None else settings.verification_amount_tolerance,
        known_issuer_rut=known_issuer_rut if known_issuer_rut is not None else settings.known_issuer_rut,
    )
    return InvoiceVerificationRules(config)
