# Overview: Plain-text sale ticket handed to the printer collaborator.

from __future__ import annotations

from ..models import Sale
from pos_erp.time_utils import cents_to_str

TICKET_WIDTH = 40


def _line(left: str, right: str = "") -> str:
    space = TICKET_WIDTH - len(left) - len(right)
    if space < 1:
        left = left[: TICKET_WIDTH - len(right) - 1]
        space = 1
    return f"{left}{' ' * space}{right}"


def ticket_filename(sale: Sale) -> str:
    date = sale.date.isoformat() if sale.date else "sin_fecha"
    return f"ticket_{sale.id}_{date}.txt"


def build_ticket(sale: Sale) -> tuple[str, str]:
    """
    Render a sale as a fixed-width ticket.

    Returns (filename, body). Printing is the caller's business.
    """
    rule = "=" * TICKET_WIDTH
    thin = "-" * TICKET_WIDTH

    lines = [
        "COTIZACION" if sale.is_quote else "NOTA DE VENTA",
        rule,
        f"Folio: POS-{sale.id}",
        f"Fecha: {sale.date.isoformat() if sale.date else ''}",
        f"Cliente: {sale.client_name}",
        f"Atendio: {sale.created_by_name or ''}",
        thin,
    ]

    for item in sale.items:
        name = item.product_name.upper()
        if item.tara_name:
            name = f"{name} ({item.tara_name})"
        lines.append(_line(f"{item.quantity} x {name}", cents_to_str(item.total_cents)))
        lines.append(f"   @ ${cents_to_str(item.unit_price_cents)}")

    lines.append(thin)
    lines.append(_line("Subtotal:", f"${cents_to_str(sale.subtotal_cents)}"))
    if sale.discount_cents:
        lines.append(_line("Descuento:", f"-${cents_to_str(sale.discount_cents)}"))
    if sale.voucher_amount_cents:
        lines.append(_line("Vale:", f"-${cents_to_str(sale.voucher_amount_cents)}"))
    lines.append(_line("TOTAL:", f"${cents_to_str(sale.total_cents)}"))
    lines.append(_line("Pagado:", f"${cents_to_str(sale.amount_paid_cents)}"))
    if sale.remaining_balance_cents:
        lines.append(_line("Saldo:", f"${cents_to_str(sale.remaining_balance_cents)}"))
    if sale.is_credit:
        lines.append("VENTA A CREDITO")
    lines.append(rule)
    lines.append("Gracias por su compra")

    return ticket_filename(sale), "\n".join(lines) + "\n"
