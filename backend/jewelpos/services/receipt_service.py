# Overview: Sale summary ("resumo de venda") as structured data and as a ReportLab PDF.

from __future__ import annotations

import io
import re
from datetime import date
from typing import Any, Dict, List

from flask import current_app
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..extensions import db
from ..models import Sale
from ..validation import NotFoundError
from jewelpos.time_utils import business_today, format_br_date, to_business_time
from .installment_service import summarize_installments
from .schedule_service import (
    KIND_DOWN_PAYMENT,
    KIND_RENEGOTIATED,
    KIND_RENEGOTIATED_DOWN_PAYMENT,
    PAYMENT_CREDIT_CARD,
    PAYMENT_DEBIT_CARD,
    PAYMENT_CASH,
    PAYMENT_INSTALLMENT,
    PAYMENT_PIX,
    format_brl,
)

RECEIPT_METHOD_LABELS = {
    PAYMENT_PIX: "PIX",
    PAYMENT_CREDIT_CARD: "Cartão de Crédito",
    PAYMENT_DEBIT_CARD: "Cartão de Débito",
    PAYMENT_CASH: "Dinheiro",
    PAYMENT_INSTALLMENT: "Parcelado",
}

STATUS_LABEL_PAID = "PAGO"
STATUS_LABEL_PENDING = "PENDENTE"
STATUS_LABEL_CANCELLED = "CANCELADA"

BRAND_COLOR = colors.HexColor("#EC4899")


def _installment_labels(installments) -> Dict[int, str]:
    labels: Dict[int, str] = {}
    renegotiated_counter: Dict[int, int] = {}
    for inst in installments:
        if inst.kind == KIND_DOWN_PAYMENT:
            labels[inst.id] = "Entrada"
        elif inst.kind == KIND_RENEGOTIATED_DOWN_PAYMENT:
            labels[inst.id] = "Entrada (reneg.)"
        elif inst.kind == KIND_RENEGOTIATED:
            n = renegotiated_counter.get(inst.renegotiation_id, 0) + 1
            renegotiated_counter[inst.renegotiation_id] = n
            labels[inst.id] = f"{n}ª (reneg.)"
        else:
            labels[inst.id] = f"{inst.sequence}ª"
    return labels


def build_receipt(sale_id: int, *, today: date | None = None) -> Dict[str, Any]:
    today = today or business_today()
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")

    installments = list(sale.installments)
    labels = _installment_labels(installments)
    summary = summarize_installments(installments, today)
    sold_local = to_business_time(sale.sold_at)

    rows = []
    for inst in installments:
        if inst.is_cancelled:
            status = STATUS_LABEL_CANCELLED
        elif inst.is_paid:
            status = STATUS_LABEL_PAID
        else:
            status = STATUS_LABEL_PENDING
        paid_local = to_business_time(inst.paid_at)
        rows.append({
            "id": inst.id,
            "label": labels[inst.id],
            "amount_cents": inst.amount_cents,
            "due_date": format_br_date(inst.due_date),
            "paid_date": format_br_date(paid_local.date()) if paid_local else None,
            "status": status,
            "note": inst.note,
        })

    return {
        "business_name": current_app.config.get("BUSINESS_NAME"),
        "sale_id": sale.id,
        "client_name": sale.client.name if sale.client else "",
        "sold_on": format_br_date(sold_local.date()),
        "payment_method": sale.payment_method,
        "payment_label": RECEIPT_METHOD_LABELS.get(sale.payment_method, sale.payment_method),
        "is_upfront": sale.payment_method != PAYMENT_INSTALLMENT,
        "total_cents": sale.total_cents,
        "items": [
            {
                "description": item.product.description if item.product else "",
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "line_total_cents": item.line_total_cents,
            }
            for item in sale.items
        ],
        "installments": rows,
        "total_paid_cents": summary.total_paid_cents - summary.total_cancelled_cents,
        "total_pending_cents": summary.total_pending_cents,
    }


def receipt_filename(receipt: Dict[str, Any]) -> str:
    """resumo_venda_<client>_<dd-mm-yyyy>.pdf, client reduced to [A-Za-z0-9_]."""
    client = re.sub(r"\s", "_", receipt["client_name"] or "")
    client = re.sub(r"[^a-zA-Z0-9_]", "", client)
    return f"resumo_venda_{client}_{receipt['sold_on'].replace('/', '-')}.pdf"


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='BusinessName',
        fontSize=22,
        leading=26,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold',
        textColor=BRAND_COLOR,
    ))
    styles.add(ParagraphStyle(
        name='ReceiptTitle',
        fontSize=14,
        alignment=TA_CENTER,
        fontName='Helvetica',
        textColor=colors.HexColor("#6B7280"),
        spaceAfter=12,
    ))
    styles.add(ParagraphStyle(
        name='SectionHeader',
        fontSize=12,
        fontName='Helvetica-Bold',
        spaceBefore=10,
        spaceAfter=6,
    ))
    styles.add(ParagraphStyle(
        name='Footer',
        fontSize=8,
        alignment=TA_CENTER,
        textColor=colors.HexColor("#9CA3AF"),
    ))
    return styles


def _table(data: List[List[str]], col_widths) -> Table:
    table = Table(data, colWidths=col_widths)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor("#FCE7F3")),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('GRID', (0, 0), (-1, -1), 0.25, colors.HexColor("#E5E7EB")),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
    ]))
    return table


def render_receipt_pdf(sale_id: int, *, today: date | None = None) -> tuple[bytes, str]:
    """Returns (pdf_bytes, download filename)."""
    receipt = build_receipt(sale_id, today=today)
    styles = _styles()
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=f"Resumo de venda #{receipt['sale_id']}",
    )

    method = receipt["payment_label"] + (" (À VISTA)" if receipt["is_upfront"] else "")
    content = [
        Paragraph(receipt["business_name"] or "", styles['BusinessName']),
        Paragraph("RESUMO DE VENDA", styles['ReceiptTitle']),
        _table(
            [
                ["Cliente", "Data", "Pagamento", "Total"],
                [receipt["client_name"], receipt["sold_on"], method, format_brl(receipt["total_cents"])],
            ],
            [60 * mm, 30 * mm, 50 * mm, 34 * mm],
        ),
    ]

    if receipt["items"]:
        content.append(Paragraph("ITENS", styles['SectionHeader']))
        item_rows = [["Produto", "Qtd", "Unitário", "Subtotal"]]
        for item in receipt["items"]:
            item_rows.append([
                item["description"],
                str(item["quantity"]),
                format_brl(item["unit_price_cents"]),
                format_brl(item["line_total_cents"]),
            ])
        content.append(_table(item_rows, [84 * mm, 16 * mm, 37 * mm, 37 * mm]))

    content.append(Paragraph(f"PARCELAS ({len(receipt['installments'])}x)", styles['SectionHeader']))
    inst_rows = [["Parcela", "Valor", "Vencimento", "Pagamento", "Status"]]
    for inst in receipt["installments"]:
        inst_rows.append([
            inst["label"],
            format_brl(inst["amount_cents"]),
            inst["due_date"],
            inst["paid_date"] or "-",
            inst["status"],
        ])
    content.append(_table(inst_rows, [34 * mm, 34 * mm, 34 * mm, 34 * mm, 38 * mm]))

    content.append(Spacer(1, 8 * mm))
    content.append(_table(
        [
            ["Total pago", "Total pendente"],
            [format_brl(receipt["total_paid_cents"]), format_brl(receipt["total_pending_cents"])],
        ],
        [87 * mm, 87 * mm],
    ))
    content.append(Spacer(1, 10 * mm))
    content.append(Paragraph(
        "Este documento é apenas um resumo da venda para controle interno",
        styles['Footer'],
    ))

    doc.build(content)
    return buffer.getvalue(), receipt_filename(receipt)
