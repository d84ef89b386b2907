"""Generate printable registration receipt PDFs."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from .config import ClinicInfo
from .formatting import format_currency_uzs, format_uz_phone_display
from .models import Doctor, Patient, RegistrationDraft, Service

PAYMENT_LABELS = {"cash": "Cash", "card": "Card", "debt": "Debt"}


class ReceiptPDFGenerator:
    """Lay out a registration draft into a one-page receipt."""

    def __init__(self, output_dir: Path, currency: str = "UZS") -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.currency = currency

    def generate(
        self,
        clinic: ClinicInfo,
        patient: Patient,
        draft: RegistrationDraft,
        services: Mapping[str, Service],
        doctors: Mapping[str, Doctor],
        payment_method: Optional[str] = None,
        logo_path: Optional[Path] = None,
    ) -> Path:
        output_path = self.output_dir / self._build_filename(patient, draft)

        pdf = canvas.Canvas(str(output_path), pagesize=A4)
        width, height = A4
        margin = 18 * mm
        content_top = height - margin

        header_bottom = self._draw_header(pdf, clinic, logo_path, margin, content_top)
        current_y = header_bottom - 14
        self._draw_title(pdf, "Registration Receipt", width / 2, current_y)
        current_y -= 18
        pdf.line(margin, current_y, width - margin, current_y)
        current_y -= 20

        current_y = self._draw_patient_block(pdf, patient, draft, margin, width - margin, current_y)
        current_y -= 22

        current_y = self._draw_items_table(pdf, draft, services, doctors, margin, width - margin, current_y)
        current_y -= 24

        method = payment_method or draft.payment_method or "cash"
        self._draw_totals(pdf, draft, method, margin, width - margin, current_y)

        pdf.showPage()
        pdf.save()
        return output_path

    # ------------------------------------------------------------------

    def _build_filename(self, patient: Patient, draft: RegistrationDraft) -> str:
        patient_slug = self._slugify(patient.short_name or patient.id) or "patient"
        draft_slug = self._slugify(draft.id) or "registration"
        date_label = draft.created_at.strftime("%Y%m%d")
        return f"receipt_{patient_slug}_{draft_slug}_{date_label}.pdf"

    @staticmethod
    def _slugify(text: str) -> str:
        cleaned = re.sub(r"[^A-Za-z0-9]+", "_", text.strip())
        return cleaned.strip("_")[:80]

    def _draw_header(
        self,
        pdf: canvas.Canvas,
        clinic: ClinicInfo,
        logo_path: Optional[Path],
        left: float,
        top: float,
    ) -> float:
        text_x = left

        if logo_path and Path(logo_path).exists():
            image = ImageReader(str(logo_path))
            img_w, img_h = image.getSize()
            scale = min(52 * mm / img_w, 30 * mm / img_h, 1.0)
            draw_w = img_w * scale
            draw_h = img_h * scale
            pdf.drawImage(
                image,
                left,
                top - draw_h,
                width=draw_w,
                height=draw_h,
                mask='auto',
                preserveAspectRatio=True,
            )
            text_x += draw_w + 10

        text = pdf.beginText()
        text.setTextOrigin(text_x, top - 6)
        text.setFont("Helvetica-Bold", 14)
        text.textLine(clinic.name.strip() or "Clinic")
        text.setFont("Helvetica", 10)
        max_text_width = max(10.0, A4[0] - text_x - left)
        for raw_line in self._split_lines(clinic.address):
            for wrapped_line in self._wrap_text(raw_line, max_text_width, "Helvetica", 10):
                text.textLine(wrapped_line)
        if clinic.phone:
            text.textLine(f"Phone: {clinic.phone}")
        pdf.drawText(text)
        return text.getY()

    def _draw_title(self, pdf: canvas.Canvas, title: str, x: float, y: float) -> None:
        pdf.setFont("Helvetica-Bold", 18)
        pdf.drawCentredString(x, y, title)

    def _draw_patient_block(
        self,
        pdf: canvas.Canvas,
        patient: Patient,
        draft: RegistrationDraft,
        left: float,
        right: float,
        top: float,
    ) -> float:
        column_gap = 14
        column_width = (right - left - column_gap) / 2

        patient_text = pdf.beginText()
        patient_text.setTextOrigin(left, top)
        patient_text.setFont("Helvetica-Bold", 11)
        patient_text.textLine("Patient")
        patient_text.setFont("Helvetica", 10)
        patient_text.textLine(patient.full_name or patient.id)
        if patient.birth_date:
            patient_text.textLine(f"Born: {patient.birth_date.strftime('%d.%m.%Y')}")
        if patient.phone:
            patient_text.textLine(f"Phone: {format_uz_phone_display(patient.phone)}")
        if patient.address:
            patient_text.textLine(f"Address: {patient.address}")
        pdf.drawText(patient_text)

        meta_text = pdf.beginText()
        meta_text.setTextOrigin(left + column_width + column_gap, top)
        meta_text.setFont("Helvetica", 10)
        meta_text.textLine(f"Registration No: {draft.id}")
        meta_text.textLine(f"Date: {draft.created_at.strftime('%d.%m.%Y %H:%M')}")
        if draft.card_number:
            meta_text.textLine(f"Card No: {draft.card_number}")
        if draft.insurance:
            meta_text.textLine("Insurance: yes")
        pdf.drawText(meta_text)

        return min(patient_text.getY(), meta_text.getY())

    def _draw_items_table(
        self,
        pdf: canvas.Canvas,
        draft: RegistrationDraft,
        services: Mapping[str, Service],
        doctors: Mapping[str, Doctor],
        left: float,
        right: float,
        top: float,
    ) -> float:
        width = right - left
        col_widths = [width * ratio for ratio in (0.48, 0.32, 0.20)]

        header_height = 18
        pdf.setFillColorRGB(0.9, 0.9, 0.9)
        pdf.rect(left, top - header_height, width, header_height, fill=1, stroke=0)
        pdf.setFillColorRGB(0, 0, 0)
        pdf.rect(left, top - header_height, width, header_height, fill=0, stroke=1)

        pdf.setFont("Helvetica-Bold", 10)
        pdf.drawString(left + 6, top - header_height + 5, "Service")
        pdf.drawString(left + col_widths[0] + 6, top - header_height + 5, "Doctor")
        pdf.drawRightString(right - 6, top - header_height + 5, "Price")

        current_y = top - header_height
        pdf.setFont("Helvetica", 9)
        for line in draft.services:
            service = services.get(line.service_id)
            doctor = doctors.get(line.doctor_id)
            name_lines = self._wrap_text(service.name if service else line.service_id, col_widths[0] - 10, "Helvetica", 9)
            doctor_lines = self._wrap_text(doctor.full_name if doctor else line.doctor_id, col_widths[1] - 10, "Helvetica", 9)
            row_height = 8 + max(len(name_lines), len(doctor_lines), 1) * 11
            current_y -= row_height
            pdf.rect(left, current_y, width, row_height, fill=0, stroke=1)

            text_y = current_y + row_height - 12
            for text_line in name_lines:
                pdf.drawString(left + 6, text_y, text_line)
                text_y -= 11
            text_y = current_y + row_height - 12
            for text_line in doctor_lines:
                pdf.drawString(left + col_widths[0] + 6, text_y, text_line)
                text_y -= 11

            pdf.drawRightString(right - 6, current_y + 6, self._fmt_currency(line.price))

        return current_y

    def _draw_totals(
        self,
        pdf: canvas.Canvas,
        draft: RegistrationDraft,
        payment_method: str,
        left: float,
        right: float,
        top: float,
    ) -> None:
        start_x = right - (right - left) * 0.42
        line_y = top

        summary_rows = [("Subtotal", draft.subtotal)]
        if draft.discount_amount > 0:
            summary_rows.append(("Discount", -draft.discount_amount))
        summary_rows.append(("Total", draft.total))

        for label, amount in summary_rows:
            pdf.setFont("Helvetica-Bold" if label == "Total" else "Helvetica", 11 if label == "Total" else 10)
            pdf.drawString(start_x, line_y, label)
            pdf.drawRightString(right, line_y, self._fmt_currency(amount))
            line_y -= 16

        line_y -= 6
        pdf.setFont("Helvetica-Bold", 11)
        pdf.drawString(left, line_y, "Payment Details")
        line_y -= 16
        pdf.setFont("Helvetica", 10)
        pdf.drawString(left, line_y, f"Method: {PAYMENT_LABELS.get(payment_method, payment_method)}")
        line_y -= 14
        label, amount = self._payment_line(draft, payment_method)
        pdf.drawString(left, line_y, label)
        pdf.drawRightString(right, line_y, self._fmt_currency(amount))

    @staticmethod
    def _payment_line(draft: RegistrationDraft, payment_method: str) -> Tuple[str, int]:
        paid = draft.paid_amount
        if payment_method == "debt":
            return "Amount owed", max(draft.total - (paid or 0), 0)
        return "Paid", draft.total if paid is None else paid

    # ------------------------------------------------------------------

    def _fmt_currency(self, value: int) -> str:
        return format_currency_uzs(value, self.currency)

    def _split_lines(self, text: str) -> Iterable[str]:
        if not text:
            return []
        lines = []
        for segment in text.replace('\r', '').split('\n'):
            cleaned = segment.strip()
            if cleaned:
                lines.append(cleaned)
        return lines

    def _wrap_text(self, text: str, max_width: float, font: str, size: int) -> List[str]:
        words = text.split()
        if not words:
            return [""]
        lines: List[str] = []
        current = words[0]
        for word in words[1:]:
            proposal = f"{current} {word}"
            if stringWidth(proposal, font, size) <= max_width:
                current = proposal
            else:
                lines.append(current)
                current = word
        lines.append(current)
        return lines
