# pdf_generator.py
# PDF export of NICU treatment plans (actions, progress, amendment history) using reportlab

from io import BytesIO
from datetime import datetime
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.enums import TA_LEFT, TA_CENTER

from core import config
from core.models import Bilingual, Patient, TreatmentPlan, parse_iso
from core.treatment_plan import progress

LABELS = {
    "en": {
        "title": "NICU TREATMENT PLAN",
        "patient": "PATIENT",
        "name": "Patient Name:",
        "birth_date": "Birth Date:",
        "ga": "Gestational Age:",
        "weight": "Birth Weight:",
        "plan": "PLAN",
        "category": "Category:",
        "status": "Status:",
        "created": "Created:",
        "created_by": "Created By:",
        "summary": "Summary",
        "rationale": "Rationale",
        "outcome": "Outcome",
        "on_hold": "ON HOLD",
        "actions": "ACTIONS",
        "progress": "Progress",
        "action_cols": ["#", "Action", "Dosage", "Timing", "Status"],
        "done": "Done",
        "pending": "Pending",
        "removed": "Removed",
        "amendments": "AMENDMENT HISTORY",
        "amendment_cols": ["When", "Type", "Change", "Reason", "By"],
        "no_amendments": "No amendments recorded.",
        "no_actions": "No actions in this plan.",
        "footer": "CONFIDENTIAL MEDICAL INFORMATION",
    },
    "es": {
        "title": "PLAN DE TRATAMIENTO UCIN",
        "patient": "PACIENTE",
        "name": "Nombre:",
        "birth_date": "Fecha de Nacimiento:",
        "ga": "Edad Gestacional:",
        "weight": "Peso al Nacer:",
        "plan": "PLAN",
        "category": "Categoría:",
        "status": "Estado:",
        "created": "Creado:",
        "created_by": "Creado Por:",
        "summary": "Resumen",
        "rationale": "Justificación",
        "outcome": "Resultado",
        "on_hold": "EN PAUSA",
        "actions": "ACCIONES",
        "progress": "Progreso",
        "action_cols": ["#", "Acción", "Dosis", "Horario", "Estado"],
        "done": "Hecho",
        "pending": "Pendiente",
        "removed": "Eliminada",
        "amendments": "HISTORIAL DE ENMIENDAS",
        "amendment_cols": ["Cuándo", "Tipo", "Cambio", "Razón", "Por"],
        "no_amendments": "No hay enmiendas registradas.",
        "no_actions": "No hay acciones en este plan.",
        "footer": "INFORMACIÓN MÉDICA CONFIDENCIAL",
    },
}


class TreatmentPlanPDFGenerator:
    """Generates PDF documents for treatment plans"""

    def __init__(self):
        # Page dimensions
        self.page_width, self.page_height = letter
        self.margin = 0.75 * inch

        # Colors
        self.header_color = colors.HexColor(config.PDF_HEADER_COLOR)
        self.light_gray = colors.HexColor("#F0F0F0")
        self.hold_color = colors.HexColor("#B35900")

        self.styles = getSampleStyleSheet()

        self.title_style = ParagraphStyle(
            'PlanTitle',
            parent=self.styles['Heading1'],
            fontName="Helvetica-Bold",
            fontSize=16,
            textColor=self.header_color,
            alignment=TA_CENTER,
            spaceAfter=12
        )
        self.section_style = ParagraphStyle(
            'PlanSection',
            parent=self.styles['Heading2'],
            fontName="Helvetica-Bold",
            fontSize=13,
            textColor=self.header_color,
            spaceAfter=6,
            spaceBefore=12
        )
        self.body_style = ParagraphStyle(
            'PlanBody',
            parent=self.styles['BodyText'],
            fontName="Helvetica",
            fontSize=10,
            alignment=TA_LEFT,
            leading=13
        )
        self.cell_style = ParagraphStyle(
            'PlanCell',
            parent=self.body_style,
            fontSize=8.5,
            leading=10.5
        )

    def generate_plan_pdf(self, plan: TreatmentPlan, patient: Optional[Patient] = None,
                          language: str = "en") -> bytes:
        """
        Render a treatment plan as PDF.

        Returns:
            PDF file as bytes
        """
        labels = LABELS.get(language, LABELS["en"])
        buffer = BytesIO()

        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin + 0.5*inch,  # Extra space for header
            bottomMargin=self.margin + 0.3*inch  # Extra space for footer
        )

        story = [Paragraph(self._text(plan.title, language), self.title_style)]

        if patient is not None:
            story.extend(self._patient_section(patient, labels))
        story.extend(self._plan_section(plan, labels, language))
        story.extend(self._actions_section(plan, labels, language))
        story.extend(self._amendments_section(plan, labels, language))

        def header_footer(canvas, doc_):
            self._add_header_footer(canvas, doc_, labels)

        doc.build(story, onFirstPage=header_footer, onLaterPages=header_footer)

        pdf_bytes = buffer.getvalue()
        buffer.close()
        return pdf_bytes

    # ========================================
    # Sections
    # ========================================

    @staticmethod
    def _text(value: Optional[Bilingual], language: str) -> str:
        return escape(value.get(language)) if value else ""

    @staticmethod
    def _date(ts: Optional[str]) -> str:
        parsed = parse_iso(ts)
        return parsed.strftime("%Y-%m-%d %H:%M") if parsed else (ts or "")

    def _info_table(self, rows: list, col_widths: list) -> Table:
        table = Table(rows, colWidths=col_widths)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (0, -1), self.light_gray),
            ('BACKGROUND', (2, 0), (2, -1), self.light_gray),
            ('FONTNAME', (0, 0), (0, -1), "Helvetica-Bold"),
            ('FONTNAME', (2, 0), (2, -1), "Helvetica-Bold"),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('PADDING', (0, 0), (-1, -1), 5),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.gray),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ]))
        return table

    def _patient_section(self, patient: Patient, labels: dict) -> list:
        rows = [
            [labels["name"], patient.display_name, labels["birth_date"], patient.birth_date],
            [labels["ga"], f"{patient.gestational_age_weeks:g} wk", labels["weight"],
             f"{patient.birth_weight_grams:g} g"],
        ]
        return [
            Paragraph(labels["patient"], self.section_style),
            self._info_table(rows, [1.4*inch, 2.2*inch, 1.5*inch, 1.9*inch]),
        ]

    def _plan_section(self, plan: TreatmentPlan, labels: dict, language: str) -> list:
        rows = [
            [labels["category"], plan.category.value, labels["status"], plan.status.value],
            [labels["created"], self._date(plan.occurred_at), labels["created_by"], plan.created_by],
        ]
        elements = [
            Paragraph(labels["plan"], self.section_style),
            self._info_table(rows, [1.4*inch, 2.2*inch, 1.5*inch, 1.9*inch]),
            Spacer(1, 0.1*inch),
        ]

        if plan.is_on_hold:
            hold_style = ParagraphStyle('Hold', parent=self.body_style, textColor=self.hold_color)
            reason = self._text(plan.hold_reason, language)
            elements.append(Paragraph(f"<b>{labels['on_hold']}</b> {reason}", hold_style))

        for key, value in (("summary", plan.summary), ("rationale", plan.rationale), ("outcome", plan.outcome)):
            if value:
                elements.append(Paragraph(f"<b>{labels[key]}:</b> {self._text(value, language)}", self.body_style))
                elements.append(Spacer(1, 0.05*inch))
        return elements

    def _actions_section(self, plan: TreatmentPlan, labels: dict, language: str) -> list:
        done = progress(plan)
        elements = [
            Paragraph(labels["actions"], self.section_style),
            Paragraph(f"{labels['progress']}: {done * 100:.0f}%", self.body_style),
            Spacer(1, 0.05*inch),
        ]
        if not plan.actions:
            elements.append(Paragraph(f"<i>{labels['no_actions']}</i>", self.body_style))
            return elements

        rows: List[list] = [labels["action_cols"]]
        removed_rows = []
        for i, action in enumerate(plan.actions, start=1):
            if action.is_removed:
                status = labels["removed"]
                removed_rows.append(i)
            elif action.completed:
                status = f"{labels['done']} ({action.completed_by or ''})"
            else:
                status = labels["pending"]
            rows.append([
                str(i),
                Paragraph(self._text(action.description, language), self.cell_style),
                Paragraph(escape(action.dosage or ""), self.cell_style),
                Paragraph(escape(action.timing or ""), self.cell_style),
                status,
            ])

        table = Table(rows, colWidths=[0.3*inch, 3.4*inch, 1.2*inch, 1.0*inch, 1.1*inch], repeatRows=1)
        style = [
            ('BACKGROUND', (0, 0), (-1, 0), self.header_color),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), "Helvetica-Bold"),
            ('FONTSIZE', (0, 0), (-1, -1), 8.5),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.gray),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ]
        for row in removed_rows:
            style.append(('TEXTCOLOR', (0, row), (-1, row), colors.gray))
            style.append(('BACKGROUND', (0, row), (-1, row), self.light_gray))
        table.setStyle(TableStyle(style))
        elements.append(table)
        return elements

    def _amendments_section(self, plan: TreatmentPlan, labels: dict, language: str) -> list:
        elements = [Paragraph(labels["amendments"], self.section_style)]
        if not plan.amendments:
            elements.append(Paragraph(f"<i>{labels['no_amendments']}</i>", self.body_style))
            return elements

        rows: List[list] = [labels["amendment_cols"]]
        for amendment in plan.amendments:
            change = self._text(amendment.description, language)
            if amendment.previous_value or amendment.new_value:
                change += f"<br/><font size=7>{escape(amendment.previous_value or '')} -&gt; " \
                          f"{escape(amendment.new_value or '')}</font>"
            rows.append([
                self._date(amendment.occurred_at),
                amendment.type.value,
                Paragraph(change, self.cell_style),
                Paragraph(self._text(amendment.reason, language), self.cell_style),
                amendment.amended_by,
            ])

        table = Table(rows, colWidths=[1.1*inch, 1.0*inch, 2.5*inch, 1.6*inch, 0.8*inch], repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), self.header_color),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), "Helvetica-Bold"),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.gray),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ]))
        elements.append(table)
        return elements

    def _add_header_footer(self, canvas, doc, labels: dict):
        """Add header and footer to each page"""
        canvas.saveState()

        # Header
        canvas.setFont("Helvetica-Bold", 10)
        canvas.setFillColor(self.header_color)
        canvas.drawString(self.margin, self.page_height - 0.5*inch, f"{config.HOSPITAL_NAME} - {labels['title']}")

        canvas.setFont("Helvetica", 9)
        canvas.setFillColor(colors.gray)
        generation_date = datetime.now().strftime("%Y-%m-%d %H:%M")
        canvas.drawRightString(self.page_width - self.margin, self.page_height - 0.5*inch, generation_date)

        canvas.setStrokeColor(self.header_color)
        canvas.setLineWidth(1)
        canvas.line(self.margin, self.page_height - 0.6*inch, self.page_width - self.margin, self.page_height - 0.6*inch)

        # Footer
        canvas.setFont("Helvetica", 9)
        canvas.drawCentredString(self.page_width / 2, 0.5*inch, f"{doc.page}")
        canvas.drawRightString(self.page_width - self.margin, 0.5*inch, labels["footer"])

        canvas.restoreState()
