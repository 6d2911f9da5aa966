"""Checklist control-plan export.

``build_report`` projects one process instance into a ``ChecklistReport``;
``render_workbook`` lays that model out as an .xlsx control plan.
"""
import io
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.page import PageMargins

from .classify import classify_category, is_affirmative_answer, is_negative_answer
from .engine import get_instance

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

TITLE = 'BATTERY BOX CONTROL PLAN'
HEADERS = ['NO', 'CONTROL', 'CONTROL DESCRIPTION', 'ACCEPTANCE CRITERION', 'EQUIPMENT', 'FREQUENCY',
           'RESULT', 'NOTES']
WIDTHS = [5, 24, 45, 40, 18, 15, 12, 25]
SIGNATURES = [('PREPARED BY', 'TECHNICIAN'), ('CHECKED BY', 'SHIFT SUPERVISOR'), ('APPROVED BY', 'ENGINEER')]
STATUS_LABELS = {'COMPLETED': 'COMPLETED', 'IN_PROGRESS': 'IN PROGRESS', 'PENDING': 'PENDING'}

BRAND_BLUE = 'FF0066B3'
LIGHT_GRAY = 'FFF2F2F2'
MEDIUM_GRAY = 'FFD9D9D9'
RESULT_STYLES = {
    'pass': ('FF008000', 'FFC6EFCE'),
    'fail': ('FFFF0000', 'FFFFC7CE'),
}

THIN = Side(style='thin')
BOX = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)


def format_dt(value, fmt='%Y-%m-%d %H:%M:%S'):
    if not value:
        return ''
    return value.strftime(fmt)


def safe_name(value):
    return re.sub(r'[^A-Za-z0-9_-]', '_', value)


@dataclass
class ReportRow:
    number: int
    control: str
    description: str
    criterion: str
    result: str
    result_kind: str  # pass, fail, value, none
    notes: str = ''
    equipment: str = 'VISUAL'
    frequency: str = 'EVERY SHIPMENT\nALL MATERIALS'

    def cells(self):
        return [self.number, self.control, self.description, self.criterion, self.equipment,
                self.frequency, self.result, self.notes]


@dataclass
class ChecklistReport:
    company: str
    serial: str
    process_name: str
    status: str
    generated_at: datetime
    template_name: Optional[str] = None
    rows: List[ReportRow] = field(default_factory=list)

    @property
    def status_label(self):
        return STATUS_LABELS.get(self.status, self.status)

    @property
    def filename(self):
        return f'{safe_name(self.company)}_{safe_name(self.serial)}_{safe_name(self.process_name)}_Control_Plan.xlsx'


def _result(answer):
    if answer is None or not answer.value.strip():
        return '-', 'none'
    if is_affirmative_answer(answer.value):
        return 'ACCEPT', 'pass'
    if is_negative_answer(answer.value):
        return 'REJECT', 'fail'
    return answer.value, 'value'


def build_report(unit_id, process_id, company='TrackBat', now=None):
    """Load the instance for (unit, process) and build its report model. No writes."""
    instance = get_instance(unit_id, process_id)
    report = ChecklistReport(
        company=company,
        serial=instance.unit.serial,
        process_name=instance.process.name,
        status=instance.status,
        generated_at=now or datetime.utcnow(),
        template_name=instance.template.name if instance.template else None,
    )
    if instance.template is None:
        return report
    answers = {a.question_id: a for a in instance.answers}
    for i, question in enumerate(instance.template.questions, start=1):
        answer = answers.get(question.id)
        result, kind = _result(answer)
        notes = ''
        if answer is not None and answer.answered_by is not None:
            notes = f'{answer.answered_by.name} - {format_dt(answer.answered_at, "%Y-%m-%d")}'
        report.rows.append(ReportRow(
            number=i,
            control=classify_category(question.text)[0],
            description=question.text,
            criterion='Yes/No confirmation required' if question.question_type == 'YES_NO'
            else 'Must conform to specification',
            result=result,
            result_kind=kind,
            notes=notes,
        ))
    return report


def _fill(argb):
    return PatternFill(fill_type='solid', fgColor=argb)


def _style(cell, size=9, bold=False, color=None, horizontal=None, wrap=False, border=BOX):
    cell.font = Font(size=size, bold=bold, color=color)
    cell.alignment = Alignment(horizontal=horizontal, vertical='center', wrap_text=wrap)
    if border is not None:
        cell.border = border


def render_workbook(report):
    """Render ``report`` to .xlsx bytes."""
    wb = Workbook()
    wb.properties.creator = f'{report.company} Manufacturing System'
    ws = wb.active
    ws.title = 'Control Plan'
    for i, width in enumerate(WIDTHS):
        ws.column_dimensions[get_column_letter(i + 1)].width = width

    # title block
    ws.merge_cells('A1:B3')
    ws['A1'] = report.company
    _style(ws['A1'], size=24, bold=True, color=BRAND_BLUE, horizontal='center')
    ws.merge_cells('C1:F3')
    ws['C1'] = TITLE
    _style(ws['C1'], size=18, bold=True, color=BRAND_BLUE, horizontal='center')
    ws.merge_cells('G1:H1')
    ws['G1'] = f'Date: {format_dt(report.generated_at, "%Y-%m-%d")}'
    _style(ws['G1'], size=10, horizontal='right', border=Border(top=THIN, right=THIN))
    ws.merge_cells('G2:H2')
    ws['G2'] = 'Page: 1'
    _style(ws['G2'], size=10, horizontal='right', border=Border(right=THIN))
    ws.merge_cells('G3:H3')
    ws['G3'].border = Border(bottom=THIN, right=THIN)

    info = ['SERIAL NO:', report.serial, 'PROCESS:', report.process_name, 'STATUS:', report.status_label]
    for col in range(1, 9):
        cell = ws.cell(row=4, column=col, value=info[col - 1] if col <= len(info) else None)
        is_label = col <= len(info) and col % 2 == 1
        _style(cell, bold=is_label, color=BRAND_BLUE if is_label else None)

    header_row = 5
    for col, header in enumerate(HEADERS, start=1):
        cell = ws.cell(row=header_row, column=col, value=header)
        _style(cell, size=10, bold=True, color=BRAND_BLUE, horizontal='center', wrap=True)
        cell.fill = _fill(MEDIUM_GRAY)
    ws.row_dimensions[header_row].height = 25

    row_index = header_row + 1
    for i, row in enumerate(report.rows):
        for col, value in enumerate(row.cells(), start=1):
            cell = ws.cell(row=row_index, column=col, value=value)
            _style(cell, size=8 if col in (6, 8) else 9, wrap=col in (2, 3, 4, 6, 8),
                   horizontal='center' if col in (1, 5, 6, 7) else None)
            if i % 2 == 1 and col != 7:
                cell.fill = _fill(LIGHT_GRAY)
        ws.cell(row=row_index, column=2).font = Font(size=9, color=BRAND_BLUE)
        result_cell = ws.cell(row=row_index, column=7)
        if row.result_kind in RESULT_STYLES:
            font_color, fill = RESULT_STYLES[row.result_kind]
            result_cell.font = Font(size=10, bold=True, color=font_color)
            result_cell.fill = _fill(fill)
        else:
            result_cell.font = Font(size=10)
        ws.row_dimensions[row_index].height = 30
        row_index += 1

    # signature footer
    row_index += 1
    for role, title in SIGNATURES:
        ws.merge_cells(f'A{row_index}:B{row_index}')
        ws.merge_cells(f'C{row_index}:E{row_index}')
        ws.merge_cells(f'F{row_index}:H{row_index}')
        for col in range(1, 9):
            ws.cell(row=row_index, column=col).border = BOX
        ws[f'A{row_index}'] = role
        _style(ws[f'A{row_index}'], size=10, bold=True, horizontal='center')
        ws[f'A{row_index}'].fill = _fill(MEDIUM_GRAY)
        ws[f'C{row_index}'] = title
        _style(ws[f'C{row_index}'], size=10, horizontal='center')
        ws[f'F{row_index}'] = 'SIGNATURE:'
        _style(ws[f'F{row_index}'], size=10, horizontal='right')
        row_index += 1

    ws.page_setup.orientation = 'landscape'
    ws.page_setup.fitToWidth = 1
    ws.page_setup.fitToHeight = 0
    ws.sheet_properties.pageSetUpPr.fitToPage = True
    ws.page_margins = PageMargins(left=0.25, right=0.25, top=0.5, bottom=0.5, header=0.3, footer=0.3)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
