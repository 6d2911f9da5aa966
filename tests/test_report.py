"""Control plan report tests"""

import io
import unittest
from datetime import datetime

from openpyxl import load_workbook

from base import TrackingTestCase
from trackbat import engine
from trackbat.errors import NotFound
from trackbat.report import HEADERS, TITLE, build_report, render_workbook, safe_name


class TestReport(TrackingTestCase):

    def setUp(self):
        super().setUp()
        self.process = self.make_process('HV Test', checklist_required=True)
        self.template = self.make_template('HV Checklist', [
            ('Kablo bağlantısı kontrol edildi mi?', True),
            ('Görsel kontrolde çizik var mı?', True),
            ('Sızdırmazlık basıncı (bar)', True, 'NUMBER'),
            ('Etiket okunaklı mı?', True),
        ])
        self.unit = engine.create_unit(self.principal(self.operator), 'BB/2024 #7', selections=[
            {'process_id': self.process.id, 'template_id': self.template.id}])
        q = self.template.questions
        engine.submit_answers(self.principal(self.operator), self.unit.id, self.process.id, [
            {'question_id': q[0].id, 'value': 'Evet'},
            {'question_id': q[1].id, 'value': 'Hayır'},
            {'question_id': q[2].id, 'value': 2.5},
        ])
        self.now = datetime(2024, 5, 17, 10, 30)

    def test_build_report_rows(self):
        report = build_report(self.unit.id, self.process.id, company='ACME', now=self.now)
        self.assertEqual(report.serial, 'BB/2024 #7')
        self.assertEqual(report.process_name, 'HV Test')
        self.assertEqual(report.status_label, 'IN PROGRESS')
        self.assertEqual([r.number for r in report.rows], [1, 2, 3, 4])
        self.assertEqual([r.control for r in report.rows],
                         ['ELECTRICAL_INSPECTION', 'VISUAL_INSPECTION', 'TEST_INSPECTION', 'PRODUCT_CODE_INSPECTION'])
        self.assertEqual([(r.result, r.result_kind) for r in report.rows],
                         [('ACCEPT', 'pass'), ('REJECT', 'fail'), ('2.5', 'value'), ('-', 'none')])
        self.assertEqual(report.rows[0].criterion, 'Yes/No confirmation required')
        self.assertEqual(report.rows[2].criterion, 'Must conform to specification')
        self.assertTrue(report.rows[0].notes.startswith('Operator - '))
        self.assertEqual(report.rows[3].notes, '')

    def test_filename_is_sanitized(self):
        report = build_report(self.unit.id, self.process.id, company='ACME', now=self.now)
        self.assertEqual(report.filename, 'ACME_BB_2024__7_HV_Test_Control_Plan.xlsx')
        self.assertEqual(safe_name('a b/c'), 'a_b_c')

    def test_build_report_does_not_mutate(self):
        build_report(self.unit.id, self.process.id)
        instance = engine.get_instance(self.unit.id, self.process.id)
        self.assertEqual(instance.status, 'IN_PROGRESS')
        self.assertEqual(len(instance.answers), 3)

    def test_missing_instance(self):
        with self.assertRaises(NotFound):
            build_report(self.unit.id, 999)

    def test_workbook_layout(self):
        report = build_report(self.unit.id, self.process.id, company='ACME', now=self.now)
        wb = load_workbook(io.BytesIO(render_workbook(report)))
        ws = wb.active
        self.assertEqual(ws.title, 'Control Plan')
        self.assertEqual(ws['A1'].value, 'ACME')
        self.assertEqual(ws['C1'].value, TITLE)
        self.assertEqual(ws['G1'].value, 'Date: 2024-05-17')
        self.assertEqual(ws['B4'].value, 'BB/2024 #7')
        self.assertEqual(ws['D4'].value, 'HV Test')
        self.assertEqual(ws['F4'].value, 'IN PROGRESS')
        self.assertEqual([ws.cell(row=5, column=c).value for c in range(1, 9)], HEADERS)

        self.assertEqual(ws['C6'].value, 'Kablo bağlantısı kontrol edildi mi?')
        self.assertEqual([ws[f'G{r}'].value for r in range(6, 10)], ['ACCEPT', 'REJECT', '2.5', '-'])
        self.assertEqual(ws['G6'].fill.fgColor.rgb, 'FFC6EFCE')
        self.assertEqual(ws['G7'].fill.fgColor.rgb, 'FFFFC7CE')
        self.assertTrue(ws['G7'].font.bold)

        self.assertEqual([ws[f'A{r}'].value for r in (11, 12, 13)], ['PREPARED BY', 'CHECKED BY', 'APPROVED BY'])
        self.assertEqual(ws['C12'].value, 'SHIFT SUPERVISOR')
        self.assertEqual(ws['F13'].value, 'SIGNATURE:')
        self.assertEqual(ws.page_setup.orientation, 'landscape')

    def test_instance_without_template(self):
        packaging = self.make_process('Packaging')
        unit = engine.create_unit(self.principal(self.operator), 'BB-9', selections=[{'process_id': packaging.id}])
        report = build_report(unit.id, packaging.id)
        self.assertEqual(report.rows, [])
        self.assertEqual(report.status_label, 'COMPLETED')
        self.assertTrue(render_workbook(report).startswith(b'PK'))


if __name__ == '__main__':
    unittest.main()
