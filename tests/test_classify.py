"""Defect keyword classification tests"""

import unittest

from trackbat.classify import (
    classify_category, classify_severity, is_affirmative_answer, is_negative_answer,
)


class TestCategory(unittest.TestCase):

    def test_electrical_terms(self):
        self.assertEqual(classify_category('Kablo bağlantısı kontrol edildi mi?'),
                         ('ELECTRICAL_INSPECTION', 'Electrical System'))

    def test_each_bucket(self):
        cases = {
            'Görsel kontrolde çizik var mı?': 'VISUAL_INSPECTION',
            'Civata tork değerleri uygun mu?': 'ASSEMBLY_INSPECTION',
            'Yüksek gerilim izolasyon testi yapıldı mı?': 'TEST_INSPECTION',
            'Etiket doğru yapıştırıldı mı?': 'PRODUCT_CODE_INSPECTION',
            'Soğutma plakası yerinde mi?': 'THERMAL_INSPECTION',
            'BMS yazılım versiyonu doğru mu?': 'BMS_INSPECTION',
            'Modül yerleşimi doğru mu?': 'MODULE_INSPECTION',
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(classify_category(text)[0], expected)

    def test_first_match_wins(self):
        # montaj (assembly) is checked before elektrik/bağlantı (electrical)
        self.assertEqual(classify_category('Elektrik bağlantısı montaj sonrası kontrol edildi mi?')[0],
                         'ASSEMBLY_INSPECTION')
        # voltaj (electrical) is checked before hücre (module)
        self.assertEqual(classify_category('Hücre voltajları dengeli mi?')[0], 'ELECTRICAL_INSPECTION')

    def test_default(self):
        self.assertEqual(classify_category('Ambalaj tamam mı?'), ('GENERAL_INSPECTION', None))
        self.assertEqual(classify_category(''), ('GENERAL_INSPECTION', None))
        self.assertEqual(classify_category(None), ('GENERAL_INSPECTION', None))

    def test_case_insensitive(self):
        self.assertEqual(classify_category('KABLO SAĞLAM MI?')[0], 'ELECTRICAL_INSPECTION')


class TestSeverity(unittest.TestCase):

    def test_levels(self):
        cases = {
            'Yüksek gerilim izolasyon testi yapıldı mı?': 'CRITICAL',
            'Yangın söndürücü hazır mı?': 'CRITICAL',
            'Sızdırmazlık testi başarılı mı?': 'HIGH',
            'BMS yazılım versiyonu doğru mu?': 'HIGH',
            'Kablo bağlantısı kontrol edildi mi?': 'MEDIUM',
            'Civata tork değerleri uygun mu?': 'MEDIUM',
            'Etiket doğru yapıştırıldı mı?': 'LOW',
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(classify_severity(text), expected)

    def test_first_match_wins(self):
        # elektrik (HIGH) is checked before montaj/bağlantı (MEDIUM)
        self.assertEqual(classify_severity('Elektrik bağlantısı montaj sonrası kontrol edildi mi?'), 'HIGH')
        self.assertEqual(classify_severity('Güvenlik kapağı ve elektrik bağlantısı tamam mı?'), 'CRITICAL')

    def test_pure_function(self):
        text = 'Hücre voltajları dengeli mi?'
        first = (classify_category(text), classify_severity(text))
        for _ in range(3):
            self.assertEqual((classify_category(text), classify_severity(text)), first)


class TestAnswerVocabulary(unittest.TestCase):

    def test_negative(self):
        for value in ['no', 'No', ' NO ', 'hayır', 'Hayır', 'HAYIR', 'hayir', 'false', 'False', 'red', 'reject']:
            with self.subTest(value=value):
                self.assertTrue(is_negative_answer(value))

    def test_not_negative(self):
        for value in ['yes', 'Evet', 'açık', 'N/A', '12.5', 'redundant', 'not ok', '', None]:
            with self.subTest(value=value):
                self.assertFalse(is_negative_answer(value))

    def test_affirmative(self):
        self.assertTrue(is_affirmative_answer(' Evet'))
        self.assertTrue(is_affirmative_answer('YES'))
        self.assertFalse(is_affirmative_answer('hayır'))


if __name__ == '__main__':
    unittest.main()
