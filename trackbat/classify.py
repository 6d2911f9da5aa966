"""Keyword classification of checklist questions into defect category and severity.

Both tables are checked top to bottom against the lower-cased question text and
the first rule with a matching keyword wins. Keyword sets overlap between the
two tables (``elektrik`` is an electrical category term and a HIGH severity
term), so the order of the rules is part of the contract.
"""

NEGATIVE_ANSWERS = frozenset(['no', 'hayır', 'hayir', 'false', 'red', 'reject'])
AFFIRMATIVE_ANSWERS = frozenset(['yes', 'evet', 'true'])

DEFAULT_CATEGORY = 'GENERAL_INSPECTION'
DEFAULT_SEVERITY = 'LOW'

# (keywords, category, subcategory)
CATEGORY_RULES = (
    (('görsel', 'çizik', 'darbe', 'çatlak', 'deformasyon'), 'VISUAL_INSPECTION', 'Surface Damage'),
    (('montaj', 'civata', 'vida', 'sıkma', 'tork'), 'ASSEMBLY_INSPECTION', 'Mechanical Fastening'),
    (('elektrik', 'voltaj', 'sensör', 'kablo', 'bağlantı'), 'ELECTRICAL_INSPECTION', 'Electrical System'),
    (('test', 'ölçüm', 'basınç', 'sızdırmazlık'), 'TEST_INSPECTION', 'Performance Test'),
    (('etiket', 'barkod', 'kod', 'seri'), 'PRODUCT_CODE_INSPECTION', 'Traceability'),
    (('soğutma', 'termal', 'sıcaklık'), 'THERMAL_INSPECTION', 'Cooling System'),
    (('bms', 'bmu', 'bcu'), 'BMS_INSPECTION', 'Battery Management'),
    (('modül', 'hücre', 'cell'), 'MODULE_INSPECTION', 'Battery Module'),
)

# (keywords, severity)
SEVERITY_RULES = (
    (('güvenlik', 'izolasyon', 'kısa devre', 'yangın'), 'CRITICAL'),
    (('elektrik', 'voltaj', 'bms', 'sızdırmazlık'), 'HIGH'),
    (('montaj', 'bağlantı', 'tork'), 'MEDIUM'),
)


def _matches(text, keywords):
    return any(k in text for k in keywords)


def classify_category(question_text):
    """Return ``(category, subcategory)`` for a question; subcategory is None for the default."""
    text = (question_text or '').lower()
    for keywords, category, subcategory in CATEGORY_RULES:
        if _matches(text, keywords):
            return category, subcategory
    return DEFAULT_CATEGORY, None


def classify_severity(question_text):
    text = (question_text or '').lower()
    for keywords, severity in SEVERITY_RULES:
        if _matches(text, keywords):
            return severity
    return DEFAULT_SEVERITY


def is_negative_answer(value):
    return str(value if value is not None else '').strip().lower() in NEGATIVE_ANSWERS


def is_affirmative_answer(value):
    return str(value if value is not None else '').strip().lower() in AFFIRMATIVE_ANSWERS
