import re

import pytest

from corneal_ocr.field_parser import SENTINEL, AnchoredWindowRule, FieldParser, _rule


PRINTOUT_TEXT = """Cornea Front
Rh: 7.79 mm
Rv: 7.62 mm
Rm: 7.70 mm
K1: 43.3 D
K2: 44.3 D
Km: 43.8 D
Axis (flat): 178.5°
Astig: 1.0 D
Q-val: -0.31
Rper: 7.85
Rmin: 7.52
Cornea Back
Rh: 6.45 mm
Rv: 6.20 mm
Rm: 6.32 mm
K1: -6.2 D
K2: -6.5 D
Km: -6.3 D
Axis (flat): 3.1°
Astig: 0.3 D
Q-val: -0.25
Rper: 6.40
Rmin: 5.98
Pachy: Pupil Center: +545
Pachy Apex: 547
Thinnest Local: ◇ 538
A.C. Depth(Int.): 3.22 mm
Pupil Dia: 2.92 mm
"""

ALL_KEYS = [
    'Front_Rh', 'Front_Rv', 'Front_Rm',
    'Front_K1', 'Front_K2', 'Front_Km',
    'Front_Axis', 'Front_Astig',
    'Front_Q-val',
    'Front_Rper', 'Front_Rmin',
    'Back_Rh', 'Back_Rv', 'Back_Rm',
    'Back_K1', 'Back_K2', 'Back_Km',
    'Back_Axis', 'Back_Astig',
    'Back_Q-val',
    'Back_Rper', 'Back_Rmin',
    'Pachy_Center', 'Pachy_Apex', 'Pachy_Thinnest',
    'AC_Depth', 'Pupil_Dia',
]


@pytest.fixture
def parser():
    return FieldParser()


def test_full_printout_extracts_every_field(parser):
    data = parser.extract(PRINTOUT_TEXT)

    assert list(data) == ALL_KEYS
    assert data == {
        'Front_Rh': '7.79', 'Front_Rv': '7.62', 'Front_Rm': '7.70',
        'Front_K1': '43.3', 'Front_K2': '44.3', 'Front_Km': '43.8',
        'Front_Axis': '178.5', 'Front_Astig': '1.0',
        'Front_Q-val': '-0.31',
        'Front_Rper': '7.85', 'Front_Rmin': '7.52',
        'Back_Rh': '6.45', 'Back_Rv': '6.20', 'Back_Rm': '6.32',
        'Back_K1': '-6.2', 'Back_K2': '-6.5', 'Back_Km': '-6.3',
        'Back_Axis': '3.1', 'Back_Astig': '0.3',
        'Back_Q-val': '-0.25',
        'Back_Rper': '6.40', 'Back_Rmin': '5.98',
        'Pachy_Center': '545', 'Pachy_Apex': '547', 'Pachy_Thinnest': '538',
        'AC_Depth': '3.22', 'Pupil_Dia': '2.92',
    }


def test_keratometry_filter_example(parser):
    text = "Cornea Front\nK1: 43.50\nK2: 44.20\nCornea Back\nK1: -6.10\nK2: -6.30"

    assert parser.extract(text, 'k') == {
        'Front_K1': '43.50',
        'Front_K2': '44.20',
        'Front_Km': '-',
        'Back_K1': '-6.10',
        'Back_K2': '-6.30',
        'Back_Km': '-',
    }


@pytest.mark.parametrize('requested', ['', 'all', 'ALL', 'tümü', ' , ', None, 'k, all'])
def test_extract_all_mode_populates_every_key(parser, requested):
    assert list(parser.extract(PRINTOUT_TEXT, requested)) == ALL_KEYS


@pytest.mark.parametrize('requested, expected', [
    ('axis', ['Front_Axis', 'Front_Astig', 'Back_Axis', 'Back_Astig']),
    ('astig', ['Front_Axis', 'Front_Astig', 'Back_Axis', 'Back_Astig']),
    ('Q', ['Front_Q-val', 'Back_Q-val']),
    ('rmin', ['Front_Rper', 'Front_Rmin', 'Back_Rper', 'Back_Rmin']),
    ('radius', ['Front_Rh', 'Front_Rv', 'Front_Rm', 'Back_Rh', 'Back_Rv', 'Back_Rm']),
    ('depth', ['AC_Depth', 'Pupil_Dia']),
    ('q, depth', ['Front_Q-val', 'Back_Q-val', 'AC_Depth', 'Pupil_Dia']),
])
def test_field_gating(parser, requested, expected):
    assert list(parser.extract(PRINTOUT_TEXT, requested)) == expected


def test_pachy_request_also_matches_anterior_chamber_keyword(parser):
    # "pachy" contains "ac", so both whole-document groups switch on
    keys = list(parser.extract(PRINTOUT_TEXT, 'pachy'))
    assert keys == ['Pachy_Center', 'Pachy_Apex', 'Pachy_Thinnest', 'AC_Depth', 'Pupil_Dia']


def test_gated_order_is_independent_of_request_order(parser):
    assert parser.extract(PRINTOUT_TEXT, 'depth, k') == {
        key: value
        for key, value in parser.extract(PRINTOUT_TEXT).items()
        if key in parser.field_keys('k,depth')
    }
    assert list(parser.extract(PRINTOUT_TEXT, 'depth, k')) == parser.field_keys('k,depth')


def test_unknown_request_yields_empty_map(parser):
    assert parser.extract(PRINTOUT_TEXT, 'zzz') == {}


def test_empty_text_keeps_every_key_as_sentinel(parser):
    data = parser.extract('')
    assert list(data) == ALL_KEYS
    assert set(data.values()) == {SENTINEL}


# ============ SECTION SPLIT ============

def test_split_on_both_headings(parser):
    front, back = parser.split_sections("Header\nCornea Front\nK1: 1\nCornea Back\nK1: 2\nFooter")
    assert front == 'Cornea Front K1: 1'
    assert back == 'Cornea Back K1: 2 Footer'


def test_bare_headings_are_recognised(parser):
    front, back = parser.split_sections("Front\nK1: 1\nBack\nK1: 2")
    assert front == 'Front K1: 1'
    assert back == 'Back K1: 2'


def test_single_heading_splits_at_midpoint(parser):
    text = "Cornea Front\nK1: 40.0\nK1: 41.0\nKm: 5"
    front, back = parser.split_sections(text)
    assert front == 'Cornea Front K1: 40.0'
    assert back == 'K1: 41.0 Km: 5'

    data = parser.extract(text, 'k')
    assert data['Front_K1'] == '40.0'
    assert data['Back_K1'] == '41.0'
    assert data['Back_Km'] == '5'
    assert data['Front_Km'] == SENTINEL


def test_back_before_front_falls_back_to_midpoint(parser):
    text = "Cornea Back\nK1: -6.0\nCornea Front\nK1: 43.0"
    front, back = parser.split_sections(text)
    assert front == 'Cornea Back K1: -6.0'
    assert back == 'Cornea Front K1: 43.0'

    data = parser.extract(text, 'k')
    # Front rules do not accept a sign, so the negative value is not taken
    assert data['Front_K1'] == SENTINEL
    assert data['Back_K1'] == '43.0'


def test_no_heading_gives_both_sections_the_whole_text(parser):
    text = "  K1: 42.0\n\nK2: 43.0  "
    assert parser.split_sections(text) == (text, text)

    data = parser.extract(text, 'k')
    assert data['Front_K1'] == data['Back_K1'] == '42.0'
    assert data['Front_K2'] == data['Back_K2'] == '43.0'


# ============ INDIVIDUAL RULES ============

def test_axis_falls_back_to_degree_value(parser):
    data = parser.extract("Cornea Front\n12.5°\nCornea Back\nAxis: 90", 'axis')
    assert data['Front_Axis'] == '12.5'
    assert data['Back_Axis'] == '90'


def test_back_radius_accepts_negative_sign(parser):
    data = parser.extract("Cornea Front\nRh: 7.7\nCornea Back\nRh: -6.4", 'rh')
    assert data['Front_Rh'] == '7.7'
    assert data['Back_Rh'] == '-6.4'


@pytest.mark.parametrize('text, expected', [
    ('Nothing relevant here', SENTINEL),
    ('A.C. Depth(Int.): 3.22 mm', '3.22'),
    ('A.\nC.\nDepth\n(\nInt\n.\n)\n:\n3.22\nmm', '3.22'),
    ('Chamber depth: 2.81 mm', '2.81'),
    ('Depth: 3 mm', SENTINEL),
    ('Depth 3.22 mm', SENTINEL),
    ('Depth' + 'x' * 200 + ': 3.22', SENTINEL),
])
def test_ac_depth(parser, text, expected):
    assert parser.extract(text, 'depth')['AC_Depth'] == expected


@pytest.mark.parametrize('text, expected', [
    ('Pupil Dia: 2.92 mm', '2.92'),
    ('Pupil Dia. 3.05', '3.05'),
    ('PupilDiameter: 3.10', '3.10'),
    ('Pupil size unknown', SENTINEL),
])
def test_pupil_diameter(parser, text, expected):
    assert parser.extract(text, 'pupil')['Pupil_Dia'] == expected


def test_thinnest_without_marker_glyph(parser):
    assert parser.extract('Thinnest Local: 512', 'pachy')['Pachy_Thinnest'] == '512'


def test_empty_capture_is_sentinel():
    rule = _rule('X', r'X:(\d*)')
    assert rule.extract('X: 5') == SENTINEL


def test_anchored_window_rule_with_custom_anchor():
    rule = AnchoredWindowRule(
        'IOP',
        patterns=((re.compile(r'(\d+)'), 1),),
        anchor=re.compile(r'IOP'),
        window=20,
    )
    assert rule.extract('Enter IOP (mmHg): 15') == '15'
    assert rule.extract('IOP' + ' ' * 30 + ': 15') == SENTINEL


def test_rule_table_is_exposed():
    names = [group.name for group in FieldParser.GROUPS]
    assert names == [
        'radius', 'keratometry', 'axis', 'q_value', 'rper_rmin', 'pachymetry', 'anterior_chamber',
    ]
    assert FieldParser().field_keys('') == ALL_KEYS
