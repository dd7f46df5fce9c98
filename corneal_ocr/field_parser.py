"""
Field Parser Module
Rule-table extraction of corneal topography values from OCR text

Handles:
- Front/back surface section detection from headings
- Requested-field gating ("k", "axis, q", "all", ...)
- Label-anchored regex rules with sign handling for the posterior surface
- Whole-document fields (pachymetry, anterior chamber depth, pupil diameter)

Every requested field is always present in the output; unresolved values hold
the "-" sentinel so tables keep stable columns across documents.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

SENTINEL = '-'

VALUE = r'([0-9.]+)'
SIGNED_VALUE = r'(-?[0-9.]+)'


@dataclass(frozen=True)
class FieldRule:
    """
    One output field: ordered (pattern, capture group) alternatives.

    The first pattern that matches decides the value, even if its capture is
    empty.
    """

    key: str
    patterns: Tuple[Tuple[re.Pattern, int], ...]

    def extract(self, text: str) -> str:
        for pattern, group in self.patterns:
            match = pattern.search(text)
            if match:
                value = match.group(group)
                return value.strip() if value and value.strip() else SENTINEL
        return SENTINEL


@dataclass(frozen=True)
class AnchoredWindowRule(FieldRule):
    """
    Value separated from its label by a variable run of tokens.

    Finds the anchor, looks at a fixed-size window starting there, skips to
    the first separator inside the window and takes the first match after it.
    """

    anchor: re.Pattern = re.compile(r'Depth', re.IGNORECASE)
    window: int = 150
    separator: str = ':'

    def extract(self, text: str) -> str:
        anchor = self.anchor.search(text)
        if not anchor:
            return SENTINEL

        window = text[anchor.start():anchor.start() + self.window]
        colon = window.find(self.separator)
        if colon == -1:
            return SENTINEL

        return super().extract(window[colon + 1:])


@dataclass(frozen=True)
class FieldGroup:
    """
    Fields gated together by one set of request keywords.

    Surface groups run on the front and back sections with their own rules;
    document groups run once on the unsplit text.
    """

    name: str
    keywords: Tuple[str, ...]
    front_rules: Tuple[FieldRule, ...] = ()
    back_rules: Tuple[FieldRule, ...] = ()
    document_rules: Tuple[FieldRule, ...] = ()

    def is_requested(self, requested: Sequence[str]) -> bool:
        return any(kw in field for field in requested for kw in self.keywords)


def _rule(key: str, *patterns, flags: int = re.IGNORECASE) -> FieldRule:
    """Rule from regex strings; a (pattern, group) tuple overrides group 1."""
    compiled = []
    for pattern in patterns:
        if isinstance(pattern, tuple):
            pattern, group = pattern
        else:
            group = 1
        compiled.append((re.compile(pattern, flags), group))
    return FieldRule(key, tuple(compiled))


def _label_rule(key: str, signed: bool = False) -> FieldRule:
    return _rule(key, rf'{re.escape(key)}[:\s]+{SIGNED_VALUE if signed else VALUE}')


def _axis_rule() -> FieldRule:
    return FieldRule('Axis', (
        (re.compile(r'Axis[^\d]*(flat)?[:\s]*([0-9.]+)', re.IGNORECASE), 2),
        (re.compile(r'([0-9.]+)\s*°'), 1),
    ))


class FieldParser:
    """
    Extract topography fields from attributed OCR text.

    Strategy:
    1. Split into front/back sections by heading lines
    2. Resolve which field groups were requested
    3. Run each active group's rule table over its section
    """

    FRONT_HEADING = re.compile(r'Cornea\s*Front|^Front$', re.IGNORECASE)
    BACK_HEADING = re.compile(r'Cornea\s*Back|^Back$', re.IGNORECASE)

    # Request keywords that switch on every group
    ALL_KEYWORDS = ('all', 'tümü')

    # ============ RULE TABLE ============
    # Order here is the output column order.
    GROUPS: Tuple[FieldGroup, ...] = (
        FieldGroup(
            name='radius',
            keywords=('rh', 'radius'),
            front_rules=tuple(_label_rule(k) for k in ('Rh', 'Rv', 'Rm')),
            back_rules=tuple(_label_rule(k, signed=True) for k in ('Rh', 'Rv', 'Rm')),
        ),
        FieldGroup(
            name='keratometry',
            keywords=('k', 'keratometry'),
            front_rules=tuple(_label_rule(k) for k in ('K1', 'K2', 'Km')),
            back_rules=tuple(_label_rule(k, signed=True) for k in ('K1', 'K2', 'Km')),
        ),
        FieldGroup(
            name='axis',
            keywords=('axis', 'astig'),
            front_rules=(_axis_rule(), _label_rule('Astig')),
            back_rules=(_axis_rule(), _label_rule('Astig')),
        ),
        FieldGroup(
            name='q_value',
            keywords=('q',),
            front_rules=(_rule('Q-val', r'Q-val[^-\d]*([-0-9.]+)'),),
            back_rules=(_rule('Q-val', r'Q-val[^-\d]*([-0-9.]+)'),),
        ),
        FieldGroup(
            name='rper_rmin',
            keywords=('rper', 'rmin'),
            front_rules=(_label_rule('Rper'), _label_rule('Rmin')),
            back_rules=(_label_rule('Rper'), _label_rule('Rmin')),
        ),
        FieldGroup(
            name='pachymetry',
            keywords=('pachy',),
            document_rules=(
                _rule('Pachy_Center', r'Pupil Center[:\s]+[+]?([0-9.]+)'),
                _rule('Pachy_Apex', r'Pachy Apex[:\s]+([0-9.]+)'),
                # The printout puts a diamond glyph before the thinnest value
                _rule('Pachy_Thinnest', r'Thinnest Local[:\s]+[◇]?\s*([0-9.]+)'),
            ),
        ),
        FieldGroup(
            name='anterior_chamber',
            keywords=('ac', 'depth', 'pupil'),
            document_rules=(
                AnchoredWindowRule('AC_Depth', ((re.compile(r'([0-9]+\.[0-9]+)'), 1),)),
                _rule(
                    'Pupil_Dia',
                    r'Pupil\s+Dia[:\s.]+([0-9.]+)',
                    r'Pupil\s*Diameter[:\s]+([0-9.]+)',
                ),
            ),
        ),
    )

    def __init__(self, groups: Optional[Sequence[FieldGroup]] = None):
        self.groups = tuple(groups) if groups is not None else self.GROUPS

    def extract(self, text: str, requested_fields: Optional[str] = '') -> Dict[str, str]:
        """
        Extract the requested field groups.

        Args:
            text: Attributed OCR text, one fragment or line per row
            requested_fields: Comma-separated keywords; empty or "all" for everything

        Returns:
            Dict of field key -> value string, "-" where unresolved
        """
        text = text or ''
        front_text, back_text = self.split_sections(text)

        active = self.active_groups(requested_fields)
        logger.debug(f"Extracting groups {[g.name for g in active]} for '{requested_fields or ''}'")

        data: Dict[str, str] = {}

        for prefix, section, attr in (
            ('Front_', front_text, 'front_rules'),
            ('Back_', back_text, 'back_rules'),
        ):
            for group in active:
                for rule in getattr(group, attr):
                    data[prefix + rule.key] = rule.extract(section)

        for group in active:
            for rule in group.document_rules:
                data[rule.key] = rule.extract(text)

        resolved = sum(1 for v in data.values() if v != SENTINEL)
        logger.debug(f"Resolved {resolved}/{len(data)} fields")

        return data

    def split_sections(self, text: str) -> Tuple[str, str]:
        """
        Split text into (front, back) surface sections.

        - both headings, back after front: slice at the headings
        - one heading, or back not after front: split lines at the midpoint
        - no heading: both sections get the whole text
        """
        lines = self.split_lines(text)
        front_idx = self._find_line(lines, self.FRONT_HEADING)
        back_idx = self._find_line(lines, self.BACK_HEADING)

        logger.debug(
            f"Section split: {len(lines)} lines, front={front_idx}, back={back_idx}"
        )

        if front_idx is not None and back_idx is not None and back_idx > front_idx:
            return ' '.join(lines[front_idx:back_idx]), ' '.join(lines[back_idx:])

        if front_idx is not None or back_idx is not None:
            midpoint = len(lines) // 2
            return ' '.join(lines[:midpoint]), ' '.join(lines[midpoint:])

        return text, text

    @staticmethod
    def split_lines(text: str) -> List[str]:
        return [line.strip() for line in (text or '').split('\n') if line.strip()]

    @staticmethod
    def parse_requested_fields(requested_fields: Optional[str]) -> List[str]:
        if not requested_fields:
            return []
        return [f.strip().lower() for f in requested_fields.split(',') if f.strip()]

    def is_extract_all(self, requested: Sequence[str]) -> bool:
        return not requested or any(f in self.ALL_KEYWORDS for f in requested)

    def active_groups(self, requested_fields: Optional[str] = '') -> List[FieldGroup]:
        """Groups switched on by a request string, in table order."""
        requested = self.parse_requested_fields(requested_fields)
        if self.is_extract_all(requested):
            return list(self.groups)
        return [g for g in self.groups if g.is_requested(requested)]

    def field_keys(self, requested_fields: Optional[str] = '') -> List[str]:
        """Keys extract() would produce for this request, in output order."""
        active = self.active_groups(requested_fields)

        keys = []
        for prefix, attr in (('Front_', 'front_rules'), ('Back_', 'back_rules')):
            keys.extend(prefix + rule.key for g in active for rule in getattr(g, attr))
        keys.extend(rule.key for g in active for rule in g.document_rules)
        return keys

    @staticmethod
    def _find_line(lines: Sequence[str], pattern: re.Pattern) -> Optional[int]:
        for idx, line in enumerate(lines):
            if pattern.search(line):
                return idx
        return None
