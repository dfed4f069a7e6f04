"""Tests for kanban.projection.matchers — name normalization, stage patterns, pipeline kinds."""
from unittest.mock import patch

import pytest

from kanban.projection.matchers import (
    classify_pipeline,
    find_stage_by_pattern,
    is_foreign_phone,
    load_stage_patterns,
    matches_department_stage,
    matches_stage_pattern,
    normalize_stage_name,
    reset_stage_patterns,
    stage_key,
    tag_slug,
)


# ── Normalization ────────────────────────────────────────────────────────────

class TestNormalizeStageName:

    def test_strips_diacritics_and_case(self):
        assert normalize_stage_name('În Lucru') == 'in lucru'

    def test_collapses_whitespace(self):
        assert normalize_stage_name('  Colet   ajuns ') == 'colet ajuns'

    def test_empty_and_none(self):
        assert normalize_stage_name(None) == ''
        assert normalize_stage_name('') == ''

    def test_tag_slug_drops_separators(self):
        assert tag_slug('Nu răspunde') == 'nuraspunde'
        assert tag_slug('nu-raspunde') == 'nuraspunde'


# ── Stage patterns ───────────────────────────────────────────────────────────

class TestMatchesStagePattern:
    """Substring match of normalized stage names against the pattern table."""

    @pytest.mark.parametrize('name,key', [
        ('Colet ajuns', 'PACKAGE_ARRIVED'),
        ('Colet neridicat', 'PACKAGE_UNCLAIMED'),
        ('Finalizare', 'FINALIZED'),
        ('În așteptare', 'WAITING'),
        ('Asteptare piese', 'WAITING_PARTS'),
        ('De facturat', 'TO_INVOICE'),
        ('Arhivat', 'ARCHIVED'),
        ('Call back', 'CALLBACK'),
        ('Avem comanda', 'HAS_ORDER'),
        ('Validare Saloane', 'VALIDATION'),
    ])
    def test_known_names(self, name, key):
        assert matches_stage_pattern(name, key) is True

    def test_non_matching(self):
        assert matches_stage_pattern('In lucru', 'FINALIZED') is False

    def test_empty_name_never_matches(self):
        assert matches_stage_pattern('', 'NEW') is False
        assert matches_stage_pattern(None, 'NEW') is False

    def test_unknown_key_raises(self):
        with pytest.raises(KeyError):
            matches_stage_pattern('Noua', 'NOT_A_KEY')

    def test_find_stage_returns_first_in_order(self):
        stages = [{'id': 's1', 'name': 'Noua'}, {'id': 's2', 'name': 'Arhivat'}, {'id': 's3', 'name': 'Arhiva veche'}]
        assert find_stage_by_pattern(stages, 'ARCHIVED')['id'] == 's2'
        assert find_stage_by_pattern(stages, 'TO_INVOICE') is None

    def test_stage_key_first_match(self):
        assert stage_key('Colet ajuns', ['TO_INVOICE', 'PACKAGE_ARRIVED']) == 'PACKAGE_ARRIVED'
        assert stage_key('Noua', ['TO_INVOICE']) is None


class TestLoadStagePatterns:
    """YAML table with hardcoded fallback and module-level cache."""

    def test_bundled_yaml_loads(self):
        patterns = load_stage_patterns()
        assert 'arhiv' in patterns['ARCHIVED']

    def test_cached_between_calls(self):
        assert load_stage_patterns() is load_stage_patterns()

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        with patch('kanban.projection.matchers.STAGE_PATTERNS_PATH', str(tmp_path / 'nope.yaml')):
            reset_stage_patterns()
            patterns = load_stage_patterns()
        assert 'in lucru' in patterns['IN_PROGRESS']

    def test_malformed_yaml_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text('patterns: [1, 2')
        with patch('kanban.projection.matchers.STAGE_PATTERNS_PATH', str(path)):
            reset_stage_patterns()
            assert matches_stage_pattern('Noua', 'NEW') is True

    def test_file_overrides_merge_with_defaults(self, tmp_path):
        path = tmp_path / 'custom.yaml'
        path.write_text("version: 9\npatterns:\n  NEW: ['Intrare']\n")
        with patch('kanban.projection.matchers.STAGE_PATTERNS_PATH', str(path)):
            reset_stage_patterns()
            assert matches_stage_pattern('Intrare client', 'NEW') is True
            assert matches_stage_pattern('Noua', 'NEW') is False
            assert matches_stage_pattern('In lucru', 'IN_PROGRESS') is True


# ── Pipeline classification ──────────────────────────────────────────────────

class TestClassifyPipeline:

    def test_quality(self):
        info = classify_pipeline({'id': 'p', 'name': 'Quality Check'})
        assert info.is_quality and not info.is_department

    def test_front_desk(self):
        assert classify_pipeline({'id': 'p', 'name': 'Recepție'}).is_front_desk

    def test_courier(self):
        assert classify_pipeline({'id': 'p', 'name': 'Curier'}).is_courier

    def test_sales(self):
        info = classify_pipeline({'id': 'p', 'name': 'Vanzari'})
        assert info.is_sales
        assert not (info.is_quality or info.is_front_desk or info.is_courier or info.is_department)

    @pytest.mark.parametrize('name', ['Saloane', 'Horeca', 'Frizerii', 'Reparatii', 'Saloane Cluj'])
    def test_departments(self, name):
        assert classify_pipeline({'id': 'p', 'name': name}).is_department

    def test_unrecognised_is_plain(self):
        info = classify_pipeline({'id': 'p', 'name': 'Marketing'})
        assert not any([info.is_quality, info.is_front_desk, info.is_courier, info.is_department, info.is_sales])


# ── Department ↔ stage ───────────────────────────────────────────────────────

class TestMatchesDepartmentStage:

    def test_exact(self):
        assert matches_department_stage('Saloane', 'saloane')

    def test_containment(self):
        assert matches_department_stage('Saloane', 'Validare Saloane')

    def test_shared_long_word(self):
        assert matches_department_stage('Reparatii Telefoane', 'Telefoane service')

    def test_spelling_variant(self):
        assert matches_department_stage('Frizerii', 'QC Frizerie')

    def test_unrelated(self):
        assert not matches_department_stage('Saloane', 'Validare Reparatii')
        assert not matches_department_stage('Saloane', 'De validat')

    def test_empty(self):
        assert not matches_department_stage('', 'Saloane')
        assert not matches_department_stage('Saloane', None)


# ── Phones ───────────────────────────────────────────────────────────────────

class TestIsForeignPhone:

    @pytest.mark.parametrize('phone', ['+49 151 0000000', '+33 6 12 34 56 78', '1 202 555 0100'])
    def test_foreign(self, phone):
        assert is_foreign_phone(phone) is True

    @pytest.mark.parametrize('phone', ['0722 000 111', '+40722000111', '40722000111'])
    def test_home(self, phone):
        assert is_foreign_phone(phone) is False

    @pytest.mark.parametrize('phone', [None, '', '   '])
    def test_empty_is_not_foreign(self, phone):
        assert is_foreign_phone(phone) is False
