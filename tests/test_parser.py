"""
Test Suite for the KPSS Bulletin Parser
=======================================
Unit tests for the models, vocabulary, classifier, parsers, merger and
validator.
"""

from __future__ import annotations

import json
import logging

import pytest
from pydantic import ValidationError

from kpss_parser.classifier import ClassificationRule, FileClassifier, fold_name
from kpss_parser.merger import RecordMerger
from kpss_parser.models import (
    UNCLASSIFIED,
    BulletinType,
    EducationLevel,
    MergePolicy,
    Position,
    Qualification,
    Snapshot,
    is_osym_code,
)
from kpss_parser.position_parser import (
    CODE_PAIR_PATTERN,
    DEFAULT_QUOTA,
    PositionParser,
    RejectReason,
)
from kpss_parser.qualification_parser import QualificationParser
from kpss_parser.validator import ValidationEngine
from kpss_parser.vocabulary import CITIES, DEFAULT_VOCABULARY, Vocabulary


def _position(osym_code="302010101", codes=("4419",), city="ANKARA", **overrides):
    data = dict(
        osym_code=osym_code,
        institution="ANKARA BELEDİYESİ",
        title="AVUKAT",
        city=city,
        qualification_codes=list(codes),
        education_level=EducationLevel.BACHELOR,
    )
    data.update(overrides)
    return Position(**data)


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestQualification:
    """Test Qualification model."""

    def test_record_uses_contract_keys(self):
        q = Qualification(
            code="3249",
            description="Bilgisayar Programcılığı",
            education_level=EducationLevel.ASSOCIATE,
        )
        assert q.to_record() == {
            "code": "3249",
            "description": "Bilgisayar Programcılığı",
            "educationLevel": "Önlisans",
        }

    def test_accepts_alias_input(self):
        q = Qualification.model_validate(
            {"code": "6225", "description": "Muhasebe", "educationLevel": "Lisans"}
        )
        assert q.education_level == EducationLevel.BACHELOR

    def test_rejects_empty_description(self):
        with pytest.raises(ValidationError):
            Qualification(code="6225", description="", education_level="Lisans")

    def test_rejects_non_numeric_code(self):
        with pytest.raises(ValidationError):
            Qualification(code="62A5", description="x", education_level="Lisans")

    def test_is_frozen(self):
        q = Qualification(code="6225", description="x", education_level="Lisans")
        with pytest.raises(ValidationError):
            q.code = "1111"

    def test_generic_codes(self):
        assert Qualification(code="4001", description="Herhangi", education_level="Lisans").is_generic
        assert not Qualification(code="4419", description="Hukuk", education_level="Lisans").is_generic


class TestPosition:
    """Test Position model."""

    def test_record_uses_contract_keys(self):
        record = _position().to_record()
        assert record == {
            "osymCode": "302010101",
            "institution": "ANKARA BELEDİYESİ",
            "title": "AVUKAT",
            "city": "ANKARA",
            "quota": 1,
            "qualificationCodes": ["4419"],
            "educationLevel": "Lisans",
        }

    def test_quota_defaults_to_one(self):
        assert _position().quota == 1

    def test_zero_quota_rejected(self):
        with pytest.raises(ValidationError):
            _position(quota=0)

    @pytest.mark.parametrize("code", ["12345678", "402010101", "3020101011", "30201010A"])
    def test_malformed_osym_code_rejected(self, code):
        with pytest.raises(ValidationError):
            _position(osym_code=code)

    def test_blank_city_rejected(self):
        with pytest.raises(ValidationError):
            _position(city="   ")

    def test_codes_deduplicated_in_order(self):
        p = _position(codes=("4419", "6225", "4419"))
        assert p.qualification_codes == ["4419", "6225"]

    def test_accepts_any_program(self):
        assert _position(codes=("4001",)).accepts_any_program
        assert not _position().accepts_any_program

    def test_is_osym_code(self):
        assert is_osym_code("302010101")
        assert is_osym_code("110010101")
        assert not is_osym_code("502010101")


class TestSnapshot:
    """Test Snapshot model."""

    def test_summary(self):
        snapshot = Snapshot(positions=[_position()])
        summary = snapshot.summary()
        assert summary["positions"] == 1
        assert summary["qualifications"] == 0
        assert summary["conflicts"] == 0

    def test_records(self):
        snapshot = Snapshot(
            qualifications=[Qualification(code="4419", description="Hukuk", education_level="Lisans")],
            positions=[_position()],
        )
        assert snapshot.qualification_records()[0]["educationLevel"] == "Lisans"
        assert snapshot.position_records()[0]["osymCode"] == "302010101"


# ═══════════════════════════════════════════════════════════════════════════════
# VOCABULARY TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestVocabulary:
    """Test the injectable vocabulary tables."""

    def test_all_provinces_present(self):
        assert len(CITIES) == 81
        assert len(set(CITIES)) == 81
        assert "ARDAHAN" in CITIES
        assert "İSTANBUL" in CITIES

    def test_decomposed_input_normalized(self):
        decomposed = "I\u0307STANBUL"
        assert DEFAULT_VOCABULARY.is_city(decomposed)

    def test_city_pattern_whole_word(self):
        pattern = DEFAULT_VOCABULARY.city_pattern
        assert pattern.search("ANKARALI") is None
        assert pattern.search("ANKARA 1").group(0) == "ANKARA"

    def test_longest_alternative_preferred(self):
        vocab = Vocabulary(cities=("KARA", "KARAMAN"))
        assert vocab.city_pattern.search("X KARAMAN Y").group(0) == "KARAMAN"

    def test_employment_patterns_keep_order(self):
        names = [et for et, _ in DEFAULT_VOCABULARY.employment_patterns]
        assert names == list(DEFAULT_VOCABULARY.employment_types)

    def test_from_dict_falls_back_to_defaults(self):
        vocab = Vocabulary.from_dict({"cities": ["ANKARA"]})
        assert vocab.cities == ("ANKARA",)
        assert vocab.employment_types == DEFAULT_VOCABULARY.employment_types

    def test_unknown_keys_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="kpss_parser.vocabulary"):
            Vocabulary.from_dict({"towns": []})
        assert "towns" in caplog.text

    def test_blank_entries_rejected(self):
        with pytest.raises(ValueError):
            Vocabulary(cities=("ANKARA", "  "))

    def test_empty_cities_rejected(self):
        with pytest.raises(ValueError):
            Vocabulary(cities=())

    def test_from_file(self, tmp_path):
        path = tmp_path / "vocab.json"
        path.write_text(
            json.dumps({"employment_types": ["GEÇİCİ"]}, ensure_ascii=False),
            encoding="utf-8",
        )
        vocab = Vocabulary.from_file(str(path))
        assert vocab.employment_types == ("GEÇİCİ",)
        assert vocab.source == str(path)

    def test_from_file_requires_object(self, tmp_path):
        path = tmp_path / "vocab.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ValueError):
            Vocabulary.from_file(str(path))


# ═══════════════════════════════════════════════════════════════════════════════
# CLASSIFIER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestFileClassifier:
    """Test filename classification."""

    def setup_method(self):
        self.classifier = FileClassifier()

    def test_position_associate_with_upload_suffix(self):
        result = self.classifier.classify("tablo2_onlisans18122025_(1).pdf")
        assert result.bulletin_type == BulletinType.POSITION
        assert result.education_level == EducationLevel.ASSOCIATE

    def test_unrelated_file_unclassified(self):
        result = self.classifier.classify("random_report.pdf")
        assert result == UNCLASSIFIED
        assert not result.is_classified
        assert result.education_level is None

    @pytest.mark.parametrize("filename,btype,level", [
        ("tablo1_ortaogretim.pdf", BulletinType.POSITION, EducationLevel.SECONDARY),
        ("tablo-3_lisans_1766511639495.pdf", BulletinType.POSITION, EducationLevel.BACHELOR),
        ("Tablo 2 Önlisans.pdf", BulletinType.POSITION, EducationLevel.ASSOCIATE),
        ("ortaogretim_nitelik_kodlari.pdf", BulletinType.QUALIFICATION, EducationLevel.SECONDARY),
        ("onlisans_nitelik.pdf", BulletinType.QUALIFICATION, EducationLevel.ASSOCIATE),
        ("lisans_nitelik_2025.pdf", BulletinType.QUALIFICATION, EducationLevel.BACHELOR),
        ("NİTELİK_LİSANS.PDF", BulletinType.QUALIFICATION, EducationLevel.BACHELOR),
        ("ozel_kosullar.pdf", BulletinType.QUALIFICATION, EducationLevel.SPECIAL),
        ("lisans_nitelik_ortak.pdf", BulletinType.QUALIFICATION, EducationLevel.BACHELOR),
        ("tablo3_lisans_ortak_kodlar.pdf", BulletinType.POSITION, EducationLevel.BACHELOR),
        ("tablo_ortaogretim.pdf", BulletinType.POSITION, EducationLevel.SECONDARY),
    ])
    def test_rule_table(self, filename, btype, level):
        result = self.classifier.classify(filename)
        assert result.bulletin_type == btype
        assert result.education_level == level

    def test_table_number_beats_level_keyword(self):
        result = self.classifier.classify("tablo2_ortaogretim_ek.pdf")
        assert result.education_level == EducationLevel.ASSOCIATE

    def test_table_number_not_confused_with_longer_numbers(self):
        assert not self.classifier.classify("tablo12_ek.pdf").is_classified

    def test_directory_part_ignored(self):
        result = self.classifier.classify("nitelik/downloads/tablo1.pdf")
        assert result.bulletin_type == BulletinType.POSITION

    def test_fold_name(self):
        assert fold_name("ÖNLİSANS_Nitelik.pdf") == "onlisans_nitelik.pdf"

    def test_custom_rules(self):
        rules = [ClassificationRule.build(r"kadro", BulletinType.POSITION, EducationLevel.BACHELOR)]
        classifier = FileClassifier(rules)
        assert classifier.classify("kadro.pdf").is_classified
        assert not classifier.classify("tablo1.pdf").is_classified


# ═══════════════════════════════════════════════════════════════════════════════
# QUALIFICATION PARSER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestQualificationParser:
    """Test code/description accumulation."""

    def setup_method(self):
        self.parser = QualificationParser()

    def test_code_boundary_splits_records(self):
        text = "3249 Bilgisayar Programcılığı  bölümünden mezun olmak  1234 sayılı"
        records = self.parser.parse(text, EducationLevel.ASSOCIATE)

        assert records[0].to_record() == {
            "code": "3249",
            "description": "Bilgisayar Programcılığı bölümünden mezun olmak",
            "educationLevel": "Önlisans",
        }
        assert records[1].code == "1234"
        assert records[1].description == "sayılı"
        assert len(records) == 2

    def test_text_before_first_code_ignored(self):
        text = "NİTELİK KODLARI  3249 Bilgisayar"
        records = self.parser.parse(text, EducationLevel.ASSOCIATE)
        assert [r.code for r in records] == ["3249"]

    def test_numeric_and_short_fragments_dropped(self):
        text = "6225 Muhasebe  12  ab  programından mezun olmak"
        records = self.parser.parse(text, EducationLevel.BACHELOR)
        assert records[0].description == "Muhasebe programından mezun olmak"

    def test_code_without_description_dropped(self):
        text = "6225  7  4419 Hukuk"
        records = self.parser.parse(text, EducationLevel.BACHELOR)
        assert [r.code for r in records] == ["4419"]

    def test_code_alone_then_description(self):
        text = "6225  Muhasebe programından"
        records = self.parser.parse(text, EducationLevel.BACHELOR)
        assert records[0].description == "Muhasebe programından"

    def test_five_digit_token_is_not_a_code(self):
        text = "6225 Muhasebe  12345  mezun olmak"
        records = self.parser.parse(text, EducationLevel.BACHELOR)
        assert len(records) == 1
        assert records[0].description == "Muhasebe mezun olmak"

    def test_line_breaks_collapse_into_description(self):
        text = "4419 Hukuk\n \nlisans programından\n"
        records = self.parser.parse(text, EducationLevel.BACHELOR)
        assert records[0].description == "Hukuk lisans programından"

    def test_duplicates_kept_for_merger(self):
        text = "6225 Muhasebe  6225 Muhasebe"
        records = self.parser.parse(text, EducationLevel.BACHELOR)
        assert len(records) == 2

    def test_level_stamped_on_every_record(self):
        records = self.parser.parse("2001 Herhangi  2002 Lise", "Ortaöğretim")
        assert {r.education_level for r in records} == {EducationLevel.SECONDARY}

    def test_parser_reusable(self):
        self.parser.parse("6225 Muhasebe", EducationLevel.BACHELOR)
        records = self.parser.parse("4419 Hukuk", EducationLevel.BACHELOR)
        assert [r.code for r in records] == ["4419"]

    def test_empty_text(self):
        assert self.parser.parse("", EducationLevel.BACHELOR) == []


# ═══════════════════════════════════════════════════════════════════════════════
# POSITION PARSER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestPositionParser:
    """Test segmentation and field extraction."""

    def setup_method(self):
        self.parser = PositionParser()

    def test_well_formed_segment(self):
        text = "302010101 00001 ADIYAMAN İL ÖZEL İDARESİ AVUKAT ADIYAMAN 1 4419"
        positions = self.parser.parse(text, EducationLevel.BACHELOR)

        assert len(positions) == 1
        assert positions[0].to_record() == {
            "osymCode": "302010101",
            "institution": "ADIYAMAN İL ÖZEL İDARESİ",
            "title": "AVUKAT",
            "city": "ADIYAMAN",
            "quota": 1,
            "qualificationCodes": ["4419"],
            "educationLevel": "Lisans",
        }

    def test_segment_without_employment_type_rejected(self):
        text = "302010101 00001 ADIYAMAN AVUKAT ADIYAMAN 1 4419"
        result = self.parser.parse_with_stats(text, EducationLevel.BACHELOR)

        assert result.positions == []
        assert result.segments_found == 1
        assert result.rejection_reasons[RejectReason.NO_INSTITUTION] == 1

    def test_employment_type_bounds_institution(self):
        text = "203010101 00002 ANKARA BÜYÜKŞEHİR BELEDİYESİ MEMUR MÜHENDİS ANKARA 3 3249 3001"
        p = self.parser.parse(text, EducationLevel.ASSOCIATE)[0]

        assert p.institution == "ANKARA BÜYÜKŞEHİR BELEDİYESİ"
        assert p.title == "MÜHENDİS"
        assert p.city == "ANKARA"
        assert p.quota == 3
        assert p.qualification_codes == ["3249", "3001"]
        assert p.accepts_any_program

    def test_multiword_employment_type(self):
        text = "302010103 00003 SAĞLIK BAKANLIĞI SÖZLEŞMELİ PERSONEL HEMŞİRE İSTANBUL 10 4541"
        p = self.parser.parse(text, EducationLevel.BACHELOR)[0]
        assert p.institution == "SAĞLIK BAKANLIĞI"
        assert p.title == "HEMŞİRE"
        assert p.city == "İSTANBUL"
        assert p.quota == 10

    def test_city_in_title_position_uses_earliest(self):
        text = "302010104 00004 KONYA BELEDİYESİ MEMUR VHKİ KONYA 2 4001 KARAMAN"
        p = self.parser.parse(text, EducationLevel.BACHELOR)[0]
        assert p.title == "VHKİ"
        assert p.city == "KONYA"

    def test_no_city_rejected(self):
        text = "302010105 00005 ANKARA BELEDİYESİ MEMUR AVUKAT 1 4419"
        result = self.parser.parse_with_stats(text, EducationLevel.BACHELOR)
        assert result.positions == []
        assert result.rejection_reasons[RejectReason.NO_CITY] == 1

    def test_missing_quota_defaults(self):
        text = "302010106 00006 ANKARA BELEDİYESİ MEMUR AVUKAT ANKARA 4419"
        p = self.parser.parse(text, EducationLevel.BACHELOR)[0]
        assert p.quota == DEFAULT_QUOTA

    def test_zero_quota_defaults(self):
        text = "302010107 00007 ANKARA BELEDİYESİ MEMUR AVUKAT ANKARA 0 4419"
        p = self.parser.parse(text, EducationLevel.BACHELOR)[0]
        assert p.quota == 1

    def test_multiple_segments_in_order(self):
        text = (
            "302010101 00001 ANKARA BELEDİYESİ MEMUR AVUKAT ANKARA 1 4419 "
            "302010102 00002 ADIYAMAN AVUKAT ADIYAMAN 1 4419 "
            "302010103 00003 BURSA BELEDİYESİ İŞÇİ ŞOFÖR BURSA 2 2001"
        )
        result = self.parser.parse_with_stats(text, EducationLevel.BACHELOR)

        assert [p.osym_code for p in result.positions] == ["302010101", "302010103"]
        assert result.segments_found == 3
        assert result.segments_rejected == 1

    def test_warning_lines_stripped(self):
        text = (
            "Warning: TT: undefined function: 32\n"
            "302010101 00001 ANKARA BELEDİYESİ MEMUR AVUKAT ANKARA 1 4419\n"
            "Warning: TT: undefined function: 32\n"
        )
        positions = self.parser.parse(text, EducationLevel.BACHELOR)
        assert len(positions) == 1
        assert positions[0].qualification_codes == ["4419"]

    def test_qualification_codes_distinct_in_order(self):
        text = "302010101 00001 ANKARA BELEDİYESİ MEMUR AVUKAT ANKARA 1 4419 6225 4419"
        p = self.parser.parse(text, EducationLevel.BACHELOR)[0]
        assert p.qualification_codes == ["4419", "6225"]

    def test_decomposed_dotted_i_matches_city(self):
        text = "302010101 00001 I\u0307STANBUL VALİLİĞİ MEMUR VHKİ I\u0307STANBUL 1 4419"
        p = self.parser.parse(text, EducationLevel.BACHELOR)[0]
        assert p.city == "İSTANBUL"

    def test_custom_vocabulary(self):
        vocab = Vocabulary(cities=("ATLANTIS",), employment_types=("GEÇİCİ",))
        parser = PositionParser(vocab)
        text = "302010101 00001 DENİZ KURUMU GEÇİCİ DALGIÇ ATLANTIS 1 4419"
        p = parser.parse(text, EducationLevel.BACHELOR)[0]
        assert p.city == "ATLANTIS"
        assert p.institution == "DENİZ KURUMU"

    def test_code_pair_pattern(self):
        assert CODE_PAIR_PATTERN.search("302010101 00001 X")
        assert CODE_PAIR_PATTERN.search("402010101 00001 X") is None
        assert CODE_PAIR_PATTERN.search("1302010101 00001 X") is None

    def test_no_partial_records(self):
        text = (
            "302010101 00001 ANKARA BELEDİYESİ MEMUR AVUKAT ANKARA 1 4419 "
            "302010102 00002 MEMUR ANKARA 1 4419 "
            "302010103 00003 ANKARA BELEDİYESİ MEMUR ANKARA"
        )
        for p in self.parser.parse(text, EducationLevel.BACHELOR):
            assert p.institution and p.title and p.city
            assert p.city in CITIES


# ═══════════════════════════════════════════════════════════════════════════════
# MERGER TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestRecordMerger:
    """Test qualification deduplication."""

    def _batches(self):
        first = [
            Qualification(code="6225", description="Muhasebe lisans", education_level="Lisans"),
            Qualification(code="4419", description="Hukuk", education_level="Lisans"),
        ]
        second = [
            Qualification(code="3249", description="Bilgisayar", education_level="Önlisans"),
            Qualification(code="6225", description="Muhasebe önlisans", education_level="Önlisans"),
        ]
        return [first, second]

    def test_duplicate_code_kept_once(self):
        result = RecordMerger().merge(self._batches())
        codes = [q.code for q in result.qualifications]
        assert codes.count("6225") == 1
        assert codes == ["6225", "4419", "3249"]

    def test_first_wins_by_default(self):
        result = RecordMerger().merge(self._batches())
        kept = next(q for q in result.qualifications if q.code == "6225")
        assert kept.description == "Muhasebe lisans"

    def test_last_wins_keeps_first_position(self):
        result = RecordMerger(MergePolicy.LAST_WINS).merge(self._batches())
        assert result.qualifications[0].code == "6225"
        assert result.qualifications[0].description == "Muhasebe önlisans"

    def test_conflict_recorded_and_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="kpss_parser.merger"):
            result = RecordMerger().merge(self._batches())

        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.code == "6225"
        assert conflict.kept_description == "Muhasebe lisans"
        assert conflict.discarded_level == EducationLevel.ASSOCIATE
        assert "6225" in caplog.text

    def test_identical_duplicates_are_silent(self):
        q = Qualification(code="6225", description="Muhasebe", education_level="Lisans")
        result = RecordMerger().merge([[q], [q]])
        assert len(result.qualifications) == 1
        assert result.conflicts == []

    def test_positions_concatenated(self):
        batches = [[_position("302010101")], [_position("302010101"), _position("302010102")]]
        result = RecordMerger().merge([], batches)
        assert [p.osym_code for p in result.positions] == ["302010101", "302010101", "302010102"]

    def test_policy_from_string(self):
        assert RecordMerger("last").policy == MergePolicy.LAST_WINS


# ═══════════════════════════════════════════════════════════════════════════════
# VALIDATION ENGINE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestValidationEngine:
    """Test post-merge checks."""

    def setup_method(self):
        self.engine = ValidationEngine()

    def test_clean_run(self):
        quals = [Qualification(code="4419", description="Hukuk", education_level="Lisans")]
        report = self.engine.validate(quals, [_position()])

        assert report.is_clean
        assert report.total_qualifications == 1
        assert report.positions_by_level == {"Lisans": 1}
        assert report.resolution_rate == 100.0

    def test_empty_input(self):
        report = self.engine.validate([], [])
        assert report.total_positions == 0
        assert report.resolution_rate == 0.0

    def test_unresolved_codes(self):
        report = self.engine.validate([], [_position(codes=("4419", "6225"))])
        assert report.unresolved_codes == ["4419", "6225"]
        assert report.positions_with_unresolved_codes == 1
        assert report.resolution_rate == 0.0

    def test_duplicate_osym_codes_surface(self):
        report = self.engine.validate([], [_position(), _position()])
        assert report.duplicate_osym_codes == ["302010101"]
        assert report.is_clean

    def test_duplicate_qualification_codes_flagged(self):
        q = Qualification(code="4419", description="Hukuk", education_level="Lisans")
        report = self.engine.validate([q, q], [])
        assert report.duplicate_qualification_codes == ["4419"]
        assert not report.is_clean

    def test_city_outside_vocabulary(self):
        report = self.engine.validate([], [_position(city="ATLANTIS")])
        assert report.invalid_cities == ["302010101"]
        assert not report.is_clean

    def test_generic_codes_counted(self):
        report = self.engine.validate([], [_position(codes=("2001",))])
        assert report.generic_code_positions == 1

    def test_serialization_includes_computed_fields(self):
        data = self.engine.validate([], [_position()]).model_dump()
        assert "is_clean" in data
        assert "resolution_rate" in data
