"""Tests for ERA content parsing (X12 835 and CSV)."""
from datetime import date
from decimal import Decimal

import pytest

from rcm.services.remittance.era_parser import (
    FORMAT_CSV,
    FORMAT_X12_835,
    INVALID_ERA_FORMAT,
    detect_format,
    parse_era_data,
    split_segments,
)
from tests.samples import SAMPLE_835, SAMPLE_CSV


@pytest.mark.unit
class TestDetectFormat:
    def test_x12(self):
        assert detect_format(SAMPLE_835) == FORMAT_X12_835

    def test_csv(self):
        assert detect_format(SAMPLE_CSV) == FORMAT_CSV

    def test_unknown(self):
        assert detect_format("hello world") is None

    def test_blank(self):
        assert detect_format("   ") is None


@pytest.mark.unit
class TestSplitSegments:
    def test_drops_blank_segments_and_newlines(self):
        segments = split_segments("ST*835*0001~\r\n\r\nBPR*I*10.00~~")
        assert segments == [["ST", "835", "0001"], ["BPR", "I", "10.00"]]


@pytest.mark.unit
class TestParseX12:
    def test_minimal_835(self):
        parsed = parse_era_data(
            "ST*835*0001*20230115~BPR*I*1500.00*C*ACH~CLP*CLM001*1*150.00*120.00*30.00~"
        )

        assert parsed.is_valid
        assert parsed.format == FORMAT_X12_835
        assert parsed.total_amount == Decimal("1500.00")
        assert [claim.claim_number for claim in parsed.claims] == ["CLM001"]
        claim = parsed.claims[0]
        assert claim.charged_amount == Decimal("150.00")
        assert claim.paid_amount == Decimal("120.00")
        assert claim.patient_responsibility == Decimal("30.00")

    def test_payment_header(self):
        parsed = parse_era_data(SAMPLE_835)

        assert parsed.total_amount == Decimal("270.00")
        assert parsed.check_number == "CHK12345"
        assert parsed.check_date == date(2023, 1, 15)
        assert parsed.payer_name == "BLUE CROSS"
        assert parsed.warnings == []

    def test_claim_details(self):
        first, second = parse_era_data(SAMPLE_835).claims

        assert first.patient_name == "JOHN DOE"
        assert first.service_date == date(2023, 1, 10)
        assert first.adjustment_amount == Decimal("30.00")
        assert first.adjustment_reason == "CO-45"
        assert first.service_lines[0].procedure_code == "99213"
        assert first.service_lines[0].paid_amount == Decimal("120.00")

        # CAS*PR is patient responsibility, not a payer adjustment
        assert second.adjustment_amount == Decimal("30.00")
        assert second.patient_responsibility == Decimal("20.00")

    def test_cas_with_multiple_triplets(self):
        parsed = parse_era_data(
            "ST*835*1~BPR*I*50.00~CLP*C1*1*100.00*50.00~CAS*CO*45*30.00**253*20.00~"
        )

        adjustments = parsed.claims[0].adjustments
        assert [a.code for a in adjustments] == ["CO-45", "CO-253"]
        assert parsed.claims[0].adjustment_amount == Decimal("50.00")

    def test_total_mismatch_is_only_a_warning(self):
        parsed = parse_era_data("ST*835*1~BPR*I*99.00~CLP*C1*1*100.00*50.00~")

        assert parsed.is_valid
        assert len(parsed.warnings) == 1

    def test_missing_bpr_is_invalid(self):
        parsed = parse_era_data("ST*835*1~CLP*C1*1*100.00*50.00~")

        assert not parsed.is_valid
        assert parsed.errors[0] == INVALID_ERA_FORMAT
        assert "Missing BPR payment segment" in parsed.errors
        assert len(parsed.claims) == 1

    def test_no_claims_is_invalid(self):
        parsed = parse_era_data("ST*835*1~BPR*I*10.00~")

        assert not parsed.is_valid
        assert parsed.claims == []

    def test_bad_clp_amounts_are_reported(self):
        parsed = parse_era_data("ST*835*1~BPR*I*10.00~CLP*C1*1*abc*10.00~CLP*C2*1*10.00*10.00~")

        assert not parsed.is_valid
        assert "CLP segment for claim C1 has invalid amounts" in parsed.errors
        assert [claim.claim_number for claim in parsed.claims] == ["C2"]


@pytest.mark.unit
class TestParseCSV:
    def test_rows_become_claims(self):
        parsed = parse_era_data(SAMPLE_CSV)

        assert parsed.is_valid
        assert parsed.format == FORMAT_CSV
        assert parsed.total_amount == Decimal("320.00")
        first, second = parsed.claims
        assert first.claim_number == "CLM101"
        assert first.charged_amount == Decimal("150.00")
        assert first.adjustment_amount == Decimal("30.00")
        assert first.adjustment_reason == "CO-45"
        assert first.service_date == date(2023, 1, 10)
        assert second.service_date == date(2023, 1, 12)
        assert second.adjustment_reason is None

    def test_camel_case_headers(self):
        parsed = parse_era_data("claimNumber,paymentAmount\nC9,12.50\n")

        assert parsed.is_valid
        assert parsed.claims[0].paid_amount == Decimal("12.50")

    def test_bad_rows_are_reported(self):
        parsed = parse_era_data("claim_number,payment_amount\n,10.00\nC2,xyz\nC3,5.00\n")

        assert not parsed.is_valid
        assert parsed.errors == [
            INVALID_ERA_FORMAT,
            "Row 2: claim_number is required",
            "Row 3: invalid payment amount",
        ]
        assert [claim.claim_number for claim in parsed.claims] == ["C3"]

    def test_out_of_range_amount_is_reported(self):
        parsed = parse_era_data("claim_number,charged_amount,paid_amount\nCLM1,100,1e30\nCLM2,100,90\n")

        assert not parsed.is_valid
        assert parsed.errors == [INVALID_ERA_FORMAT, "Row 2: invalid payment amount"]
        assert [claim.claim_number for claim in parsed.claims] == ["CLM2"]

    def test_out_of_range_clp_amount_is_reported(self):
        content = SAMPLE_835.replace("CLP*CLM002*1*200.00*150.00", "CLP*CLM002*1*200.00*1E30")

        parsed = parse_era_data(content)

        assert "CLP segment for claim CLM002 has invalid amounts" in parsed.errors
        assert [claim.claim_number for claim in parsed.claims] == ["CLM001"]


@pytest.mark.unit
class TestInvalidContent:
    @pytest.mark.parametrize("content", ["", "   ", "not a remittance", None, 42])
    def test_unrecognized_content(self, content):
        parsed = parse_era_data(content)

        assert not parsed.is_valid
        assert parsed.errors[0] == INVALID_ERA_FORMAT

    def test_non_utf8_bytes(self):
        parsed = parse_era_data(b"\xff\xfe\x00\x01")

        assert not parsed.is_valid
        assert parsed.errors == [INVALID_ERA_FORMAT, "Content is not UTF-8 text"]

    def test_bytes_with_bom(self):
        parsed = parse_era_data(b"\xef\xbb\xbf" + SAMPLE_CSV.encode())

        assert parsed.is_valid
        assert len(parsed.claims) == 2
