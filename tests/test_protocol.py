"""Tests for the line protocol."""

import pytest

from phono_grammar.config import OracleSettings
from phono_grammar.errors import ErrorCategory, MalformedRequest
from phono_grammar.matching.ranking import MatchResult
from phono_grammar.phonemes.oracle import create_oracle
from phono_grammar.protocol import (
    format_confidence,
    format_response,
    handle_request,
    parse_request,
)


class TestParseRequest:
    """Tests for parse_request."""

    def test_parse(self):
        request = parse_request("Yes|No|Maybe===yes sir|yes|yesss\n")

        assert request.expected == ["Yes", "No", "Maybe"]
        assert request.hypotheses == ["yes sir", "yes", "yesss"]

    def test_single_items(self):
        request = parse_request("I'm done===i'm done")

        assert request.expected == ["I'm done"]
        assert request.hypotheses == ["i'm done"]

    @pytest.mark.parametrize(
        "line",
        [
            "Yes|No",
            "Yes===yes===no",
            "Yes===",
            "Yes===   ",
            "===yes",
            "",
        ],
    )
    def test_malformed(self, line):
        with pytest.raises(MalformedRequest) as exc_info:
            parse_request(line)

        assert exc_info.value.category == ErrorCategory.VALIDATION


class TestFormatting:
    """Tests for response formatting."""

    @pytest.mark.parametrize(
        "confidence,expected",
        [(1.0, "1.00"), (0.0, "0.00"), (1 / 3, "0.33"), (2 / 3, "0.67")],
    )
    def test_format_confidence(self, confidence, expected):
        assert format_confidence(confidence) == expected

    def test_empty_result(self):
        assert format_response(MatchResult()) == "===0.00"


class TestHandleRequest:
    """Tests for handle_request."""

    def test_exact_match(self, oracle):
        assert handle_request("Yes|No|Maybe===yes sir|yes|yesss", oracle) == "Yes===1.00"

    def test_raw_text_returned(self, oracle):
        assert handle_request("Oh, definitely!|I'm done===i'm done", oracle) == "I'm done===1.00"

    def test_partial_match(self, oracle):
        assert handle_request("Yes|No|done===gone", oracle) == "done===0.33"

    def test_nothing_matched(self, oracle):
        assert handle_request("?!===yes", oracle) == "===0.00"

    def test_malformed(self, oracle):
        with pytest.raises(MalformedRequest):
            handle_request("Yes|No", oracle)


class TestDefaultOracle:
    """Requests answered with the default CMU dictionary oracle."""

    @pytest.fixture(scope="class")
    def default_oracle(self):
        return create_oracle(OracleSettings())

    def test_noisy_hypotheses(self, default_oracle):
        """Test that out-of-vocabulary hypotheses like 'yesss' do not fail the request."""
        line = "No|Yes|Done|Maybe===yesss|yes|yes sir|yes I|I|yesss I"
        assert handle_request(line, default_oracle) == "Yes===1.00"
