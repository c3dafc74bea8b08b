"""Single-line request/response protocol.

A request carries the expected sentences and the recognizer's n-best list::

    Yes|No|Maybe===yes sir|yes|yesss

The response is the best expected sentence as written, followed by the
confidence with two decimals::

    Yes===1.00
"""

from __future__ import annotations

from dataclasses import dataclass

from phono_grammar.errors import MalformedRequest
from phono_grammar.matching.ranking import MatchResult
from phono_grammar.matching.recognizers import SentenceListRecognizer
from phono_grammar.phonemes.cache import build_database
from phono_grammar.phonemes.oracle import PhonemeOracle

SECTION_SEPARATOR = "==="
ITEM_SEPARATOR = "|"


@dataclass
class ProtocolRequest:
    """A parsed request line."""

    expected: list[str]
    hypotheses: list[str]


def parse_request(line: str) -> ProtocolRequest:
    """Parse ``<expected1>|<expected2>...===<hyp1>|<hyp2>...``.

    Args:
        line: Request line, with or without a trailing newline

    Returns:
        ProtocolRequest

    Raises:
        MalformedRequest: If the separator is missing or repeated, or a
            section is empty
    """
    line = line.rstrip("\r\n")

    separators = line.count(SECTION_SEPARATOR)
    if separators == 0:
        raise MalformedRequest(
            f"Request is missing the {SECTION_SEPARATOR!r} separator",
            context={"request": line},
        )
    if separators > 1:
        raise MalformedRequest(
            f"Request contains more than one {SECTION_SEPARATOR!r} separator",
            context={"request": line},
        )

    expected_part, _, hypothesis_part = line.partition(SECTION_SEPARATOR)

    if not hypothesis_part.strip():
        raise MalformedRequest("Request has an empty hypothesis section", context={"request": line})
    if not expected_part.strip():
        raise MalformedRequest("Request has an empty expected section", context={"request": line})

    return ProtocolRequest(
        expected=expected_part.split(ITEM_SEPARATOR),
        hypotheses=hypothesis_part.split(ITEM_SEPARATOR),
    )


def format_confidence(confidence: float) -> str:
    """Two decimals with ``.`` as separator, independent of locale."""
    return f"{confidence:.2f}"


def format_response(result: MatchResult) -> str:
    """Render ``<bestRawText>===<confidence>``.

    A result without matches renders as ``===0.00``.
    """
    return f"{result.raw_text}{SECTION_SEPARATOR}{format_confidence(result.confidence)}"


def handle_request(line: str, oracle: PhonemeOracle, k: int = 1) -> str:
    """Answer one request line.

    The expected sentences form an in-memory grammar that is phonemized for
    this request only.

    Args:
        line: Request line
        oracle: Grapheme-to-phoneme oracle
        k: Number of ranked results (only the best is returned)

    Returns:
        Response line without newline

    Raises:
        MalformedRequest: If the request cannot be parsed
        OracleUnavailable: If phonemization fails
    """
    request = parse_request(line)
    database = build_database(request.expected, oracle)
    recognizer = SentenceListRecognizer(database, oracle, k=k)
    return format_response(recognizer.recognize(request.hypotheses))
