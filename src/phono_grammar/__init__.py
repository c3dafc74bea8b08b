"""Phono Grammar - phonetic post-processing for speech recognition results.

Matches a noisy n-best list of recognizer hypotheses against a closed grammar
of expected sentences or words by comparing phoneme sequences:
1. Sentence-list matching: rank every grammar entry against every hypothesis
2. Word-list matching: correct the best hypothesis word by word
"""

__version__ = "0.1.0"
