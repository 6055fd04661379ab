"""
Text Answer Matcher

Fuzzy matching for free-text answers ("What is the time complexity?",
"Which pattern applies?"). An answer is accepted when, after
normalization, it:

1. equals the correct answer exactly, or
2. is within a Levenshtein similarity of 0.85, or
3. mentions at least 70% of the technical keywords found in the correct answer.

Normalization lowercases, collapses whitespace, strips punctuation other
than hyphens and parentheses, and rewrites common notation so that
"O(n log n)", "o( n log n )" and "onlogn" compare equal.
"""

import re
from typing import Iterable, List, Optional

from rapidfuzz.distance import Levenshtein

from codedrill.config import EngineConfig


_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s\-()]")
_PAREN_INNER_SPACE = re.compile(r"\(\s+|\s+\)")
_CALL_SPACE = re.compile(r"\b(o|log|sqrt)\s+\(")
_WORD_HYPHEN = re.compile(r"(?<=[a-z])-(?=[a-z])")
_COMPLEXITY = re.compile(r"o\s*\(\s*([^)]+)\s*\)")

# Applied in order; longer notations first so "o(n log n)" is not eaten by "o(n)"
NOTATION_REWRITES = [
    ("o(n log n)", "onlogn"),
    ("o(log n)", "ologn"),
    ("o(n^2)", "on2"),
    ("o(n2)", "on2"),
    ("o(2^n)", "o2n"),
    ("o(2n)", "o2n"),
    ("o(n)", "on"),
    ("o(1)", "o1"),
    ("log(n)", "logn"),
    ("sqrt(n)", "sqrtn"),
    ("n^2", "n2"),
]

ABBREVIATION_REWRITES = [
    (re.compile(r"\bbinary search tree\b"), "binarysearchtree"),
    (re.compile(r"\bbinary search\b"), "binarysearch"),
    (re.compile(r"\btwo pointers?\b"), "twopointers"),
    (re.compile(r"\bsliding window\b"), "slidingwindow"),
    (re.compile(r"\bhash map\b"), "hashmap"),
    (re.compile(r"\bhash table\b"), "hashtable"),
    (re.compile(r"\blinked list\b"), "linkedlist"),
    (re.compile(r"\bbinary tree\b"), "binarytree"),
    (re.compile(r"\bdynamic programming\b"), "dynamicprogramming"),
    (re.compile(r"\bbst\b"), "binarysearchtree"),
]

TECHNICAL_TERMS = [
    # Data structures
    "array", "hashmap", "hashtable", "linkedlist", "stack", "queue",
    "heap", "priorityqueue", "tree", "binarytree", "binarysearchtree",
    "trie", "graph", "set", "map", "deque",
    # Algorithms
    "binarysearch", "dfs", "bfs", "dynamicprogramming", "greedy",
    "backtracking", "divideandconquer", "recursion", "iteration",
    "sorting", "searching", "mergesort", "quicksort",
    # Patterns
    "twopointers", "slidingwindow", "prefixsum", "unionfind",
    "topologicalsort", "dijkstra", "bellmanford", "floydwarshall",
    "knapsack", "kadane", "monotonic", "monotonicstack",
    # Complexity
    "on", "ologn", "onlogn", "on2", "o1", "o2n", "constant", "linear",
    "logarithmic", "quadratic", "exponential",
    # Concepts
    "memoization", "tabulation", "dp", "optimal", "subproblem",
    "overlapping", "base case", "induction",
]

_TERM_PATTERNS = [(term, re.compile(r"\b" + re.escape(term) + r"\b")) for term in TECHNICAL_TERMS]

COMPLEXITY_TERMS = ["on2", "onlogn", "ologn", "o2n", "on", "o1", "constant", "linear", "logarithmic", "quadratic"]


class TextMatcher:
    """Heuristic matcher for text-format questions."""

    def __init__(self, similarity_threshold: float = 0.85, keyword_ratio: float = 0.7):
        self.similarity_threshold = similarity_threshold
        self.keyword_ratio = keyword_ratio

    @classmethod
    def from_config(cls, config: EngineConfig) -> "TextMatcher":
        return cls(
            similarity_threshold=config.text_similarity_threshold,
            keyword_ratio=config.keyword_match_ratio,
        )

    def normalize(self, text: str) -> str:
        text = _WHITESPACE.sub(" ", (text or "").lower().strip())
        text = _PUNCTUATION.sub("", text)
        text = _WORD_HYPHEN.sub(" ", text)
        text = _CALL_SPACE.sub(r"\1(", text)
        text = _PAREN_INNER_SPACE.sub(lambda m: m.group(0).strip(), text)

        for old, new in NOTATION_REWRITES:
            text = text.replace(old, new)
        for pattern, new in ABBREVIATION_REWRITES:
            text = pattern.sub(new, text)

        return _WHITESPACE.sub(" ", text).strip()

    def similarity(self, s1: str, s2: str) -> float:
        """1 - distance / max(len1, len2) on already normalized strings."""
        if s1 == s2:
            return 1.0
        longest = max(len(s1), len(s2))
        if longest == 0:
            return 0.0
        return 1.0 - Levenshtein.distance(s1, s2) / longest

    def extract_keywords(self, normalized: str) -> List[str]:
        """Technical terms named as whole words in an answer key."""
        return [term for term, pattern in _TERM_PATTERNS if pattern.search(normalized)]

    def has_required_keywords(self, user_norm: str, correct_norm: str) -> bool:
        # Key terms are whole words; in the submission they only need to appear
        # as substrings, so "stacks" covers "stack".
        keywords = self.extract_keywords(correct_norm)
        if not keywords:
            return False
        hits = sum(1 for keyword in keywords if keyword in user_norm)
        return hits / len(keywords) >= self.keyword_ratio

    def matches(self, user_text: str, correct_text: str) -> bool:
        user_norm = self.normalize(user_text)
        correct_norm = self.normalize(correct_text)

        if not user_norm:
            return False
        if user_norm == correct_norm:
            return True
        if self.similarity(user_norm, correct_norm) >= self.similarity_threshold:
            return True
        return self.has_required_keywords(user_norm, correct_norm)

    def matches_any(self, user_text: str, acceptable: Iterable[str]) -> bool:
        return any(self.matches(user_text, answer) for answer in acceptable)

    def extract_complexity(self, text: str) -> Optional[str]:
        """Pull the asymptotic class out of an answer, or None if it names none."""
        normalized = self.normalize(text)
        found = _COMPLEXITY.search(normalized)
        if found:
            return "o" + found.group(1).replace(" ", "")
        for term in COMPLEXITY_TERMS:
            if re.search(r"\b" + term + r"\b", normalized):
                return term
        return None

    def complexity_matches(self, user_text: str, correct_text: str) -> bool:
        """True when both answers name the same complexity class."""
        expected = self.extract_complexity(correct_text)
        return expected is not None and self.extract_complexity(user_text) == expected
