"""Relevance ranking of snapshot candidates.

These helpers provide deterministic scoring of the captured DOM candidates
against the element description, so only the most relevant elements are
sent to the vision model when a page has more than ``max_candidates``.
"""

from __future__ import annotations

import re
from typing import List, Sequence, Tuple

from healing_locator.dom_snapshot import CandidateElement


# ---------------------------------------------------------------------------
# Tokenisation helpers


_STOP_WORDS = {
    "the",
    "a",
    "an",
    "to",
    "for",
    "on",
    "of",
    "in",
    "please",
    "click",
    "tap",
    "press",
    "open",
    "select",
    "field",
    "input",
    "type",
    "fill",
    "enter",
    "into",
    "text",
    "box",
    "and",
    "or",
    "element",
}

_CLICKABLE_TAGS = {"a", "button", "summary", "label"}
_CLICKABLE_ROLES = {"button", "link", "menuitem", "tab", "checkbox", "radio", "option"}
_TEXT_INPUT_TYPES = {"", "text", "email", "search", "password", "url", "number", "tel"}


def tokenize(description: str) -> List[str]:
    text = (description or "").lower()
    tokens = [t for t in re.split(r"[^a-z0-9]+", text) if t and len(t) > 1]
    filtered = [t for t in tokens if t not in _STOP_WORDS]
    deduped: List[str] = []
    seen = set()
    for tok in filtered:
        if tok not in seen:
            deduped.append(tok)
            seen.add(tok)
    return deduped[:20]


# ---------------------------------------------------------------------------
# Element feature helpers


def _attr(candidate: CandidateElement, key: str) -> str:
    return (candidate.attributes.get(key) or "").lower()


def _combined_text(candidate: CandidateElement) -> str:
    parts = [
        candidate.text,
        candidate.attributes.get("ariaLabel", ""),
        candidate.attributes.get("placeholder", ""),
        candidate.attributes.get("title", ""),
    ]
    return " ".join(part for part in parts if part).lower()


def _identifier_text(candidate: CandidateElement) -> str:
    parts = [
        candidate.attributes.get("testId", ""),
        candidate.attributes.get("id", ""),
        candidate.attributes.get("name", ""),
    ]
    return " ".join(part for part in parts if part).lower().replace("-", " ").replace("_", " ")


def _is_clickable(candidate: CandidateElement) -> bool:
    tag = candidate.tag.lower()
    etype = _attr(candidate, "type")
    if tag in _CLICKABLE_TAGS or _attr(candidate, "role") in _CLICKABLE_ROLES:
        return True
    return tag == "input" and etype in {"button", "submit", "reset", "checkbox", "radio"}


def _is_textual_field(candidate: CandidateElement) -> bool:
    tag = candidate.tag.lower()
    if tag == "textarea":
        return True
    return tag == "input" and _attr(candidate, "type") in _TEXT_INPUT_TYPES


def _is_select(candidate: CandidateElement) -> bool:
    return candidate.tag.lower() == "select" or _attr(candidate, "role") in {"combobox", "listbox"}


# ---------------------------------------------------------------------------
# Public API


def score_candidate(
    candidate: CandidateElement,
    tokens: Sequence[str],
    *,
    mode: str = "click",
    page_width: float = 0.0,
    page_height: float = 0.0,
) -> float:
    text = _combined_text(candidate)
    identifiers = _identifier_text(candidate)
    score = 0.0

    for token in tokens:
        if token in text:
            score += 6
        elif token in identifiers:
            score += 4

    # Area heuristics: discourage page-sized wrappers
    if page_width and page_height:
        area = candidate.area_ratio(page_width, page_height)
        if area > 0.18:
            score -= 6
        elif area > 0.08:
            score -= 3

    if mode == "click":
        score += 4 if _is_clickable(candidate) else -2
    elif mode == "type":
        if _is_textual_field(candidate):
            score += 8
        else:
            score -= 4
    elif mode == "select":
        if _is_select(candidate):
            score += 8
        elif _is_clickable(candidate):
            score += 2
        else:
            score -= 3

    return score


def rank_candidates(
    description: str,
    candidates: Sequence[CandidateElement],
    *,
    mode: str = "click",
    limit: int = 60,
    page_width: float = 0.0,
    page_height: float = 0.0,
) -> List[Tuple[CandidateElement, float]]:
    """
    Return at most ``limit`` candidates, best first.

    Ties keep document order so the ranking is deterministic.
    """
    tokens = tokenize(description)
    scored = [
        (position, candidate, score_candidate(
            candidate, tokens, mode=mode, page_width=page_width, page_height=page_height
        ))
        for position, candidate in enumerate(candidates)
    ]
    scored.sort(key=lambda item: (-item[2], item[0]))
    return [(candidate, score) for _, candidate, score in scored[: max(0, limit)]]


__all__ = ["tokenize", "score_candidate", "rank_candidates"]
