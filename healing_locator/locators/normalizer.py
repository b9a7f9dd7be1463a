"""
Descriptor normalizer.

Turns a raw locator expression into exactly one ``ElementDescriptor``.
Hints are checked in this fixed order, first hit wins:

1. Playwright codegen chains (``getByTestId('a').getByRole('button', { name: 'X' })``)
2. test-id hints (``getByTestId('x')``, ``data-testid=x``, ``[data-testid="x"]``, ``testid=x``)
3. role hints (``getByRole('button', { name: 'X' })``, ``role=button[name="X"]``)
4. text hints (``getByText('X')``, ``text=X``)
5. XPath and CSS
6. identifier-like tokens (``account-link``) as test ids
7. free text, with an optional role/name hint from a trailing role noun

The function is pure and total: anything it cannot classify is free text.
"""
from __future__ import annotations

import re
from typing import List, Optional, Tuple

from healing_locator.models.descriptor import (
    ByCssOrXPath,
    ByRole,
    ByTestId,
    ByText,
    ElementDescriptor,
    FreeText,
)

_STRING_LITERAL_RE = re.compile(r"""(['"`])((?:\\.|(?!\1)[^\\])*)\1""")
_NAME_OPTION_RE = re.compile(r"""\bname\s*[:=]\s*(['"`])((?:\\.|(?!\1)[^\\])*)\1""")
_NUMBER_RE = re.compile(r"^\s*(-?\d+)\s*$")
_PAGE_PREFIX_RE = re.compile(r"^\s*(?:await\s+)?(?:this\.)?page\s*\.\s*")
_CALL_START_RE = re.compile(r"\s*([A-Za-z_]\w*)\s*\(")

_TEST_ID_ATTR_RE = re.compile(
    r"""^\[\s*data-test-?id\s*=\s*(['"]?)(?P<value>[^'"\]]+)\1\s*\]$""",
    re.IGNORECASE,
)
_TEST_ID_ENGINE_RE = re.compile(
    r"""^(?:data-test-?id|testid|test-id)\s*=\s*(['"]?)(?P<value>.+?)\1$""",
    re.IGNORECASE,
)
_ROLE_ENGINE_RE = re.compile(
    r"""^role\s*=\s*(?P<role>[a-z]+)\s*(?:\[\s*name\s*=\s*(['"])(?P<name>.*?)\2\s*[is]?\s*\])?$""",
    re.IGNORECASE,
)
_TEXT_ENGINE_RE = re.compile(r"""^text\s*=\s*(?P<value>.+)$""", re.IGNORECASE)
_IDENTIFIER_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*(?:[-_][A-Za-z0-9]+)+$")

_CSS_PREFIXES = ("#", ".", "[", "*", "css=", "xpath=", "//", "(//", "./", "id=")
_CSS_MARKERS = (">>", ":has-text(", ":has(", ":text(", ":nth-", ":visible", ":not(", ":is(")

# Tag names that are also ordinary words ("link", "search", "label") are
# left out so bare descriptions are not mistaken for type selectors.
_HTML_TAGS = {
    "a", "abbr", "article", "aside", "audio", "b", "body", "br", "button",
    "canvas", "code", "dd", "details", "dialog", "div", "dl", "dt", "em",
    "fieldset", "figure", "form", "h1", "h2", "h3", "h4", "h5", "h6",
    "hr", "html", "i", "iframe", "img", "input", "li", "ol", "p", "pre",
    "select", "span", "strong", "svg", "table", "tbody", "td", "textarea",
    "tfoot", "th", "thead", "tr", "ul", "video",
}
_COMPOUND_TOKEN_RE = re.compile(r"^(?:\*|[a-z][a-z0-9]*)(?:[#.\[:][^\s]*)?$", re.IGNORECASE)

# Trailing role nouns in free text, longest first.
_ROLE_NOUNS: List[Tuple[str, str]] = [
    ("menu item", "menuitem"),
    ("text field", "textbox"),
    ("text box", "textbox"),
    ("input field", "textbox"),
    ("button", "button"),
    ("btn", "button"),
    ("link", "link"),
    ("checkbox", "checkbox"),
    ("radio button", "radio"),
    ("radio", "radio"),
    ("tab", "tab"),
    ("field", "textbox"),
    ("textbox", "textbox"),
    ("input", "textbox"),
    ("dropdown", "combobox"),
    ("combobox", "combobox"),
    ("heading", "heading"),
    ("option", "option"),
]
_LEADING_FILLER = {"the", "a", "an", "click", "press", "tap", "on", "select"}


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"`":
        return value[1:-1]
    return value


def _first_string(args: str) -> Optional[str]:
    match = _STRING_LITERAL_RE.search(args)
    return _unescape(match.group(2)) if match else None


def _name_option(args: str) -> str:
    match = _NAME_OPTION_RE.search(args)
    return _unescape(match.group(2)) if match else ""


# ---------------------------------------------------------------------------
# Codegen call chains


def _split_calls(text: str) -> Optional[List[Tuple[str, str]]]:
    """Split ``a(x).b(y)`` into ``[("a", "x"), ("b", "y")]``; None if not a pure call chain."""
    calls: List[Tuple[str, str]] = []
    pos = 0
    length = len(text)
    while pos < length:
        match = _CALL_START_RE.match(text, pos)
        if not match:
            return None
        name = match.group(1)
        pos = match.end()
        depth = 1
        quote: Optional[str] = None
        start = pos
        while pos < length and depth:
            ch = text[pos]
            if quote:
                if ch == "\\":
                    pos += 1
                elif ch == quote:
                    quote = None
            elif ch in "'\"`":
                quote = ch
            elif ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
            pos += 1
        if depth:
            return None
        calls.append((name, text[start:pos - 1]))
        rest = text[pos:].lstrip()
        if not rest:
            break
        if not rest.startswith("."):
            return None
        pos = length - len(rest) + 1
    return calls or None


def _call_to_selector(name: str, args: str, test_id_attribute: str) -> Optional[str]:
    method = name.replace("_", "").lower()
    if method in ("first", "last", "nth"):
        if method == "first":
            return "nth=0"
        if method == "last":
            return "nth=-1"
        number = _NUMBER_RE.match(args)
        return f"nth={number.group(1)}" if number else None
    value = _first_string(args)
    if value is None:
        return None
    if method == "getbytestid":
        return f"[{test_id_attribute}={_quote(value)}]"
    if method == "getbyrole":
        name_option = _name_option(args)
        return f"role={value}[name={_quote(name_option)}]" if name_option else f"role={value}"
    if method == "getbytext":
        return f"text={value}"
    if method == "getbyplaceholder":
        return f"[placeholder={_quote(value)} i]"
    if method == "getbylabel":
        return f"[aria-label={_quote(value)} i]"
    if method == "locator":
        return value
    return None


def _from_call_chain(raw: str, test_id_attribute: str) -> Optional[ElementDescriptor]:
    text = _PAGE_PREFIX_RE.sub("", raw.strip().rstrip(";"))
    calls = _split_calls(text)
    if not calls:
        return None

    if len(calls) == 1:
        name, args = calls[0]
        method = name.replace("_", "").lower()
        value = _first_string(args)
        if value is None:
            return None
        if method == "getbytestid":
            return ByTestId(test_id=value, raw=raw)
        if method == "getbyrole":
            return ByRole(role=value.lower(), name=_name_option(args), raw=raw)
        if method == "getbytext":
            return ByText(text=value, raw=raw)
        if method == "getbylabel":
            return FreeText(description=value, role_hint="textbox", name_hint=value, raw=raw)

    parts: List[str] = []
    for name, args in calls:
        selector = _call_to_selector(name, args, test_id_attribute)
        if selector is None:
            return None
        parts.append(selector)
    return ByCssOrXPath(selector=" >> ".join(parts), raw=raw)


# ---------------------------------------------------------------------------
# Selector engines and CSS


def _from_engine_syntax(text: str, raw: str) -> Optional[ElementDescriptor]:
    match = _TEST_ID_ATTR_RE.match(text) or _TEST_ID_ENGINE_RE.match(text)
    if match:
        return ByTestId(test_id=match.group("value").strip(), raw=raw)

    match = _ROLE_ENGINE_RE.match(text)
    if match:
        return ByRole(role=match.group("role").lower(), name=match.group("name") or "", raw=raw)

    match = _TEXT_ENGINE_RE.match(text)
    if match:
        return ByText(text=_strip_quotes(match.group("value")), raw=raw)
    return None


def looks_like_css_or_xpath(text: str) -> bool:
    lowered = text.lower()
    if lowered.startswith(_CSS_PREFIXES):
        return True
    if any(marker in lowered for marker in _CSS_MARKERS):
        return True

    tokens = [tok for tok in re.split(r"\s*[>+~]\s*|\s+", text) if tok]
    if not tokens or not all(_COMPOUND_TOKEN_RE.match(tok) for tok in tokens):
        return False
    tags = [re.match(r"^(\*|[a-z][a-z0-9]*)", tok, re.IGNORECASE).group(1).lower() for tok in tokens]
    if not all(tag == "*" or tag in _HTML_TAGS for tag in tags):
        return False
    if len(tokens) == 1:
        return True
    # Several bare tag words ("form input") read like prose unless a token
    # carries CSS syntax or a combinator is present.
    return any(re.search(r"[#.\[:]", tok) for tok in tokens) or bool(re.search(r"[>+~]", text))


# ---------------------------------------------------------------------------
# Free text


def _free_text(text: str, raw: str) -> FreeText:
    description = " ".join(_strip_quotes(text).split())
    lowered = description.lower()
    for noun, role in _ROLE_NOUNS:
        if lowered == noun or lowered.endswith(" " + noun):
            words = description[: len(description) - len(noun)].split()
            while words and words[0].lower() in _LEADING_FILLER:
                words.pop(0)
            return FreeText(
                description=description,
                role_hint=role,
                name_hint=_strip_quotes(" ".join(words)),
                raw=raw,
            )
    return FreeText(description=description, raw=raw)


def normalize(raw_selector: Optional[str], test_id_attribute: str = "data-testid") -> ElementDescriptor:
    """
    Map a raw selector, codegen expression or description to a descriptor.

    Example:
        >>> normalize("getByRole('button', { name: 'Checkout' })")
        ByRole(role='button', name='Checkout', raw="getByRole('button', { name: 'Checkout' })")
        >>> normalize("account-link")
        ByTestId(test_id='account-link', raw='account-link')
    """
    raw = raw_selector if isinstance(raw_selector, str) else ""
    text = raw.strip()
    if not text:
        return FreeText(description="", raw=raw)

    descriptor = _from_call_chain(text, test_id_attribute)
    if descriptor is not None:
        return descriptor

    descriptor = _from_engine_syntax(text, raw)
    if descriptor is not None:
        return descriptor

    if looks_like_css_or_xpath(text):
        return ByCssOrXPath(selector=text, raw=raw)

    if _IDENTIFIER_RE.match(text):
        return ByTestId(test_id=text, raw=raw)

    return _free_text(text, raw)


__all__ = ["normalize", "looks_like_css_or_xpath"]
