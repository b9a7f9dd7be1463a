from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DOM_ELEMENT_CAPTURE_SCRIPT = """
(testIdAttribute) => {
    const selectors = [
        "button",
        "a[href]",
        "input:not([type='hidden'])",
        "textarea",
        "select",
        "label",
        "summary",
        `[${testIdAttribute}]`,
        "[role='button']",
        "[role='link']",
        "[role='option']",
        "[role='menuitem']",
        "[role='tab']",
        "[role='checkbox']",
        "[role='radio']",
        "[role='combobox']",
        "[onclick]"
    ];

    const seen = new Set();
    const elements = [];
    const MAX_ELEMENTS = 800;

    const quote = (value) => '"' + String(value).replace(/\\\\/g, '\\\\\\\\').replace(/"/g, '\\\\"') + '"';

    const isUnique = (selector) => {
        try {
            return document.querySelectorAll(selector).length === 1;
        } catch (e) {
            return false;
        }
    };

    const buildCssPath = (node) => {
        const parts = [];
        let current = node;
        while (current && current.nodeType === Node.ELEMENT_NODE && current !== document.documentElement) {
            let part = current.tagName.toLowerCase();
            if (current.id && isUnique(`#${CSS.escape(current.id)}`)) {
                parts.unshift(`#${CSS.escape(current.id)}`);
                break;
            }
            const parent = current.parentElement;
            if (parent) {
                const siblings = Array.from(parent.children).filter((c) => c.tagName === current.tagName);
                if (siblings.length > 1) {
                    part += `:nth-of-type(${siblings.indexOf(current) + 1})`;
                }
            }
            parts.unshift(part);
            current = parent;
        }
        return parts.join(" > ");
    };

    const suggestSelector = (node) => {
        const tag = node.tagName.toLowerCase();
        const testId = node.getAttribute(testIdAttribute);
        if (testId) {
            const sel = `[${testIdAttribute}=${quote(testId)}]`;
            if (isUnique(sel)) return sel;
        }
        if (node.id) {
            const sel = `#${CSS.escape(node.id)}`;
            if (isUnique(sel)) return sel;
        }
        const name = node.getAttribute("name");
        if (name) {
            const sel = `${tag}[name=${quote(name)}]`;
            if (isUnique(sel)) return sel;
        }
        const aria = node.getAttribute("aria-label");
        if (aria) {
            const sel = `${tag}[aria-label=${quote(aria)}]`;
            if (isUnique(sel)) return sel;
        }
        return buildCssPath(node);
    };

    const isVisible = (node) => {
        const rect = node.getBoundingClientRect();
        if (rect.width <= 0 || rect.height <= 0) {
            return false;
        }
        const style = window.getComputedStyle(node);
        return style.visibility !== "hidden" && style.display !== "none" && style.opacity !== "0";
    };

    const addNode = (node) => {
        if (!node || seen.has(node)) {
            return;
        }
        seen.add(node);
        if (!isVisible(node)) {
            return;
        }

        const rect = node.getBoundingClientRect();
        const textContent = (node.innerText || node.value || "").trim().replace(/\\s+/g, " ");
        elements.push({
            index: elements.length,
            tagName: node.tagName.toLowerCase(),
            textContent,
            ariaLabel: node.getAttribute("aria-label") || "",
            placeholder: node.getAttribute("placeholder") || "",
            title: node.getAttribute("title") || "",
            role: node.getAttribute("role") || "",
            type: node.getAttribute("type") || "",
            name: node.getAttribute("name") || "",
            id: node.id || "",
            testId: node.getAttribute(testIdAttribute) || "",
            href: node.getAttribute("href") || "",
            boundingBox: {
                x: rect.x + window.scrollX,
                y: rect.y + window.scrollY,
                width: rect.width,
                height: rect.height
            },
            selector: suggestSelector(node),
        });
    };

    const nodes = document.querySelectorAll(selectors.join(","));
    for (const node of nodes) {
        if (elements.length >= MAX_ELEMENTS) break;
        addNode(node);
    }
    return {
        elements,
        page: {
            width: document.documentElement.scrollWidth,
            height: document.documentElement.scrollHeight
        }
    };
}
"""

# Attributes forwarded to the model, in display order.
CANDIDATE_ATTRIBUTES = ("testId", "id", "name", "type", "role", "ariaLabel", "placeholder", "title", "href")

MAX_TEXT_LENGTH = 80


@dataclass(frozen=True)
class CandidateElement:
    """Bounded description of one visible interactive element."""

    index: int
    tag: str
    text: str
    selector: str
    attributes: Dict[str, str] = field(default_factory=dict)
    bounding_box: Dict[str, float] = field(default_factory=dict)

    def area_ratio(self, page_width: float, page_height: float) -> float:
        width = float(self.bounding_box.get("width", 0) or 0)
        height = float(self.bounding_box.get("height", 0) or 0)
        total = max(page_width, 1.0) * max(page_height, 1.0)
        return (width * height) / total

    def prompt_line(self) -> str:
        """One-line rendering used in the vision prompt."""
        attrs = " ".join(f'{key}="{value}"' for key, value in self.attributes.items())
        box = self.bounding_box
        geometry = (
            f"@({int(box.get('x', 0))},{int(box.get('y', 0))} "
            f"{int(box.get('width', 0))}x{int(box.get('height', 0))})"
        )
        text = f' text="{self.text}"' if self.text else ""
        attrs = f" {attrs}" if attrs else ""
        return f"[{self.index}] <{self.tag}>{attrs}{text} {geometry} selector={self.selector}"


@dataclass
class PageSnapshot:
    """Screenshot plus structural snapshot taken for one vision escalation."""

    url: str
    screenshot: bytes
    candidates: List[CandidateElement]
    page_width: float = 0.0
    page_height: float = 0.0
    total_elements: int = 0

    def candidate(self, index: Optional[int]) -> Optional[CandidateElement]:
        if index is None:
            return None
        for candidate in self.candidates:
            if candidate.index == index:
                return candidate
        return None


def _truncate(text: str, limit: int = MAX_TEXT_LENGTH) -> str:
    text = " ".join((text or "").split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def build_candidates(raw_elements: List[Dict[str, Any]], max_elements: int = 400) -> List[CandidateElement]:
    """Convert raw DOM capture into bounded ``CandidateElement`` records."""
    candidates: List[CandidateElement] = []
    for raw in raw_elements[:max_elements]:
        if not isinstance(raw, dict) or not raw.get("selector"):
            continue
        attributes = {
            key: _truncate(str(raw[key]), 60)
            for key in CANDIDATE_ATTRIBUTES
            if raw.get(key)
        }
        box = raw.get("boundingBox") or {}
        candidates.append(
            CandidateElement(
                index=int(raw.get("index", len(candidates))),
                tag=str(raw.get("tagName") or "element"),
                text=_truncate(str(raw.get("textContent") or "")),
                selector=str(raw["selector"]),
                attributes=attributes,
                bounding_box={key: float(box.get(key, 0) or 0) for key in ("x", "y", "width", "height")},
            )
        )
    return candidates


async def capture_dom_elements(page, test_id_attribute: str = "data-testid") -> Dict[str, Any]:
    """Capture visible interactive elements via DOM inspection and return serializable metadata."""
    raw = await page.evaluate(DOM_ELEMENT_CAPTURE_SCRIPT, test_id_attribute)
    if isinstance(raw, str):
        raw = json.loads(raw)
    if isinstance(raw, list):
        raw = {"elements": raw, "page": {}}
    if not isinstance(raw, dict):
        return {"elements": [], "page": {}}
    return raw


async def capture_page_snapshot(
    page,
    test_id_attribute: str = "data-testid",
    max_elements: int = 400,
) -> PageSnapshot:
    """Take a full-page screenshot and the candidate list of the current page."""
    screenshot = await page.screenshot(full_page=True, type="png")
    raw = await capture_dom_elements(page, test_id_attribute)
    elements = raw.get("elements") or []
    page_info = raw.get("page") or {}
    viewport = getattr(page, "viewport_size", None) or {}
    return PageSnapshot(
        url=getattr(page, "url", "") or "",
        screenshot=screenshot,
        candidates=build_candidates(elements, max_elements=max_elements),
        page_width=float(page_info.get("width") or viewport.get("width") or 0),
        page_height=float(page_info.get("height") or viewport.get("height") or 0),
        total_elements=len(elements),
    )


__all__ = [
    "DOM_ELEMENT_CAPTURE_SCRIPT",
    "CandidateElement",
    "PageSnapshot",
    "build_candidates",
    "capture_dom_elements",
    "capture_page_snapshot",
]
