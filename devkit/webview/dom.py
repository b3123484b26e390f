from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

TEXT_PREVIEW_LEN = 50
MIN_SEARCH_LEN = 2


@dataclass(frozen=True)
class DOMNode:
    """One element of a DOM snapshot (elements only; text is folded into inner_text)."""

    tag: str
    id_attr: str = ""
    class_name: str = ""
    inner_text: str | None = None
    children: tuple[DOMNode, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Any) -> DOMNode | None:
        if not isinstance(data, dict) or not isinstance(data.get("tag"), str):
            return None
        raw_children = data.get("children")
        children: list[DOMNode] = []
        if isinstance(raw_children, list):
            for child in raw_children:
                node = cls.from_dict(child)
                if node is not None:
                    children.append(node)
        text = data.get("innerText")
        return cls(
            tag=data["tag"],
            id_attr=data.get("id") if isinstance(data.get("id"), str) else "",
            class_name=data.get("className") if isinstance(data.get("className"), str) else "",
            inner_text=text if isinstance(text, str) else None,
            children=tuple(children),
        )

    @classmethod
    def from_json(cls, raw: Any) -> DOMNode | None:
        if not isinstance(raw, str) or not raw:
            return None
        try:
            return cls.from_dict(json.loads(raw))
        except ValueError:
            return None

    @property
    def label(self) -> str:
        """CSS-ish label: tag#id.class1.class2"""
        out = self.tag.lower()
        if self.id_attr:
            out += f"#{self.id_attr}"
        if self.class_name:
            out += "." + ".".join(self.class_name.split())
        return out

    def truncated_text(self, max_len: int = TEXT_PREVIEW_LEN) -> str | None:
        if not self.inner_text:
            return None
        if len(self.inner_text) > max_len:
            return self.inner_text[:max_len] + "..."
        return self.inner_text

    def to_raw_text(self, indent: int = 0) -> str:
        pad = "  " * indent
        tag = self.tag.lower()
        out = f"{pad}<{tag}"
        if self.id_attr:
            out += f' id="{self.id_attr}"'
        if self.class_name:
            out += f' class="{self.class_name}"'
        if not self.children and not self.inner_text:
            return out + " />"
        out += ">"
        if not self.children and self.inner_text:
            out += self.inner_text
        for child in self.children:
            out += "\n" + child.to_raw_text(indent + 1)
        if self.children:
            out += "\n" + pad
        return out + f"</{tag}>"

    def matches(self, search: str) -> bool:
        """True when this node or any descendant contains `search` (case-insensitive).

        Searches shorter than two characters match everything.
        """
        if len(search) < MIN_SEARCH_LEN:
            return True
        return self._contains(search.lower())

    def _contains(self, needle: str) -> bool:
        if (
            needle in self.tag.lower()
            or needle in self.id_attr.lower()
            or needle in self.class_name.lower()
            or (self.inner_text is not None and needle in self.inner_text.lower())
        ):
            return True
        return any(child._contains(needle) for child in self.children)

    def count(self) -> int:
        return 1 + sum(child.count() for child in self.children)
