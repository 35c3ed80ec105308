"""XML text <-> dict conversion for remote API request and response bodies.

The XML receiver turns the response text into a dict and decodes the root
element's value into the declared type, so models declared for a JSON API
work unchanged for an XML API. The XML sender does the reverse with the
parameter object dumped to a dict.

Element names are taken directly from dict keys; attributes are read as
"@name" keys and never written.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any


# ---------------------------------------------------------------------------
# XML text -> dict  (response parsing)
# ---------------------------------------------------------------------------


def xml_to_dict(xml_text: str | bytes, force_list: set[str] | None = None) -> dict[str, Any]:
    """Convert an XML document into a dict keyed by the root element tag.

    Namespace URIs are stripped from tags, so "{urn:harbor}Sea" becomes "Sea".

    Args:
        xml_text: The XML document.
        force_list: Tag names always read as lists, even with one child.

    Raises:
        ET.ParseError: If the document is not well-formed.
    """
    root = ET.fromstring(xml_text)
    return {_strip_ns(root.tag): _read_element(root, force_list or set())}


def root_value(xml_text: str | bytes, force_list: set[str] | None = None) -> Any:
    """The converted value of the root element, without the root tag."""
    return next(iter(xml_to_dict(xml_text, force_list).values()))


def _strip_ns(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _read_element(element: ET.Element, force_list: set[str]) -> dict[str, Any] | str | None:
    """Leaf text -> str, empty -> None, repeated or forced tags -> list."""
    result: dict[str, Any] = {}
    for attr_name, attr_value in element.attrib.items():
        if attr_name.startswith("xmlns") or attr_name.startswith("{"):
            continue
        result[f"@{attr_name}"] = attr_value

    grouped: dict[str, list[Any]] = {}
    for child in element:
        grouped.setdefault(_strip_ns(child.tag), []).append(_read_element(child, force_list))
    for tag, values in grouped.items():
        result[tag] = values if tag in force_list or len(values) > 1 else values[0]

    text = (element.text or "").strip()
    if text:
        if not result:
            return text
        result["#text"] = text
    return result or None


# ---------------------------------------------------------------------------
# dict -> XML text  (request serialization)
# ---------------------------------------------------------------------------


def dict_to_xml(root_tag: str, value: Any, charset: str = "utf-8") -> str:
    """Render a value as an XML document with the given root element.

    Dicts become child elements, lists repeated siblings, None an empty
    element, booleans "true"/"false", other scalars their str().

    Args:
        root_tag: Root element name.
        value: The root value, usually a dict dumped from a model.
        charset: Encoding named in the XML declaration.
    """
    if not root_tag:
        raise ValueError("The argument 'root_tag' should not be empty.")
    root = _write_element(root_tag, value)
    ET.indent(root)
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="{charset}"?>\n{body}'


def _write_element(tag: str, value: Any) -> ET.Element:
    element = ET.Element(tag)
    if value is None:
        return element
    if isinstance(value, dict):
        for key, child in value.items():
            if key == "#text":
                element.text = _scalar_text(child)
                continue
            if key.startswith("@"):
                continue
            if isinstance(child, (list, tuple)):
                for item in child:
                    element.append(_write_element(key, item))
            else:
                element.append(_write_element(key, child))
    elif isinstance(value, (list, tuple)):
        for item in value:
            element.append(_write_element("item", item))
    else:
        element.text = _scalar_text(value)
    return element


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
