"""
Part codec: converts an XML part into a small attributed tree and back.

Tags and attributes are addressed by their local name; the namespace URI is
kept on the node only so that serialization can emit a valid namespaced part.
Two parts that differ only in the prefixes they chose parse to equal trees.

Children are always an ordered list. A tag occurring once under its parent is
simply a list with one such element; there is no separate "single" shape.
Text is held as plain ``str`` children, so a node can carry attributes,
element children and inline text at the same time.
"""

from typing import Dict, Iterator, List, Optional, Union

import structlog
from docx.oxml.ns import nsmap
from lxml import etree

from trackdiff.errors import PartParseError

logger = structlog.get_logger(__name__)

W_NS = nsmap["w"]
XML_NS = nsmap["xml"]
R_NS = nsmap["r"]

_PREFIXES = {uri: prefix for prefix, uri in nsmap.items() if prefix != "xml"}

_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_comments=True,
    remove_pis=True,
    huge_tree=False,
)

Node = Union["Element", str]


class Element:
    __slots__ = ("tag", "ns", "attrs", "attr_ns", "children", "nsmap")

    def __init__(
        self,
        tag: str,
        attrs: Optional[Dict[str, str]] = None,
        children: Optional[List[Node]] = None,
        ns: Optional[str] = W_NS,
        attr_ns: Optional[Dict[str, str]] = None,
        nsmap: Optional[Dict[Optional[str], str]] = None,
    ):
        self.tag = tag
        self.ns = ns
        self.attrs = dict(attrs or {})
        self.attr_ns = dict(attr_ns or {})
        self.children = list(children or [])
        # Prefix declarations seen on a parsed root; informative only, ignored by equality.
        self.nsmap = dict(nsmap or {})

    def __eq__(self, other):
        if not isinstance(other, Element):
            return NotImplemented
        return (
            self.tag == other.tag
            and self.ns == other.ns
            and self.attrs == other.attrs
            and self.attr_ns == other.attr_ns
            and self.children == other.children
        )

    def __repr__(self):
        return f"Element({self.tag!r}, attrs={self.attrs!r}, children={len(self.children)})"

    @property
    def text(self) -> str:
        return "".join(child for child in self.children if isinstance(child, str))

    def elements(self) -> Iterator["Element"]:
        for child in self.children:
            if isinstance(child, Element):
                yield child

    def find(self, tag: str) -> Optional["Element"]:
        for child in self.elements():
            if child.tag == tag:
                return child
        return None

    def findall(self, tag: str) -> List["Element"]:
        return [child for child in self.elements() if child.tag == tag]

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attrs.get(name, default)

    def with_children(self, children: List[Node]) -> "Element":
        """Returns a copy of this node's identity (tag, attributes) holding new children."""
        return Element(self.tag, self.attrs, children, ns=self.ns, attr_ns=self.attr_ns, nsmap=self.nsmap)


def parse_part(xml: Union[bytes, str]) -> Element:
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    try:
        root = etree.fromstring(xml, _PARSER)
    except (etree.XMLSyntaxError, ValueError) as e:
        raise PartParseError(f"Malformed XML: {e}") from e

    element = _from_lxml(root)
    element.nsmap = dict(root.nsmap)
    return element


def _from_lxml(node) -> Element:
    qname = etree.QName(node)
    attrs: Dict[str, str] = {}
    attr_ns: Dict[str, str] = {}
    for key, value in node.attrib.items():
        attr_name = etree.QName(key)
        attrs[attr_name.localname] = value
        if attr_name.namespace:
            attr_ns[attr_name.localname] = attr_name.namespace

    children: List[Node] = []
    has_elements = len(node) > 0

    def add_text(text):
        # Indentation between elements is formatting, not content.
        if not text or (has_elements and not text.strip()):
            return
        if children and isinstance(children[-1], str):
            children[-1] += text
        else:
            children.append(text)

    add_text(node.text)
    for child in node:
        if isinstance(child.tag, str):
            children.append(_from_lxml(child))
        add_text(child.tail)

    return Element(qname.localname, attrs, children, ns=qname.namespace, attr_ns=attr_ns)


def serialize_part(element: Element) -> bytes:
    root = _to_lxml(element, None, _build_nsmap(element))
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


def _build_nsmap(element: Element) -> Dict[Optional[str], str]:
    declared = dict(element.nsmap)
    known = set(declared.values())
    counter = 0

    for uri in sorted(_namespaces_used(element)):
        if uri in known or uri == XML_NS:
            continue
        prefix = _PREFIXES.get(uri)
        if prefix is None or prefix in declared:
            prefix = f"ns{counter}"
            counter += 1
        declared[prefix] = uri
        known.add(uri)
    return declared


def _namespaces_used(element: Element) -> set:
    used = set()
    stack = [element]
    while stack:
        node = stack.pop()
        if node.ns:
            used.add(node.ns)
        used.update(node.attr_ns.values())
        stack.extend(node.elements())
    return used


def _clark(ns: Optional[str], name: str) -> str:
    return f"{{{ns}}}{name}" if ns else name


def _to_lxml(element: Element, parent, declared_nsmap=None):
    tag = _clark(element.ns, element.tag)
    if parent is None:
        node = etree.Element(tag, nsmap=declared_nsmap)
    else:
        node = etree.SubElement(parent, tag)

    for name, value in element.attrs.items():
        node.set(_clark(element.attr_ns.get(name), name), value)

    last = None
    for child in element.children:
        if isinstance(child, str):
            if last is None:
                node.text = (node.text or "") + child
            else:
                last.tail = (last.tail or "") + child
        else:
            last = _to_lxml(child, node)
    return node
