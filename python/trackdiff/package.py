"""
Builds the output DOCX: the rewritten document part plus the three fixed parts
a package reader needs to accept it. Other input parts (styles, numbering,
media, headers, footers) are deliberately not carried over.
"""

import zipfile
from io import BytesIO
from typing import Dict

import structlog
from docx.opc.constants import CONTENT_TYPE as CT
from docx.opc.constants import NAMESPACE
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from lxml import etree

from trackdiff.utils.docx import create_element
from trackdiff.utils.xml import W_NS, Element, serialize_part

logger = structlog.get_logger(__name__)

CONTENT_TYPES_PATH = "[Content_Types].xml"
ROOT_RELS_PATH = "_rels/.rels"
DOCUMENT_PATH = "word/document.xml"
SETTINGS_PATH = "word/settings.xml"


def _to_bytes(root) -> bytes:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


def build_content_types() -> bytes:
    ns = NAMESPACE.OPC_CONTENT_TYPES
    types = etree.Element(f"{{{ns}}}Types", nsmap={None: ns})
    etree.SubElement(types, f"{{{ns}}}Default", Extension="rels", ContentType=CT.OPC_RELATIONSHIPS)
    etree.SubElement(types, f"{{{ns}}}Default", Extension="xml", ContentType=CT.XML)
    etree.SubElement(types, f"{{{ns}}}Override", PartName=f"/{DOCUMENT_PATH}", ContentType=CT.WML_DOCUMENT_MAIN)
    etree.SubElement(types, f"{{{ns}}}Override", PartName=f"/{SETTINGS_PATH}", ContentType=CT.WML_SETTINGS)
    return _to_bytes(types)


def build_root_rels() -> bytes:
    ns = NAMESPACE.OPC_RELATIONSHIPS
    rels = etree.Element(f"{{{ns}}}Relationships", nsmap={None: ns})
    etree.SubElement(rels, f"{{{ns}}}Relationship", Id="rId1", Type=RT.OFFICE_DOCUMENT, Target=DOCUMENT_PATH)
    return _to_bytes(rels)


def build_settings() -> bytes:
    settings = create_element("settings", children=[create_element("trackRevisions")])
    settings.nsmap = {"w": W_NS}
    return serialize_part(settings)


def assemble_package(document: Element) -> bytes:
    """Serializes the document tree and zips it with the companion parts into a fresh package."""
    parts: Dict[str, bytes] = {
        CONTENT_TYPES_PATH: build_content_types(),
        ROOT_RELS_PATH: build_root_rels(),
        DOCUMENT_PATH: serialize_part(document),
        SETTINGS_PATH: build_settings(),
    }

    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for path, data in parts.items():
            archive.writestr(path, data)

    logger.info(f"Assembled output package ({len(parts)} parts, {buffer.tell()} bytes)")
    return buffer.getvalue()
