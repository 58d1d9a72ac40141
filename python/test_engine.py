"""
End-to-end tests for the tracked-changes comparison engine (redline/engine.py)
and the output package.

Run: python3 test_engine.py
From: python/
"""

import sys
import zipfile
from io import BytesIO
from zipfile import ZipFile

from docx import Document
from lxml import etree

from trackdiff import diff_docx_tracked
from trackdiff.errors import ArchiveError, MissingPartError, PolicyViolationError
from trackdiff.models import Granularity, Options, ResourceLimits, RevisionsPolicy
from trackdiff.redline.engine import TrackDiffEngine

W = '{http://schemas.openxmlformats.org/wordprocessingml/2006/main}'
W_URI = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"


# ---------------------------------------------------------------------------
# Helpers — build minimal .docx bytes for testing
# ---------------------------------------------------------------------------

def _doc_to_bytes(doc):
    buf = BytesIO()
    doc.save(buf)
    return buf.getvalue()


def _make_doc(*paragraphs):
    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    return _doc_to_bytes(doc)


def _make_raw_docx(body_xml, document_path="word/document.xml"):
    """A bare package whose document part is written verbatim."""
    xml = f'<w:document xmlns:w="{W_URI}"><w:body>{body_xml}</w:body></w:document>'
    buf = BytesIO()
    with ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("[Content_Types].xml", "<Types/>")
        zf.writestr(document_path, xml)
    return buf.getvalue()


def _output_body(docx_bytes):
    with ZipFile(BytesIO(docx_bytes)) as zf:
        root = etree.fromstring(zf.read("word/document.xml"))
    return root.find(f"{W}body")


def _output_paragraphs(docx_bytes):
    return _output_body(docx_bytes).findall(f"{W}p")


def _child_tags(p):
    return [etree.QName(c).localname for c in p if etree.QName(c).localname != "pPr"]


def _texts(element, tag="t"):
    return "".join(t.text or "" for t in element.iter(f"{W}{tag}"))


def _has_markup(p):
    return any(p.iter(f"{W}ins")) or any(p.iter(f"{W}del"))


def _expect(exc_type, func, *args, **kwargs):
    try:
        func(*args, **kwargs)
    except exc_type as e:
        return e
    raise AssertionError(f"Expected {exc_type.__name__}")


# ---------------------------------------------------------------------------
# Alignment properties
# ---------------------------------------------------------------------------

def test_identity_has_no_markup():
    doc = _make_doc("The quick brown fox.", "Second paragraph here.")
    for options in (Options(), Options(suppress_whitespace_only=False)):
        result = diff_docx_tracked(doc, doc, author="Tester", options=options)
        paragraphs = _output_paragraphs(result.content)
        assert len(paragraphs) == 2
        for p in paragraphs:
            assert not _has_markup(p), "Identical documents must produce no tracked changes"
            assert len(p.findall(f"{W}r")) == 1, "Each paragraph should be a single plain run"
        assert result.warnings == []
    print("PASS: test_identity_has_no_markup")


def test_appended_paragraph_is_inserted():
    result = diff_docx_tracked(_make_doc("First."), _make_doc("First.", "Brand new clause."), author="Tester")
    p1, p2 = _output_paragraphs(result.content)

    assert not _has_markup(p1)
    assert _texts(p1) == "First."

    assert _child_tags(p2) == ["ins"], _child_tags(p2)
    ins = p2.find(f"{W}ins")
    assert ins.get(f"{W}author") == "Tester"
    assert _texts(ins) == "Brand new clause."
    assert p2.find(f"{W}pPr/{W}rPr/{W}ins") is not None, "Paragraph mark should be marked inserted"
    print("PASS: test_appended_paragraph_is_inserted")


def test_removed_paragraph_is_deleted():
    result = diff_docx_tracked(_make_doc("First.", "Obsolete clause."), _make_doc("First."))
    p1, p2 = _output_paragraphs(result.content)

    assert not _has_markup(p1)
    assert _child_tags(p2) == ["del"], _child_tags(p2)
    deletion = p2.find(f"{W}del")
    assert deletion.get(f"{W}author") == "AutoDiff"
    assert _texts(deletion, "delText") == "Obsolete clause."
    assert _texts(p2) == "", "Deleted paragraph must not carry live w:t text"
    assert p2.find(f"{W}pPr/{W}rPr/{W}del") is not None
    print("PASS: test_removed_paragraph_is_deleted")


def test_whitespace_only_change_is_suppressed():
    base = _make_doc("Hello  world")
    revised = _make_doc("Hello world")

    (p,) = _output_paragraphs(diff_docx_tracked(base, revised).content)
    assert not _has_markup(p)
    assert _texts(p) == "Hello world"

    (p,) = _output_paragraphs(diff_docx_tracked(base, revised, options=Options(suppress_whitespace_only=False)).content)
    assert _has_markup(p), "Without suppression the spacing change must be tracked"
    print("PASS: test_whitespace_only_change_is_suppressed")


def test_word_level_replacement():
    base = _make_doc("The seller shall deliver the goods")
    revised = _make_doc("The seller shall ship the goods")
    (p,) = _output_paragraphs(diff_docx_tracked(base, revised).content)

    assert _child_tags(p) == ["r", "del", "ins", "r"], _child_tags(p)
    runs = list(p)
    assert _texts(runs[0]) == "The seller shall "
    assert _texts(runs[1], "delText") == "deliver"
    assert _texts(runs[2]) == "ship"
    assert _texts(runs[3]) == " the goods"
    print("PASS: test_word_level_replacement")


def test_char_granularity():
    options = Options(granularity=Granularity.CHAR)
    (p,) = _output_paragraphs(diff_docx_tracked(_make_doc("cat"), _make_doc("cut"), options=options).content)
    assert _child_tags(p) == ["r", "del", "ins", "r"], _child_tags(p)
    assert _texts(p.find(f"{W}del"), "delText") == "a"
    assert _texts(p.find(f"{W}ins")) == "u"
    print("PASS: test_char_granularity")


def test_revision_ids_are_unique_across_document():
    base = _make_doc("Alpha beta gamma.", "Delta epsilon.", "Removed.")
    revised = _make_doc("Alpha BETA gamma.", "Delta zeta.")
    body = _output_body(diff_docx_tracked(base, revised).content)

    ids = [el.get(f"{W}id") for tag in ("ins", "del") for el in body.iter(f"{W}{tag}")]
    assert len(ids) >= 6, ids
    assert len(set(ids)) == len(ids), f"Duplicate revision ids: {ids}"
    dates = {el.get(f"{W}date") for el in body.iter(f"{W}ins")}
    assert len(dates) == 1, "All changes of one run share one timestamp"
    print("PASS: test_revision_ids_are_unique_across_document")


# ---------------------------------------------------------------------------
# Existing tracked changes
# ---------------------------------------------------------------------------

TRACKED_BODY = (
    '<w:p><w:r><w:t xml:space="preserve">Payment due in </w:t></w:r>'
    '<w:del w:id="1" w:author="Bob" w:date="2024-01-01T00:00:00Z"><w:r><w:delText>30</w:delText></w:r></w:del>'
    '<w:ins w:id="2" w:author="Bob" w:date="2024-01-01T00:00:00Z"><w:r><w:t>45</w:t></w:r></w:ins>'
    '<w:r><w:t xml:space="preserve"> days.</w:t></w:r></w:p>'
)


def test_existing_revisions_are_stripped_before_diffing():
    base = _make_raw_docx(TRACKED_BODY)
    revised = _make_raw_docx('<w:p><w:r><w:t>Payment due in 45 days.</w:t></w:r></w:p>')

    (p,) = _output_paragraphs(diff_docx_tracked(base, revised).content)
    assert not _has_markup(p), "Accepted view of base equals revised; nothing to mark"
    assert _texts(p) == "Payment due in 45 days."

    (p,) = _output_paragraphs(diff_docx_tracked(revised, base).content)
    assert not _has_markup(p)
    assert _texts(p) == "Payment due in 45 days."
    assert _texts(p, "delText") == "", "Stale deleted runs must not leak into the output"
    print("PASS: test_existing_revisions_are_stripped_before_diffing")


def test_fail_policy_rejects_tracked_revised():
    base = _make_doc("Payment due in 30 days.")
    revised = _make_raw_docx(TRACKED_BODY)
    options = Options(existing_tracked_revisions=RevisionsPolicy.FAIL)

    error = _expect(PolicyViolationError, diff_docx_tracked, base, revised, options=options)
    assert "tracked revisions" in str(error)

    # Base with tracked changes is fine under 'fail'; only the revised side is checked
    diff_docx_tracked(revised, base, options=options)

    # 'ignore' accepts it
    diff_docx_tracked(base, revised)
    print("PASS: test_fail_policy_rejects_tracked_revised")


# ---------------------------------------------------------------------------
# Errors, warnings and limits
# ---------------------------------------------------------------------------

def test_missing_document_part():
    broken = _make_raw_docx("<w:p/>", document_path="word/other.xml")
    error = _expect(MissingPartError, diff_docx_tracked, _make_doc("x"), broken)
    assert "word/document.xml" in str(error)
    print("PASS: test_missing_document_part")


def test_malformed_part_warns_and_falls_back():
    buf = BytesIO()
    with ZipFile(buf, "w") as zf:
        zf.writestr("word/document.xml", "<w:document><w:body>")
    result = diff_docx_tracked(buf.getvalue(), _make_doc("Only revised."))

    assert len(result.warnings) == 1 and "Malformed word/document.xml" in result.warnings[0], result.warnings
    (p,) = _output_paragraphs(result.content)
    assert _child_tags(p) == ["ins"]
    print("PASS: test_malformed_part_warns_and_falls_back")


def test_archive_limits_surface_as_archive_error():
    doc = _make_doc("Some text.")
    options = Options(limits=ResourceLimits(max_entries=1))
    error = _expect(ArchiveError, diff_docx_tracked, doc, doc, options=options)
    assert "base" in str(error)

    _expect(ArchiveError, diff_docx_tracked, b"not a docx", doc)
    print("PASS: test_archive_limits_surface_as_archive_error")


def test_token_cap_diffs_paragraph_as_one_unit():
    options = Options(limits=ResourceLimits(max_tokens_per_paragraph=3))
    result = diff_docx_tracked(_make_doc("one two three"), _make_doc("one two four"), options=options)

    (p,) = _output_paragraphs(result.content)
    assert _child_tags(p) == ["del", "ins"], _child_tags(p)
    assert _texts(p.find(f"{W}del"), "delText") == "one two three"
    assert _texts(p.find(f"{W}ins")) == "one two four"
    assert any("single unit" in w for w in result.warnings), result.warnings

    # Same text over the cap stays one plain run
    result = diff_docx_tracked(
        _make_doc("one two three"),
        _make_doc("one two three"),
        options=Options(suppress_whitespace_only=False, limits=ResourceLimits(max_tokens_per_paragraph=3)),
    )
    (p,) = _output_paragraphs(result.content)
    assert _child_tags(p) == ["r"] and not _has_markup(p)
    print("PASS: test_token_cap_diffs_paragraph_as_one_unit")


def test_headers_footers_flag_warns():
    doc = _make_doc("Body.")
    result = diff_docx_tracked(doc, doc, options=Options(include_headers_footers=True))
    assert any("Headers and footers" in w for w in result.warnings), result.warnings
    print("PASS: test_headers_footers_flag_warns")


# ---------------------------------------------------------------------------
# Output package
# ---------------------------------------------------------------------------

def test_output_package_layout():
    result = diff_docx_tracked(_make_doc("Old wording."), _make_doc("New wording."))

    with ZipFile(BytesIO(result.content)) as zf:
        assert sorted(zf.namelist()) == sorted(
            ["[Content_Types].xml", "_rels/.rels", "word/document.xml", "word/settings.xml"]
        ), zf.namelist()
        settings = etree.fromstring(zf.read("word/settings.xml"))
        content_types = zf.read("[Content_Types].xml").decode("utf-8")
        rels = zf.read("_rels/.rels").decode("utf-8")

    assert settings.find(f"{W}trackRevisions") is not None
    assert "/word/document.xml" in content_types and "/word/settings.xml" in content_types
    assert 'Target="word/document.xml"' in rels

    body = _output_body(result.content)
    assert etree.QName(body[-1]).localname == "sectPr", "Body must end with section properties"
    assert not list(body.iter(f"{W}headerReference"))

    reopened = Document(BytesIO(result.content))
    assert len(reopened.paragraphs) == 1
    print("PASS: test_output_package_layout")


def test_unchanged_paragraphs_drop_unresolvable_content():
    r_uri = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
    body = (
        '<w:p><w:r><w:t>Host</w:t></w:r>'
        '<w:r><w:pict><w:txbxContent><w:p><w:r><w:t>Boxed</w:t></w:r></w:p></w:txbxContent></w:pict></w:r></w:p>'
        f'<w:p><w:hyperlink xmlns:r="{r_uri}" r:id="rId5"><w:r><w:t>link</w:t></w:r></w:hyperlink></w:p>'
    )
    data = _make_raw_docx(body)
    result = diff_docx_tracked(data, data)

    out_body = _output_body(result.content)
    # Text box text is emitted once, as its own paragraph
    assert _texts(out_body) == "HostBoxedlink", _texts(out_body)
    assert not any(out_body.iter(f"{W}pict"))
    hyperlink = next(out_body.iter(f"{W}hyperlink"))
    assert f"{{{r_uri}}}id" not in hyperlink.attrib
    assert not any(_has_markup(p) for p in out_body.findall(f"{W}p"))
    print("PASS: test_unchanged_paragraphs_drop_unresolvable_content")


def test_text_inside_hyperlinks_is_diffed():
    base = _make_raw_docx(
        '<w:p><w:r><w:t xml:space="preserve">See </w:t></w:r>'
        '<w:hyperlink w:anchor="terms"><w:r><w:t>old terms</w:t></w:r></w:hyperlink></w:p>'
        '<w:p><w:hyperlink w:anchor="annex"><w:r><w:t>Annex A</w:t></w:r></w:hyperlink></w:p>'
    )
    revised = _make_raw_docx(
        '<w:p><w:r><w:t xml:space="preserve">See </w:t></w:r>'
        '<w:hyperlink w:anchor="terms"><w:r><w:t>new terms</w:t></w:r></w:hyperlink></w:p>'
    )
    result = diff_docx_tracked(base, revised)
    changed, removed = _output_paragraphs(result.content)

    assert _child_tags(changed) == ["r", "del", "ins", "r"], _child_tags(changed)
    assert _texts(changed, "delText") == "old"
    assert _texts(changed) == "See new terms"
    # The diffed runs replace the container; its stale copy is not kept
    assert not any(changed.iter(f"{W}hyperlink"))

    # Hyperlink text of a removed paragraph is part of the deletion
    assert _texts(removed, "delText") == "Annex A"
    print("PASS: test_text_inside_hyperlinks_is_diffed")


def test_deleted_runs_inside_containers_do_not_survive():
    body = (
        '<w:p><w:hyperlink w:anchor="x">'
        '<w:del w:id="1" w:author="Old" w:date="2020-01-01T00:00:00Z"><w:r><w:delText>gone</w:delText></w:r></w:del>'
        '<w:r><w:t>kept</w:t></w:r>'
        '</w:hyperlink></w:p>'
    )
    data = _make_raw_docx(body)
    result = diff_docx_tracked(data, data)

    out_body = _output_body(result.content)
    assert not any(out_body.iter(f"{W}delText")), "Stale deleted text leaked into the output"
    assert _texts(out_body) == "kept"
    assert any(out_body.iter(f"{W}hyperlink")), "Unchanged paragraph keeps its hyperlink"
    assert not any(_has_markup(p) for p in out_body.findall(f"{W}p"))
    print("PASS: test_deleted_runs_inside_containers_do_not_survive")


def test_engine_instance_collects_warnings():
    engine = TrackDiffEngine(author="", options=Options(include_headers_footers=True))
    assert engine.author == "AutoDiff"
    doc = _make_doc("Text.")
    result = engine.run(doc, doc)
    assert result.warnings == engine.warnings
    print("PASS: test_engine_instance_collects_warnings")


def test_options_accept_host_aliases():
    options = Options.model_validate(
        {
            "granularity": "char",
            "suppressWhitespaceOnly": False,
            "existingTrackedRevisions": "fail",
            "limits": {"maxEntries": 5, "maxTokensPerParagraph": 10},
        }
    )
    assert options.granularity is Granularity.CHAR
    assert options.suppress_whitespace_only is False
    assert options.existing_tracked_revisions is RevisionsPolicy.FAIL
    assert options.limits.max_entries == 5
    assert options.limits.max_tokens_per_paragraph == 10
    assert options.limits.max_entry_size == 5 * 1024 * 1024
    print("PASS: test_options_accept_host_aliases")


if __name__ == "__main__":
    tests = [
        test_identity_has_no_markup,
        test_appended_paragraph_is_inserted,
        test_removed_paragraph_is_deleted,
        test_whitespace_only_change_is_suppressed,
        test_word_level_replacement,
        test_char_granularity,
        test_revision_ids_are_unique_across_document,
        test_existing_revisions_are_stripped_before_diffing,
        test_fail_policy_rejects_tracked_revised,
        test_missing_document_part,
        test_malformed_part_warns_and_falls_back,
        test_archive_limits_surface_as_archive_error,
        test_token_cap_diffs_paragraph_as_one_unit,
        test_headers_footers_flag_warns,
        test_output_package_layout,
        test_unchanged_paragraphs_drop_unresolvable_content,
        test_text_inside_hyperlinks_is_diffed,
        test_deleted_runs_inside_containers_do_not_survive,
        test_engine_instance_collects_warnings,
        test_options_accept_host_aliases,
    ]

    passed = 0
    failed = 0
    for t in tests:
        try:
            t()
            passed += 1
        except Exception as e:
            print(f"FAIL: {t.__name__} — {e}")
            failed += 1

    print(f"\n{'=' * 50}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed > 0:
        sys.exit(1)
    else:
        print("All tests passed!")
