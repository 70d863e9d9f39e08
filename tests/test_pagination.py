import json
import logging

import pytest

import html2print.core as core
from html2print.fragments import Heading, PageBreak, Paragraph


REPORTS_HTML = (
    "<html><body>"
    '<div id="report-a"><p>Hello</p></div>'
    '<div id="report-b"><button>Download</button></div>'
    '<div id="report-c"><p>World</p></div>'
    '<div id="report-d"><h2>Summary</h2><p>D</p></div>'
    '<div id="report-e"><h2>Summary</h2><p>E</p></div>'
    "</body></html>"
)


def _soup():
    return core.parse_html(REPORTS_HTML)


def test_two_roots_are_separated_by_a_page_break():
    definition = core.build_document(_soup(), ["report-a", "report-c"], "Combined")

    assert list(definition.content) == [Paragraph(text="Hello"), PageBreak(), Paragraph(text="World")]


def test_empty_root_does_not_get_a_page_break(monkeypatch, caplog):
    monkeypatch.setattr(core.LOG, "propagate", True)
    caplog.set_level(logging.WARNING, logger="html2print")

    definition = core.build_document(_soup(), ["report-a", "report-b", "report-c"], "Combined")

    assert list(definition.content) == [Paragraph(text="Hello"), PageBreak(), Paragraph(text="World")]
    assert "report-b" in caplog.text


def test_missing_root_is_skipped_in_multi_root_runs(monkeypatch, caplog):
    monkeypatch.setattr(core.LOG, "propagate", True)
    caplog.set_level(logging.WARNING, logger="html2print")

    definition = core.build_document(_soup(), ["missing", "report-c"], "Combined")

    assert list(definition.content) == [Paragraph(text="World")]
    assert "missing" in caplog.text


def test_no_trailing_page_break():
    definition = core.build_document(_soup(), ["report-a", "report-c", "report-b"], "Combined")

    assert not isinstance(definition.content[-1], PageBreak)
    assert definition.page_break_count == 1


def test_single_missing_root_raises_not_found():
    with pytest.raises(core.RootNotFoundError) as excinfo:
        core.build_document(_soup(), "missing", "Single")

    assert excinfo.value.root_id == "missing"


def test_all_empty_roots_raise_empty_result():
    with pytest.raises(core.EmptyResultError):
        core.build_document(_soup(), ["report-b", "missing"], "Combined")


def test_single_empty_root_raises_empty_result():
    with pytest.raises(core.EmptyResultError):
        core.build_document(_soup(), ["report-b"], "Single")


def test_empty_root_list_is_rejected():
    with pytest.raises(ValueError):
        core.build_document(_soup(), [], "Nothing")


def test_heading_registry_is_scoped_per_root_by_default():
    definition = core.build_document(_soup(), ["report-d", "report-e"], "Combined")

    headings = [f for f in definition.content if isinstance(f, Heading)]
    assert [h.text for h in headings] == ["Summary", "Summary"]


def test_document_scope_shares_the_heading_registry():
    config = core.ExtractionConfig(heading_scope=core.HEADING_SCOPE_DOCUMENT)

    definition = core.build_document(_soup(), ["report-d", "report-e"], "Combined", config=config)

    assert [f.text for f in definition.content if isinstance(f, Heading)] == ["Summary"]
    assert definition.content[-1] == Paragraph(text="E")


def test_document_definition_metadata_and_styles():
    config = core.ExtractionConfig(author="Finance", subject="Q3", footer_text="Confidential")

    definition = core.build_document(_soup(), "report-a", "Sales Report", config=config)
    data = definition.to_dict()

    assert data["content"] == [{"text": "Hello", "alignment": "left", "margin": [0, 0, 0, 8]}]
    assert data["pageSize"] == "A4"
    assert data["pageOrientation"] == "portrait"
    assert data["pageMargins"] == [40, 60, 40, 60]
    assert data["info"] == {"title": "Sales Report", "author": "Finance", "subject": "Q3"}
    assert {"header1", "header2", "header3", "header4", "tableHeader", "link"} <= set(data["styles"])
    assert data["defaultStyle"] == {"fontSize": 10}
    assert data["footer"]["text"] == "Confidential"
    assert "header" not in data


def test_definitions_do_not_share_style_sheets():
    first = core.build_document(_soup(), "report-a", "One")
    second = core.build_document(_soup(), "report-a", "Two")

    assert first.styles == second.styles
    assert first.styles is not second.styles


def test_json_renderer_writes_definition(tmp_path):
    definition = core.build_document(_soup(), ["report-a", "report-c"], "Combined")

    target = core.JsonDefinitionRenderer(tmp_path).render(definition, "Company Reports")

    assert target == tmp_path / "Company_Reports.json"
    data = json.loads(target.read_text(encoding="utf-8"))
    assert data["content"][1] == {"text": "", "pageBreak": "after"}


def test_json_renderer_failure_is_reported(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    definition = core.build_document(_soup(), "report-a", "One")

    with pytest.raises(core.RenderingError):
        core.JsonDefinitionRenderer(blocker).render(definition, "out")


class _FailingRenderer:
    def render(self, definition, target_name):
        raise core.RenderingError("renderer rejected definition")


def test_render_document_surfaces_failure_without_fallback():
    definition = core.build_document(_soup(), "report-a", "One")

    with pytest.raises(core.RenderingError):
        core.render_document(definition, "out", _FailingRenderer())


def test_render_document_uses_caller_fallback(tmp_path):
    definition = core.build_document(_soup(), "report-a", "One")

    target = core.render_document(definition, "out", _FailingRenderer(), fallback=core.JsonDefinitionRenderer(tmp_path))

    assert target.exists()
