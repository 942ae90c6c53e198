"""Tests for the Renderer and the reportlab backend.

Covers:
- Full render: PDF magic, checksum, thumbnail, section order
- Sections without a generator are skipped, not failed
- Generator and markup failures raise RenderError with the section key
- Binary conversion bounded by a timeout
- Thumbnail failure is tolerated
- Deterministic output for identical input
- Interpolated values are escaped
- Generators receive only the context namespaces their section declares
"""

from __future__ import annotations

import hashlib
import time
from collections.abc import Generator
from io import BytesIO

import pytest
from conftest import CLAIM_ID, FIXED_NOW, ORG_ID, SPARSE_CLAIM_ID
from PIL import Image

from claimpacket.models.context import ReportContext
from claimpacket.models.template import MergedTemplate, TemplateDefinition, TemplateScope
from claimpacket.persistence.repositories import InMemoryClaimRecordsRepository
from claimpacket.reports.backend import (
    ReportlabRendererBackend,
    html_to_text,
    parse_report_markup,
)
from claimpacket.reports.context_builder import ContextBuilder
from claimpacket.reports.errors import RenderError
from claimpacket.reports.renderer import PDF_MAGIC, Renderer
from claimpacket.reports.sections import (
    MarkupFragment,
    SectionInput,
    SectionMarkup,
    SectionRegistry,
    build_default_registry,
    cover_section,
)
from claimpacket.reports.template_merger import BUILTIN_DEFAULT, merge_template

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
UNIMPLEMENTED = ("scope-matrix", "code-compliance", "pricing-comparison", "supplements")


class SlowBackend:
    """Backend that never finishes within the test timeout."""

    def html_to_pdf(self, html: str) -> bytes:
        time.sleep(1.0)
        return b"%PDF-1.4 late"

    def html_to_png(self, html: str, dims: tuple[int, int]) -> bytes:
        return b""


class NoThumbnailBackend(ReportlabRendererBackend):
    def html_to_png(self, html: str, dims: tuple[int, int]) -> bytes:
        raise RuntimeError("rasterizer unavailable")


class NotAPdfBackend:
    def html_to_pdf(self, html: str) -> bytes:
        return b"<html>oops</html>"

    def html_to_png(self, html: str, dims: tuple[int, int]) -> bytes:
        return b""


def _context(records: InMemoryClaimRecordsRepository, claim_id: str = CLAIM_ID) -> ReportContext:
    return ContextBuilder(records, clock=lambda: FIXED_NOW).build(claim_id, ORG_ID)


def _template(records: InMemoryClaimRecordsRepository) -> MergedTemplate:
    return merge_template(BUILTIN_DEFAULT, records.get_branding(ORG_ID), ORG_ID)


@pytest.fixture
def renderer() -> Generator[Renderer, None, None]:
    built = Renderer(build_default_registry(), ReportlabRendererBackend(), timeout_seconds=30)
    yield built
    built.close()


class TestFullRender:
    def test_produces_pdf_checksum_and_thumbnail(
        self, renderer: Renderer, records: InMemoryClaimRecordsRepository
    ) -> None:
        rendered = renderer.render(_template(records), _context(records))

        assert rendered.pdf_bytes.startswith(PDF_MAGIC)
        assert rendered.checksum == hashlib.sha256(rendered.pdf_bytes).hexdigest()
        assert rendered.size_bytes == len(rendered.pdf_bytes)
        assert rendered.thumbnail_bytes is not None
        assert rendered.thumbnail_bytes.startswith(PNG_MAGIC)

    def test_sections_render_in_template_order(
        self, renderer: Renderer, records: InMemoryClaimRecordsRepository
    ) -> None:
        template = _template(records)
        rendered = renderer.render(template, _context(records))

        expected = [s.key for s in template.enabled_sections() if s.key not in UNIMPLEMENTED]
        assert list(rendered.rendered_sections) == expected
        assert rendered.skipped_sections == UNIMPLEMENTED

        positions = [rendered.html.index(f'data-section="{key}"') for key in expected]
        assert positions == sorted(positions)

    def test_disabled_sections_do_not_render(
        self, renderer: Renderer, records: InMemoryClaimRecordsRepository
    ) -> None:
        definition = TemplateDefinition(
            id="mkt-two",
            name="Two Sections",
            scope=TemplateScope.MARKETPLACE,
            section_order=("cover", "photo-evidence"),
            section_enabled={"photo-evidence": False},
        )
        template = merge_template(definition, records.get_branding(ORG_ID), ORG_ID)

        rendered = renderer.render(template, _context(records))

        assert rendered.rendered_sections == ("cover",)
        assert "photo-evidence" not in rendered.html

    def test_render_is_deterministic(
        self, renderer: Renderer, records: InMemoryClaimRecordsRepository
    ) -> None:
        """Identical template and context give identical bytes."""
        template = _template(records)
        context = _context(records)

        first = renderer.render(template, context)
        second = renderer.render(template, context)

        assert first.checksum == second.checksum

    def test_sparse_claim_still_renders(
        self, renderer: Renderer, records: InMemoryClaimRecordsRepository
    ) -> None:
        rendered = renderer.render(_template(records), _context(records, SPARSE_CLAIM_ID))

        assert rendered.pdf_bytes.startswith(PDF_MAGIC)
        assert "Not provided" in rendered.plain_text

    def test_plain_text_rendition(
        self, renderer: Renderer, records: InMemoryClaimRecordsRepository
    ) -> None:
        rendered = renderer.render(_template(records), _context(records))

        assert "Summit Roofing" in rendered.plain_text
        assert "CLM-1001" in rendered.plain_text
        assert "<" not in rendered.plain_text

    def test_values_are_escaped(
        self, renderer: Renderer, records: InMemoryClaimRecordsRepository
    ) -> None:
        claim = records.get_claim(ORG_ID, CLAIM_ID)
        assert claim is not None
        records.add_claim(claim.model_copy(update={"title": "<b>Roof & Gutter</b>"}))

        rendered = renderer.render(_template(records), _context(records))

        assert "&lt;b&gt;Roof &amp; Gutter&lt;/b&gt;" in rendered.html
        assert rendered.pdf_bytes.startswith(PDF_MAGIC)


class TestSkippedSections:
    def test_registry_subset_skips_the_rest(self, records: InMemoryClaimRecordsRepository) -> None:
        renderer = Renderer(SectionRegistry({"cover": cover_section}), ReportlabRendererBackend())
        try:
            rendered = renderer.render(_template(records), _context(records))
        finally:
            renderer.close()

        assert rendered.rendered_sections == ("cover",)
        assert len(rendered.skipped_sections) == 12


class TestRenderErrors:
    def test_generator_failure_names_section(self, records: InMemoryClaimRecordsRepository) -> None:
        def broken(section: SectionInput) -> SectionMarkup:
            raise KeyError("photos")

        renderer = Renderer(
            build_default_registry().with_generators(photo_evidence=broken),
            ReportlabRendererBackend(),
        )
        try:
            with pytest.raises(RenderError) as exc_info:
                renderer.render(_template(records), _context(records))
        finally:
            renderer.close()

        assert exc_info.value.section_key == "photo-evidence"
        assert exc_info.value.context["section_key"] == "photo-evidence"

    def test_malformed_markup_names_section(self, records: InMemoryClaimRecordsRepository) -> None:
        def unclosed(section: SectionInput) -> SectionMarkup:
            return SectionMarkup(section.key, (MarkupFragment("<p>never closed"),))

        renderer = Renderer(
            build_default_registry().with_generators(toc=unclosed), ReportlabRendererBackend()
        )
        try:
            with pytest.raises(RenderError) as exc_info:
                renderer.render(_template(records), _context(records))
        finally:
            renderer.close()

        assert exc_info.value.section_key == "toc"

    def test_unsupported_tag_rejected(self, records: InMemoryClaimRecordsRepository) -> None:
        def blinking(section: SectionInput) -> SectionMarkup:
            return SectionMarkup(section.key, (MarkupFragment("<blink>hi</blink>"),))

        renderer = Renderer(SectionRegistry({"cover": blinking}), ReportlabRendererBackend())
        try:
            with pytest.raises(RenderError) as exc_info:
                renderer.render(_template(records), _context(records))
        finally:
            renderer.close()

        assert exc_info.value.section_key == "cover"

    def test_timeout(self, records: InMemoryClaimRecordsRepository) -> None:
        renderer = Renderer(build_default_registry(), SlowBackend(), timeout_seconds=0.05)
        try:
            with pytest.raises(RenderError) as exc_info:
                renderer.render(_template(records), _context(records))
        finally:
            renderer.close()

        assert exc_info.value.code == "RENDER_TIMEOUT"

    def test_non_pdf_output_rejected(self, records: InMemoryClaimRecordsRepository) -> None:
        renderer = Renderer(build_default_registry(), NotAPdfBackend())
        try:
            with pytest.raises(RenderError):
                renderer.render(_template(records), _context(records))
        finally:
            renderer.close()


class TestSectionContext:
    def test_generators_see_only_declared_namespaces(
        self, records: InMemoryClaimRecordsRepository
    ) -> None:
        seen: dict[str, ReportContext] = {}

        def recording(section: SectionInput) -> SectionMarkup:
            seen[section.key] = section.context
            return SectionMarkup(section.key, (MarkupFragment("<p>ok</p>"),))

        renderer = Renderer(
            build_default_registry().with_generators(
                photo_evidence=recording, weather_verification=recording
            ),
            ReportlabRendererBackend(),
        )
        try:
            renderer.render(_template(records), _context(records))
        finally:
            renderer.close()

        photos = seen["photo-evidence"]
        assert photos.media.total_photos == 2
        assert photos.weather is None
        assert photos.notes == ()
        assert photos.claim.claim_number == "CLM-1001"

        weather = seen["weather-verification"]
        assert weather.weather is not None
        assert weather.media.photos == ()
        assert weather.property is None

    def test_sliced_rejects_unknown_namespace(
        self, records: InMemoryClaimRecordsRepository
    ) -> None:
        with pytest.raises(ValueError, match="Unknown context namespace"):
            _context(records).sliced(["claims"])


class TestThumbnail:
    def test_thumbnail_failure_is_tolerated(self, records: InMemoryClaimRecordsRepository) -> None:
        renderer = Renderer(build_default_registry(), NoThumbnailBackend())
        try:
            rendered = renderer.render(_template(records), _context(records))
        finally:
            renderer.close()

        assert rendered.thumbnail_bytes is None
        assert rendered.pdf_bytes.startswith(PDF_MAGIC)

    def test_thumbnail_dimensions(self) -> None:
        html = (
            '<html><head><meta name="report-header" content="Acme"></head><body>'
            '<section data-section="cover"><h1>Title</h1><p>Body text</p></section>'
            "</body></html>"
        )
        png = ReportlabRendererBackend().html_to_png(html, (200, 260))

        with Image.open(BytesIO(png)) as image:
            assert image.size == (200, 260)


class TestMarkupParser:
    def test_cards_and_page_breaks(self) -> None:
        parsed = parse_report_markup(
            '<section data-section="photo-evidence">'
            '<h2>Photos</h2><div class="page-break"></div>'
            '<div class="card"><img src="a.jpg" alt="North"/><p><b>1.</b> North</p></div>'
            "</section>"
        )

        kinds = [b.kind for b in parsed.blocks]
        assert kinds == ["heading", "page_break", "card"]
        card = parsed.blocks[2]
        assert [c.kind for c in card.children] == ["image", "paragraph"]
        assert card.children[1].markup == "<b>1.</b> North"
        assert all(b.section == "photo-evidence" for b in parsed.blocks)

    def test_first_page_stops_at_break(self) -> None:
        parsed = parse_report_markup(
            "<section><h1>One</h1><div class=\"page-break\"></div><h1>Two</h1></section>"
        )

        assert [b.markup for b in parsed.first_page()] == ["One"]

    def test_mismatched_close_fails(self) -> None:
        with pytest.raises(RenderError):
            parse_report_markup('<section data-section="toc"><ul><li>a</ul></section>')

    def test_html_to_text(self) -> None:
        text = html_to_text(
            "<section><h2>Findings</h2><ul><li>Hail &amp; wind</li></ul>"
            "<table><tr><th>A</th><th>B</th></tr><tr><td>1</td><td>2</td></tr></table>"
            "</section>"
        )

        assert text == "Findings\n- Hail & wind\nA | B\n1 | 2\n"
