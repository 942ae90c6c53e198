"""Renderer: merged template + context -> HTML, PDF bytes, thumbnail, checksum.

Sections render in merged-template order through the injected registry.
Keys with no generator are skipped with a warning. Binary conversion runs on
a worker thread bounded by a timeout; the thumbnail is best-effort.
"""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from html import escape
from typing import Any, Callable

from claimpacket.config import DEFAULT_RENDER_TIMEOUT_SECONDS
from claimpacket.models.context import ReportContext
from claimpacket.models.template import MergedTemplate
from claimpacket.reports.backend import (
    META_ACCENT,
    META_FOOTER,
    META_HEADER,
    META_PAGE_NUMBERS,
    META_PRIMARY,
    BinaryRendererBackend,
    html_to_text,
)
from claimpacket.reports.catalog import get_section
from claimpacket.reports.errors import RenderError
from claimpacket.reports.sections import SectionInput, SectionRegistry, Theme

logger = logging.getLogger(__name__)

DEFAULT_THUMBNAIL_SIZE = (425, 550)
PDF_MAGIC = b"%PDF-"

_STYLESHEET = """
body { font-family: Helvetica, Arial, sans-serif; color: #1a1a1a; }
h1, h2 { color: var(--primary); }
h3 { color: var(--accent); }
.card { break-inside: avoid; border: 1px solid #d0d7de; padding: 8px; margin: 8px 0; }
.page-break { break-before: page; }
.muted { color: #6b7280; }
table { border-collapse: collapse; width: 100%; }
th { background: var(--primary); color: #fff; }
th, td { border: 1px solid #d0d7de; padding: 4px; }
"""


@dataclass(frozen=True)
class AssembledMarkup:
    html: str
    rendered_sections: tuple[str, ...]
    skipped_sections: tuple[str, ...]


@dataclass(frozen=True)
class RenderedReport:
    """Output of one render.

    Attributes:
        html: Assembled report markup.
        pdf_bytes: Paginated PDF.
        thumbnail_bytes: PNG of the first page, or None if thumbnailing failed.
        checksum: SHA-256 hex digest of pdf_bytes.
        rendered_sections: Keys that produced markup, in order.
        skipped_sections: Enabled keys with no registered generator.
        plain_text: Text rendition of the markup.
    """

    html: str
    pdf_bytes: bytes
    thumbnail_bytes: bytes | None
    checksum: str
    rendered_sections: tuple[str, ...]
    skipped_sections: tuple[str, ...]
    plain_text: str

    @property
    def size_bytes(self) -> int:
        return len(self.pdf_bytes)


def _namespaces(section_key: str) -> tuple[str, ...]:
    """Context namespaces a catalog section reads; unknown keys get none."""
    definition = get_section(section_key)
    return definition.namespaces if definition else ()


def _document(title: str, theme: Theme, body: str) -> str:
    meta = {
        META_HEADER: theme.header_text,
        META_FOOTER: theme.footer_text,
        META_PRIMARY: theme.primary_color,
        META_ACCENT: theme.accent_color,
        META_PAGE_NUMBERS: "true" if theme.show_page_numbers else "false",
    }
    meta_tags = "\n".join(
        f'<meta name="{name}" content="{escape(value)}">' for name, value in meta.items()
    )
    style = (
        f":root {{ --primary: {escape(theme.primary_color)}; "
        f"--accent: {escape(theme.accent_color)}; }}{_STYLESHEET}"
    )
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        '<meta charset="utf-8">\n'
        f"<title>{escape(title)}</title>\n{meta_tags}\n<style>{style}</style>\n"
        f"</head>\n<body>\n{body}\n</body>\n</html>\n"
    )


class Renderer:
    """Turns a merged template and a context into report binaries."""

    def __init__(
        self,
        registry: SectionRegistry,
        backend: BinaryRendererBackend,
        *,
        timeout_seconds: float = DEFAULT_RENDER_TIMEOUT_SECONDS,
        thumbnail_size: tuple[int, int] = DEFAULT_THUMBNAIL_SIZE,
        max_workers: int = 4,
    ) -> None:
        self._registry = registry
        self._backend = backend
        self._timeout_seconds = timeout_seconds
        self._thumbnail_size = thumbnail_size
        # Timed-out renders keep running on their thread; a shared pool keeps
        # the caller from blocking on them at exit.
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="claimpacket-render"
        )

    @property
    def registry(self) -> SectionRegistry:
        return self._registry

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def render_markup(self, template: MergedTemplate, context: ReportContext) -> AssembledMarkup:
        """Assemble the report HTML without producing binaries.

        Raises:
            RenderError: If a section generator fails.
        """
        theme = Theme.from_template(template, context)
        enabled = template.enabled_sections()

        skipped = tuple(s.key for s in enabled if s.key not in self._registry)
        for key in skipped:
            logger.warning(
                "Skipping section with no registered generator: key=%s template=%s",
                key,
                template.template_id,
            )
        renderable = [s for s in enabled if s.key in self._registry]
        outline = tuple((s.key, s.title) for s in renderable)

        parts: list[str] = []
        for section in renderable:
            generator = self._registry[section.key]
            try:
                markup = generator(
                    SectionInput(
                        key=section.key,
                        title=section.title,
                        context=context.sliced(_namespaces(section.key)),
                        theme=theme,
                        outline=outline,
                    )
                )
            except Exception as e:
                raise RenderError(
                    f"Section generator failed: {e}", section_key=section.key
                ) from e
            parts.append(markup.to_html())

        title = template.defaults.title or template.name
        return AssembledMarkup(
            html=_document(title, theme, "\n".join(parts)),
            rendered_sections=tuple(s.key for s in renderable),
            skipped_sections=skipped,
        )

    def render(self, template: MergedTemplate, context: ReportContext) -> RenderedReport:
        """Render the full report.

        Raises:
            RenderError: If markup assembly or PDF conversion fails or times out.
        """
        markup = self.render_markup(template, context)

        pdf_bytes = self._bounded(self._backend.html_to_pdf, markup.html)
        if not pdf_bytes.startswith(PDF_MAGIC):
            raise RenderError("Renderer backend did not produce a PDF document")

        checksum = hashlib.sha256(pdf_bytes).hexdigest()
        thumbnail = self._thumbnail(markup.html)

        logger.info(
            "Rendered report: template=%s sections=%d size=%d checksum=%s",
            template.template_id,
            len(markup.rendered_sections),
            len(pdf_bytes),
            checksum[:12],
        )
        return RenderedReport(
            html=markup.html,
            pdf_bytes=pdf_bytes,
            thumbnail_bytes=thumbnail,
            checksum=checksum,
            rendered_sections=markup.rendered_sections,
            skipped_sections=markup.skipped_sections,
            plain_text=html_to_text(markup.html),
        )

    def _bounded(self, fn: Callable[..., bytes], *args: Any) -> bytes:
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self._timeout_seconds)
        except FuturesTimeoutError as e:
            raise RenderError(
                f"Binary render exceeded {self._timeout_seconds:g}s", code="RENDER_TIMEOUT"
            ) from e
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"Binary render failed: {e}") from e

    def _thumbnail(self, html: str) -> bytes | None:
        try:
            return self._bounded(self._backend.html_to_png, html, self._thumbnail_size)
        except RenderError as e:
            logger.warning("Thumbnail render failed, continuing without one: %s", e)
            return None
