"""Section markup generators and the immutable registry that holds them.

Each generator receives a SectionInput and returns SectionMarkup: a list of
fragments carrying pagination hints. A fragment with keep_together is a
"card" that the paginator must not split; page_break_before starts a new
page. All interpolated values are HTML-escaped.

Markup dialect understood by the PDF backend: section, div (card,
page-break), h1-h3, p, ul/li, table/tr/th/td, img, and inline b/i/u/br.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from html import escape
from types import MappingProxyType

from claimpacket.models.context import PhotoItem, ReportContext
from claimpacket.models.template import MergedTemplate
from claimpacket.reports.template_merger import FALLBACK_BRANDING

NO_DATA = "Not provided"


@dataclass(frozen=True)
class MarkupFragment:
    html: str
    keep_together: bool = False
    page_break_before: bool = False


@dataclass(frozen=True)
class SectionMarkup:
    key: str
    fragments: tuple[MarkupFragment, ...]

    def to_html(self) -> str:
        parts: list[str] = []
        for fragment in self.fragments:
            if fragment.page_break_before:
                parts.append('<div class="page-break"></div>')
            if fragment.keep_together:
                parts.append(f'<div class="card">{fragment.html}</div>')
            else:
                parts.append(fragment.html)
        body = "\n".join(parts)
        return f'<section data-section="{escape(self.key)}">\n{body}\n</section>'


@dataclass(frozen=True)
class Theme:
    """Resolved presentation values, taken from the merged template defaults."""

    primary_color: str
    accent_color: str
    company_name: str | None
    logo_url: str | None
    header_text: str
    footer_text: str
    show_page_numbers: bool

    @classmethod
    def from_template(cls, template: MergedTemplate, context: ReportContext) -> Theme:
        branding = template.defaults.branding
        company = branding.company_name or context.company.name
        year = context.generated_on[:4]
        return cls(
            primary_color=branding.primary_color or FALLBACK_BRANDING.primary_color or "#000000",
            accent_color=branding.accent_color or FALLBACK_BRANDING.accent_color or "#000000",
            company_name=company,
            logo_url=branding.logo_url or context.company.logo,
            header_text=branding.header_text or company or template.name,
            footer_text=branding.footer_text or f"© {year} {company or template.name}",
            show_page_numbers=template.defaults.show_page_numbers is not False,
        )


@dataclass(frozen=True)
class SectionInput:
    """What a generator sees.

    Attributes:
        key: Section key being rendered.
        title: Display title from the merged template.
        context: The report context cut down to the namespaces the catalog
            declares for this section; `claim` is always present.
        theme: Resolved branding.
        outline: (key, title) of every section that will render, in order.
    """

    key: str
    title: str
    context: ReportContext
    theme: Theme
    outline: tuple[tuple[str, str], ...]


SectionGenerator = Callable[[SectionInput], SectionMarkup]


class SectionRegistry(Mapping[str, SectionGenerator]):
    """Immutable mapping of section key to generator.

    Built once and passed to the Renderer; tests substitute their own.
    """

    def __init__(self, generators: Mapping[str, SectionGenerator]) -> None:
        self._generators = MappingProxyType(dict(generators))

    def __getitem__(self, key: str) -> SectionGenerator:
        return self._generators[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._generators)

    def __len__(self) -> int:
        return len(self._generators)

    def with_generators(self, **overrides: SectionGenerator) -> SectionRegistry:
        """Return a new registry with some generators replaced or added.

        Keyword names use underscores; they are converted to dashed keys.
        """
        merged = dict(self._generators)
        merged.update({k.replace("_", "-"): v for k, v in overrides.items()})
        return SectionRegistry(merged)


def _text(value: object | None, fallback: str = NO_DATA) -> str:
    if value is None or value == "":
        return escape(fallback)
    return escape(str(value))


def _heading(title: str, level: int = 2) -> str:
    return f"<h{level}>{escape(title)}</h{level}>"


def _muted(text: str) -> str:
    return f'<p class="muted">{escape(text)}</p>'


def _table(rows: list[tuple[str, ...]], header: tuple[str, ...] | None = None) -> str:
    """Build a table; cell values are already-escaped markup."""
    lines = ["<table>"]
    if header:
        lines.append("<tr>" + "".join(f"<th>{escape(h)}</th>" for h in header) + "</tr>")
    for row in rows:
        lines.append("<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>")
    lines.append("</table>")
    return "".join(lines)


def _fact_rows(pairs: list[tuple[str, object | None]]) -> list[tuple[str, ...]]:
    return [(f"<b>{escape(label)}</b>", _text(value)) for label, value in pairs]


def cover_section(section: SectionInput) -> SectionMarkup:
    ctx = section.context
    address = ctx.property.full_address if ctx.property else None
    parts = []
    if section.theme.logo_url:
        alt = _text(section.theme.company_name, "Logo")
        parts.append(f'<img src="{escape(section.theme.logo_url)}" alt="{alt}"/>')
    parts.append(f"<h1>{_text(section.theme.company_name, 'Claim Report')}</h1>")
    parts.append(f"<h2>{_text(ctx.claim.title, 'Insurance Claim Report')}</h2>")
    parts.append(
        _table(
            _fact_rows(
                [
                    ("Claim number", ctx.claim.claim_number),
                    ("Property", address),
                    ("Insured", ctx.claim.insured_name),
                    ("Carrier", ctx.claim.carrier),
                    ("Date of loss", ctx.claim.date_of_loss),
                    ("Prepared", ctx.generated_on),
                ]
            )
        )
    )
    return SectionMarkup(section.key, (MarkupFragment("".join(parts)),))


def toc_section(section: SectionInput) -> SectionMarkup:
    entries = [
        f"<li>{escape(title)}</li>"
        for key, title in section.outline
        if key not in ("cover", "toc")
    ]
    body = _heading(section.title)
    body += f"<ul>{''.join(entries)}</ul>" if entries else _muted("No sections enabled.")
    return SectionMarkup(section.key, (MarkupFragment(body, page_break_before=True),))


def executive_summary_section(section: SectionInput) -> SectionMarkup:
    ctx = section.context
    claim = ctx.claim
    address = ctx.property.full_address if ctx.property else None
    summary = (
        f"This report documents {_text(claim.damage_type, 'property')} damage for claim "
        f"<b>{escape(claim.claim_number)}</b>"
    )
    if address:
        summary += f" at {escape(address)}"
    if claim.date_of_loss:
        summary += f", with a reported date of loss of {escape(claim.date_of_loss)}"
    summary += "."

    fragments = [
        MarkupFragment(_heading(section.title) + f"<p>{summary}</p>", page_break_before=True)
    ]
    if claim.description:
        fragments.append(MarkupFragment(f"<p>{escape(claim.description)}</p>"))

    if ctx.findings:
        items = "".join(f"<li>{escape(f.statement)}</li>" for f in ctx.findings[:12])
        fragments.append(MarkupFragment(_heading("Key Findings", 3) + f"<ul>{items}</ul>"))
    else:
        fragments.append(MarkupFragment(_muted("No inspection findings recorded.")))

    stats = (
        f"<p>{ctx.media.total_photos} photos and {ctx.media.total_documents} "
        f"documents support this report.</p>"
    )
    fragments.append(MarkupFragment(stats))
    return SectionMarkup(section.key, tuple(fragments))


def weather_verification_section(section: SectionInput) -> SectionMarkup:
    ctx = section.context
    weather = ctx.weather
    body = _heading(section.title)
    if weather is None:
        body += _muted("No weather data on file for this claim.")
        return SectionMarkup(section.key, (MarkupFragment(body),))

    body += _table(
        _fact_rows(
            [
                ("Date of loss", ctx.claim.date_of_loss),
                ("Event date", weather.event_date),
                ("Event type", weather.event_type),
                ("Hail size", weather.hail_size),
                ("Wind speed", weather.wind_speed),
                ("Precipitation", weather.precipitation),
                ("Source", weather.source),
            ]
        )
    )
    fragments = [MarkupFragment(body, keep_together=True)]
    if weather.summary:
        fragments.append(MarkupFragment(f"<p>{escape(weather.summary)}</p>"))
    if weather.event_count > 1:
        fragments.append(
            MarkupFragment(
                _muted(f"{weather.event_count} weather events on file; most recent shown.")
            )
        )
    return SectionMarkup(section.key, tuple(fragments))


def adjuster_notes_section(section: SectionInput) -> SectionMarkup:
    ctx = section.context
    fragments = [MarkupFragment(_heading(section.title))]
    if ctx.claim.adjuster_name or ctx.claim.adjuster_email:
        fragments.append(
            MarkupFragment(
                _table(
                    _fact_rows(
                        [
                            ("Adjuster", ctx.claim.adjuster_name),
                            ("Email", ctx.claim.adjuster_email),
                            ("Phone", ctx.claim.adjuster_phone),
                        ]
                    )
                )
            )
        )
    if not ctx.notes:
        fragments.append(MarkupFragment(_muted("No notes recorded.")))
    for note in ctx.notes:
        fragments.append(
            MarkupFragment(
                f"<p><b>{_text(note.author, 'Unknown author')}</b> "
                f"<i>{escape(note.created_at[:10])}</i></p>"
                f"<p>{escape(note.body)}</p>",
                keep_together=True,
            )
        )
    return SectionMarkup(section.key, tuple(fragments))


def _photo_card(photo: PhotoItem, index: int) -> MarkupFragment:
    caption = photo.caption or f"Photo {index}"
    meta = photo.category.title()
    if photo.taken_at:
        meta += f", {photo.taken_at[:10]}"
    return MarkupFragment(
        f'<img src="{escape(photo.url)}" alt="{escape(caption)}"/>'
        f"<p><b>{index}. {escape(caption)}</b></p>"
        f'<p class="muted">{escape(meta)}</p>',
        keep_together=True,
    )


def photo_evidence_section(section: SectionInput) -> SectionMarkup:
    media = section.context.media
    fragments = [
        MarkupFragment(
            _heading(section.title) + f"<p>{media.total_photos} photos on file.</p>",
            page_break_before=True,
        )
    ]
    if not media.photos:
        fragments.append(MarkupFragment(_muted("No photos have been uploaded for this claim.")))
        return SectionMarkup(section.key, tuple(fragments))

    index = 1
    for category, photos in media.photos_by_category.items():
        fragments.append(MarkupFragment(_heading(category.title(), 3)))
        for photo in photos:
            fragments.append(_photo_card(photo, index))
            index += 1
    return SectionMarkup(section.key, tuple(fragments))


def measurements_section(section: SectionInput) -> SectionMarkup:
    ctx = section.context
    prop = ctx.property
    fragments = [MarkupFragment(_heading(section.title))]
    if prop is not None:
        fragments.append(
            MarkupFragment(
                _table(
                    _fact_rows(
                        [
                            ("Roof type", prop.roof_type),
                            ("Roof age (years)", prop.roof_age_years),
                            ("Stories", prop.stories),
                            ("Square feet", prop.square_feet),
                            ("Year built", prop.year_built),
                        ]
                    )
                ),
                keep_together=True,
            )
        )
    located = [f for f in ctx.findings if f.location]
    if located:
        rows = [(_text(f.location), escape(f.statement), _text(f.severity, "-")) for f in located]
        fragments.append(
            MarkupFragment(_table(rows, header=("Location", "Observation", "Severity")))
        )
    else:
        fragments.append(MarkupFragment(_muted("No located test cuts or measurements recorded.")))
    return SectionMarkup(section.key, tuple(fragments))


def signature_page_section(section: SectionInput) -> SectionMarkup:
    ctx = section.context
    rows = [
        ("<b>Prepared by</b>", _text(section.theme.company_name)),
        ("<b>License</b>", _text(ctx.company.license_number)),
        ("<b>Insured</b>", _text(ctx.claim.insured_name)),
        ("<b>Signature</b>", "______________________________"),
        ("<b>Date</b>", "______________________________"),
    ]
    body = _heading(section.title) + _table(rows)
    return SectionMarkup(
        section.key, (MarkupFragment(body, keep_together=True, page_break_before=True),)
    )


def attachments_index_section(section: SectionInput) -> SectionMarkup:
    documents = section.context.media.documents
    body = _heading(section.title)
    if documents:
        rows = [
            (str(i), escape(d.title), _text(d.document_type, "-"))
            for i, d in enumerate(documents, start=1)
        ]
        body += _table(rows, header=("#", "Document", "Type"))
    else:
        body += _muted("No attachments.")
    return SectionMarkup(section.key, (MarkupFragment(body),))


def build_default_registry() -> SectionRegistry:
    """Generators implemented by this build.

    Catalog sections without a generator (scope-matrix, code-compliance,
    pricing-comparison, supplements) are skipped by the renderer.
    """
    return SectionRegistry(
        {
            "cover": cover_section,
            "toc": toc_section,
            "executive-summary": executive_summary_section,
            "weather-verification": weather_verification_section,
            "adjuster-notes": adjuster_notes_section,
            "photo-evidence": photo_evidence_section,
            "test-cuts": measurements_section,
            "signature-page": signature_page_section,
            "attachments-index": attachments_index_section,
        }
    )
