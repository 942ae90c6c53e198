"""claimpacket: claim report generation, persistence and delivery pipeline.

Stages (data flows strictly downward):
1. Context Builder: claim records -> ReportContext
2. Template Merger: template definition + org branding -> MergedTemplate
3. Renderer: MergedTemplate + ReportContext -> HTML, PDF, thumbnail, checksum
4. Artifact Store: persisted, versioned report artifacts
5. Delivery & Audit: emailed access links + claim timeline entries
"""

__version__ = "1.4.0"
