"""Report generation stages: context, template merge, render, orchestration."""
