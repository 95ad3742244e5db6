"""HTML report generator — a self-contained page with side-by-side image evidence."""

from __future__ import annotations

import base64
import html
import logging
from pathlib import Path

from visreg.models.outcome import (
    ComparisonOutcome,
    ExternalResult,
    FailureKind,
    LoadTestSummary,
    OutcomeStatus,
    RegressionReport,
)

logger = logging.getLogger(__name__)

_STATUS_CLASS = {
    OutcomeStatus.PASSED: "pass",
    OutcomeStatus.FAILED_VISUAL: "fail",
    OutcomeStatus.FAILED_LAYOUT: "layout",
    OutcomeStatus.FAILED_ENVIRONMENT: "error",
    OutcomeStatus.BASELINE_CREATED: "created",
}

_BORDER_COLOR = {
    "pass": "#22c55e",
    "fail": "#ef4444",
    "layout": "#a855f7",
    "error": "#f97316",
    "created": "#3b82f6",
    "target": "#eab308",
}


def _embed_image(path: str | None) -> str:
    """Return a base64 data URI for a PNG on disk, or "" if it is missing."""
    if not path:
        return ""
    p = Path(path)
    try:
        if not p.exists() or p.stat().st_size == 0:
            return ""
        data = base64.b64encode(p.read_bytes()).decode()
    except OSError as e:
        logger.debug("Could not embed %s: %s", p, e)
        return ""
    return f"data:image/png;base64,{data}"


def _card_class(o: ComparisonOutcome) -> str:
    if o.failure_kind == FailureKind.CONFIGURATION:
        return "target"
    return _STATUS_CLASS[o.status]


def _badge_label(o: ComparisonOutcome) -> str:
    if o.failure_kind == FailureKind.CONFIGURATION:
        return "TARGET"
    return o.status.value.upper()


def _image_panel(label: str, path: str | None) -> str:
    data_uri = _embed_image(path)
    if data_uri:
        body = f'<img src="{data_uri}" alt="{html.escape(label)}" loading="lazy" onclick="this.classList.toggle(\'zoomed\')"/>'
    else:
        body = f'<div class="missing-image">{html.escape(label)} image not available</div>'
    return f'''
        <div class="image-panel">
          <div class="image-label">{html.escape(label)}</div>
          {body}
        </div>'''


def _build_outcome_card(o: ComparisonOutcome) -> str:
    card_class = _card_class(o)
    border = _BORDER_COLOR[card_class]
    meta = [f"{o.duration_seconds:.1f}s"]
    if o.differing_pixels is not None:
        meta.append(f"{o.differing_pixels} px")
    if o.difference_ratio is not None:
        meta.append(f"{o.difference_ratio:.4%}")
    if o.capture_size:
        meta.append(f"{o.capture_size[0]}&times;{o.capture_size[1]}")

    card = f'''
    <div class="test-card" data-status="{card_class}">
      <div class="test-header" style="border-left: 4px solid {border};" onclick="this.parentElement.classList.toggle('expanded')">
        <div class="test-header-left">
          <span class="badge {card_class}">{_badge_label(o)}</span>
          <strong>{html.escape(o.key.test_name)}</strong>
          <span class="badge variant">{html.escape(o.key.variant)}</span>
          <span class="test-meta">{html.escape(o.key.image_name)} &middot; {" &middot; ".join(meta)}</span>
        </div>
        <span class="expand-arrow">&#9660;</span>
      </div>
      <div class="test-body">
    '''

    if o.message:
        banner = "failure-banner" if o.status.is_failure else "info-banner"
        card += f'<div class="{banner}">{html.escape(o.message)}</div>'

    if o.status == OutcomeStatus.FAILED_LAYOUT and o.baseline_size and o.capture_size:
        card += (
            '<div class="section"><h4>Dimensions</h4>'
            f'<p>baseline {o.baseline_size[0]}&times;{o.baseline_size[1]}, '
            f'capture {o.capture_size[0]}&times;{o.capture_size[1]}</p></div>'
        )

    if o.status.is_failure or o.status == OutcomeStatus.BASELINE_CREATED:
        card += '<div class="section"><h4>Images</h4><div class="image-grid">'
        if o.status != OutcomeStatus.BASELINE_CREATED:
            card += _image_panel("Baseline", o.baseline_path)
        card += _image_panel("Actual", o.actual_path)
        if o.status == OutcomeStatus.FAILED_VISUAL:
            card += _image_panel("Diff", o.diff_path)
        card += '</div></div>'

    if o.warnings:
        card += '<div class="section"><h4>Determinism warnings</h4><ul class="warnings">'
        card += "".join(f"<li>{html.escape(w)}</li>" for w in o.warnings)
        card += '</ul></div>'

    if o.console_messages:
        card += '<div class="section"><h4>Console</h4><pre class="console-log">'
        card += "".join(html.escape(m) + "\n" for m in o.console_messages[:50])
        card += '</pre></div>'

    card += '</div></div>'
    return card


def _build_external_section(results: list[ExternalResult]) -> str:
    if not results:
        return ""
    rows = ""
    for r in results:
        css = {"passed": "pass", "failed": "fail"}.get(r.status, "skip")
        error = f'<div class="step-error">{html.escape(r.error[:300])}</div>' if r.error else ""
        rows += f'''
        <tr>
          <td><span class="badge {css}">{html.escape(r.status)}</span></td>
          <td>{html.escape(r.name)}{error}</td>
          <td>{html.escape(r.source)}</td>
          <td>{r.duration_seconds:.1f}s</td>
        </tr>'''
    failed = sum(1 for r in results if r.status == "failed")
    return f'''
  <div class="panel">
    <h2>Functional results ({len(results)}, {failed} failed)</h2>
    <table class="results-table"><thead><tr><th>Status</th><th>Test</th><th>Source</th><th>Duration</th></tr></thead>
    <tbody>{rows}</tbody></table>
  </div>'''


def _build_load_section(summary: LoadTestSummary | None) -> str:
    if summary is None:
        return ""

    def _ms(value: float | None) -> str:
        return "&ndash;" if value is None else f"{value:.0f} ms"

    thresholds = "".join(
        f'<li><span class="badge {"pass" if ok else "fail"}">{"ok" if ok else "breached"}</span> '
        f'<code>{html.escape(name)}</code></li>'
        for name, ok in sorted(summary.thresholds.items())
    )
    verdict = "pass" if summary.passed else "fail"
    return f'''
  <div class="panel">
    <h2>Load test <span class="badge {verdict}">{verdict}</span></h2>
    <p class="meta">{html.escape(summary.source_path)}</p>
    <div class="summary">
      <div class="stat"><div class="value">{summary.total_requests}</div><div class="label">Requests</div></div>
      <div class="stat"><div class="value">{summary.failed_rate:.2%}</div><div class="label">Failed rate</div></div>
      <div class="stat"><div class="value">{_ms(summary.avg_duration_ms)}</div><div class="label">Avg</div></div>
      <div class="stat"><div class="value">{_ms(summary.p95_duration_ms)}</div><div class="label">p95</div></div>
      <div class="stat"><div class="value">{_ms(summary.max_duration_ms)}</div><div class="label">Max</div></div>
    </div>
    {"<ul class='thresholds'>" + thresholds + "</ul>" if thresholds else ""}
  </div>'''


def generate_html_report(report: RegressionReport, output_path: Path) -> None:
    """Write a self-contained HTML report; missing images are noted, not fatal."""
    run = report.run
    counts = report.counts

    error_section = ""
    if report.run_error:
        error_section = f'<div class="regressions"><h2>&#9888; Run aborted</h2><p>{html.escape(report.run_error)}</p></div>'

    reg_section = ""
    if report.regressions:
        items = ""
        for r in report.regressions:
            reason = f" &mdash; {html.escape(r.message)}" if r.message else ""
            items += f"<li><strong>{html.escape(r.key_label)}</strong>: {r.previous_status} &rarr; {r.current_status}{reason}</li>"
        reg_section = f'<div class="regressions"><h2>&#9888; Regressions ({len(report.regressions)})</h2><ul>{items}</ul></div>'

    # Failures first so they are on screen without scrolling.
    ordered = sorted(report.outcomes, key=lambda o: (not o.status.is_failure, o.key.label))
    cards = "".join(_build_outcome_card(o) for o in ordered)

    by_status = counts.by_status
    report_html = f'''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Visual Regression Report &mdash; {html.escape(run.run_id)}</title>
<style>
  :root {{ --pass: #22c55e; --fail: #ef4444; --layout: #a855f7; --error: #f97316; --created: #3b82f6; --target: #eab308; --bg: #f8fafc; --card: white; --border: #e2e8f0; --text: #1e293b; --muted: #64748b; --accent: #6366f1; }}
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: var(--bg); color: var(--text); line-height: 1.6; padding: 1.5rem; }}
  .container {{ max-width: 1600px; margin: 0 auto; }}
  h1 {{ font-size: 1.8rem; margin-bottom: 0.3rem; }}
  h2 {{ font-size: 1rem; margin-bottom: 0.6rem; }}
  .meta {{ color: var(--muted); margin-bottom: 1.2rem; font-size: 0.9rem; }}
  .summary {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(130px, 1fr)); gap: 0.8rem; margin-bottom: 1.5rem; }}
  .stat {{ background: var(--card); border-radius: 8px; padding: 1rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); text-align: center; }}
  .stat .value {{ font-size: 1.6rem; font-weight: 700; }}
  .stat .label {{ font-size: 0.8rem; color: var(--muted); }}
  .stat.pass .value {{ color: var(--pass); }}
  .stat.fail .value {{ color: var(--fail); }}
  .stat.layout .value {{ color: var(--layout); }}
  .stat.error .value {{ color: var(--error); }}
  .stat.created .value {{ color: var(--created); }}
  .badge {{ display: inline-block; padding: 0.15rem 0.55rem; border-radius: 9999px; font-size: 0.7rem; font-weight: 600; text-transform: uppercase; white-space: nowrap; }}
  .badge.pass {{ background: #dcfce7; color: #166534; }}
  .badge.fail {{ background: #fecaca; color: #991b1b; }}
  .badge.layout {{ background: #f3e8ff; color: #6b21a8; }}
  .badge.error {{ background: #fed7aa; color: #9a3412; }}
  .badge.created {{ background: #dbeafe; color: #1e40af; }}
  .badge.target {{ background: #fef9c3; color: #854d0e; border: 1px dashed #eab308; }}
  .badge.skip {{ background: #f1f5f9; color: #475569; }}
  .badge.variant {{ background: #e0e7ff; color: #3730a3; }}
  .regressions {{ background: #fef2f2; border-radius: 8px; padding: 1.2rem; margin-bottom: 1.5rem; border-left: 4px solid var(--fail); }}
  .regressions h2 {{ color: var(--fail); }}
  .regressions ul {{ margin-left: 1.2rem; font-size: 0.9rem; }}
  .panel {{ background: var(--card); border-radius: 8px; padding: 1.2rem; margin-bottom: 1.5rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); }}
  .results-table {{ width: 100%; border-collapse: collapse; font-size: 0.85rem; }}
  .results-table th, .results-table td {{ text-align: left; padding: 0.35rem 0.5rem; border-bottom: 1px solid #f1f5f9; vertical-align: top; }}
  .thresholds {{ list-style: none; font-size: 0.85rem; }}
  .test-card {{ background: var(--card); border-radius: 8px; margin-bottom: 0.6rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); overflow: hidden; }}
  .test-header {{ display: flex; justify-content: space-between; align-items: center; padding: 0.7rem 1rem; cursor: pointer; user-select: none; }}
  .test-header:hover {{ background: #f8fafc; }}
  .test-header-left {{ display: flex; align-items: center; gap: 0.5rem; flex-wrap: wrap; }}
  .test-meta {{ font-size: 0.78rem; color: var(--muted); }}
  .expand-arrow {{ color: var(--muted); font-size: 0.7rem; transition: transform 0.2s; }}
  .test-card.expanded .expand-arrow {{ transform: rotate(180deg); }}
  .test-body {{ display: none; padding: 0 1rem 1rem 1rem; }}
  .test-card.expanded .test-body {{ display: block; }}
  .failure-banner {{ background: #fef2f2; border: 1px solid #fecaca; color: #991b1b; border-radius: 6px; padding: 0.6rem 0.8rem; margin-bottom: 0.8rem; font-size: 0.88rem; }}
  .info-banner {{ background: #f1f5f9; color: var(--muted); border-radius: 6px; padding: 0.6rem 0.8rem; margin-bottom: 0.8rem; font-size: 0.88rem; }}
  .section {{ margin-bottom: 1rem; }}
  .section h4 {{ font-size: 0.85rem; color: var(--muted); text-transform: uppercase; letter-spacing: 0.05em; margin-bottom: 0.4rem; padding-bottom: 0.25rem; border-bottom: 1px solid var(--border); }}
  .image-grid {{ display: grid; grid-template-columns: repeat(3, 1fr); gap: 0.6rem; }}
  .image-panel {{ text-align: center; }}
  .image-panel img {{ width: 100%; border-radius: 6px; border: 1px solid var(--border); cursor: pointer; }}
  .image-panel img.zoomed {{ position: fixed; top: 5%; left: 5%; width: 90%; height: 90%; object-fit: contain; z-index: 1000; background: rgba(0,0,0,0.85); border: none; border-radius: 8px; padding: 1rem; }}
  .image-label {{ font-size: 0.75rem; color: var(--muted); margin-bottom: 0.2rem; text-transform: uppercase; }}
  .missing-image {{ border: 1px dashed var(--border); border-radius: 6px; padding: 2rem 0.5rem; color: var(--muted); font-size: 0.82rem; }}
  .warnings {{ margin-left: 1.2rem; font-size: 0.85rem; color: #92400e; }}
  .step-error {{ color: var(--fail); font-size: 0.82rem; margin-top: 0.15rem; }}
  .console-log {{ background: #1e293b; color: #f1f5f9; padding: 0.8rem; border-radius: 6px; font-size: 0.78rem; overflow-x: auto; max-height: 200px; overflow-y: auto; }}
  .filter-bar {{ display: flex; gap: 0.5rem; margin-bottom: 1rem; flex-wrap: wrap; }}
  .filter-btn {{ padding: 0.3rem 0.8rem; border-radius: 6px; border: 1px solid var(--border); background: var(--card); cursor: pointer; font-size: 0.82rem; }}
  .filter-btn.active {{ background: var(--accent); color: white; border-color: var(--accent); }}
</style>
</head>
<body>
<div class="container">
  <h1>Visual Regression Report</h1>
  <p class="meta">Run: {html.escape(run.run_id)} &middot; Target: {html.escape(run.base_url)} &middot; Env: {html.escape(run.environment)} &middot; Branch: {html.escape(run.branch)} @ {html.escape(run.commit)} &middot; Started: {html.escape(run.started_at)} &middot; Generated: {html.escape(report.generated_at)}</p>

  <div class="summary">
    <div class="stat"><div class="value">{counts.total}</div><div class="label">Total</div></div>
    <div class="stat pass"><div class="value">{counts.passed}</div><div class="label">Passed</div></div>
    <div class="stat fail"><div class="value">{by_status.get(OutcomeStatus.FAILED_VISUAL.value, 0)}</div><div class="label">Visual</div></div>
    <div class="stat layout"><div class="value">{by_status.get(OutcomeStatus.FAILED_LAYOUT.value, 0)}</div><div class="label">Layout</div></div>
    <div class="stat error"><div class="value">{by_status.get(OutcomeStatus.FAILED_ENVIRONMENT.value, 0)}</div><div class="label">Environment</div></div>
    <div class="stat created"><div class="value">{counts.baseline_created}</div><div class="label">Baselines created</div></div>
  </div>

  {error_section}
  {reg_section}

  <div class="filter-bar">
    <button class="filter-btn active" onclick="filterCards('all')">All</button>
    <button class="filter-btn" onclick="filterCards('fail')">Visual</button>
    <button class="filter-btn" onclick="filterCards('layout')">Layout</button>
    <button class="filter-btn" onclick="filterCards('error')">Environment</button>
    <button class="filter-btn" onclick="filterCards('target')">Target</button>
    <button class="filter-btn" onclick="filterCards('created')">Created</button>
    <button class="filter-btn" onclick="filterCards('pass')">Passed</button>
    <button class="filter-btn" onclick="expandAll()">Expand All</button>
    <button class="filter-btn" onclick="collapseAll()">Collapse All</button>
  </div>

  <div id="outcome-list">
    {cards}
  </div>
  {_build_external_section(report.external_results)}
  {_build_load_section(report.load_test)}
</div>

<script>
function filterCards(status) {{
  document.querySelectorAll('.filter-btn').forEach(b => b.classList.remove('active'));
  event.target.classList.add('active');
  document.querySelectorAll('.test-card').forEach(card => {{
    card.style.display = status === 'all' || card.dataset.status === status ? '' : 'none';
  }});
}}
function expandAll() {{
  document.querySelectorAll('.test-card').forEach(c => c.classList.add('expanded'));
}}
function collapseAll() {{
  document.querySelectorAll('.test-card').forEach(c => c.classList.remove('expanded'));
}}
</script>
</body>
</html>'''

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report_html)
