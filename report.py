"""
Agency Engine v1.0: Investigation Report Generator
Renders the investigation report dict as a self-contained HTML page with
inline CSS, a table of contents and color-coded progress bars. Missing
keys render as empty sections rather than failing.
"""

from datetime import datetime


def generate_investigation_report_html(report: dict, agent=None) -> str:
    """Generate the HTML investigation report. Returns a complete HTML string."""

    parts = []
    parts.append(_head(report, agent))
    parts.append(_toc())
    parts.append(_agent_sheet(agent))
    parts.append(_progress(report))
    parts.append(_collected(report))
    parts.append(_missing(report))
    parts.append(_locations(report))
    parts.append(_facts(report))
    parts.append(_chaos(report))
    parts.append("</body></html>")

    return "\n".join(parts)


# ─────────────────────────────────────────────────────
# CSS
# ─────────────────────────────────────────────────────

_CSS = (
    "body{background:#0f1114;color:#d8d8d8;font-family:'Segoe UI',Consolas,sans-serif;"
    "max-width:1000px;margin:0 auto;padding:24px;line-height:1.5}\n"
    "h1{color:#c0392b;border-bottom:3px solid #c0392b;padding-bottom:10px;font-size:1.8em;letter-spacing:1px}\n"
    "h2{color:#e74c3c;margin-top:32px;border-bottom:1px solid #555;padding-bottom:6px;font-size:1.3em}\n"
    "table{border-collapse:collapse;width:100%;margin:8px 0 16px 0;font-size:0.9em}\n"
    "th{background:#1b1e24;color:#e74c3c;text-align:left;padding:7px 10px;border:1px solid #333;font-weight:600}\n"
    "td{padding:5px 10px;border:1px solid #2a2a2a;vertical-align:top}\n"
    "tr:nth-child(even){background:#15181d}\n"
    ".bar-bg{background:#1b1e24;border-radius:4px;height:12px;width:200px;display:inline-block;vertical-align:middle}\n"
    ".bar-fill{height:12px;border-radius:4px}\n"
    ".muted{color:#666;font-size:0.85em}\n"
    ".meta-grid{display:grid;grid-template-columns:repeat(4,1fr);gap:10px;margin:12px 0}\n"
    ".meta-box{background:#16191e;padding:10px;border-radius:6px;text-align:center;border:1px solid #2a2d33}\n"
    ".meta-label{color:#888;font-size:0.8em;text-transform:uppercase;letter-spacing:1px}\n"
    ".meta-value{color:#e74c3c;font-size:1.4em;font-weight:bold}\n"
    ".section{background:#16191e;padding:14px 16px;border-radius:6px;margin:8px 0;border-left:3px solid #c0392b}\n"
    "ul{margin:4px 0;padding-left:20px}\n"
    "li{margin:2px 0;font-size:0.92em}\n"
    ".toc{background:#16191e;padding:16px;border-radius:6px;margin:16px 0}\n"
    ".toc a{color:#3498db;text-decoration:none}\n"
    ".toc a:hover{text-decoration:underline}\n"
)


# ─────────────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────────────

def _esc(text) -> str:
    """HTML-escape a string."""
    return (
        str(text)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#x27;")
    )


def _g(obj, field, default=""):
    """Attribute or dict key, whichever the object carries."""
    if isinstance(obj, dict):
        return obj.get(field, default)
    return getattr(obj, field, default)


def _progress_color(pct):
    """>=80% green, >=40% orange, else red."""
    if pct >= 80:
        return "#27ae60"
    if pct >= 40:
        return "#e67e22"
    return "#e74c3c"


def _bar(pct):
    pct = max(0, min(100, int(pct)))
    return (
        f"<span class='bar-bg'><span class='bar-fill' style='display:block;"
        f"width:{pct}%;background:{_progress_color(pct)}'></span></span> {pct}%"
    )


def _bullet_list(items, empty="None."):
    if not items:
        return f"<p class='muted'>{_esc(empty)}</p>"
    inner = "\n".join(f"<li>{_esc(i)}</li>" for i in items)
    return f"<ul>\n{inner}\n</ul>"


def _fmt_time(ts):
    if not ts:
        return ""
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


# ─────────────────────────────────────────────────────
# SECTION BUILDERS
# ─────────────────────────────────────────────────────

def _head(report, agent):
    title = f"Investigation Report: {_g(report, 'scenario_name', '')}"
    progress = _g(report, "progress", {}) or {}
    return (
        "<!DOCTYPE html><html><head><meta charset='utf-8'>"
        f"<title>{_esc(title)}</title><style>\n{_CSS}</style></head><body>\n"
        f"<h1>{_esc(title)}</h1>\n"
        "<div class='meta-grid'>\n"
        f"<div class='meta-box'><div class='meta-label'>Agent</div>"
        f"<div class='meta-value'>{_esc(_g(agent, 'name', '-') if agent else '-')}</div></div>\n"
        f"<div class='meta-box'><div class='meta-label'>Phase</div>"
        f"<div class='meta-value'>{_esc(_g(report, 'phase', ''))}</div></div>\n"
        f"<div class='meta-box'><div class='meta-label'>Anomaly</div>"
        f"<div class='meta-value'>{_esc(_g(report, 'anomaly', '') or 'Unknown')}</div></div>\n"
        f"<div class='meta-box'><div class='meta-label'>Clues</div>"
        f"<div class='meta-value'>{_g(progress, 'collected', 0)}/{_g(progress, 'total', 0)}</div></div>\n"
        "</div>\n"
        f"<p class='muted'>Session {_esc(_g(report, 'session_id', ''))}, generated "
        f"{datetime.now().strftime('%Y-%m-%d %H:%M')}</p>"
    )


def _toc():
    entries = [
        ("agent", "Agent"),
        ("progress", "Progress"),
        ("collected", "Collected Clues"),
        ("missing", "Outstanding Clues"),
        ("locations", "Locations"),
        ("facts", "Established Facts"),
        ("chaos", "Chaos"),
    ]
    items = "\n".join(f"<li><a href='#{a}'>{_esc(t)}</a></li>" for a, t in entries)
    return f"<div class='toc'><b>Contents</b><ul>\n{items}\n</ul></div>"


def _agent_sheet(agent):
    if agent is None:
        return "<h2 id='agent'>Agent</h2><p class='muted'>No agent on file.</p>"
    qa_rows = "\n".join(
        f"<tr><td>{_esc(q)}</td><td>{v}</td></tr>"
        for q, v in sorted(_g(agent, "qa", {}).items()) if v
    )
    return (
        "<h2 id='agent'>Agent</h2>\n<div class='section'>"
        f"<b>{_esc(agent.name)}</b> <span class='muted'>{_esc(agent.pronouns)}</span><br>"
        f"Anomaly: {_esc(agent.anomaly.type)} / Reality: {_esc(agent.reality.type)} / "
        f"Career: {_esc(agent.career.type)}<br>"
        f"Commendations {agent.commendations}, reprimands {agent.reprimands}, "
        f"rating {_esc(agent.rating)}{' (in debt)' if agent.in_debt else ''}"
        "</div>\n"
        f"<table><tr><th>Quality</th><th>QA</th></tr>\n{qa_rows}\n</table>"
    )


def _progress(report):
    progress = _g(report, "progress", {}) or {}
    return (
        "<h2 id='progress'>Progress</h2>\n"
        f"<div class='section'>{_bar(_g(progress, 'percentage', 0))} "
        f"<span class='muted'>({_g(progress, 'collected', 0)} of {_g(progress, 'total', 0)} clues)"
        f"</span><br>Domain located: {'yes' if _g(report, 'domain_unlocked', False) else 'no'}</div>"
    )


def _collected(report):
    clues = _g(report, "collected_clues", []) or []
    if not clues:
        return "<h2 id='collected'>Collected Clues</h2><p class='muted'>None yet.</p>"
    rows = "\n".join(
        f"<tr><td>{i}</td><td><b>{_esc(_g(c, 'name'))}</b><br>"
        f"<span class='muted'>{_esc(_g(c, 'description'))}</span></td>"
        f"<td>{_esc(_g(c, 'source'))}</td><td>{_esc(_fmt_time(_g(c, 'collected_at', None)))}</td></tr>"
        for i, c in enumerate(clues, 1)
    )
    return (
        "<h2 id='collected'>Collected Clues</h2>\n"
        "<table><tr><th>#</th><th>Clue</th><th>Source</th><th>Found</th></tr>\n"
        f"{rows}\n</table>"
    )


def _missing(report):
    names = [_g(c, "name") for c in (_g(report, "missing_clues", []) or [])]
    return "<h2 id='missing'>Outstanding Clues</h2>\n" + _bullet_list(names, "Every clue found.")


def _locations(report):
    return (
        "<h2 id='locations'>Locations</h2>\n<b>Visited</b>"
        + _bullet_list(_g(report, "visited_scenes", []))
        + "<b>Unlocked</b>"
        + _bullet_list(_g(report, "unlocked_locations", []))
    )


def _facts(report):
    return "<h2 id='facts'>Established Facts</h2>\n" + _bullet_list(_g(report, "established_facts", []))


def _chaos(report):
    overloads = _g(report, "location_overloads", {}) or {}
    rows = "\n".join(f"<tr><td>{_esc(loc)}</td><td>{n}</td></tr>"
                     for loc, n in sorted(overloads.items()))
    table = (f"<table><tr><th>Location</th><th>Overload</th></tr>\n{rows}\n</table>"
             if rows else "<p class='muted'>No overloaded locations.</p>")
    return (
        "<h2 id='chaos'>Chaos</h2>\n"
        f"<div class='section'>Chaos pool: <b>{_g(report, 'chaos_pool', 0)}</b></div>\n{table}"
    )
