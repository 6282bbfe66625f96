"""Neighbourhood page: postcode/address lookup with property cards, table and crime charts."""

import json

import dash
from dash import html, dcc, callback, Input, Output, State, no_update
import plotly.graph_objects as go
import httpx

from buurtinfo.config import settings
from buurtinfo.engine.properties import NOT_IN_TABLE, VIEWABLE_PROPERTIES

dash.register_page(__name__, path="/", name="Neighbourhood")

API_BASE = settings.api_base

BTN_STYLE = {
    "padding": "0.75rem 2rem",
    "fontSize": "1rem",
    "backgroundColor": "#1a1a2e",
    "color": "white",
    "border": "none",
    "cursor": "pointer",
}

FIELD_STYLE = {"width": "100%", "padding": "0.5rem", "fontSize": "0.95rem"}

CARD_STYLE = {
    "backgroundColor": "#f5f5f5",
    "padding": "1rem",
    "borderRadius": "8px",
    "minWidth": "180px",
    "flex": "1",
}


def _field(label, component):
    return html.Div([
        html.Label(label, style={"fontSize": "0.85rem", "marginBottom": "0.25rem", "display": "block"}),
        component,
    ], style={"flex": "1", "minWidth": "140px"})


layout = html.Div([
    html.H2("Neighbourhood Information"),

    html.Div([
        _field("Postcode", dcc.Input(id="zip-input", type="text", placeholder="1011 AB", style=FIELD_STYLE)),
        _field("Address (optional)", dcc.Input(id="address-input", type="text", placeholder="Damrak 1", style=FIELD_STYLE)),
    ], style={"display": "flex", "gap": "1rem", "marginBottom": "1rem"}),

    _field("Show as cards", dcc.Dropdown(
        id="property-select",
        options=[{"label": p.label, "value": p.name} for p in VIEWABLE_PROPERTIES],
        value=settings.default_selected_properties,
        multi=True,
    )),

    html.Div([
        dcc.Checklist(id="debug-toggle", options=[{"label": " Show diagnostics", "value": "debug"}], value=[]),
    ], style={"margin": "1rem 0"}),

    html.Button("Look up", id="lookup-btn", n_clicks=0, style=BTN_STYLE),
    dcc.Loading(html.Div(id="lookup-loading"), type="circle"),

    html.Div(id="lookup-results", style={"marginTop": "2rem"}),
])


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


def fetch_lookup(payload: dict) -> tuple[dict, dict | None]:
    """Read the NDJSON stream: (response, late update or None)."""
    messages = []
    with httpx.stream("POST", f"{API_BASE}/api/v1/neighbourhood/stream", json=payload, timeout=90.0) as resp:
        resp.raise_for_status()
        for line in resp.iter_lines():
            if line.strip():
                messages.append(json.loads(line))
    return messages[0], (messages[1] if len(messages) > 1 else None)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _year_suffix(prop: dict) -> str:
    return f" ({prop['year']})" if prop.get("year") else ""


def render_badges(badges: list[dict]):
    return html.Div([
        html.Span(
            f"{b['short_label']}: {b['value']}",
            style={
                "backgroundColor": b["color"],
                "color": "white",
                "padding": "0.25rem 0.75rem",
                "borderRadius": "12px",
                "marginRight": "0.5rem",
                "fontSize": "0.9rem",
            },
        )
        for b in badges
    ], style={"marginBottom": "1.5rem"})


def render_cards(cards: list[dict]):
    return html.Div([
        html.Div([
            html.Div(c["label"], style={"fontSize": "0.8rem", "color": "#666"}),
            html.Div(str(c["value"]), style={"fontSize": "1.5rem", "fontWeight": "bold", "color": c["color"]}),
            html.Div(_year_suffix(c).strip(), style={"fontSize": "0.75rem", "color": "#999"}),
        ], style=CARD_STYLE)
        for c in cards
    ], style={"display": "flex", "gap": "1rem", "flexWrap": "wrap", "marginBottom": "2rem"})


def render_table(rows: list[dict]):
    body = [
        html.Tr([html.Td(r["label"]), html.Td(str(r["value"])), html.Td(r.get("year") or "")])
        for r in rows
        if r["group"] != NOT_IN_TABLE
    ]
    return html.Table(
        [html.Tr([html.Th("Property"), html.Th("Value"), html.Th("Year")])] + body,
        style={"width": "100%", "borderCollapse": "collapse", "marginBottom": "2rem"},
    )


def crime_figures(crime: dict) -> list[go.Figure]:
    monthly_fig = go.Figure()
    monthly_fig.add_trace(go.Bar(
        x=[m["period"] for m in crime.get("monthly", [])],
        y=[m["total"] for m in crime.get("monthly", [])],
        name="Registered crimes",
        marker_color="#1a1a2e",
    ))
    monthly_fig.update_layout(
        title=f"Registered crimes per month ({crime.get('year')})", xaxis_title="Month", yaxis_title="Crimes",
    )

    by_type = crime.get("by_type", [])
    type_fig = go.Figure(go.Bar(
        x=[t["total"] for t in by_type][::-1],
        y=[t["label"] or t["key"] for t in by_type][::-1],
        orientation="h",
        marker_color="#e94560",
    ))
    type_fig.update_layout(
        title=f"Registered crimes by type ({crime.get('year')})",
        height=max(400, 24 * len(by_type)),
        margin=dict(l=320),
    )
    return [monthly_fig, type_fig]


def render_results(data: dict, late: dict | None, selected: list[str]):
    if data.get("error"):
        return html.Div(data["error"], style={"color": "red"})

    badges = data["badge_properties"]
    cards = late["card_properties"] if late else data["card_properties"]
    table = data["table_properties"]
    if late and late.get("table_properties"):
        table = late["table_properties"]
        # amenity badges only exist once the late rows are in
        chosen = set(selected)
        badges = [p for p in table if p["name"] in chosen]
    crime = (late or {}).get("crime_data") or data.get("crime_data")
    debug_info = (late or {}).get("debug_info") or data.get("debug_info")

    children = [
        render_badges(badges),
        render_cards(cards),
        html.H3("All properties"),
        render_table(table),
    ]
    if crime:
        children.append(html.H3("Crime"))
        children.extend(dcc.Graph(figure=fig) for fig in crime_figures(crime))
    if debug_info:
        children.append(html.H3("Diagnostics"))
        children.append(html.Pre("\n".join(debug_info), style={"fontSize": "0.75rem"}))
    return html.Div(children)


@callback(
    [Output("lookup-results", "children"), Output("lookup-loading", "children")],
    Input("lookup-btn", "n_clicks"),
    [
        State("zip-input", "value"),
        State("address-input", "value"),
        State("property-select", "value"),
        State("debug-toggle", "value"),
    ],
    prevent_initial_call=True,
)
def run_lookup(n_clicks, zip_code, address, selected, debug):
    if not zip_code:
        return no_update, no_update
    payload = {
        "zip_code": zip_code,
        "address_query": address or None,
        "selected_properties": selected or [],
        "debug": "debug" in (debug or []),
    }
    try:
        data, late = fetch_lookup(payload)
    except Exception as e:
        return html.Div(f"Error: {e}", style={"color": "red"}), ""
    return render_results(data, late, payload["selected_properties"]), ""
