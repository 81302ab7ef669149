from __future__ import annotations

import html
import json
import re
import webbrowser
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..graph.model import GraphData
from ..util.errors import ExportError

DEFAULT_HTML_NAME = "permit-graph.html"
DEFAULT_TITLE = "Permit ReBAC Graph"

_GRAPH_PLACEHOLDER = "__GRAPH_DATA__"
_TITLE_PLACEHOLDER = "__GRAPH_TITLE__"
_PLACEHOLDER_RE = re.compile("|".join(map(re.escape, (_GRAPH_PLACEHOLDER, _TITLE_PLACEHOLDER))))

_HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>ReBAC Graph</title>
    <script src="https://cdnjs.cloudflare.com/ajax/libs/cytoscape/3.23.0/cytoscape.min.js"></script>
    <script src="https://cdnjs.cloudflare.com/ajax/libs/dagre/0.8.5/dagre.min.js"></script>
    <script src="https://unpkg.com/cytoscape-dagre/cytoscape-dagre.js"></script>
    <link href="https://fonts.googleapis.com/css2?family=Manrope:wght@400;600&display=swap" rel="stylesheet">
    <style>
        body {
            display: flex;
            flex-direction: column;
            margin: 0;
            height: 100vh;
            background-color: rgb(43, 20, 0);
            font-family: 'Manrope', Arial, sans-serif;
            color: #ffffff;
        }
        #title {
            text-align: center;
            font-size: 30px;
            font-weight: 600;
            height: 50px;
            line-height: 50px;
            background-clip: text;
            -webkit-background-clip: text;
            color: transparent;
            background-image: linear-gradient(to right, #ffba81, #bb84ff);
            background-color: rgb(43, 20, 0);
        }
        #cy {
            flex: 1;
            width: 100%;
            background-color: #FFF1E7;
            padding: 10px;
        }
    </style>
</head>
<body>
    <div id="title">__GRAPH_TITLE__</div>
    <div id="cy"></div>
    <script>
        const graphData = __GRAPH_DATA__;
        cytoscape.use(cytoscapeDagre);

        const cy = cytoscape({
            container: document.getElementById('cy'),
            elements: [...graphData.nodes, ...graphData.edges],
            style: [
                {
                    selector: 'edge',
                    style: {
                        'line-color': 'rgb(18, 165, 148)',
                        'width': 5,
                        'target-arrow-shape': 'triangle',
                        'target-arrow-color': 'rgb(18, 165, 148)',
                        'curve-style': 'taxi',
                        'taxi-turn': 30,
                        'taxi-direction': 'downward',
                        'taxi-turn-min-distance': 20,
                        'label': 'data(label)',
                        'color': '#ffffff',
                        'font-size': 25,
                        'font-family': 'Manrope, Arial, sans-serif',
                        'font-weight': 500,
                        'text-background-color': 'rgb(18, 165, 148)',
                        'text-background-opacity': 0.8,
                        'text-background-padding': 8,
                        'text-margin-y': -25,
                    },
                },
                {
                    selector: 'node',
                    style: {
                        'background-color': 'rgb(255, 255, 255)',
                        'border-color': 'rgb(211, 179, 250)',
                        'border-width': 8,
                        'shape': 'round-rectangle',
                        'label': 'data(label)',
                        'color': 'rgb(151, 78, 242)',
                        'font-size': 30,
                        'font-family': 'Manrope, Arial, sans-serif',
                        'font-weight': 700,
                        'text-valign': 'center',
                        'text-halign': 'center',
                        'width': 'label',
                        'height': 'label',
                        'padding': 45,
                    },
                },
                {
                    selector: 'node.user-node',
                    style: {
                        'border-color': 'rgb(255, 186, 129)',
                    },
                },
            ],
            layout: {
                name: 'dagre',
                rankDir: 'LR',
                nodeSep: 70,
                edgeSep: 50,
                rankSep: 150,
                animate: true,
                fit: true,
                padding: 20,
                directed: true,
                spacingFactor: 1.5,
            },
        });
    </script>
</body>
</html>
"""


def _script_safe_json(payload: Dict[str, Any]) -> str:
    # keep "</script>" inside labels from closing the script element
    return json.dumps(payload, indent=2, ensure_ascii=False).replace("</", "<\\/")


def render_html_graph(graph: Union[GraphData, Dict[str, Any]], *, title: str = DEFAULT_TITLE) -> str:
    payload = graph.to_cytoscape() if isinstance(graph, GraphData) else graph
    values = {_GRAPH_PLACEHOLDER: _script_safe_json(payload), _TITLE_PLACEHOLDER: html.escape(title)}
    # one pass, so inserted text is never scanned for markers again
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(0)], _HTML_TEMPLATE)


def write_html_graph(
    graph: Union[GraphData, Dict[str, Any]],
    path: Optional[Path] = None,
    *,
    title: str = DEFAULT_TITLE,
    open_browser: bool = False,
) -> Path:
    out_path = (path or Path.cwd() / DEFAULT_HTML_NAME).resolve()
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(render_html_graph(graph, title=title), encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write graph HTML to {out_path}: {e}") from e
    if open_browser:
        webbrowser.open(out_path.as_uri())
    return out_path
