from __future__ import annotations

from typing import Any

import pytest


@pytest.fixture()
def dashboard() -> dict[str, Any]:
    return {
        "uid": "node-exporter",
        "title": "Node Exporter",
        "panels": [
            {
                "id": 1,
                "type": "timeseries",
                "targets": [
                    {
                        "refId": "A",
                        "expr": (
                            "rate(node_cpu_seconds_total"
                            '{instance="$node",mode!="idle"}[$__rate_interval])'
                        ),
                    },
                    {"refId": "B", "expr": ""},
                ],
            },
            {
                "id": 2,
                "type": "row",
                "collapsed": True,
                "panels": [
                    {
                        "id": 3,
                        "type": "stat",
                        "targets": [
                            {"refId": "A", "expr": 'up{job="node"}'},
                            {"refId": "B", "expr": "node_load1 > bool $threshold"},
                        ],
                    },
                    {"id": 4, "type": "text"},
                ],
            },
            {
                "id": 5,
                "type": "timeseries",
                "targets": [
                    {"refId": "A", "expr": "node_memory_MemAvailable_bytes / ("},
                    {"refId": "B", "expr": '{__name__="node_load5"}'},
                ],
            },
        ],
        "templating": {
            "list": [
                {
                    "name": "node",
                    "type": "query",
                    "query": {
                        "query": 'label_values(node_uname_info{job="node"}, instance)',
                        "refId": "PrometheusVariableQueryEditor-VariableQuery",
                    },
                },
                {
                    "name": "job",
                    "type": "query",
                    "query": "label_values(job)",
                },
                {
                    "name": "version",
                    "type": "query",
                    "query": "query_result(count by (version) (node_exporter_build_info))",
                },
                {"name": "threshold", "type": "custom", "query": "1,2,5"},
            ]
        },
    }
