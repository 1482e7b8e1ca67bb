"""Fake cluster and gateway transports shared by the uploader tests."""

import json
from typing import Dict, List, Optional

import httpx

ROOT_CID = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"
LEAF_CID = "bafkreihdwdcefgh4dqkjv67uzcmw7ojee6xedzdetojuzjevtenxquvyku"

GATEWAYS = [
    "http://ipfs1:8080/ipfs",
    "http://ipfs2:8080/ipfs",
    "http://ipfs3:8080/ipfs",
    "http://ipfs4:8080/ipfs",
]


def ndjson(*records: dict) -> str:
    return "".join(json.dumps(record) + "\n" for record in records)


def add_response(tree_name: str, root_cid: str = ROOT_CID) -> str:
    """Add response for a wrapped directory: leaves first, then the root."""
    return ndjson(
        {"name": f"{tree_name}/a.txt", "cid": LEAF_CID, "size": 13},
        {"name": tree_name, "cid": root_cid, "size": 120},
    )


def cluster_transport(
    add_body: Optional[str] = None,
    add_status: int = 200,
    pins: Optional[Dict[str, dict]] = None,
    pin_status_code: Optional[int] = None,
    unpin_status: int = 200,
    unpin_error: bool = False,
) -> httpx.MockTransport:
    """
    Fake cluster REST API.

    ``pins`` maps CID to the pin status body; unknown CIDs answer 404, or
    ``pin_status_code`` for every CID when given. Captured requests are
    kept on ``transport.requests``.
    """
    pins = pins if pins is not None else {}
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        path = request.url.path

        if request.method == "POST" and path == "/add":
            return httpx.Response(add_status, text=add_body if add_body is not None else add_response("photos"))

        if path.startswith("/pins/"):
            cid = path[len("/pins/"):]
            if request.method == "DELETE":
                if unpin_error:
                    raise httpx.ConnectError("cluster down", request=request)
                return httpx.Response(unpin_status, json={})
            if pin_status_code is not None:
                return httpx.Response(pin_status_code, json={"message": "unavailable"})
            if cid in pins:
                return httpx.Response(200, json=pins[cid])
            return httpx.Response(404, json={"message": "not pinned"})

        if path == "/id":
            return httpx.Response(200, json={"id": "peer0"})

        return httpx.Response(404)

    transport = httpx.MockTransport(handler)
    transport.requests = captured
    return transport


def gateway_transport(behaviour: Dict[str, object]) -> httpx.MockTransport:
    """
    Fake set of read gateways keyed by host.

    Each value is an ``httpx.Response`` to return, a zero-argument callable
    building one (for gateways hit more than once), or an exception
    instance to raise. Hosts are recorded in ``transport.hosts`` in the
    order they were contacted.
    """
    hosts: List[str] = []
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        captured.append(request)
        outcome = behaviour.get(request.url.host)
        if outcome is None:
            return httpx.Response(404, text="no such gateway")
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome()
        return outcome

    transport = httpx.MockTransport(handler)
    transport.hosts = hosts
    transport.requests = captured
    return transport
