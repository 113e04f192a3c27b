import json
from unittest.mock import MagicMock

import pytest
import requests

from finledger.core.errors import TransportError
from finledger.db.remote import Collection, HttpCollectionClient


def make_response(status=200, body=None, raw=None):
    response = requests.Response()
    response.status_code = status
    response.url = "http://ledger.test/api"
    if raw is not None:
        response._content = raw
    else:
        response._content = b"" if body is None else json.dumps(body).encode()
    return response


def make_client(response=None, error=None):
    session = MagicMock()
    if error is not None:
        session.request.side_effect = error
    else:
        session.request.return_value = response
    return HttpCollectionClient("http://ledger.test/", prefix="/api/", timeout=2.5, session=session), session


def test_list_records_hits_collection_route():
    client, session = make_client(make_response(body=[{"_id": "t1"}]))
    assert client.list_records(Collection.TRANSACTIONS) == [{"_id": "t1"}]
    session.request.assert_called_once_with("GET", "http://ledger.test/api/transactions", timeout=2.5)


def test_empty_body_means_empty_collection():
    client, _ = make_client(make_response(body=None))
    assert client.list_records(Collection.NOTES) == []


def test_non_list_body_is_a_transport_error():
    client, _ = make_client(make_response(body={"error": "nope"}))
    with pytest.raises(TransportError):
        client.list_records(Collection.SAVINGS)


def test_non_json_body_is_a_transport_error():
    client, _ = make_client(make_response(raw=b"<html>down</html>"))
    with pytest.raises(TransportError):
        client.list_records(Collection.SAVINGS)


@pytest.mark.parametrize("status", [400, 404, 500, 503])
def test_non_2xx_is_a_transport_error(status):
    client, _ = make_client(make_response(status=status, body={"error": "x"}))
    with pytest.raises(TransportError):
        client.create_record(Collection.TRANSACTIONS, {"amount": 1})


@pytest.mark.parametrize("error", [requests.ConnectionError("refused"), requests.Timeout("slow")])
def test_network_failures_are_transport_errors(error):
    client, _ = make_client(error=error)
    with pytest.raises(TransportError):
        client.list_records(Collection.TRANSACTIONS)


def test_writes_use_record_routes():
    client, session = make_client(make_response(body={"_id": "s1"}))
    client.update_record(Collection.SAVINGS, "s1", {"name": "x"})
    client.delete_record(Collection.SAVINGS, "s1")
    client.append_sub_record(Collection.SAVINGS, "s1", "entries", {"amount": 10})

    calls = [(c.args[0], c.args[1], c.kwargs.get("json")) for c in session.request.call_args_list]
    assert calls == [
        ("PUT", "http://ledger.test/api/savings/s1", {"name": "x"}),
        ("DELETE", "http://ledger.test/api/savings/s1", None),
        ("POST", "http://ledger.test/api/savings/s1/add-month", {"amount": 10}),
    ]


def test_unknown_sub_record_field_is_rejected():
    client, _ = make_client(make_response(body={}))
    with pytest.raises(ValueError):
        client.append_sub_record(Collection.SAVINGS, "s1", "withdrawals", {})


def test_leaderboard_requires_a_list():
    client, _ = make_client(make_response(body=[{"name": "Asha", "savings": 10}]))
    assert client.leaderboard() == [{"name": "Asha", "savings": 10}]

    client, _ = make_client(make_response(body=None))
    with pytest.raises(TransportError):
        client.leaderboard()
