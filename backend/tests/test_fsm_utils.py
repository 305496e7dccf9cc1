from milicard.utils.fsm import TransitionValidator
from werkzeug.exceptions import HTTPException
import pytest


def test_transition_validator_allows_valid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    assert fsm.assert_can_transition('A', 'B') is True


def test_transition_validator_blocks_invalid():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    with pytest.raises(HTTPException) as exc:
        fsm.assert_can_transition('A', 'C')
    assert exc.value.code == 400
    assert exc.value.description == 'Invalid status transition A -> C'


def test_terminal_states():
    fsm = TransitionValidator({'A': {'B'}, 'B': set()})
    assert fsm.is_terminal('B')
    assert fsm.is_terminal('Z')
    assert not fsm.is_terminal('A')


def test_openapi_publishes_transitions(client):
    body = client.get('/openapi.json').get_json()
    schemas = body['components']['schemas']
    for name in ('PurchaseOrder', 'PointOrder', 'DistributionOrder'):
        assert 'x-transitions' in schemas[name]
    assert 'OPEN' in schemas['PurchaseOrder']['x-transitions']
    assert 'PENDING' in schemas['PointOrder']['x-transitions']
