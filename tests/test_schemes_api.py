import pytest

from core.exceptions import TransferRejected
from database import get_settings
from services.ledger_service import SqlLedger

SCHEME = "club"
CUSTODY = "scheme:club"
ASSET = "USDC"
ADMIN = "admin"
MEMBERS = ["alice", "bob", "carol"]


def _fund(db_session, holders, amount=1000):
    ledger = SqlLedger(db_session)
    for holder in holders:
        ledger.mint(ASSET, holder, amount)
    db_session.commit()


def _create(client, members=MEMBERS, amount=100, duration=3600):
    return client.post(f'/api/schemes/{SCHEME}', json={
        'admin': ADMIN,
        'members': members,
        'contribution_amount': amount,
        'asset_id': ASSET,
        'round_duration': duration,
    })


def _contribute(client, member, caller=None):
    return client.post(
        f'/api/schemes/{SCHEME}/contributions',
        json={'contributor': member},
        headers={'X-Caller-Id': caller or member},
    )


def _close(client, caller=ADMIN):
    return client.post(f'/api/schemes/{SCHEME}/close', headers={'X-Caller-Id': caller})


def _balance(client, holder):
    res = client.get(f'/api/assets/{ASSET}/balances/{holder}')
    assert res.status_code == 200
    return res.json()['balance']


def _state(client):
    res = client.get(f'/api/schemes/{SCHEME}/state')
    assert res.status_code == 200
    return res.json()


def test_health(client):
    assert client.get('/health').json() == {'status': 'healthy'}


def test_create_scheme(client, clock):
    clock.set(10)
    res = _create(client)
    assert res.status_code == 201
    data = res.json()
    assert data['current_round'] == 0
    assert data['paid_members'] == []
    assert data['round_deadline'] == 3610
    assert data['members'] == MEMBERS
    assert data['custody_account'] == CUSTODY


def test_create_twice_conflicts(client):
    assert _create(client).status_code == 201
    res = _create(client, members=['x'], amount=1, duration=1)
    assert res.status_code == 409
    assert res.json()['detail']['error'] == 'AlreadyInitialized'


def test_create_with_duplicate_members_rejected(client):
    res = _create(client, members=['alice', 'alice'])
    assert res.status_code == 400
    assert res.json()['detail']['error'] == 'InvalidSchemeParameters'
    assert client.get(f'/api/schemes/{SCHEME}/state').status_code == 404


def test_unknown_scheme(client):
    assert client.get(f'/api/schemes/{SCHEME}').status_code == 404
    assert client.get(f'/api/schemes/{SCHEME}/events').status_code == 404
    assert _contribute(client, 'alice').status_code == 404
    assert _close(client).status_code == 404


def test_full_round_pays_out(client, db_session, clock):
    _fund(db_session, MEMBERS)
    _create(client)
    clock.set(200)

    for member in MEMBERS[:2]:
        res = _contribute(client, member)
        assert res.status_code == 200
    assert _state(client)['paid_members'] == ['alice', 'bob']

    res = _contribute(client, 'carol')
    assert res.status_code == 200
    assert res.json() == {'current_round': 1, 'paid_members': [], 'round_deadline': 3800}

    assert _balance(client, 'alice') == 1200
    assert _balance(client, 'bob') == 900
    assert _balance(client, CUSTODY) == 0

    events = client.get(f'/api/schemes/{SCHEME}/events').json()
    assert events[-1]['event_type'] == 'ROUND_COMPLETED'
    assert events[-1]['data'] == {'round_number': 0, 'recipient': 'alice', 'pot': 300}


def test_contribution_rejections(client, db_session):
    _fund(db_session, MEMBERS + ['mallory'])
    _create(client)

    res = _contribute(client, 'bob', caller='alice')
    assert res.status_code == 403
    assert res.json()['detail']['error'] == 'Unauthorized'

    res = client.post(f'/api/schemes/{SCHEME}/contributions', json={'contributor': 'bob'})
    assert res.status_code == 403

    res = _contribute(client, 'mallory')
    assert res.status_code == 403
    assert res.json()['detail']['error'] == 'NotAMember'
    assert _balance(client, 'mallory') == 1000

    assert _contribute(client, 'alice').status_code == 200
    res = _contribute(client, 'alice')
    assert res.status_code == 409
    assert res.json()['detail']['error'] == 'AlreadyContributed'
    assert _balance(client, 'alice') == 900


def test_insufficient_funds_rolls_back(client, db_session):
    _fund(db_session, ['alice'], amount=50)
    _create(client)

    res = _contribute(client, 'alice')
    assert res.status_code == 402
    assert res.json()['detail']['error'] == 'InsufficientFunds'

    assert _state(client)['paid_members'] == []
    assert _balance(client, 'alice') == 50
    event_types = [e['event_type'] for e in client.get(f'/api/schemes/{SCHEME}/events').json()]
    assert event_types == ['SCHEME_INITIALIZED']


def test_failed_payout_rolls_back_final_contribution(client, db_session, monkeypatch):
    _fund(db_session, MEMBERS)
    _create(client)
    _contribute(client, 'alice')
    _contribute(client, 'bob')

    original_transfer = SqlLedger.transfer

    def reject_payouts(self, asset_id, sender, recipient, amount):
        if sender == CUSTODY:
            raise TransferRejected("payouts frozen")
        return original_transfer(self, asset_id, sender, recipient, amount)

    monkeypatch.setattr(SqlLedger, 'transfer', reject_payouts)

    res = _contribute(client, 'carol')
    assert res.status_code == 400
    assert res.json()['detail']['error'] == 'TransferRejected'

    assert _balance(client, 'carol') == 1000
    assert _balance(client, CUSTODY) == 200
    assert _state(client) == {'current_round': 0, 'paid_members': ['alice', 'bob'], 'round_deadline': 3600}


def test_deadline_and_force_close_scenario(client, db_session, clock):
    _fund(db_session, MEMBERS)
    _create(client)

    clock.set(100)
    assert _contribute(client, 'alice').status_code == 200
    assert _balance(client, 'alice') == 900

    clock.set(3601)
    res = _contribute(client, 'bob')
    assert res.status_code == 400
    assert res.json()['detail']['error'] == 'DeadlinePassed'

    res = _close(client, caller='alice')
    assert res.status_code == 403

    res = _close(client)
    assert res.status_code == 200
    data = res.json()
    assert data['round_number'] == 0
    assert data['defaulters'] == ['bob', 'carol']
    assert data['state'] == {'current_round': 1, 'paid_members': [], 'round_deadline': 7201}

    scheme = client.get(f'/api/schemes/{SCHEME}').json()
    assert scheme['defaulters'] == ['bob', 'carol']
    assert _balance(client, CUSTODY) == 100

    events = client.get(f'/api/schemes/{SCHEME}/events').json()
    assert events[-1]['event_type'] == 'ROUND_CLOSED'
    assert events[-1]['data'] == {'round_number': 0, 'defaulters': ['bob', 'carol']}

    clock.set(4000)
    assert _contribute(client, 'alice').status_code == 200
    assert _balance(client, 'alice') == 800


def test_close_before_deadline_rejected(client, clock):
    _create(client)
    clock.set(3600)

    res = _close(client)
    assert res.status_code == 400
    assert res.json()['detail']['error'] == 'DeadlineNotYetPassed'
    assert _state(client)['current_round'] == 0


def test_mint_disabled_by_default(client):
    res = client.post(f'/api/assets/{ASSET}/mint', json={'holder': 'alice', 'amount': 10})
    assert res.status_code == 404


def test_mint_when_enabled(client, monkeypatch):
    monkeypatch.setattr(get_settings(), 'allow_mint', True)

    res = client.post(f'/api/assets/{ASSET}/mint', json={'holder': 'alice', 'amount': 10})
    assert res.status_code == 200
    assert res.json()['balance'] == 10

    res = client.post(f'/api/assets/{ASSET}/mint', json={'holder': 'alice', 'amount': 0})
    assert res.status_code == 400
    assert _balance(client, 'alice') == 10


def test_max_contribution_amount_round_trips(client, db_session):
    amount = 2 ** 127 - 1
    _fund(db_session, ['alice'], amount=amount)
    res = _create(client, members=['alice', 'bob'], amount=amount)
    assert res.status_code == 201
    assert res.json()['contribution_amount'] == amount

    assert client.get(f'/api/schemes/{SCHEME}').json()['contribution_amount'] == amount

    assert _contribute(client, 'alice').status_code == 200
    assert _balance(client, 'alice') == 0
    assert _balance(client, CUSTODY) == amount


def test_max_round_deadline_round_trips(client):
    duration = 2 ** 64 - 1
    assert _create(client, duration=duration).status_code == 201

    assert _state(client)['round_deadline'] == duration
    assert client.get(f'/api/schemes/{SCHEME}').json()['round_duration'] == duration


def test_balance_above_int64_round_trips(client, db_session):
    _fund(db_session, ['alice'], amount=10 ** 19 + 1)

    assert _balance(client, 'alice') == 10 ** 19 + 1


def test_close_reports_each_closed_round(client, clock):
    _create(client)

    clock.set(3601)
    first = _close(client).json()
    clock.set(7202)
    second = _close(client).json()

    assert first['round_number'] == 0
    assert first['state']['current_round'] == 1
    assert second['round_number'] == 1
    assert second['state'] == {'current_round': 2, 'paid_members': [], 'round_deadline': 10802}
    assert second['defaulters'] == MEMBERS
