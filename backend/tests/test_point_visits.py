import io
import os
from datetime import datetime, timedelta, timezone

from milicard.services.visits import cleanup_expired_visits
from tests.test_lifecycle_helpers import admin_headers, create_resource_and_assert
from tests.test_utils_seed import make_base, make_point


def _setup():
    user, headers = admin_headers()
    base = make_base()
    point = make_point(base)
    return user, headers, base, point


def test_json_visit_crud(client):
    user, headers, base, point = _setup()
    url = f'/bases/{base.id}/point-visits'
    visit = create_resource_and_assert(client, url, {
        'point_id': point.id, 'latitude': 31.23, 'longitude': 121.47, 'notes': 'restocked shelf',
        'images': ['https://cdn.example.com/a.jpg'],
    }, headers)
    assert visit['visitor_id'] == user.id
    assert visit['images'] == ['https://cdn.example.com/a.jpg']
    assert visit['visit_date'].endswith('Z')

    resp = client.post(url, json={'point_id': point.id, 'latitude': 95}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'latitude out of range'
    resp = client.post(url, json={'point_id': point.id, 'longitude': 'east'}, headers=headers)
    assert resp.get_json()['error']['detail'] == 'longitude must be a number'
    assert client.post(url, json={'point_id': point.id, 'images': 'a.jpg'}, headers=headers).status_code == 400
    assert client.post(url, json={'point_id': 999}, headers=headers).status_code == 404

    resp = client.put(f'{url}/{visit["id"]}', json={'notes': 'done', 'images': []}, headers=headers)
    assert resp.get_json()['notes'] == 'done'
    assert resp.get_json()['images'] == []
    assert client.get(f'{url}?point_id={point.id}', headers=headers).get_json()['pagination']['total'] == 1
    assert client.delete(f'{url}/{visit["id"]}', headers=headers).get_json() == {'deleted': True, 'id': visit['id'], 'images_removed': 0}


def test_multipart_upload_is_stored_and_removed(client, app_instance):
    _, headers, base, point = _setup()
    url = f'/bases/{base.id}/point-visits'
    resp = client.post(url, data={
        'point_id': str(point.id),
        'latitude': '10.5',
        'images': [(io.BytesIO(b'fake-png'), 'shelf.png')],
    }, headers=headers, content_type='multipart/form-data')
    assert resp.status_code == 201
    visit = resp.get_json()
    assert visit['latitude'] == 10.5
    assert len(visit['images']) == 1
    image_url = visit['images'][0]
    assert image_url.startswith('http://testserver/uploads/point-visits/')

    rel = image_url.split('/uploads/', 1)[1]
    stored = os.path.join(app_instance.config['UPLOAD_PATH'], rel)
    assert os.path.isfile(stored)
    served = client.get(f'/uploads/{rel}')
    assert served.status_code == 200
    assert served.data == b'fake-png'
    served.close()

    resp = client.post(url, data={'point_id': str(point.id), 'images': [(io.BytesIO(b'x'), 'script.exe')]},
                       headers=headers, content_type='multipart/form-data')
    assert resp.status_code == 400

    body = client.delete(f'{url}/{visit["id"]}', headers=headers).get_json()
    assert body['images_removed'] == 1
    assert not os.path.exists(stored)


def test_latest_visit_per_point(client):
    _, headers, base, point = _setup()
    other = make_point(base, 'Second Shop')
    url = f'/bases/{base.id}/point-visits'
    client.post(url, json={'point_id': point.id, 'visit_date': '2026-03-01T09:00:00Z', 'notes': 'old'}, headers=headers)
    client.post(url, json={'point_id': point.id, 'visit_date': '2026-03-05T09:00:00Z', 'notes': 'new'}, headers=headers)
    client.post(url, json={'point_id': other.id, 'visit_date': '2026-03-02T09:00:00Z', 'notes': 'only'}, headers=headers)
    latest = client.get(f'{url}/latest', headers=headers).get_json()['data']
    assert [(v['point_id'], v['notes']) for v in latest] == [(point.id, 'new'), (other.id, 'only')]
    assert client.post(url, json={'point_id': point.id, 'visit_date': 'yesterday'}, headers=headers).status_code == 400


def test_cleanup_removes_expired_visits(client):
    _, headers, base, point = _setup()
    url = f'/bases/{base.id}/point-visits'
    now = datetime(2026, 3, 20, tzinfo=timezone.utc)
    old = (now - timedelta(days=10)).isoformat()
    recent = (now - timedelta(days=2)).isoformat()
    client.post(url, json={'point_id': point.id, 'visit_date': old}, headers=headers)
    keep = client.post(url, json={'point_id': point.id, 'visit_date': recent}, headers=headers).get_json()
    assert cleanup_expired_visits(days=7, now=now) == 1
    remaining = client.get(url, headers=headers).get_json()['data']
    assert [v['id'] for v in remaining] == [keep['id']]


def _stored_files(app_instance):
    root = app_instance.config['UPLOAD_PATH']
    return [os.path.join(d, f) for d, _, files in os.walk(root) for f in files]


def test_uploads_are_served_with_a_non_local_provider(client, app_instance):
    app_instance.config['STORAGE_PROVIDER'] = 'oss'
    _, headers, base, point = _setup()
    resp = client.post(f'/bases/{base.id}/point-visits', data={
        'point_id': str(point.id), 'images': [(io.BytesIO(b'png-bytes'), 'a.png')],
    }, headers=headers, content_type='multipart/form-data')
    assert resp.status_code == 201
    rel = resp.get_json()['images'][0].split('/uploads/', 1)[1]
    served = client.get(f'/uploads/{rel}')
    assert served.status_code == 200
    assert served.data == b'png-bytes'
    served.close()


def test_rejected_upload_batch_leaves_no_files(client, app_instance):
    _, headers, base, point = _setup()
    url = f'/bases/{base.id}/point-visits'
    resp = client.post(url, data={
        'point_id': str(point.id),
        'images': [(io.BytesIO(b'ok'), 'ok.png'), (io.BytesIO(b'x'), 'bad.exe')],
    }, headers=headers, content_type='multipart/form-data')
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'file type .exe not allowed'
    assert _stored_files(app_instance) == []

    resp = client.post(url, data={
        'point_id': str(point.id),
        'images': [(io.BytesIO(b'p'), f'{n}.png') for n in range(4)],
    }, headers=headers, content_type='multipart/form-data')
    assert resp.get_json()['error']['detail'] == 'at most 3 images per upload'
    assert _stored_files(app_instance) == []
    assert client.get(url, headers=headers).get_json()['pagination']['total'] == 0


def test_failed_commit_discards_new_uploads(client, app_instance, monkeypatch):
    from milicard import get_db
    _, headers, base, point = _setup()

    def broken_commit():
        raise RuntimeError('database went away')

    monkeypatch.setattr(get_db(), 'commit', broken_commit)
    resp = client.post(f'/bases/{base.id}/point-visits', data={
        'point_id': str(point.id), 'images': [(io.BytesIO(b'a'), 'a.png'), (io.BytesIO(b'b'), 'b.jpg')],
    }, headers=headers, content_type='multipart/form-data')
    assert resp.status_code == 500
    assert _stored_files(app_instance) == []


def test_update_keeps_files_until_commit(client, app_instance, monkeypatch):
    from milicard import get_db
    _, headers, base, point = _setup()
    url = f'/bases/{base.id}/point-visits'
    visit = client.post(url, data={
        'point_id': str(point.id), 'images': [(io.BytesIO(b'a'), 'a.png')],
    }, headers=headers, content_type='multipart/form-data').get_json()
    stored = _stored_files(app_instance)
    assert len(stored) == 1

    def broken_commit():
        raise RuntimeError('database went away')

    monkeypatch.setattr(get_db(), 'commit', broken_commit)
    resp = client.put(f'{url}/{visit["id"]}', json={'images': []}, headers=headers)
    assert resp.status_code == 500
    assert _stored_files(app_instance) == stored

    monkeypatch.undo()
    resp = client.put(f'{url}/{visit["id"]}', json={'images': []}, headers=headers)
    assert resp.get_json()['images'] == []
    assert _stored_files(app_instance) == []


def test_cleanup_honours_utc_offsets(client):
    _, headers, base, point = _setup()
    url = f'/bases/{base.id}/point-visits'
    now = datetime(2026, 3, 20, tzinfo=timezone.utc)
    # 05:00 at +08:00 is 21:00 UTC the day before the cutoff
    shifted = client.post(url, json={'point_id': point.id, 'visit_date': '2026-03-13T05:00:00+08:00'}, headers=headers).get_json()
    assert shifted['visit_date'] == '2026-03-12T21:00:00Z'
    assert cleanup_expired_visits(days=7, now=now) == 1
