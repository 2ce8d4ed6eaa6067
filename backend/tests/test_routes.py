"""
HTTP surface tests via the Flask test client.
"""
from conftest import actor_headers


def test_health(client, db_session):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.json['checks']['database']['status'] == 'healthy'
    assert response.json['checks']['mirror']['details']['backend'] == 'memory'


def test_mutations_require_actor(client, db_session, make_product):
    product = make_product("RT-001", quantity=1)

    response = client.post(f'/api/products/{product.id}/adjust', json={'delta': 1})
    assert response.status_code == 401

    response = client.post(
        f'/api/products/{product.id}/adjust',
        json={'delta': 1},
        headers={'X-User-Id': 'abc'},
    )
    assert response.status_code == 401


def test_adjust_route_maps_errors(client, db_session, make_product):
    product = make_product("RT-002", quantity=1)

    ok = client.post(f'/api/products/{product.id}/adjust', json={'delta': 2}, headers=actor_headers())
    assert ok.status_code == 200
    assert ok.json['product']['quantity'] == 3
    assert ok.json['movement']['user_id'] == 7

    too_much = client.post(f'/api/products/{product.id}/adjust', json={'delta': -10}, headers=actor_headers())
    assert too_much.status_code == 409
    assert too_much.json['kind'] == 'InsufficientStock'

    zero = client.post(f'/api/products/{product.id}/adjust', json={'delta': 0}, headers=actor_headers())
    assert zero.status_code == 400
    assert zero.json['kind'] == 'NoOpAdjustment'

    missing = client.post('/api/products/999999/adjust', json={'delta': 1}, headers=actor_headers())
    assert missing.status_code == 404

    no_field = client.post(f'/api/products/{product.id}/adjust', json={}, headers=actor_headers())
    assert no_field.status_code == 400


def test_assign_and_listing_routes(client, db_session, make_product, store6):
    main = make_product("RT-003", quantity=10)

    created = client.post(
        f'/api/products/{main.id}/assign',
        json={'store_id': 6, 'quantity': 4},
        headers=actor_headers(),
    )
    assert created.status_code == 201
    assert created.json['variant']['sku'] == 'RT-003-MAINSTORE'
    assert created.json['main_product']['quantity'] == 6

    duplicate = client.post(
        f'/api/products/{main.id}/assign',
        json={'store_id': 6, 'quantity': 1},
        headers=actor_headers(),
    )
    assert duplicate.status_code == 409
    assert duplicate.json['kind'] == 'DuplicateAssignment'

    stores = client.get(f'/api/products/{main.id}/assigned-stores')
    assert stores.json['store_ids'] == [6]

    listing = client.get('/api/products?store_id=6')
    assert [p['sku'] for p in listing.json['items']] == ['RT-003-MAINSTORE']

    movements = client.get(f'/api/products/{main.id}/movements')
    assert [m['reference'] for m in movements.json['items']] == ['Store Assignment']

    snapshot = client.get(f'/api/products/{main.id}')
    assert snapshot.json['source'] == 'primary'

    audits = client.get(f'/api/products/{main.id}/audits')
    assert [a['action'] for a in audits.json['items']] == ['assign_to_store']


def test_delete_and_batch_delete_routes(client, db_session, make_product, store6):
    main = make_product("RT-004", quantity=1)
    make_product("RT-004-S6", quantity=1, store=store6)
    other = make_product("RT-005", quantity=1)

    deleted = client.delete(f'/api/products/{main.id}', headers=actor_headers())
    assert deleted.status_code == 200
    assert deleted.json['variants_deleted'] == 1

    batch = client.post(
        '/api/products/batch-delete',
        json={'ids': [other.id, 999999]},
        headers=actor_headers(),
    )
    assert batch.status_code == 200
    assert batch.json['deleted'] == [other.id]
    assert batch.json['not_found'] == [999999]

    bad = client.post('/api/products/batch-delete', json={'ids': []}, headers=actor_headers())
    assert bad.status_code == 400


def test_transfer_routes(client, db_session, make_product, store6):
    make_product("RT-006", quantity=20)
    variant = make_product("RT-006-S6", quantity=0, store=store6)

    created = client.post(
        '/api/transfers',
        json={'dest_product_id': variant.id, 'quantity': 5},
        headers=actor_headers(),
    )
    assert created.status_code == 201
    transfer_id = created.json['id']

    confirmed = client.post(f'/api/transfers/{transfer_id}/confirm', headers=actor_headers())
    assert confirmed.status_code == 200
    assert confirmed.json['status'] == 'completed'

    again = client.post(f'/api/transfers/{transfer_id}/confirm', headers=actor_headers())
    assert again.status_code == 409
    assert again.json['kind'] == 'InvalidState'

    missing_field = client.post('/api/transfers', json={'quantity': 1}, headers=actor_headers())
    assert missing_field.status_code == 400

    fetched = client.get(f'/api/transfers/{transfer_id}')
    assert fetched.json['received_by'] == 7


def test_alert_routes(client, db_session, make_product):
    product = make_product("RT-007", quantity=1, reorder_level=5)

    evaluated = client.post('/api/alerts/evaluate')
    assert evaluated.json['open'] == 1

    listing = client.get('/api/alerts?status=PENDING')
    assert [a['id'] for a in listing.json['items']] == [f'LOW_{product.id}']

    resolved = client.post(
        f'/api/alerts/LOW_{product.id}/resolve',
        json={'note': 'reordered'},
        headers=actor_headers(username='buyer'),
    )
    assert resolved.status_code == 200
    assert resolved.json['resolved_by'] == 'buyer'

    again = client.post(f'/api/alerts/LOW_{product.id}/resolve', headers=actor_headers())
    assert again.status_code == 409

    assert client.get('/api/alerts/LOW_999').status_code == 404
