def test_health_echoes_request_id(client):
    r = client.get('/health', headers={'X-Request-ID': 'abc123'})
    assert r.status_code == 200
    assert r.json() == {'status': 'ok'}
    assert r.headers['X-Request-ID'] == 'abc123'


def test_health_generates_request_id(client):
    r = client.get('/health')
    assert r.headers['X-Request-ID']


def test_register_and_login(client):
    r = client.post('/auth/register', json={
        'email': 'new@example.com', 'password': 'password9', 'name': 'Newbie',
    })
    assert r.status_code == 201
    assert r.json()['token']

    r2 = client.post('/auth/token', json={'email': 'new@example.com', 'password': 'password9'})
    assert r2.status_code == 200
    token = r2.json()['token']

    # a fresh registration is never an admin
    r3 = client.get('/teachers', headers={'Authorization': f'Bearer {token}'})
    assert r3.status_code == 401


def test_register_rejects_admin_flag(client):
    r = client.post('/auth/register', json={
        'email': 'sneaky@example.com', 'password': 'password9', 'name': 'Sneaky', 'isAdmin': True,
    })
    assert r.status_code == 400
    assert r.json()['error']['status'] == 400


def test_register_duplicate_email_conflicts(client, data):
    r = client.post('/auth/register', json={
        'email': 'teacher1@example.com', 'password': 'password9', 'name': 'Again',
    })
    assert r.status_code == 409
    assert r.json()['error']['message'] == "'email' already exists."


def test_register_validates_fields(client):
    r = client.post('/auth/register', json={'email': 'not-an-email', 'password': 'short', 'name': 'X'})
    assert r.status_code == 400
    messages = r.json()['error']['message']
    assert isinstance(messages, list)
    assert len(messages) == 3


def test_login_with_wrong_password(client, data):
    r = client.post('/auth/token', json={'email': 'teacher1@example.com', 'password': 'nope'})
    assert r.status_code == 401
    assert r.json() == {'error': {'message': 'Invalid email or password', 'status': 401}}


def test_invalid_token_rejected(client, data):
    r = client.get(f'/teachers/{data.teacher1_id}', headers={'Authorization': 'Bearer invalid.token.here'})
    assert r.status_code == 401


def test_admin_creates_teacher(client, headers):
    r = client.post('/teachers', headers=headers.admin, json={
        'email': 'boss@example.com', 'password': 'password9', 'name': 'Boss', 'isAdmin': True,
    })
    assert r.status_code == 201
    body = r.json()
    assert body['teacher']['isAdmin'] is True
    assert body['teacher']['email'] == 'boss@example.com'
    assert 'passwordHash' not in body['teacher']
    assert body['token']


def test_teacher_cannot_create_teacher(client, headers):
    r = client.post('/teachers', headers=headers.teacher1, json={
        'email': 'boss@example.com', 'password': 'password9', 'name': 'Boss',
    })
    assert r.status_code == 401


def test_list_teachers_admin_only(client, headers):
    r = client.get('/teachers', headers=headers.admin)
    assert r.status_code == 200
    emails = [t['email'] for t in r.json()['teachers']]
    assert emails == ['admin@example.com', 'teacher1@example.com', 'teacher2@example.com']
    assert client.get('/teachers', headers=headers.teacher1).status_code == 401
    assert client.get('/teachers').status_code == 401


def test_get_own_teacher(client, data, headers):
    r = client.get(f'/teachers/{data.teacher1_id}', headers=headers.teacher1)
    assert r.status_code == 200
    teacher = r.json()['teacher']
    assert teacher['name'] == 'Teacher1'
    assert teacher['description'] == 'This is a description'
    assert teacher['isAdmin'] is False


def test_get_other_teacher_is_unauthorized(client, data, headers):
    r = client.get(f'/teachers/{data.teacher2_id}', headers=headers.teacher1)
    assert r.status_code == 401
    assert r.json()['error']['message'] == 'Unauthorized'


def test_admin_gets_missing_teacher(client, headers):
    r = client.get('/teachers/does-not-exist', headers=headers.admin)
    assert r.status_code == 404
    assert r.json()['error']['message'] == 'No teacher found with id: does-not-exist'


def test_update_teacher(client, data, headers):
    r = client.patch(f'/teachers/{data.teacher1_id}', headers=headers.teacher1, json={'name': 'Renamed'})
    assert r.status_code == 200
    assert r.json()['teacher']['name'] == 'Renamed'
    assert r.json()['teacher']['email'] == 'teacher1@example.com'


def test_update_teacher_password(client, data, headers):
    r = client.patch(f'/teachers/{data.teacher1_id}', headers=headers.teacher1, json={'password': 'password99'})
    assert r.status_code == 200
    assert client.post('/auth/token', json={'email': 'teacher1@example.com', 'password': 'password1'}).status_code == 401
    assert client.post('/auth/token', json={'email': 'teacher1@example.com', 'password': 'password99'}).status_code == 200


def test_teacher_cannot_make_self_admin(client, data, headers):
    r = client.patch(f'/teachers/{data.teacher1_id}', headers=headers.teacher1, json={'isAdmin': True})
    assert r.status_code == 401


def test_admin_can_promote(client, data, headers):
    r = client.patch(f'/teachers/{data.teacher1_id}', headers=headers.admin, json={'isAdmin': True})
    assert r.status_code == 200
    assert r.json()['teacher']['isAdmin'] is True


def test_empty_teacher_update(client, data, headers):
    r = client.patch(f'/teachers/{data.teacher1_id}', headers=headers.teacher1, json={})
    assert r.status_code == 400
    assert r.json()['error']['message'] == 'No data'


def test_update_teacher_unknown_field(client, data, headers):
    r = client.patch(f'/teachers/{data.teacher1_id}', headers=headers.teacher1, json={'favouriteColour': 'red'})
    assert r.status_code == 400


def test_delete_teacher_keeps_students(client, data, headers):
    r = client.delete(f'/teachers/{data.teacher1_id}', headers=headers.admin)
    assert r.status_code == 200
    assert r.json() == {'deleted': data.teacher1_id}

    r2 = client.get(f'/students/{data.student1_id}', headers=headers.admin)
    assert r2.status_code == 200
    assert r2.json()['student']['teacherId'] is None


def test_teacher_material_listings(client, data, headers):
    r = client.get(f'/teachers/{data.teacher1_id}/techniques', headers=headers.teacher1)
    assert [t['id'] for t in r.json()['techniques']] == [data.technique1_id]
    r2 = client.get(f'/teachers/{data.teacher1_id}/repertoire', headers=headers.teacher1)
    assert [p['id'] for p in r2.json()['repertoire']] == [data.piece1_id]
    assert client.get(f'/teachers/{data.teacher2_id}/techniques', headers=headers.teacher1).status_code == 401


def test_skill_levels(client, data, headers):
    r = client.get('/skill-levels')
    assert r.status_code == 200
    assert [s['name'] for s in r.json()['skillLevels']] == ['Beginner', 'Intermediate', 'Advanced']

    assert client.post('/skill-levels', headers=headers.teacher1, json={'name': 'Expert'}).status_code == 401
    r2 = client.post('/skill-levels', headers=headers.admin, json={'name': 'Expert'})
    assert r2.status_code == 201
    assert r2.json()['skillLevel']['name'] == 'Expert'
    assert client.post('/skill-levels', headers=headers.admin, json={'name': 'Expert'}).status_code == 409


def test_deleting_skill_level_clears_references(client, data, headers):
    level = data.skill_levels[0]
    r = client.delete(f'/skill-levels/{level}', headers=headers.admin)
    assert r.status_code == 200
    student = client.get(f'/students/{data.student1_id}', headers=headers.teacher1).json()['student']
    assert student['skillLevelId'] is None
    assert client.delete(f'/skill-levels/{level}', headers=headers.admin).status_code == 404


def test_null_password_is_rejected(client, data, headers):
    r = client.patch(f'/teachers/{data.teacher1_id}', headers=headers.teacher1, json={'password': None})
    assert r.status_code == 400
    assert 'password' in r.json()['error']['message'][0]
    assert client.post('/auth/token', json={'email': 'teacher1@example.com', 'password': 'password1'}).status_code == 200


def test_null_teacher_name_is_rejected(client, data, headers):
    r = client.patch(f'/teachers/{data.teacher1_id}', headers=headers.teacher1, json={'name': None})
    assert r.status_code == 400
