import pytest


def test_assign_and_list_technique(client, data, headers):
    r = client.post(f'/students/{data.student1_id}/techniques', headers=headers.teacher1, json={
        'techniqueId': data.technique1_id, 'reviewIntervalDays': 7,
    })
    assert r.status_code == 201
    technique = r.json()['technique']
    assert technique['id'] == data.technique1_id
    assert technique['reviewIntervalDays'] == 7
    assert technique['completed'] is False
    assert technique['lastReview'] is None
    assert technique['nextReview'] is not None

    r2 = client.get(f'/students/{data.student1_id}/techniques', headers=headers.teacher1)
    assert r2.status_code == 200
    assert [t['id'] for t in r2.json()['techniques']] == [data.technique1_id]


def test_assign_twice_conflicts(client, data, headers):
    url = f'/students/{data.student1_id}/techniques'
    assert client.post(url, headers=headers.teacher1, json={'techniqueId': data.technique1_id}).status_code == 201
    r = client.post(url, headers=headers.teacher1, json={'techniqueId': data.technique1_id})
    assert r.status_code == 409
    assert r.json()['error']['status'] == 409


@pytest.mark.parametrize('days', ['not a number', '7', True, [7]])
def test_assign_with_bad_interval(client, data, headers, days):
    url = f'/students/{data.student1_id}/techniques'
    r = client.post(url, headers=headers.teacher1, json={'techniqueId': data.technique1_id, 'reviewIntervalDays': days})
    assert r.status_code == 400
    listed = client.get(url, headers=headers.teacher1, params={'includeCompleted': True})
    assert listed.json()['techniques'] == []


def test_assign_unknown_technique(client, data, headers):
    r = client.post(f'/students/{data.student1_id}/techniques', headers=headers.teacher1, json={'techniqueId': 9999})
    assert r.status_code == 400


def test_assign_to_other_teachers_student(client, data, headers):
    r = client.post(f'/students/{data.student2_id}/techniques', headers=headers.teacher1, json={
        'techniqueId': data.technique1_id,
    })
    assert r.status_code == 401
    r2 = client.post(f'/students/{data.student2_id}/techniques', headers=headers.admin, json={
        'techniqueId': data.technique1_id,
    })
    assert r2.status_code == 201


def test_assignments_for_missing_student(client, data, headers):
    assert client.get('/students/9999/techniques', headers=headers.admin).status_code == 404


def test_unassign_technique(client, data, headers):
    url = f'/students/{data.student1_id}/techniques'
    client.post(url, headers=headers.teacher1, json={'techniqueId': data.technique1_id})
    r = client.delete(f'{url}/{data.technique1_id}', headers=headers.teacher1)
    assert r.status_code == 200
    assert r.json() == {'deleted': data.technique1_id}
    r2 = client.delete(f'{url}/{data.technique1_id}', headers=headers.teacher1)
    assert r2.status_code == 404
    assert r2.json()['error']['message'] == (
        f'Technique with id {data.technique1_id} has not been assigned to student with id {data.student1_id}'
    )


def test_assign_and_unassign_repertoire(client, data, headers):
    url = f'/students/{data.student1_id}/repertoire'
    r = client.post(url, headers=headers.teacher1, json={'repertoireId': data.piece1_id, 'reviewIntervalDays': 1.5})
    assert r.status_code == 201
    piece = r.json()['repertoire']
    assert piece['name'] == 'Piece1'
    assert piece['reviewIntervalDays'] == 1.5

    listed = client.get(url, headers=headers.teacher1).json()['repertoire']
    assert [p['id'] for p in listed] == [data.piece1_id]

    assert client.delete(f'{url}/{data.piece1_id}', headers=headers.teacher1).status_code == 200
    assert client.get(url, headers=headers.teacher1).json()['repertoire'] == []


def test_completed_repertoire_leaves_due_list(client, data, headers):
    url = f'/students/{data.student1_id}/repertoire'
    assignment = client.post(url, headers=headers.teacher1, json={'repertoireId': data.piece1_id}).json()['repertoire']
    lesson = client.post('/lessons', headers=headers.teacher1, json={
        'teacherId': data.teacher1_id, 'studentId': data.student1_id,
    }).json()['lesson']
    r = client.post(f"/lessons/{lesson['id']}/repertoire", headers=headers.teacher1, json={
        'studentRepertoireId': assignment['assignmentId'], 'rating': 5, 'completed': True,
    })
    assert r.status_code == 201
    review = r.json()['review']
    assert review['completed'] is True
    assert review['nextReview'] is None

    assert client.get(url, headers=headers.teacher1).json()['repertoire'] == []
    everything = client.get(url, headers=headers.teacher1, params={'includeCompleted': True}).json()['repertoire']
    assert [p['id'] for p in everything] == [data.piece1_id]
    assert everything[0]['completed'] is True
    assert everything[0]['lastReview'] is not None


def test_assign_with_interval_beyond_the_calendar(client, data, headers):
    url = f'/students/{data.student1_id}/techniques'
    r = client.post(url, headers=headers.teacher1, json={'techniqueId': data.technique1_id, 'reviewIntervalDays': 5000000})
    assert r.status_code == 400
    assert r.json()['error']['message'] == "'reviewIntervalDays' is out of range"
    listed = client.get(url, headers=headers.teacher1, params={'includeCompleted': True})
    assert listed.status_code == 200
    assert listed.json()['techniques'] == []
