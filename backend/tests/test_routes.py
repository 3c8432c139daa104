from models import RoleEnum

GEODESY = {'course': 'BSGE', 'subject': 'Geodesy'}


def test_health(client):
    assert client.get('/health').get_json() == {'status': 'ok'}


def test_token_is_required(client):
    resp = client.get('/api/exams/can-take', query_string=GEODESY)
    assert resp.status_code == 401
    assert resp.get_json()['message'] == 'Token is missing'

    resp = client.get('/api/exams/can-take', query_string=GEODESY,
                      headers={'Authorization': 'Bearer not-a-jwt'})
    assert resp.status_code == 401
    assert resp.get_json()['message'] == 'Token is invalid'


def test_can_take_requires_topic(client, make_user, auth_header):
    user = make_user()
    resp = client.get('/api/exams/can-take', query_string={'course': 'BSGE'}, headers=auth_header(user))
    assert resp.status_code == 400


def test_exam_lifecycle(client, make_user, make_questions, auth_header):
    user = make_user()
    make_questions(5, answer='C')
    headers = auth_header(user)

    assert client.get('/api/exams/can-take', query_string=GEODESY, headers=headers).get_json()['canTake'] is True

    resp = client.post('/api/exams/start', json={**GEODESY, 'questionCount': 3}, headers=headers)
    assert resp.status_code == 201
    exam = resp.get_json()
    assert exam['totalQuestions'] == 3
    assert exam['subject'] == 'Geodesy'
    assert all('correctAnswer' not in q and 'explanation' not in q for q in exam['questions'])
    sid = exam['examSessionId']

    blocked = client.get('/api/exams/can-take', query_string=GEODESY, headers=headers).get_json()
    assert blocked['canTake'] is False
    again = client.post('/api/exams/start', json=GEODESY, headers=headers)
    assert again.status_code == 403
    assert again.get_json()['reason'] == 'daily_limit'

    for n in range(1, 4):
        resp = client.post('/api/exams/log-violation', headers=headers, json={
            'examSessionId': sid, 'violationType': 'tab-switch', 'timestamp': '2024-05-01T08:30:00Z'})
        assert resp.status_code == 200
        assert resp.get_json()['violationCount'] == n
    assert resp.get_json()['shouldAutoSubmit'] is True

    answers = {str(exam['questions'][0]['id']): 'C'}
    resp = client.post('/api/exams/submit', json={'examSessionId': sid, 'answers': answers}, headers=headers)
    assert resp.status_code == 200
    graded = resp.get_json()
    assert graded['score'] == 33
    assert graded['status'] == 'flagged'
    assert graded['violationCount'] == 3

    resp = client.post('/api/exams/submit', json={'examSessionId': sid, 'answers': {}}, headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()['message'] == 'Exam already submitted'

    result = client.get(f'/api/exams/results/{sid}', headers=headers).get_json()
    assert result['score'] == 33
    assert len(result['results']) == 3

    history = client.get('/api/exams/history', headers=headers).get_json()
    assert history['statistics']['totalExams'] == 1
    assert history['results'][0]['examSessionId'] == sid


def test_result_of_another_user_is_not_found(client, make_user, make_questions, auth_header):
    owner = make_user('Owner')
    other = make_user('Other')
    make_questions(3)
    sid = client.post('/api/exams/start', json=GEODESY, headers=auth_header(owner)).get_json()['examSessionId']
    client.post('/api/exams/submit', json={'examSessionId': sid}, headers=auth_header(owner))

    resp = client.get(f'/api/exams/results/{sid}', headers=auth_header(other))
    assert resp.status_code == 404


def test_start_rejects_bad_input(client, make_user, make_questions, auth_header):
    user = make_user()
    make_questions(3)
    headers = auth_header(user)

    resp = client.post('/api/exams/start', json={**GEODESY, 'questionCount': 'many'}, headers=headers)
    assert resp.status_code == 400
    resp = client.post('/api/exams/start', json={'course': 'BSABEN', 'subject': 'Geodesy'}, headers=headers)
    assert resp.status_code == 400  # area-scoped course without an area
    resp = client.post('/api/exams/start', json={'course': 'BSGE', 'subject': 'Unknown'}, headers=headers)
    assert resp.status_code == 404
    resp = client.post('/api/exams/start', json=GEODESY, headers=auth_header(user_id=999))
    assert resp.status_code == 404


def test_violation_and_submit_need_session_id(client, make_user, auth_header):
    headers = auth_header(make_user())
    resp = client.post('/api/exams/log-violation', json={'violationType': 'tab-switch'}, headers=headers)
    assert resp.status_code == 400
    resp = client.post('/api/exams/submit', json={'answers': {}}, headers=headers)
    assert resp.status_code == 400
    resp = client.post('/api/exams/log-violation', json={'examSessionId': 42, 'violationType': 'x'},
                       headers=headers)
    assert resp.status_code == 404


def test_history_rejects_malformed_identity(client, auth_header):
    resp = client.get('/api/exams/history', headers=auth_header(user_id='abc'))
    assert resp.status_code == 400


def test_available_topics(client, make_user, make_questions, auth_header):
    user = make_user()
    make_questions(2)
    make_questions(3, subject='Surveying')

    resp = client.get('/api/exams/available', query_string={'course': 'BSGE'}, headers=auth_header(user))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['type'] == 'subjects'
    assert {d['subject']: d['totalQuestions'] for d in body['data']} == {'Geodesy': 2, 'Surveying': 3}

    resp = client.get('/api/exams/available', query_string={'course': 'BSABEN'}, headers=auth_header(user))
    assert resp.status_code == 403


def test_score_routes_are_staff_only(client, make_user, make_result, auth_header):
    student = make_user()
    make_result(student, 9, 10)
    make_result(make_user('Other course', course='BSABEN'), 5, 10, course='BSABEN')

    assert client.get('/api/scores/stats', headers=auth_header(student)).status_code == 403

    admin = make_user('Admin', role=RoleEnum.ADMIN, course=None)
    stats = client.get('/api/scores/stats', headers=auth_header(admin)).get_json()
    assert stats['totalStudents'] == 2

    faculty = make_user('Prof', role=RoleEnum.FACULTY, course='BSGE')
    scoped = client.get('/api/scores/stats', query_string={'course': 'BSABEN'},
                        headers=auth_header(faculty)).get_json()
    assert scoped == {'totalStudents': 1, 'averageScore': 90.0, 'passRate': 100.0, 'excellentCount': 1}

    table = client.get('/api/scores', headers=auth_header(faculty)).get_json()
    assert [s['name'] for s in table['scores']] == ['Student']
    assert table['scores'][0]['status'] == 'excellent'

    resp = client.get('/api/scores', query_string={'status': 'stellar'}, headers=auth_header(admin))
    assert resp.status_code == 400


def test_start_defaults_to_fifty_questions_and_returns_timer(client, make_user, make_questions, auth_header):
    make_questions(60)
    resp = client.post('/api/exams/start', json=GEODESY, headers=auth_header(make_user()))
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['totalQuestions'] == 50
    assert body['timer'] == 0


def test_available_topics_course_mismatch_message(client, make_user, auth_header):
    resp = client.get('/api/exams/available', query_string={'course': 'BSABEN'},
                      headers=auth_header(make_user()))
    assert resp.status_code == 403
    assert resp.get_json() == {'message': "Course does not match user's enrolled course"}


def test_faculty_without_course_is_refused(client, make_user, make_result, auth_header):
    make_result(make_user(), 9, 10)
    faculty = make_user('Unassigned', role=RoleEnum.FACULTY, course=None)

    for path in ('/api/scores/stats', '/api/scores', '/api/results', '/api/results/stats'):
        resp = client.get(path, headers=auth_header(faculty))
        assert resp.status_code == 403, path


def test_answer_row_and_overview_routes(client, make_user, make_questions, make_result, auth_header):
    row = {'questionId': 1, 'questionText': 'Q', 'userAnswer': 'B', 'correctAnswer': 'A', 'isCorrect': False}
    make_result(make_user(), 0, 1, results=[row])
    make_result(make_user('Other course', course='BSABEN'), 1, 1, course='BSABEN',
                results=[dict(row, userAnswer='A', isCorrect=True)])
    faculty = make_user('Prof', role=RoleEnum.FACULTY, course='BSGE')

    assert client.get('/api/results', headers=auth_header(make_user('Curious'))).status_code == 403

    rows = client.get('/api/results', query_string={'course': 'BSABEN'}, headers=auth_header(faculty)).get_json()
    assert [r['course'] for r in rows['results']] == ['BSGE']

    resp = client.get('/api/results', query_string={'isCorrect': 'maybe'}, headers=auth_header(faculty))
    assert resp.status_code == 400

    admin = make_user('Admin', role=RoleEnum.ADMIN, course=None)
    right = client.get('/api/results', query_string={'isCorrect': 'true'}, headers=auth_header(admin)).get_json()
    assert [r['course'] for r in right['results']] == ['BSABEN']

    overview = client.get('/api/results/stats', headers=auth_header(faculty)).get_json()
    assert list(overview['courses']) == ['BSGE']
    assert overview['overall']['wrongAnswers'] == 1
