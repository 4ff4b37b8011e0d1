import pytest
from sqlmodel import select

from studybot import models
from studybot.errors import UpstreamError, UpstreamUnavailable


def _generate(client, headers, subject_id, **extra):
    body = {'subject_id': subject_id, 'chapter': 'Functions', 'difficulty': 'medium', 'num_questions': 5}
    body.update(extra)
    return client.post('/functions/generate-quiz', json=body, headers=headers)


def test_generate_then_grade_end_to_end(client, gateway, make_student, subject, quiz_reply):
    headers = make_student()
    gateway.queue(quiz_reply(['A', 'B', 'B', 'C', 'D']))

    r = _generate(client, headers, subject.id)
    assert r.status_code == 200
    data = r.json()
    assert data['success'] is True
    questions = data['questions']
    assert len(questions) == 5
    for q in questions:
        assert len(q['options']) == 4
        assert q['correct_answer'] in ('A', 'B', 'C', 'D')
    call = gateway.calls[0]
    assert '"Mathematics"' in call['prompt'] and 'exactly 5' in call['prompt']
    assert 'question generator' in call['system']

    g = client.post('/functions/submit-quiz', json={'quiz_id': data['quiz_id'], 'answers': ['A', 'B', 'A', 'C', 'D']}, headers=headers)
    assert g.status_code == 200
    graded = g.json()
    assert graded['success'] is True
    assert graded['score'] == 80
    assert graded['percentage'] == 80
    assert graded['correct_answers'] == 4
    assert graded['total_questions'] == 5
    assert [res['is_correct'] for res in graded['results']] == [True, True, False, True, True]
    third = graded['results'][2]
    assert third['question_index'] == 2
    assert third['user_answer'] == 'A'
    assert third['correct_answer'] == 'B'
    assert third['explanation'] == 'Because B.'
    assert graded['quiz']['score'] == 80
    assert graded['quiz']['completed_at'] is not None


def test_open_quiz_is_stored_ungraded(client, gateway, make_student, subject, quiz_reply, db):
    headers = make_student()
    gateway.queue(quiz_reply(['C', 'C', 'C']))
    r = _generate(client, headers, subject.id, num_questions=3, difficulty='hard')
    quiz = db.get(models.Quiz, r.json()['quiz_id'])
    assert quiz.score is None
    assert quiz.completed_at is None
    assert quiz.total_questions == 3
    assert quiz.difficulty == 'hard'
    assert quiz.chapter == 'Functions'


def test_second_grading_is_rejected_and_score_kept(client, gateway, make_student, subject, quiz_reply, db):
    headers = make_student()
    gateway.queue(quiz_reply(['A', 'A', 'A']))
    quiz_id = _generate(client, headers, subject.id, num_questions=3).json()['quiz_id']

    first = client.post('/functions/submit-quiz', json={'quiz_id': quiz_id, 'answers': ['A', 'B', 'C']}, headers=headers)
    assert first.json()['score'] == 33
    second = client.post('/functions/submit-quiz', json={'quiz_id': quiz_id, 'answers': ['A', 'A', 'A']}, headers=headers)
    assert second.status_code == 409
    assert second.json() == {'error': 'Quiz already completed'}
    db.expire_all()
    assert db.get(models.Quiz, quiz_id).score == 33


def test_other_students_quiz_is_not_found(client, gateway, make_student, subject, quiz_reply):
    owner = make_student('Owner')
    intruder = make_student('Intruder')
    gateway.queue(quiz_reply(['D', 'D']))
    quiz_id = _generate(client, owner, subject.id, num_questions=2).json()['quiz_id']

    r = client.post('/functions/submit-quiz', json={'quiz_id': quiz_id, 'answers': ['D', 'D']}, headers=intruder)
    assert r.status_code == 404
    assert r.json() == {'error': 'Quiz not found or access denied'}
    assert 'Question 1?' not in r.text
    missing = client.post('/functions/submit-quiz', json={'quiz_id': 999999, 'answers': []}, headers=intruder)
    assert missing.json() == r.json()


def test_unknown_subject(client, gateway, make_student):
    headers = make_student()
    r = _generate(client, headers, 987654)
    assert r.status_code == 404
    assert r.json() == {'error': 'Subject not found'}
    assert gateway.calls == []


@pytest.mark.parametrize('reply', [
    'Here are your questions: {"questions": []}',
    '{"items": []}',
    ['A', 'B'],
    ['A', 'B', 'E'],
])
def test_malformed_generation_is_not_persisted(client, gateway, make_student, subject, quiz_reply, db, reply):
    headers = make_student()
    gateway.queue(quiz_reply(reply) if isinstance(reply, list) else reply)
    before = len(db.exec(select(models.Quiz)).all())
    r = _generate(client, headers, subject.id, num_questions=3)
    assert r.status_code == 502
    assert 'error' in r.json()
    assert len(db.exec(select(models.Quiz)).all()) == before


@pytest.mark.parametrize('exc,status', [
    (UpstreamUnavailable(), 503),
    (UpstreamError(500), 502),
])
def test_upstream_failures_surface_as_errors(client, gateway, make_student, subject, exc, status):
    headers = make_student()
    gateway.queue(exc)
    r = _generate(client, headers, subject.id)
    assert r.status_code == status
    assert set(r.json()) == {'error'}


def test_invalid_request_body(client, gateway, make_student, subject):
    headers = make_student()
    r = _generate(client, headers, subject.id, num_questions=0)
    assert r.status_code == 400
    assert 'num_questions' in r.json()['error']
    r2 = _generate(client, headers, subject.id, difficulty='impossible')
    assert r2.status_code == 400
    assert gateway.calls == []


def test_quiz_history_lists_own_attempts(client, gateway, make_student, subject, quiz_reply):
    headers = make_student()
    other = make_student()
    gateway.queue(quiz_reply(['A']), quiz_reply(['B']), quiz_reply(['C']))
    first = _generate(client, headers, subject.id, num_questions=1).json()['quiz_id']
    second = _generate(client, headers, subject.id, num_questions=1).json()['quiz_id']
    _generate(client, other, subject.id, num_questions=1)

    history = client.get('/quizzes', headers=headers).json()
    assert [q['id'] for q in history] == [second, first]
    assert history[0]['questions_json']['questions'][0]['correct_answer'] == 'B'


def test_list_subjects(client, subject):
    r = client.get('/subjects', params={'stream': 'Sciences Maths'})
    assert r.status_code == 200
    match = [s for s in r.json() if s['id'] == subject.id]
    assert match and match[0]['chapters'] == ['Functions', 'Limits', 'Sequences']
