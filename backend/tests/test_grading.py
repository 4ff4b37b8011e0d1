import uuid
from datetime import datetime, timezone

import pytest

from studybot import models, repositories, services
from studybot.errors import AlreadyGraded, QuizNotFound


@pytest.mark.parametrize('correct,total,expected', [
    (3, 5, 60),
    (0, 5, 0),
    (5, 5, 100),
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (0, 0, 0),
])
def test_percent_score(correct, total, expected):
    assert services.percent_score(correct, total) == expected


def _quiz(db, student_id, subject_id, keys):
    quiz = models.Quiz(
        student_id=student_id,
        subject_id=subject_id,
        chapter='Functions',
        questions_json={'questions': [
            {'question': f'Q{i}', 'options': ['A) a', 'B) b', 'C) c', 'D) d'], 'correct_answer': k, 'explanation': 'e'}
            for i, k in enumerate(keys)
        ]},
        total_questions=len(keys),
    )
    return repositories.QuizRepository(db).create(quiz)


@pytest.fixture
def student(db):
    user = repositories.UserRepository(db).create(models.User(email=f'grader-{uuid.uuid4().hex}@example.com', password_hash='x'))
    return repositories.StudentRepository(db).save(models.Student(user_id=user.id, full_name='Grader'))


def test_missing_answers_count_as_wrong_and_extras_are_ignored(db, subject, student):
    quiz = _quiz(db, student.id, subject.id, ['A', 'B', 'C', 'D'])
    result = services.QuizGrader(db).grade(student, quiz.id, ['A', 'B'])
    assert result.correct_answers == 2
    assert result.score == 50
    assert [r['user_answer'] for r in result.results] == ['A', 'B', None, None]

    other = _quiz(db, student.id, subject.id, ['A'])
    extra = services.QuizGrader(db).grade(student, other.id, ['A', 'B', 'C'])
    assert extra.score == 100
    assert len(extra.results) == 1


def test_label_match_is_exact(db, subject, student):
    quiz = _quiz(db, student.id, subject.id, ['A', 'B'])
    result = services.QuizGrader(db).grade(student, quiz.id, ['a', 'B) two'])
    assert result.correct_answers == 0


def test_grader_rejects_foreign_and_graded_quizzes(db, subject, student):
    quiz = _quiz(db, student.id, subject.id, ['A'])
    stranger = models.Student(id=-1, user_id=-1, full_name='Nobody')
    with pytest.raises(QuizNotFound):
        services.QuizGrader(db).grade(stranger, quiz.id, ['A'])
    services.QuizGrader(db).grade(student, quiz.id, ['A'])
    with pytest.raises(AlreadyGraded):
        services.QuizGrader(db).grade(student, quiz.id, ['A'])


def test_conditional_update_only_wins_once(db, subject, student):
    quiz = _quiz(db, student.id, subject.id, ['A'])
    repo = repositories.QuizRepository(db)
    first = repo.mark_graded(quiz.id, 100, datetime.now(timezone.utc))
    assert first is not None and first.score == 100
    assert repo.mark_graded(quiz.id, 0, datetime.now(timezone.utc)) is None
    db.expire_all()
    assert db.get(models.Quiz, quiz.id).score == 100


def test_parse_questions_accepts_valid_shape():
    raw = '{"questions": [{"question": "Q", "options": ["A) 1", "B) 2", "C) 3", "D) 4"], "correct_answer": "C", "explanation": "why"}]}'
    parsed = services.parse_questions(raw, 1)
    assert parsed[0]['correct_answer'] == 'C'


def test_catalog_import_skips_existing_and_reports_errors(db):
    name = f'Economics {uuid.uuid4().hex[:6]}'
    svc = services.CatalogService(db)
    res = svc.import_subjects([
        {'name': name, 'stream': 'Economie', 'chapters': ['Growth', 'Inflation']},
        {'name': '  '},
        {'name': 'Broken', 'chapters': 'not-a-list'},
    ])
    assert res['created'] == 1
    assert [e['index'] for e in res['errors']] == [1, 2]
    again = svc.import_subjects([{'name': name}])
    assert again == {'created': 0, 'skipped': 1, 'errors': []}
    assert repositories.SubjectRepository(db).get_by_name(name).chapters == ['Growth', 'Inflation']
