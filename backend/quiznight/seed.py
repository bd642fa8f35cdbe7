"""Demo competition used by ``flask db-reset``."""

from quiznight import db
from quiznight.models import Competition, Question, Round


def seed_demo_competition(pin='1234', title='Demo Quiz Night'):
    competition = Competition(title=title, status='ACTIVE')
    competition.set_pin(pin)

    general = Round(order_index=0, type='STANDARD', title='General Knowledge')
    general.questions = [
        Question(position=0, type='MULTIPLE_CHOICE', question_text='Which planet is known as the Red Planet?',
                 points=10, time_limit_seconds=20,
                 content={'options': ['Venus', 'Mars', 'Jupiter', 'Mercury'], 'correct_indices': [1]}),
        Question(position=1, type='CLOSED', question_text='What is the capital of Australia?',
                 points=10, time_limit_seconds=30, content={'answers': ['Canberra']}),
        Question(position=2, type='CHRONOLOGY', question_text='Put these events in order',
                 points=20, time_limit_seconds=45,
                 content={'items': [
                     {'id': 'moon', 'text': 'First Moon landing', 'order': 2},
                     {'id': 'wall', 'text': 'Fall of the Berlin Wall', 'order': 3},
                     {'id': 'titanic', 'text': 'Sinking of the Titanic', 'order': 1},
                 ]}),
    ]

    wordplay = Round(order_index=1, type='STANDARD', title='Wordplay')
    wordplay.questions = [
        Question(position=0, type='FILL_IN_THE_BLANKS', question_text='Complete the proverb',
                 points=10, time_limit_seconds=30,
                 content={'text': 'A {0} in time saves {1}', 'blanks': [
                     {'options': [{'value': 'stitch', 'is_correct': True}, {'value': 'minute', 'is_correct': False}]},
                     {'options': [{'value': 'nine', 'is_correct': True}, {'value': 'ten', 'is_correct': False}]},
                 ]}),
        Question(position=1, type='MATCHING', question_text='Match the author to the novel',
                 points=15, time_limit_seconds=40,
                 content={'pairs': [
                     {'id': 'a', 'left': 'Orwell', 'right': '1984'},
                     {'id': 'b', 'left': 'Austen', 'right': 'Emma'},
                 ]}),
        Question(position=2, type='OPEN_WORD', question_text='Describe your team in one word',
                 points=5, time_limit_seconds=30, grading='MANUAL', content={'answer': ''}),
    ]

    competition.rounds = [general, wordplay]
    db.session.add(competition)
    db.session.commit()
    return competition
