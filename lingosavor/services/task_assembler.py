"""Build and merge daily task bundles (``user_tasks`` documents).

A bundle holds five categories of content. When the learner finishes a
category it is listed in ``isCompleted`` and the next run regenerates exactly
that category, carrying every other category over untouched.
"""

import copy
from dataclasses import dataclass

CATEGORY_WORD_LIST = 'word_list'
CATEGORY_GRAMMAR = 'grammar'
CATEGORY_READING = 'reading'
CATEGORY_LISTENING = 'listening'
ANSWER_CATEGORIES = (CATEGORY_GRAMMAR, CATEGORY_READING, CATEGORY_LISTENING)
UNANSWERED = -1


def unanswered(count):
    return [UNANSWERED] * int(count)


@dataclass(frozen=True)
class RegenerationFlags:
    word_list: bool = False
    grammar: bool = False
    reading: bool = False
    listening: bool = False

    @classmethod
    def everything(cls):
        # The word list belongs to the word-list refresh job.
        return cls(word_list=False, grammar=True, reading=True, listening=True)

    @classmethod
    def from_completed(cls, categories):
        completed = set(categories or [])
        return cls(
            word_list=False,
            grammar=CATEGORY_GRAMMAR in completed,
            reading=CATEGORY_READING in completed,
            listening=CATEGORY_LISTENING in completed,
        )

    @property
    def any(self):
        return self.word_list or self.grammar or self.reading or self.listening


def _reading_entry(task):
    return {
        'text': task.get('text', ''),
        'questions': list(task.get('questions') or []),
        'user_impression': None,
    }


def _listening_entry(task, audio_url):
    entry = _reading_entry(task)
    entry['audioUrl'] = audio_url or None
    return entry


def assemble_bundle(
    existing,
    *,
    user_id,
    task_date,
    created_at,
    word_list=None,
    grammar_list=None,
    reading_task=None,
    listening_task=None,
    audio_url=None,
    flags=None,
):
    """Return the bundle to persist.

    ``existing`` is the newest stored bundle (a dict) or None. Nothing passed
    in is mutated.
    """
    flags = flags or RegenerationFlags.everything()
    word_list = list(word_list or [])
    grammar_list = list(grammar_list or [])

    if existing is None:
        bundle = {
            'userId': user_id,
            'date': task_date,
            'createdAt': created_at,
            'word_list': word_list,
            'grammar_list': grammar_list,
            'isCompleted': [],
            'answers': {CATEGORY_GRAMMAR: unanswered(len(grammar_list))},
        }
        if reading_task:
            bundle[CATEGORY_READING] = _reading_entry(reading_task)
            bundle['answers'][CATEGORY_READING] = unanswered(len(bundle[CATEGORY_READING]['questions']))
        if listening_task:
            bundle[CATEGORY_LISTENING] = _listening_entry(listening_task, audio_url)
            bundle['answers'][CATEGORY_LISTENING] = unanswered(len(bundle[CATEGORY_LISTENING]['questions']))
        return bundle

    bundle = copy.deepcopy(existing)
    answers = dict(bundle.get('answers') or {})
    if flags.word_list:
        bundle[CATEGORY_WORD_LIST] = word_list
    if flags.grammar:
        bundle['grammar_list'] = grammar_list
        answers[CATEGORY_GRAMMAR] = unanswered(len(grammar_list))
    if flags.reading and reading_task:
        bundle[CATEGORY_READING] = _reading_entry(reading_task)
        answers[CATEGORY_READING] = unanswered(len(bundle[CATEGORY_READING]['questions']))
    if flags.listening and listening_task:
        bundle[CATEGORY_LISTENING] = _listening_entry(listening_task, audio_url)
        answers[CATEGORY_LISTENING] = unanswered(len(bundle[CATEGORY_LISTENING]['questions']))
    bundle['answers'] = answers
    bundle['userId'] = user_id
    bundle['date'] = task_date
    bundle['isCompleted'] = []
    bundle['createdAt'] = created_at
    return bundle


def has_generated_content(grammar_list, reading_task, listening_task):
    return bool(grammar_list) or bool(reading_task) or bool(listening_task)
