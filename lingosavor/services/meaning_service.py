"""Word lookup: base form, role in context, dictionary entry and examples."""

import random
from concurrent.futures import ThreadPoolExecutor

from lingosavor.errors import CallableError, GenerationError
from lingosavor.repositories import dictionary_repo, learning_items_repo
from lingosavor.services import prompt_registry
from lingosavor.services.generation import FAST_MODEL, ensure_object

EXAMPLE_USER_WORDS = 3
USER_WORD_SAMPLE_LIMIT = 100


def _generate_object(generation, prompt, label):
    try:
        payload = ensure_object(generation.generate_json(FAST_MODEL, prompt))
    except GenerationError as exc:
        raise CallableError('internal', f"No usable response for {label}") from exc
    if not isinstance(payload, dict):
        raise CallableError('internal', f"No usable response for {label}")
    return payload


def analyze_word_in_context(generation, word, sentence, explanation_language):
    if not sentence:
        return {
            'original_word': word,
            'word_form': '',
            'base_word': word,
            'part_of_speech': '',
            'context_role': '',
        }
    base_prompt = prompt_registry.render_prompt('base_word', word=word, sentence=sentence)
    role_prompt = prompt_registry.render_prompt(
        'context_role', word=word, sentence=sentence, explanation_language=explanation_language
    )
    with ThreadPoolExecutor(max_workers=2) as executor:
        base_future = executor.submit(_generate_object, generation, base_prompt, 'base word analysis')
        role_future = executor.submit(_generate_object, generation, role_prompt, 'context role analysis')
        base_data = base_future.result()
        role_data = role_future.result()
    base_word = base_data.get('base_word')
    return {
        'original_word': word,
        'word_form': word if word != base_word else '',
        'base_word': base_word,
        'part_of_speech': role_data.get('part_of_speech', ''),
        'context_role': role_data.get('context_role', ''),
    }


def random_user_words(db, uid, *, rng=None, count=EXAMPLE_USER_WORDS, logger=None):
    """Pick a few of the user's saved words to weave into example sentences."""
    rng = rng or random.Random()
    try:
        snapshots = learning_items_repo.list_words_by_user(db, uid, limit=USER_WORD_SAMPLE_LIMIT)
        word_ids = [(snapshot.to_dict() or {}).get('word_id') for snapshot in snapshots]
        word_ids = [word_id for word_id in word_ids if word_id]
        words = []
        for word_id in rng.sample(word_ids, min(count, len(word_ids))):
            entry = dictionary_repo.get_doc(db, word_id)
            if entry.exists and (entry.to_dict() or {}).get('word'):
                words.append(entry.to_dict()['word'])
        return words
    except Exception as exc:
        if logger is not None:
            logger.warning(f"⚠️ Could not sample user words for {uid}: {exc}")
        return []


def format_meanings(meanings):
    return '\n'.join(
        f"{index + 1}. {meaning.get('part_of_speech', '')}: {meaning.get('definition', '')}"
        for index, meaning in enumerate(meanings or [])
        if isinstance(meaning, dict)
    )


def generate_examples(generation, base_word, meanings, user_words, explanation_language):
    prompt = prompt_registry.render_prompt(
        'examples',
        word=base_word,
        user_words=', '.join(user_words) if user_words else 'none',
        meanings=format_meanings(meanings),
        explanation_language=explanation_language,
    )
    payload = _generate_object(generation, prompt, 'examples generation')
    examples = payload.get('examples')
    return examples if isinstance(examples, list) else []


def dictionary_entry_for_saving(entry, *, timestamp):
    meanings = []
    for meaning in entry.get('meanings') or []:
        if isinstance(meaning, dict):
            meanings.append({key: value for key, value in meaning.items() if key != 'examples'})
    saved = dict(entry)
    saved['meanings'] = meanings
    saved.update({
        'saved_users': 0,
        'source': 'english',
        'target': 'japanese',
        'created_at': timestamp,
        'updated_at': timestamp,
    })
    return saved


def generate_meanings(app_ctx, uid, word, sentence, *, rng=None):
    language = app_ctx.config.explanation_language
    analysis = analyze_word_in_context(app_ctx.generation, word, sentence, language)
    base_word = analysis['base_word']
    if not base_word or not isinstance(base_word, str):
        raise CallableError('internal', f"Invalid base word generated: {base_word}")

    existing = dictionary_repo.find_by_word(app_ctx.db, base_word)
    examples = []
    if existing is not None:
        dictionary_id = existing.id
        meanings = (existing.to_dict() or {}).get('meanings')
        if meanings:
            user_words = random_user_words(app_ctx.db, uid, rng=rng, logger=app_ctx.logger)
            examples = generate_examples(app_ctx.generation, base_word, meanings, user_words, language)
    else:
        entry = _generate_object(
            app_ctx.generation,
            prompt_registry.render_prompt('dictionary_entry', word=base_word, explanation_language=language),
            'dictionary entry',
        )
        user_words = random_user_words(app_ctx.db, uid, rng=rng, logger=app_ctx.logger)
        examples = generate_examples(app_ctx.generation, base_word, entry.get('meanings') or [], user_words, language)
        _, ref = dictionary_repo.add_doc(
            app_ctx.db, dictionary_entry_for_saving(entry, timestamp=app_ctx.firestore_module.SERVER_TIMESTAMP)
        )
        dictionary_id = ref.id
        app_ctx.logger.info(f"📚 New dictionary entry {dictionary_id} for '{base_word}'")

    result = dict(analysis)
    result['examples'] = examples
    result['dictionary_id'] = dictionary_id
    return result
