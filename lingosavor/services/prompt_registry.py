"""Prompt templates and inventory helpers for LingoSavor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List


PROMPT_REGISTRY_VERSION = "2026-10-12"


PROMPT_GRAMMAR_QUIZ = """Using the English script and the conversation below, write a few four-option quiz questions that review the grammar points that came up.

Important: every question must be fully understandable on its own, without the script or the conversation. Include all the information a learner needs in the question itself and make the four options clearly distinct.

Script: {script}
Conversation (all): {conversation}
Conversation (not reviewed yet): {new_messages}

Return ONLY valid JSON in exactly this format:
{{"abstract": "summary of the grammar points, written in {explanation_language}", "quizzes": [{{"question": "self-contained question", "options": ["option A", "option B", "option C", "option D"], "answer": 0}}]}}"""

PROMPT_REVIEW_TEXT = """Write an English text of about 200 words that uses the {item_count} words and grammar points below, followed by 2 four-option questions about the text. Write everything in English.{feedback}

Words: [{words}]
Grammar points: [{grammar_points}]

Return ONLY valid JSON in exactly this format:
{{
  "text": "English text of about 200 words",
  "questions": [
    {{"question": "question 1", "options": ["option A", "option B", "option C", "option D"], "answer": 0}},
    {{"question": "question 2", "options": ["option A", "option B", "option C", "option D"], "answer": 1}}
  ]
}}"""

PROMPT_REVIEW_FEEDBACK = """
On difficulty: after reading the text below, the learner left this impression. Adjust the difficulty accordingly.
Text: {previous_text}
Impression: {impression}"""

PROMPT_BASE_WORD = """Word: "{word}"
Context: "{sentence}"

Decide whether the word belongs to the inflected group or the uninflected group.

Inflected group:
- possessive nouns
- comparative or superlative adjectives
- past-tense verbs
- past participles in passive or perfect constructions
- present participles in progressive or participial constructions
- third-person singular -s
- plural -s

Uninflected group:
- past or present participles used as adjectives
- anything not in the inflected group

If the word is in the inflected group, return its base form. For an idiom, return the whole idiom with the inflected word reduced to its base form (for example "kicked off" -> "kick off").
Otherwise return the word exactly as given. Always return idioms in full.

Return ONLY valid JSON in exactly this format:
{{"base_word": "base form"}}"""

PROMPT_CONTEXT_ROLE = """Word: "{word}"
Context: "{sentence}"

Return ONLY valid JSON in exactly this format:
{{
  "part_of_speech": "part of speech, written in {explanation_language}",
  "context_role": "a thorough explanation (roughly 100-200 characters) of the role the word plays in this sentence, written in {explanation_language}"
}}"""

PROMPT_DICTIONARY_ENTRY = """Produce a detailed dictionary entry for the English word below.

Word: "{word}"

Return ONLY valid JSON in exactly this format:
{{
  "word": "{word}",
  "pronunciation": "IPA pronunciation",
  "meanings": [
    {{
      "part_of_speech": "part of speech ({explanation_language})",
      "definition": "definition ({explanation_language})",
      "nuance": "nuance and usage notes for this sense ({explanation_language})",
      "collocations": [{{"phrase": "collocation", "translation": "translation ({explanation_language})"}}],
      "synonyms": [{{"word": "synonym", "nuance": "how the nuance differs ({explanation_language})"}}]
    }}
  ],
  "derivatives": [{{"word": "derivative", "part_of_speech": "part of speech ({explanation_language})", "translation": "meaning ({explanation_language})"}}],
  "etymology": "etymology ({explanation_language})"
}}

Rules:
1. Include as many senses as possible in meanings.
2. Every meaning must name its part_of_speech.
3. List 3-5 common collocations per meaning.
4. List 2-4 major synonyms per meaning and explain how they differ.
5. Include related derivatives.
6. Give a detailed etymology."""

PROMPT_EXAMPLES = """Write practical example sentences for each sense of the English word below.

Word: "{word}"
Words to use in the examples: {user_words}

Senses:
{meanings}

Return ONLY valid JSON in exactly this format:
{{"examples": [[{{"original": "English example", "translation": "translation in {explanation_language}"}}]]}}

Rules:
1. examples is a list of lists: one inner list per sense, in the same order.
2. Write 2-3 practical examples per sense.
3. Where words to use are given, include them in the examples as far as possible.
4. Keep the examples natural and the translations easy to understand."""

PROMPT_CHAT_SYSTEM = """You are a friendly, knowledgeable assistant helping the user learn English. Answer in {explanation_language} and follow these guidelines:

1. Explain clearly, even when the concept is complex.
2. Give concrete example sentences and situations where the expression is used.
3. Match the explanation to the learner's level.
4. Stay polite but approachable.
5. Add practical study tips where they help."""

PROMPT_CHAT_REFERENCE = """

The user is studying the following English text. Use it as reference when answering:
{transcription}"""

PROMPT_AUDIO_TRANSCRIPTION = """Transcribe the attached audio accurately.
Instructions:
1. Transcribe the spoken English as literally as possible.
2. Remove filler words and hesitations (such as "uh", "um", "you know") without changing sentence structure.
3. Do not include timestamps or speaker labels.
4. Start a new paragraph for each longer speaking turn.
5. Return the transcript only, with no commentary."""

PROMPT_VIDEO_TRANSCRIPTION = """Transcribe the speech in the attached video accurately.
Instructions:
1. Transcribe the spoken English as literally as possible.
2. Remove filler words and hesitations without changing sentence structure.
3. Ignore on-screen text unless it is read aloud.
4. Do not include timestamps or speaker labels.
5. Return the transcript only, with no commentary."""

PROMPT_IMAGE_TRANSCRIPTION = """Extract all English text from the attached images, in reading order.
Instructions:
1. Keep the original wording, spelling and paragraph breaks.
2. Process the images in the order given and join their text with blank lines.
3. Skip page numbers, headers and footers.
4. Return the extracted text only, with no commentary."""

PROMPT_DOCUMENT_MAIN_TEXT = """Extract the main body text from the attached PDF pages.
Instructions:
1. Keep only the main prose of the document.
2. Leave out headers, footers, page numbers, captions, footnotes and references.
3. Keep the original wording and paragraph breaks.
4. Return the extracted text only, with no commentary."""

PROMPT_DOCUMENT_WHOLE = """Extract all text from the attached PDF pages.
Instructions:
1. Include every piece of text on the pages, including headings, captions and footnotes.
2. Keep the original wording, reading order and paragraph breaks.
3. Return the extracted text only, with no commentary."""

PROMPT_ENGLISH_DETECTION = """Decide whether the text below is written in English.

Criteria:
- English is the main language.
- It follows English grammatical structure.
- It consists mainly of English words.
- Another language (Japanese, Chinese, Korean, French, German and so on) is not the main language.

Notes:
- A few foreign words or proper nouns are fine when the text is mainly English.
- Text that is not grammatically perfect still counts if it is understandable English.
- Word lists or fragments count when they consist mainly of English words.

Answer with exactly one word: true if the text is English, false otherwise.

Text:
{text}

Answer (true or false):"""

PROMPT_DOCUMENT_SUMMARY = """Analyse the English document below and write a thorough commentary in {explanation_language} for a language learner.

1. Overview and key points
- main themes and arguments
- summary of the important information

2. Cultural background
- cultural context in the text
- historical and social context
- explanations of foreign customs and values
- extra notes that deepen the learner's understanding

Combine these into one helpful commentary.

Document:
{text}

Return the commentary only."""

PROMPT_SENTENCE_TRANSLATION = """Translate the English sentences below one by one into natural {explanation_language}.
Sentences:
{sentences}

Return ONLY a JSON array in exactly this format:
[
  {{"raw": "original sentence 1", "translation": "translation 1"}},
  {{"raw": "original sentence 2", "translation": "translation 2"}}
]

Do not prefix the sentences with numbers."""

PROMPT_TIMESTAMPED_SENTENCES = """Transcribe this audio sentence by sentence with millisecond timestamps marking where each sentence starts.
Return ONLY a JSON array in exactly this format, with no other text:
[
  {"timestamp": "00:03:834", "sentence": "first sentence"},
  {"timestamp": "00:08:123", "sentence": "second sentence"}
]
The timestamp format is MM:SS:mmm."""


@dataclass(frozen=True)
class PromptRecord:
    prompt_id: str
    name: str
    template: str


PROMPT_RECORDS: List[PromptRecord] = [
    PromptRecord("grammar_quiz", "Grammar review quiz", PROMPT_GRAMMAR_QUIZ),
    PromptRecord("review_text", "Reading/listening review text", PROMPT_REVIEW_TEXT),
    PromptRecord("review_feedback", "Review difficulty feedback", PROMPT_REVIEW_FEEDBACK),
    PromptRecord("base_word", "Base word detection", PROMPT_BASE_WORD),
    PromptRecord("context_role", "Context role analysis", PROMPT_CONTEXT_ROLE),
    PromptRecord("dictionary_entry", "Dictionary entry", PROMPT_DICTIONARY_ENTRY),
    PromptRecord("examples", "Example sentences", PROMPT_EXAMPLES),
    PromptRecord("chat_system", "Chat system instruction", PROMPT_CHAT_SYSTEM),
    PromptRecord("chat_reference", "Chat reference text", PROMPT_CHAT_REFERENCE),
    PromptRecord("audio_transcription", "Audio transcription", PROMPT_AUDIO_TRANSCRIPTION),
    PromptRecord("video_transcription", "Video transcription", PROMPT_VIDEO_TRANSCRIPTION),
    PromptRecord("image_transcription", "Image transcription", PROMPT_IMAGE_TRANSCRIPTION),
    PromptRecord("document_main_text", "PDF main text extraction", PROMPT_DOCUMENT_MAIN_TEXT),
    PromptRecord("document_whole", "PDF full text extraction", PROMPT_DOCUMENT_WHOLE),
    PromptRecord("english_detection", "English detection", PROMPT_ENGLISH_DETECTION),
    PromptRecord("document_summary", "Document commentary", PROMPT_DOCUMENT_SUMMARY),
    PromptRecord("sentence_translation", "Sentence translation", PROMPT_SENTENCE_TRANSLATION),
    PromptRecord("timestamped_sentences", "Timestamped sentence transcription", PROMPT_TIMESTAMPED_SENTENCES),
]


def get_prompt_inventory() -> List[Dict[str, str]]:
    return [
        {
            "id": record.prompt_id,
            "name": record.name,
            "template": record.template,
        }
        for record in PROMPT_RECORDS
    ]


def get_prompt_template(prompt_id: str) -> str:
    normalized = str(prompt_id or "").strip()
    for record in PROMPT_RECORDS:
        if record.prompt_id == normalized:
            return record.template
    raise KeyError(f"Unknown prompt id: {prompt_id}")


def render_prompt(prompt_id: str, **values) -> str:
    return get_prompt_template(prompt_id).format(**values)


def get_prompt_metadata() -> Dict[str, object]:
    return {
        "version": PROMPT_REGISTRY_VERSION,
        "count": len(PROMPT_RECORDS),
        "ids": [record.prompt_id for record in PROMPT_RECORDS],
    }


def get_prompt_inventory_markdown() -> str:
    lines = [
        "# Prompt Inventory",
        "",
        f"Version: `{PROMPT_REGISTRY_VERSION}`",
        "",
    ]
    for record in PROMPT_RECORDS:
        lines.append(f"## {record.name} (`{record.prompt_id}`)")
        lines.append("")
        lines.append("```text")
        lines.append(record.template.strip())
        lines.append("```")
        lines.append("")
    return "\n".join(lines).strip() + "\n"
