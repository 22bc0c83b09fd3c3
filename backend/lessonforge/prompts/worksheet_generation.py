"""Prompt templates for worksheet, backfill, single-item and presentation generation.

Every builder here is pure: same input, same text. Free text coming from the
user (topic, custom theme) always goes through ``sanitize_user_input`` and is
fenced in a tag so the model treats it as data.
"""
from lessonforge.models.generation import (
    GenerationRequest,
    PresentationRequest,
    RegenerateItemRequest,
    TargetCounts,
)
from lessonforge.services.task_types import get_task_type
from lessonforge.services.worksheet_formats import distribute_open_tasks, distribute_test_tasks
from lessonforge.utils.sanitize import sanitize_user_input

BLOCK_SEPARATOR = "\n\n---\n\n"
_RULE = "═" * 63

SUBJECT_NAMES: dict[str, str] = {
    "math": "Mathematics",
    "algebra": "Algebra",
    "geometry": "Geometry",
    "russian": "Russian language",
}

# ──────────────────────────────────────────────
# Role and subject
# ──────────────────────────────────────────────

BASE_ROLE_PROMPT = """You are an experienced methodologist who writes worksheet tasks for Russian schools.

Your tasks must:
- Follow the Russian school curriculum (FGOS)
- Match the difficulty of the stated grade
- Have exactly one unambiguous correct answer (or an unambiguous set for multiple choice)
- Use wording a student of that age understands

Write every task in Russian."""

SUBJECT_SYSTEM_PROMPTS: dict[str, str] = {
    "math": (
        "Subject: Mathematics (grades 1-6). Arithmetic, fractions, decimals, percentages, "
        "simple equations and word problems. Check every computation before answering."
    ),
    "algebra": (
        "Subject: Algebra (grades 7-11). Expressions, equations, inequalities, functions and "
        "graphs, progressions, logarithms, trigonometry. Check every transformation."
    ),
    "geometry": (
        "Subject: Geometry (grades 7-11). Figures and their properties, theorems, areas and "
        "volumes, vectors and coordinates. Describe figures in words, never rely on a drawing."
    ),
    "russian": (
        "Subject: Russian language (grades 1-11). Spelling, punctuation, morphology, syntax "
        "and vocabulary. Every answer must follow the current orthography rules."
    ),
}

# ──────────────────────────────────────────────
# Difficulty
# ──────────────────────────────────────────────

DIFFICULTY_NAMES: dict[str, str] = {"easy": "Basic", "medium": "Medium", "hard": "Advanced"}

DIFFICULTY_PROMPTS: dict[str, str] = {
    "easy": """Level: BASIC
Requirements:
- Direct application of rules and formulas without complications
- Simple numbers and examples
- One or two steps to solve
- Straightforward wording with no tricks""",
    "medium": """Level: MEDIUM
Requirements:
- Standard textbook situations, but not trivial ones
- Two or three steps to solve
- Needs understanding of the topic and its link to earlier material
- Some tasks combine the current topic with topics studied before""",
    "hard": """Level: ADVANCED
Requirements:
- Non-standard wording and contexts
- Three to five steps to solve
- Always combine the current topic with earlier topics and skills
- Olympiad-style tasks that need several sections of the course""",
}


def get_difficulty_prompt(level: str, subject: str, grade: int) -> str:
    prompt = DIFFICULTY_PROMPTS.get(level, DIFFICULTY_PROMPTS["medium"])
    return f"{prompt}\nGrade: {grade}. Subject: {SUBJECT_NAMES.get(subject, subject)}."


def build_system_prompt(subject: str, grade: int | None = None, difficulty: str | None = None) -> str:
    parts = [BASE_ROLE_PROMPT]
    subject_prompt = SUBJECT_SYSTEM_PROMPTS.get(subject)
    if subject_prompt:
        parts.append(subject_prompt)
    if grade is not None:
        parts.append(f"Target audience: grade {grade} students.")
    if difficulty:
        parts.append(f"Difficulty level: {DIFFICULTY_NAMES.get(difficulty, difficulty)}.")
    return "\n\n".join(parts)


# ──────────────────────────────────────────────
# Worksheet user prompt blocks
# ──────────────────────────────────────────────

def _topic_block(topic: str) -> str:
    return (
        f"TASK TOPIC: <user_topic>{sanitize_user_input(topic)}</user_topic>\n\n"
        "Every task must be strictly on this topic.\n"
        "If the topic goes beyond the stated grade, still create the tasks but adapt the difficulty."
    )


def _distribution_line(type_id: str, count: int) -> str:
    noun = "task" if count == 1 else "tasks"
    return f"- Create EXACTLY {count} {noun} of type {type_id} ({get_task_type(type_id).name})"


def _task_types_block(task_types, targets: TargetCounts) -> str:
    test_dist = distribute_test_tasks(targets.selection_count, task_types)
    open_dist = distribute_open_tasks(targets.open_count, task_types)
    all_dist = test_dist + open_dist
    if not all_dist:
        return "CREATE TASKS of the listed types."

    total = targets.total
    lines = [
        _RULE,
        "CRITICAL: EXACT NUMBER OF TASKS OF EACH TYPE",
        _RULE,
        "",
        f"You MUST create EXACTLY {total} tasks. Not {total - 1}, not {total + 1}, exactly {total}.",
        "",
        "EXACT DISTRIBUTION BY TYPE:",
    ]
    if test_dist:
        lines.append(f"\nTEST PART ({targets.selection_count} items):")
        lines.extend(_distribution_line(type_id, count) for type_id, count in test_dist)
    if open_dist:
        lines.append(f"\nWRITTEN-ANSWER PART ({targets.open_count} items):")
        lines.extend(_distribution_line(type_id, count) for type_id, count in open_dist)
    if len(test_dist) > 1:
        lines.append("\nTEST ORDER: shuffle the types inside the test part, do not group them by type.")
    if len(open_dist) > 1:
        lines.append("\nWRITTEN-ANSWER ORDER: shuffle the types inside the written part, do not group them by type.")

    lines.append("\nFINAL CHECK before answering:")
    lines.append(f'The "tasks" array must contain EXACTLY {total} elements.')
    lines.extend(f"  - {type_id}: EXACTLY {count}" for type_id, count in all_dist)
    lines.append("If any count is wrong, FIX it before you answer.\n")

    lines.append("INSTRUCTIONS PER TYPE:\n")
    for type_id, count in all_dist:
        config = get_task_type(type_id)
        lines.append(f"{config.name.upper()} ({type_id}), EXACTLY {count}:")
        lines.append(config.prompt_instruction + "\n")
    return "\n".join(lines).strip()


DIVERSITY_BLOCK = f"""{_RULE}
TASK DIVERSITY IS MANDATORY
{_RULE}

Tasks MUST cover DIFFERENT aspects of the topic. Spread them over:
1. THEORY (20-30%): formulas, rules, definitions, properties
2. UNDERSTANDING (20-30%): explain, compare, "what happens if..."
3. APPLICATION (30-40%): solve, compute, apply in practice
4. ANALYSIS (10-20%): find the mistake, compare methods, is the statement true

Never make every task about a single aspect. Test questions must be varied too."""

FORMAT_BLOCK = """RESPONSE FORMAT:

Return ONLY valid JSON with no text before or after it:

{
  "tasks": [
    {"type": "single_choice", "question": "...", "options": ["...", "...", "...", "..."], "correctIndex": 0, "explanation": "..."},
    {"type": "multiple_choice", "question": "...", "options": ["...", "...", "...", "..."], "correctIndices": [0, 2], "explanation": "..."},
    {"type": "open_question", "question": "...", "correctAnswer": "...", "acceptableVariants": ["..."], "explanation": "..."},
    {"type": "matching", "instruction": "Match...", "leftColumn": ["...", "...", "..."], "rightColumn": ["...", "...", "..."], "correctPairs": [[0, 1], [1, 0], [2, 2]]},
    {"type": "fill_blank", "textWithBlanks": "Text with ___(1)___ gaps ___(2)___", "blanks": [{"position": 1, "correctAnswer": "..."}, {"position": 2, "correctAnswer": "..."}]}
  ]
}

No markdown and no commentary, JSON only."""

ANTI_PATTERNS_BLOCK = f"""{_RULE}
UNIQUENESS AND QUALITY
{_RULE}

EVERY TASK MUST BE UNIQUE:
- Do not repeat the same or similar wording
- Do not reuse the same numbers or examples across tasks
- Each task checks a DIFFERENT aspect of the topic

OPTIONS IN TEST QUESTIONS:
- Options must be plausible, never absurd
- Put the correct option at DIFFERENT positions across questions
- Distractors reflect typical student mistakes

FORBIDDEN:
- Tasks off the stated topic
- Tasks with an ambiguous or disputable answer
- Explanations outside the JSON
- Empty or null values"""


def build_user_prompt(request: GenerationRequest, task_types, targets: TargetCounts) -> str:
    """Assemble the main worksheet prompt for ``targets`` items of ``task_types``."""
    blocks = [
        f"GRADE: {request.grade}\n\nUse concepts and terms that belong to this grade.",
        _topic_block(request.topic),
        get_difficulty_prompt(request.difficulty, request.subject, request.grade),
        _task_types_block(task_types, targets),
        DIVERSITY_BLOCK,
        FORMAT_BLOCK,
        ANTI_PATTERNS_BLOCK,
    ]
    return BLOCK_SEPARATOR.join(block for block in blocks if block)


# ──────────────────────────────────────────────
# Backfill and single-item prompts
# ──────────────────────────────────────────────

def build_backfill_prompt(request: GenerationRequest, wanted: list[tuple[str, int]]) -> str:
    """Ask for exactly the missing items, one ``(type_id, count)`` entry per short family."""
    wanted = [(type_id, count) for type_id, count in wanted if count > 0]
    total = sum(count for _, count in wanted)
    lines = []
    examples = []
    for type_id, count in wanted:
        config = get_task_type(type_id)
        family = "test questions" if config.family == "selection" else "written-answer tasks"
        lines.append(f'- {count} {family} of type "{type_id}"')
        examples.append(f"    {config.json_example}")

    difficulty = get_difficulty_prompt(request.difficulty, request.subject, request.grade)
    topic = sanitize_user_input(request.topic)
    return (
        f"Create additional tasks on the topic <user_topic>{topic}</user_topic> for grade {request.grade}.\n"
        f"Difficulty: {difficulty}\n\n"
        f"CREATE EXACTLY {total} tasks:\n"
        + "\n".join(lines)
        + "\n\nReturn JSON strictly in this format:\n"
        "{\n"
        '  "tasks": [\n'
        + ",\n".join(examples)
        + "\n  ]\n}\n\n"
        f'The "tasks" array must contain EXACTLY {total} elements. No more, no less.\n'
        'Every task MUST have a "type" field.'
    )


def build_regenerate_prompt(request: RegenerateItemRequest) -> str:
    config = get_task_type(request.task_type)
    difficulty = get_difficulty_prompt(request.difficulty, request.subject, request.grade)
    topic = sanitize_user_input(request.topic)
    return f"""Create EXACTLY 1 worksheet task.

Subject: {SUBJECT_NAMES.get(request.subject, request.subject)}
Grade: {request.grade}
Topic: <user_topic>{topic}</user_topic>
Difficulty: {difficulty}

Task type: {config.name}
{config.prompt_instruction}

Return JSON:
{{
  "tasks": [
    {config.json_example}
  ]
}}

IMPORTANT: create EXACTLY 1 task, no more and no less."""


# ──────────────────────────────────────────────
# Presentations
# ──────────────────────────────────────────────

PRESENTATION_SUBJECT_HINTS: dict[str, str] = {
    "math": (
        'Always use "example" slides (problem plus step-by-step solution) and "formula" slides. '
        'Add a "practice" slide and use "table" for comparisons and properties.'
    ),
    "algebra": (
        'Always use "formula" (formulas, identities), "example" (solved equations and inequalities) '
        'and "chart" (function graphs with numeric data). Add a "practice" slide.'
    ),
    "geometry": (
        'Always use "formula" (theorems, formulas), "diagram" (figures and their properties) and '
        '"example" (solved problems). Use "table" to compare figures.'
    ),
    "russian": (
        'Always use "table" (rules, exceptions, paradigms), "example" (parsing of words and sentences) '
        'and "twoColumn" (comparing rules). Add a "practice" slide with exercises.'
    ),
}

SLIDE_TYPES_BLOCK = """Available slide types (use them VARIOUSLY, not only "content"):
- "title": first slide, heading plus subtitle
- "content": bullet slide (4-6 detailed points)
- "twoColumn": comparison. Fields: leftColumn (array of strings), rightColumn (array of strings)
- "table": tabular data. Field: tableData: {"headers": [...], "rows": [[...], [...]]}
- "example": problem plus step-by-step solution (content: ["Problem: ...", "Step 1: ...", "Answer: ..."])
- "formula": a key formula or rule, large (content: ["formula", "explanation", "where ..."])
- "diagram": a scheme or classification (content: ["Element 1 -> description", ...])
- "chart": a chart. Field: chartData: {"labels": [...], "values": [...numbers...]}
- "practice": exercises for students (content: ["1. ...", "2. ...", "3. ..."])
- "conclusion": last slide, summary"""


def presentation_style(request: PresentationRequest) -> str:
    if request.theme_type == "custom" and request.theme_custom:
        return f"<user_style>{sanitize_user_input(request.theme_custom)}</user_style>"
    if request.theme_type == "preset" and request.theme_preset:
        return sanitize_user_input(request.theme_preset)
    return "professional"


def build_presentation_prompts(request: PresentationRequest) -> tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` for a deck of ``request.slide_count`` slides."""
    subject_name = SUBJECT_NAMES.get(request.subject, request.subject)
    system_prompt = (
        f"You are an experienced {subject_name.lower()} methodologist who builds lesson presentations "
        f"for grade {request.grade}. Content follows the Russian school curriculum (FGOS) and is "
        "written in Russian. Answer with valid JSON only."
    )
    topic = sanitize_user_input(request.topic)
    count = request.slide_count
    user_prompt = f"""Create a presentation on the topic <user_topic>{topic}</user_topic> for grade {request.grade}, subject "{subject_name}". Exactly {count} slides.

{SLIDE_TYPES_BLOCK}

{PRESENTATION_SUBJECT_HINTS.get(request.subject, "")}

Style: {presentation_style(request)}

Return JSON:
{{"title": "Title", "slides": [
  {{"type": "title", "title": "...", "content": ["subtitle"]}},
  {{"type": "content", "title": "...", "content": ["point 1", "point 2", "point 3", "point 4"]}},
  {{"type": "table", "title": "...", "content": [], "tableData": {{"headers": ["Col1", "Col2"], "rows": [["a", "b"]]}}}},
  {{"type": "conclusion", "title": "Summary", "content": ["takeaway 1", "takeaway 2"]}}
]}}

IMPORTANT:
- Exactly {count} slides
- The first slide has type "title", the last one type "conclusion"
- Use AT LEAST 4-5 DIFFERENT slide types
- Every slide MUST have "type", "title" and "content" (array of strings)
- Fill tableData for "table", leftColumn/rightColumn for "twoColumn", chartData for "chart"."""
    return system_prompt, user_prompt
