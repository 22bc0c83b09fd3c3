"""Offline stand-ins shared by the pipeline tests: a scripted model and item factories."""
import json

from lessonforge.core.config import Settings


def make_settings(**overrides) -> Settings:
    values = {
        "openai_api_key": "test-key",
        "backfill_backoff_seconds": 0.0,
        "enable_agent_validation": False,
        "ai_call_timeout_seconds": 5.0,
    }
    values.update(overrides)
    return Settings(**values)


class ScriptedAI:
    """Plays back canned model responses in order.

    Each scripted entry is a string (returned as the model text) or an
    exception instance (raised). Once the script runs out, ``default`` is
    returned for every further call.
    """

    def __init__(self, *responses, default='{"tasks": []}'):
        self.responses = list(responses)
        self.default = default
        self.calls = []

    async def invoke(self, system_prompt, user_prompt, *, model, max_tokens, temperature, label="generation"):
        self.calls.append({
            "system": system_prompt,
            "user": user_prompt,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "label": label,
        })
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, BaseException):
            raise response
        return response

    def labels(self):
        return [call["label"] for call in self.calls]


class RoutedAI(ScriptedAI):
    """Like ScriptedAI, but keeps one script per call label.

    Used where calls run concurrently (the two review agents) so the test
    does not depend on which coroutine reaches the model first.
    """

    def __init__(self, routes: dict, default='{"tasks": []}'):
        super().__init__(default=default)
        self.routes = {label: list(responses) for label, responses in routes.items()}

    async def invoke(self, system_prompt, user_prompt, *, model, max_tokens, temperature, label="generation"):
        self.responses = self.routes.setdefault(label, [])
        return await super().invoke(
            system_prompt, user_prompt,
            model=model, max_tokens=max_tokens, temperature=temperature, label=label,
        )


def tasks_json(*items, prose=False) -> str:
    text = json.dumps({"tasks": list(items)}, ensure_ascii=False)
    if prose:
        return f"Here is the worksheet you asked for:\n```json\n{text}\n```\nGood luck!"
    return text


# ── Item factories (every question text is unique per ``n``) ─────────────

def sc(n=0, correct_index=1, options=None):
    return {
        "type": "single_choice",
        "question": f"Single choice question number {n} about the topic?",
        "options": options if options is not None else [f"a{n}", f"b{n}", f"c{n}", f"d{n}"],
        "correctIndex": correct_index,
    }


def mc(n=0, correct_indices=(0, 2)):
    return {
        "type": "multiple_choice",
        "question": f"Multiple choice question number {n}, pick all?",
        "options": [f"a{n}", f"b{n}", f"c{n}", f"d{n}"],
        "correctIndices": list(correct_indices),
    }


def oq(n=0, answer=None):
    return {
        "type": "open_question",
        "question": f"Open question number {n}: explain the rule.",
        "correctAnswer": answer if answer is not None else f"answer {n}",
    }


def matching(n=0, pairs=((0, 1), (1, 0))):
    return {
        "type": "matching",
        "instruction": f"Match the terms of group {n} with definitions",
        "leftColumn": [f"left{n}-1", f"left{n}-2"],
        "rightColumn": [f"right{n}-1", f"right{n}-2"],
        "correctPairs": [list(p) for p in pairs],
    }


def fill_blank(n=0):
    return {
        "type": "fill_blank",
        "textWithBlanks": f"Sentence {n} has ___(1)___ and ___(2)___ gaps.",
        "blanks": [
            {"position": 1, "correctAnswer": f"first{n}"},
            {"position": 2, "correctAnswer": f"second{n}"},
        ],
    }
