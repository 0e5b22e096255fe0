"""A small Eliza-style pattern responder for the dtneliza bot."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

Responder = Callable[[str], str]

REFLECTIONS: dict[str, str] = {
    "am": "are",
    "was": "were",
    "i": "you",
    "i'd": "you would",
    "i've": "you have",
    "i'll": "you will",
    "i'm": "you are",
    "my": "your",
    "are": "am",
    "you've": "I have",
    "you'll": "I will",
    "your": "my",
    "yours": "mine",
    "you": "me",
    "me": "you",
    "myself": "yourself",
}

# (pattern, responses); "{0}" is replaced by the reflected first group.
DOCTOR_RULES: list[tuple[str, list[str]]] = [
    (r"\b(?:hello|hi|hey)\b", [
        "Hello. How are you feeling today?",
        "Hi there. What brings you here?",
    ]),
    (r"i need (.*)", [
        "Why do you need {0}?",
        "Would it really help you to get {0}?",
        "Are you sure you need {0}?",
    ]),
    (r"why don'?t you ([^\?]*)\??", [
        "Do you really think I don't {0}?",
        "Perhaps eventually I will {0}.",
    ]),
    (r"why can'?t i ([^\?]*)\??", [
        "Do you think you should be able to {0}?",
        "If you could {0}, what would you do?",
    ]),
    (r"i can'?t (.*)", [
        "How do you know you can't {0}?",
        "Perhaps you could {0} if you tried.",
    ]),
    (r"i am (.*)", [
        "Did you come to me because you are {0}?",
        "How long have you been {0}?",
        "How do you feel about being {0}?",
    ]),
    (r"i'?m (.*)", [
        "How does being {0} make you feel?",
        "Why do you tell me you're {0}?",
    ]),
    (r"are you ([^\?]*)\??", [
        "Why does it matter whether I am {0}?",
        "Perhaps you believe I am {0}.",
    ]),
    (r"because (.*)", [
        "Is that the real reason?",
        "What other reasons come to mind?",
        "If {0}, what else must be true?",
    ]),
    (r"(.*) sorry (.*)", [
        "There are many times when no apology is needed.",
        "What feelings do you have when you apologize?",
    ]),
    (r"i think (.*)", [
        "Do you doubt {0}?",
        "Do you really think so?",
    ]),
    (r"(.*) friend(.*)", [
        "Tell me more about your friends.",
        "Why don't you tell me about a childhood friend?",
    ]),
    (r"(.*) (?:mother|father|family)(.*)", [
        "Tell me more about your family.",
        "How do you get along with your family?",
    ]),
    (r"\byes\b", [
        "You seem quite sure.",
        "OK, but can you elaborate a bit?",
    ]),
    (r"\bno\b", [
        "Why not?",
        "You are being a bit negative.",
    ]),
    (r"(.*)\?", [
        "Why do you ask that?",
        "What do you think?",
        "Why don't you tell me?",
    ]),
    (r"(?:quit|bye|goodbye)", [
        "Thank you for talking to me.",
        "Goodbye. It was nice talking to you.",
    ]),
    (r"(.*)", [
        "Please tell me more.",
        "Let's change focus a bit... Tell me about your family.",
        "Can you elaborate on that?",
        "I see. And what does that tell you?",
        "How does that make you feel?",
    ]),
]


class Eliza:
    """Rule-driven responder; rules are tried in order, answers rotate per rule."""

    def __init__(
        self,
        rules: Sequence[tuple[str, Sequence[str]]] = DOCTOR_RULES,
        reflections: dict[str, str] | None = None,
    ) -> None:
        self._rules = [(re.compile(p, re.IGNORECASE), list(r)) for p, r in rules]
        self._reflections = REFLECTIONS if reflections is None else reflections
        self._next = [0] * len(self._rules)

    def reflect(self, fragment: str) -> str:
        words = fragment.lower().split()
        return " ".join(self._reflections.get(w, w) for w in words)

    def respond(self, text: str) -> str:
        statement = text.strip().rstrip("!.")
        for i, (pattern, responses) in enumerate(self._rules):
            m = pattern.match(statement) or pattern.search(statement)
            if m is None or not responses:
                continue
            answer = responses[self._next[i] % len(responses)]
            self._next[i] += 1
            group = m.group(1) if m.groups() and m.group(1) is not None else ""
            return answer.format(self.reflect(group).strip(" ?.!"))
        return "Please go on."
