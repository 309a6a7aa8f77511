"""Journaling prompts and habit suggestions used in replies."""
import random
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class HabitSuggestion:
    name: str
    description: str
    frequency: str = "daily"
    duration: str = "5-10 minutes"


JOURNAL_PROMPTS: Tuple[str, ...] = (
    "How are you feeling right now? What triggered these emotions?",
    "What would help you feel better today?",
    "What are you grateful for, even if things feel hard?",
    "What do you need from yourself or others right now?",
    "What patterns do you notice in your feelings?",
)

HABIT_SUGGESTIONS: Tuple[HabitSuggestion, ...] = (
    HabitSuggestion("Morning Meditation", "Start your day with 5-10 minutes of mindfulness"),
    HabitSuggestion("Evening Walk", "Take a short walk to clear your mind"),
    HabitSuggestion("Gratitude Journal", "Write down 3 things you are grateful for"),
    HabitSuggestion("Deep Breathing", "Practice deep breathing exercises when stressed"),
    HabitSuggestion("Yoga Session", "Gentle yoga for relaxation and flexibility", "every_other_day"),
)


class SuggestionCatalog:
    """Random choice over the prompt and habit lists.

    Pass a seeded ``random.Random`` for reproducible output.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def journal_prompt(self) -> str:
        return self.rng.choice(JOURNAL_PROMPTS)

    def habit_suggestion(self) -> HabitSuggestion:
        return self.rng.choice(HABIT_SUGGESTIONS)
