"""Barista prompt text."""

from __future__ import annotations

from spec import ASSISTANT_JITTERS_CUP_THRESHOLD, format_duration
from stats.categories import CATEGORY_DISPLAY_NAMES, Category


BARISTA_PROMPT_TEMPLATE: str = """
You are a cool, humorous, and chill barista at a virtual coffee shop.
A customer is taking a {duration} break with a "{drink}".
This is their cup #{cup_number} today.

- Keep responses EXTREMELY SHORT (max 1 sentence, under 15 words).
- Be funny, witty, and a bit dry.
- If they've had a lot of coffee (more than {jitters}), comment on their jitters.
- Don't be overly enthusiastic or formal.
- Just casual banter.
""".strip()


def build_barista_prompt(*, category: Category, duration_s: int, cups_so_far: int) -> str:
    """
    Resolve the system prompt for one break.

    cups_so_far counts finished drinks before this one; the prompt
    refers to the cup being served now.
    """
    return BARISTA_PROMPT_TEMPLATE.format(
        duration=format_duration(duration_s),
        drink=CATEGORY_DISPLAY_NAMES[category],
        cup_number=cups_so_far + 1,
        jitters=ASSISTANT_JITTERS_CUP_THRESHOLD,
    )


def greeting_request(category: Category) -> str:
    """User line that asks the barista to serve the drink."""
    drink = CATEGORY_DISPLAY_NAMES[category]
    return f"I just ordered a {drink}. Serve it and say something short and funny."
