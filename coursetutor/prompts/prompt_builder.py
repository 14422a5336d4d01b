# coursetutor/prompts/prompt_builder.py

from typing import Sequence

from coursetutor.prompts.system_prompts import (
    GROUNDED_MATERIALS,
    NO_MATERIALS_FALLBACK,
    NO_MATERIALS_NOTE,
    PROBLEM_CONTEXT,
    RESPONSE_GUIDELINES,
    TUTOR_INTRO,
    TUTOR_RESTRICTIONS,
)


def format_materials(context_chunks: Sequence[str]) -> str:

    return "\n\n".join(
        f"[Context {i + 1}]: {chunk}"
        for i, chunk in enumerate(context_chunks)
    )


def build_system_prompt(problem, context_chunks: Sequence[str]) -> str:
    """
    Build the tutor system prompt for one chat turn.

    With retrieved chunks the tutor is restricted to those materials.
    Without any, it explains that nothing has been uploaded yet and sticks
    to general guidance. Both variants forbid direct solutions.

    problem: anything with `title` and `description` attributes
    """

    has_context = len(context_chunks) > 0

    parts = [
        TUTOR_INTRO.format(title=problem.title).strip(),
        TUTOR_RESTRICTIONS.format(
            materials_note="" if has_context else NO_MATERIALS_NOTE
        ),
        PROBLEM_CONTEXT.format(
            title=problem.title,
            description=problem.description,
        ),
    ]

    if has_context:
        parts.append(
            GROUNDED_MATERIALS.format(materials=format_materials(context_chunks))
        )
    else:
        parts.append(NO_MATERIALS_FALLBACK)

    parts.append(RESPONSE_GUIDELINES)

    return "".join(parts).strip()
