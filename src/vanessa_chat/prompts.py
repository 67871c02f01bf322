from __future__ import annotations

ANSWER_INSTRUCTION = (
    "As the store's smart support assistant, give the customer a helpful, accurate "
    "and friendly answer that is relevant to the question"
)


def system_instruction(language: str) -> str:
    return (
        f"You are a smart {language}-speaking support assistant answering customer questions. "
        f"Your answers must be helpful, accurate, friendly and relevant. Respond in {language}."
    )


def secondary_system_instruction(language: str) -> str:
    return f"You are a helpful {language} assistant. Respond in {language}."


def build_prompt(question: str, prior_conversation: str | None = None) -> str:
    """Prior conversation text is inserted verbatim ahead of the question."""
    if prior_conversation:
        return (
            f"prior conversation:\n{prior_conversation}\n\n"
            f"new question:\n{question}\n\n"
            f"{ANSWER_INSTRUCTION}, taking the conversation history above into account:"
        )
    return f"question:\n{question}\n\n{ANSWER_INSTRUCTION}:"


def degraded_answer(question: str) -> str:
    return (
        f'Your question: "{question}"\n\n'
        "Sorry, the AI services are currently unavailable because of traffic limits.\n\n"
        "Please:\n"
        "1. Try again in a few minutes\n"
        "2. Or get a free Groq API key: https://console.groq.com\n"
        "3. Put the Groq key in your .env.local file: GROQ_API_KEY=your_key"
    )


DEGRADED_SUGGESTION = "For better availability, get a free API key from Groq and set GROQ_API_KEY."
