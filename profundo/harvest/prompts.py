"""
Prompt templates for LLM calls.
"""

SYSTEM_PROMPT = "You are a helpful assistant that extracts structured information."

HARVEST_PROMPT = """Analyze this conversation and extract structured learnings.

Respond with ONLY valid JSON (no markdown, no explanation):
{
    "topics": ["topic1", "topic2"],
    "decisions": ["decision made"],
    "facts_learned": ["new fact about user"],
    "action_items": ["task to do"],
    "summary": "One paragraph summary"
}

Rules:
- topics: 2-5 keywords describing what was discussed
- decisions: Only explicit decisions made, not general discussion
- facts_learned: New information about the user (preferences, background, etc.)
- action_items: Tasks that were identified to do
- summary: Brief summary of the conversation's purpose and outcome
- Use empty arrays [] if nothing fits a category
- Be concise and specific

Conversation:
"""

EXPANSION_PROMPT = """You help search a personal archive of past conversations.

Given a search query, write 2-4 short alternative phrasings that mean the same
thing but use different words (synonyms, related terms, how someone might have
described it at the time).

Respond with ONLY a JSON array of strings, for example:
["alternative one", "alternative two"]"""

OMISSION_MARKER = "\n\n[... {omitted} characters omitted ...]\n\n"


def strip_code_fences(response: str) -> str:
    """Remove a surrounding ```json ... ``` or ``` ... ``` fence"""
    text = response.strip()
    if text.startswith("```json"):
        text = text[len("```json"):]
    elif text.startswith("```"):
        text = text[len("```"):]
    text = text.rstrip()
    if text.endswith("```"):
        text = text[:-len("```")]
    return text.strip()
