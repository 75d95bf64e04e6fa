"""
LLM query expansion for recall.

Asks the chat model for a few alternative phrasings of the query. Each
phrasing is embedded alongside the query and a chunk scores its best match,
which helps when the user remembers the idea but not the words.
"""

import json
import logging
from typing import List

from ..core.errors import ExtractionError, ProviderError
from ..harvest.prompts import EXPANSION_PROMPT, strip_code_fences
from ..providers.openrouter import ChatClient

logger = logging.getLogger(__name__)


class QueryExpander:
    """
    Generates expansion terms for a recall query.

    Args:
        chat: Chat client used for the expansion call
        max_terms: Upper bound on returned terms
    """

    def __init__(self, chat: ChatClient, max_terms: int = 4):
        self.chat = chat
        self.max_terms = max_terms

    def expand(self, query: str) -> List[str]:
        """
        Return alternative phrasings, or [] if expansion fails.

        Expansion is best effort: a provider or parse failure is logged and
        the query runs unexpanded.
        """
        try:
            raw = self.chat.complete(EXPANSION_PROMPT, query)
            terms = json.loads(strip_code_fences(raw))
        except (ProviderError, ExtractionError, json.JSONDecodeError) as e:
            logger.warning(f"Query expansion failed, searching without it: {e}")
            return []

        if not isinstance(terms, list):
            logger.warning(f"Query expansion returned {type(terms).__name__}, expected a list")
            return []

        seen = {query.strip().lower()}
        expansions = []
        for term in terms:
            if not isinstance(term, str):
                continue
            term = term.strip()
            if term and term.lower() not in seen:
                seen.add(term.lower())
                expansions.append(term)

        logger.info(f"Expanded query into {len(expansions[:self.max_terms])} terms")
        return expansions[:self.max_terms]
