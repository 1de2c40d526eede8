"""
LLM-backed list extraction for pages none of the site parsers understand.

Uses Gemini through LangChain (prompt | llm | parser). Only enabled when
GEMINI_API_KEY is set.
"""

import json
import os
import re
from typing import List

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI

from cinematch.logging_config import get_logger
from cinematch.parsers.base import MovieListParser, ParsedMovieList, strip_tags, unique_titles

logger = get_logger(__name__)

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

# Roughly 25K tokens of page text
MAX_PAGE_CHARS = 100000

EXTRACTION_PROMPT = """Extract all movie titles from this webpage content.
Return ONLY a valid JSON array of strings containing movie titles, nothing else.
Do not include TV shows, only movies.
Example format: ["The Godfather", "Pulp Fiction", "Inception"]

Webpage content:
{page}"""

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def get_extraction_chain():
    """Builds the prompt | Gemini | text chain used for title extraction."""
    gemini_api_key = os.getenv("GEMINI_API_KEY")
    if not gemini_api_key:
        raise ValueError("GEMINI_API_KEY environment variable is not set.")

    llm = ChatGoogleGenerativeAI(
        model=GEMINI_MODEL,
        temperature=0,
        google_api_key=gemini_api_key,
    )
    prompt = ChatPromptTemplate.from_messages([("human", EXTRACTION_PROMPT)])
    return prompt | llm | StrOutputParser()


def clean_page(page: str) -> str:
    """Drop markup that never holds list content, then collapse whitespace."""
    page = strip_tags(page, ("script", "style", "nav", "footer", "header"))
    page = re.sub(r"<!--[\s\S]*?-->", "", page)
    return re.sub(r"\s+", " ", page).strip()


def parse_title_array(text: str) -> List[str]:
    """Pull the JSON array out of a model reply (which may be fenced in markdown)."""
    match = _JSON_ARRAY.search(text or "")
    if not match:
        raise ValueError("Could not parse LLM response as JSON array")
    items = json.loads(match.group(0))
    if not isinstance(items, list):
        raise ValueError("LLM response is not a JSON array")
    return unique_titles(t for t in items if isinstance(t, str))


class LLMParser(MovieListParser):
    name = "LLM Parser"

    def __init__(self, chain=None):
        self._chain = chain

    def can_parse(self, url: str) -> bool:
        return self._chain is not None or bool(os.getenv("GEMINI_API_KEY"))

    @property
    def chain(self):
        if self._chain is None:
            self._chain = get_extraction_chain()
        return self._chain

    def extract_titles(self, page: str) -> List[str]:
        cleaned = clean_page(page)[:MAX_PAGE_CHARS]
        reply = self.chain.invoke({"page": cleaned})
        return parse_title_array(reply)

    def parse(self, url: str):
        try:
            return super().parse(url)
        except Exception as e:
            # Model or reply-format failures fall through to the next parser
            logger.warning("llm_parse_failed", url=url, error=str(e))
            return ParsedMovieList(source=self.name, error=str(e))
