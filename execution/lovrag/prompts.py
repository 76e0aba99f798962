"""
Prompt templates and the Prompt Composer

All Danish prompt text lives here. The composer turns a question and the
retrieved statutes into a grounded instruction prompt, or into a fallback
prompt when nothing relevant was found. Output depends only on the inputs.
"""

from typing import Optional
from dataclasses import dataclass, field

from .models import ChatMessage, RetrievalCandidate

TRUNCATION_MARKER = "..."

# =============================================================================
# Prompt templates
# =============================================================================

PROMPTS = {
    "grounded": """Du er en dansk juridisk AI-assistent. Besvar følgende spørgsmål baseret på de relevante lovbestemmelser nedenfor.

SPØRGSMÅL: {query}

RELEVANTE LOVBESTEMMELSER:
{context}

INSTRUKTIONER:
- Giv et klart og præcist svar på dansk baseret på de angivne lovbestemmelser
- Referer specifikt til de relevante paragraffer og love
- Forklar komplekse juridiske begreber i forståelige termer
- Hvis der er usikkerhed eller manglende information, nævn det eksplicit
- Hold svaret struktureret og let at læse
- Brug kun informationen fra de angivne lovbestemmelser

SVAR:""",

    "fallback": """Du er en dansk juridisk AI-assistent. Besvar følgende spørgsmål baseret på dansk lovgivning.

SPØRGSMÅL: {query}

Der blev ikke fundet relevante lovbestemmelser i databasen til dette spørgsmål.

INSTRUKTIONER:
- Giv et klart og præcist svar på dansk ud fra generel viden om dansk ret
- Gør det tydeligt, at svaret ikke bygger på konkrete lovbestemmelser fra databasen
- Referer til relevante danske love og regler, hvis du kender dem
- Forklar komplekse juridiske begreber i forståelige termer
- Vær eksplicit om eventuelle begrænsninger i dit svar
- Anbefal at konsultere en juridisk ekspert for specifik rådgivning
- Hold svaret struktureret og let at læse

SVAR:""",

    "candidate": "[{rank}] {title} ({law_number}) - Relevans: {relevance}\n{locator_line}{excerpt}\n",

    "system": """Du er en erfaren dansk juridisk ekspert og AI-assistent. Din opgave er at give præcis, pålidelig juridisk vejledning baseret på dansk lovgivning.

KOMMUNIKATIONSSTIL:
- Skriv på klart, professionelt dansk
- Vær præcis og konkret i dine svar
- Forklar juridiske termer når nødvendigt
- Strukturer dine svar logisk og læsevenligt

SVARSTRUKTUR:
1. Direkte svar på spørgsmålet
2. Juridisk baggrund og relevante regler
3. Praktiske overvejelser eller næste skridt
4. Anbefalinger og advarsler hvor relevant

VIGTIGE RETNINGSLINJER:
- Basér altid svar på de angivne lovbestemmelser når de er tilgængelige
- Vær eksplicit om usikkerhed eller manglende information
- Anbefal professionel juridisk rådgivning ved komplekse sager
- Nævn relevante frister og procedurekrav

Husk: Du er en ekspert, men erstatter ikke personlig juridisk rådgivning i komplekse situationer.""",
}

# Rule-based responder text (used when no language model is reachable)
RULE_BASED = {
    "grounded_intro": "Ud fra de fundne lovbestemmelser er følgende relevant for dit spørgsmål:",
    "grounded_item": "{rank}. {title}{locator_suffix}: {excerpt}",
    "grounded_outro": (
        "Bemærk: Dette svar er sammensat automatisk ud fra lovteksterne uden juridisk "
        "vurdering. Læs de fulde bestemmelser, og kontakt en juridisk rådgiver ved tvivl."
    ),
    "ungrounded": (
        "Jeg kunne ikke finde lovbestemmelser i databasen, der besvarer spørgsmålet "
        "\"{query}\", og kan derfor ikke give et kildebaseret svar lige nu. "
        "Prøv at omformulere spørgsmålet eller vælge et andet retsområde. "
        "Ved konkrete juridiske spørgsmål anbefales det at kontakte en advokat "
        "eller anden juridisk rådgiver."
    ),
}

APOLOGY_MESSAGE = "Der opstod en fejl ved generering af svar. Prøv venligst igen."


def truncate_text(text: str, limit: int, marker: str = TRUNCATION_MARKER) -> str:
    """Return the first `limit` characters, with a marker when text was cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


@dataclass(frozen=True)
class ComposedPrompt:
    """
    A prompt together with the structured values it was built from.

    Backends that need the question or the candidates read them here
    instead of parsing them back out of `text`.
    """
    text: str
    query: str
    candidates: tuple[RetrievalCandidate, ...] = ()
    history: tuple[ChatMessage, ...] = field(default=())

    @property
    def grounded(self) -> bool:
        return bool(self.candidates)


class PromptComposer:
    """Builds grounded or fallback prompts for the answer generator."""

    def __init__(self, excerpt_chars: int = 500):
        self.excerpt_chars = excerpt_chars

    def format_candidate(self, rank: int, candidate: RetrievalCandidate) -> str:
        statute = candidate.statute
        locator = statute.locator
        return PROMPTS["candidate"].format(
            rank=rank,
            title=statute.title,
            law_number=statute.law_number or "N/A",
            relevance=candidate.relevance_percent,
            locator_line=f"{locator}\n" if locator else "",
            excerpt=truncate_text(statute.content, self.excerpt_chars),
        )

    def compose(
        self,
        query: str,
        candidates: list[RetrievalCandidate],
        history: Optional[list[ChatMessage]] = None,
    ) -> ComposedPrompt:
        """
        Compose the prompt for one turn.

        Args:
            query: The user's question, inserted verbatim
            candidates: Retrieved statutes in rank order (may be empty)
            history: Optional earlier messages of the session

        Returns:
            ComposedPrompt carrying the text and the structured inputs
        """
        if candidates:
            context = "\n".join(
                self.format_candidate(rank, c) for rank, c in enumerate(candidates, 1)
            )
            text = PROMPTS["grounded"].format(query=query, context=context)
        else:
            text = PROMPTS["fallback"].format(query=query)

        return ComposedPrompt(
            text=text,
            query=query,
            candidates=tuple(candidates),
            history=tuple(history or ()),
        )
