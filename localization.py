from __future__ import annotations

from typing import Dict, List

LANGUAGES: List[Dict[str, str]] = [
    {"code": "en-US", "name": "English (US)", "instruction": "Use American English spelling and terminology."},
    {"code": "en-GB", "name": "English (UK)", "instruction": "Use British English spelling and terminology."},
    {"code": "es", "name": "Spanish", "instruction": "Write in Spanish using formal language."},
    {"code": "fr", "name": "French", "instruction": "Write in French using formal language."},
    {"code": "de", "name": "German", "instruction": "Write in German using formal language."},
    {"code": "it", "name": "Italian", "instruction": "Write in Italian using formal language."},
    {"code": "pt", "name": "Portuguese", "instruction": "Write in Portuguese using formal language."},
    {"code": "nl", "name": "Dutch", "instruction": "Write in Dutch using formal language."},
    {"code": "pl", "name": "Polish", "instruction": "Write in Polish using formal language."},
    {"code": "sv", "name": "Swedish", "instruction": "Write in Swedish using formal language."},
    {"code": "da", "name": "Danish", "instruction": "Write in Danish using formal language."},
    {"code": "no", "name": "Norwegian", "instruction": "Write in Norwegian using formal language."},
    {"code": "fi", "name": "Finnish", "instruction": "Write in Finnish using formal language."},
]

COUNTRIES: List[Dict[str, str]] = [
    {"code": "US", "name": "United States", "context": "Target audience is in the United States."},
    {"code": "GB", "name": "United Kingdom", "context": "Target audience is in the United Kingdom."},
    {"code": "CA", "name": "Canada", "context": "Target audience is in Canada."},
    {"code": "AU", "name": "Australia", "context": "Target audience is in Australia."},
    {"code": "DE", "name": "Germany", "context": "Target audience is in Germany."},
    {"code": "FR", "name": "France", "context": "Target audience is in France."},
    {"code": "ES", "name": "Spain", "context": "Target audience is in Spain."},
    {"code": "IT", "name": "Italy", "context": "Target audience is in Italy."},
    {"code": "NL", "name": "Netherlands", "context": "Target audience is in the Netherlands."},
    {"code": "SE", "name": "Sweden", "context": "Target audience is in Sweden."},
    {"code": "NO", "name": "Norway", "context": "Target audience is in Norway."},
    {"code": "DK", "name": "Denmark", "context": "Target audience is in Denmark."},
    {"code": "FI", "name": "Finland", "context": "Target audience is in Finland."},
    {"code": "PL", "name": "Poland", "context": "Target audience is in Poland."},
    {"code": "BR", "name": "Brazil", "context": "Target audience is in Brazil."},
    {"code": "MX", "name": "Mexico", "context": "Target audience is in Mexico."},
]

DANISH_GRAMMAR_RULES = """When writing in Danish, ensure the following rules are adhered to:
Verb conjugation in present tense: add "-r" to the infinitive, e.g. "at lære" becomes "jeg lærer".
Use "nogle" for multiple people or things and "nogen" in questions, negatives or conditionals.
Compound words: join them when the emphasis is on the first part ("dansklærer"), keep them apart when it is on the second ("dansk lærer").
Use "-ende" for present participles ("løbende") and "-ene" for definite plural nouns ("løbene").
Use "jeg" as the subject and "mig" as the object.
Common gender nouns take "en" and neuter nouns take "et"; definite forms add "-en" or "-et" ("bilen", "huset").
Adjectives agree with gender and number ("en stor dreng", "et stort hus").
Keep the verb in second position in main clauses (V2 word order).
Capitalize only proper nouns and the first word of a sentence; days, months and nationalities are lowercase."""


def get_language_instruction(code: str | None) -> str:
    for language in LANGUAGES:
        if language["code"] == code:
            return language["instruction"]
    return LANGUAGES[0]["instruction"]


def get_country_context(code: str | None) -> str:
    for country in COUNTRIES:
        if country["code"] == code:
            return country["context"]
    return COUNTRIES[0]["context"]


def get_outline_language_instruction(code: str | None) -> str:
    instruction = get_language_instruction(code)
    if code == "da":
        return f"{instruction}\n{DANISH_GRAMMAR_RULES}"
    return instruction
