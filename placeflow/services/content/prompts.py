"""Prompt construction for generated listing content."""

from typing import Optional

from placeflow.services.catalog.catalog import CATEGORIES
from placeflow.services.places.models import BusinessRecord

DEFAULT_CONTEXT = "Focus on quality service and customer satisfaction."

LANGUAGE_INSTRUCTIONS = {
    "nl": "Schrijf in vloeiend Nederlands.",
    "fr": "Écrivez en français courant.",
    "de": "Schreiben Sie in fließendem Deutsch.",
    "en": "Write in fluent English.",
}

MIN_EXISTING_ABOUT = 50
MAX_EXISTING_ABOUT = 500
MAX_EXISTING_SERVICES = 8
MAX_EXISTING_HIGHLIGHTS = 5

PROMPT_TEMPLATE = """Je bent een professionele copywriter voor een huisdieren directory website.
Schrijf uitgebreide, unieke content voor het volgende bedrijf:

=== BEDRIJFSGEGEVENS ===
Bedrijfsnaam: {name}
Categorie: {category}
Adres: {address}
Stad: {unit}, {country}
Website: {website}
Rating: {rating}
Reviews: {review_count}

=== CONTEXT ===
{context}
{existing}
=== OPDRACHT ===
{instruction}

Genereer JSON met:
1. "aboutUs": Professionele tekst van 200-350 woorden over dit bedrijf
2. "highlights": Array van 5-6 korte USPs (max 8 woorden elk)
3. "services": Array van 6-10 specifieke diensten
4. "targetAudience": Een zin over de doelgroep
5. "metaDescription": SEO meta description van 150-160 karakters

BELANGRIJK:
- Maak content UNIEK voor dit specifieke bedrijf
- Vermijd overdrijving en valse claims
- Antwoord ALLEEN met valid JSON"""


def category_context(category_slug: Optional[str], language: str) -> str:
    category = CATEGORIES.get(category_slug) if category_slug else None
    return category.context(language) if category else DEFAULT_CONTEXT


def existing_content(record: BusinessRecord) -> str:
    """Summarize content a record already carries so the generator can build on it."""
    content = record.scraped_content
    lines = []

    about = content.get("aboutUs")
    if isinstance(about, str) and len(about) > MIN_EXISTING_ABOUT:
        lines.append(f'Bestaande beschrijving: "{about[:MAX_EXISTING_ABOUT]}"')

    services = content.get("services")
    if isinstance(services, list) and services:
        lines.append(
            "Diensten van website: "
            + ", ".join(str(s) for s in services[:MAX_EXISTING_SERVICES])
        )

    highlights = content.get("highlights")
    if isinstance(highlights, list) and highlights:
        lines.append("USPs: " + "; ".join(str(h) for h in highlights[:MAX_EXISTING_HIGHLIGHTS]))

    return "".join(f"\n{line}\n" for line in lines)


def build_prompt(record: BusinessRecord, language: str) -> str:
    return PROMPT_TEMPLATE.format(
        name=record.name,
        category=record.category_name or record.category_slug or "Huisdierenservice",
        address=record.address or "Niet beschikbaar",
        unit=record.unit_name,
        country=record.country_name,
        website=record.website or "Niet beschikbaar",
        rating=f"{record.avg_rating}/5 sterren" if record.avg_rating else "Nog geen rating",
        review_count=record.review_count or 0,
        context=category_context(record.category_slug, language),
        existing=existing_content(record),
        instruction=LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["en"]),
    )
