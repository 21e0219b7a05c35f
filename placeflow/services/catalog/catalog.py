"""Static country and category lookup tables.

Read-only reference data: which languages to search in per country, how each
category is phrased per language, and the context line fed to the content
generator.
"""

from typing import Optional

from pydantic import BaseModel

from placeflow.core.exceptions import ConfigurationError


class CountryConfig(BaseModel):
    code: str
    name: str
    languages: list[str]
    default_language: str
    google_domain: str
    google_gl: str


class CategoryConfig(BaseModel):
    slug: str
    label: str
    icon: str = "MapPin"
    search_terms: dict[str, str] = {}
    prompt_context: dict[str, str] = {}

    def search_term(self, language: str) -> Optional[str]:
        return self.search_terms.get(language) or None

    def context(self, language: str) -> str:
        return (
            self.prompt_context.get(language)
            or self.prompt_context.get("en")
            or "Focus on quality service and customer satisfaction."
        )


COUNTRIES: dict[str, CountryConfig] = {
    "NL": CountryConfig(
        code="NL",
        name="Nederland",
        languages=["nl"],
        default_language="nl",
        google_domain="google.nl",
        google_gl="nl",
    ),
    "BE": CountryConfig(
        code="BE",
        name="België",
        languages=["nl", "fr"],
        default_language="nl",
        google_domain="google.be",
        google_gl="be",
    ),
    "DE": CountryConfig(
        code="DE",
        name="Deutschland",
        languages=["de"],
        default_language="de",
        google_domain="google.de",
        google_gl="de",
    ),
    "FR": CountryConfig(
        code="FR",
        name="France",
        languages=["fr"],
        default_language="fr",
        google_domain="google.fr",
        google_gl="fr",
    ),
    "UK": CountryConfig(
        code="UK",
        name="United Kingdom",
        languages=["en"],
        default_language="en",
        google_domain="google.co.uk",
        google_gl="uk",
    ),
}


CATEGORIES: dict[str, CategoryConfig] = {
    "veterinary": CategoryConfig(
        slug="veterinary",
        label="Veterinarians",
        icon="Stethoscope",
        search_terms={
            "nl": "dierenarts",
            "fr": "vétérinaire",
            "de": "Tierarzt",
            "en": "veterinarian",
        },
        prompt_context={
            "nl": "Dit is een dierenarts. Focus op: medische expertise, spoedzorg, moderne apparatuur, preventieve zorg.",
            "fr": "C'est un vétérinaire. Focus: expertise médicale, soins urgents, équipement moderne, soins préventifs.",
            "de": "Dies ist ein Tierarzt. Fokus: medizinische Expertise, Notfallversorgung, moderne Ausstattung, Vorsorge.",
            "en": "This is a veterinarian. Focus: medical expertise, emergency care, modern equipment, preventive care.",
        },
    ),
    "grooming": CategoryConfig(
        slug="grooming",
        label="Pet Grooming",
        icon="Scissors",
        search_terms={
            "nl": "trimsalon hond",
            "fr": "toilettage chien",
            "de": "Hundesalon",
            "en": "dog grooming",
        },
        prompt_context={
            "nl": "Dit is een trimsalon. Focus op: trimservices, vachtverzorging, hygiëne, ervaring met rassen.",
            "fr": "C'est un salon de toilettage. Focus: services de toilettage, soins du pelage, hygiène, expérience races.",
            "de": "Dies ist ein Hundesalon. Fokus: Fellpflege, Styling, Hygiene, Erfahrung mit Rassen.",
            "en": "This is a grooming salon. Focus: grooming services, coat care, hygiene, breed experience.",
        },
    ),
    "pet-store": CategoryConfig(
        slug="pet-store",
        label="Pet Stores",
        icon="ShoppingBag",
        search_terms={
            "nl": "dierenwinkel",
            "fr": "animalerie",
            "de": "Tierhandlung",
            "en": "pet store",
        },
        prompt_context={
            "nl": "Dit is een dierenwinkel. Focus op: assortiment, voeding, accessoires, klantenservice.",
            "fr": "C'est une animalerie. Focus: assortiment, alimentation, accessoires, service client.",
            "de": "Dies ist eine Tierhandlung. Fokus: Sortiment, Futter, Zubehör, Kundenservice.",
            "en": "This is a pet store. Focus: product range, food, accessories, customer service.",
        },
    ),
    "pet-hotel": CategoryConfig(
        slug="pet-hotel",
        label="Pet Hotels",
        icon="Hotel",
        search_terms={
            "nl": "dierenpension",
            "fr": "pension animaux",
            "de": "Tierpension",
            "en": "pet hotel",
        },
    ),
    "dog-training": CategoryConfig(
        slug="dog-training",
        label="Dog Training",
        icon="GraduationCap",
        search_terms={
            "nl": "hondentraining",
            "fr": "dressage chien",
            "de": "Hundeschule",
            "en": "dog training",
        },
    ),
    "dog-walking": CategoryConfig(
        slug="dog-walking",
        label="Dog Walking",
        icon="Footprints",
        search_terms={
            "nl": "hondenuitlaatservice",
            "fr": "promenade chien",
            "en": "dog walking service",
        },
    ),
}


def get_country(code: str) -> CountryConfig:
    country = COUNTRIES.get(code.upper())
    if not country:
        raise ConfigurationError(
            f"Unknown country: {code}. Available: {', '.join(COUNTRIES)}"
        )
    return country


def get_category(slug: str) -> CategoryConfig:
    category = CATEGORIES.get(slug)
    if not category:
        raise ConfigurationError(
            f"Unknown category: {slug}. Available: {', '.join(CATEGORIES)}"
        )
    return category
