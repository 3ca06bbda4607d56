"""
Classification de la présentation (forme galénique) d'un produit.

Fonction pure : texte libre -> catégorie canonique.
La table est parcourue dans l'ordre d'insertion : la première catégorie dont
un synonyme apparaît dans le texte gagne (ex. "COMPRIMIDO" -> Tableta).
"""

from __future__ import annotations

import unicodedata

FALLBACK_PRESENTATION = "Otro"

PRESENTATION_SYNONYMS: dict[str, tuple[str, ...]] = {
    "Tableta": ("TABLETA", "PASTILLA", "COMPRIMIDO", "GRAGEA", "PÍLDORA"),
    "Capsula": ("CAPSULA", "CÁPSULA BLANDA", "CÁPSULA DURA"),
    "Comprimido": ("COMPRIMIDO",),
    "Polvo": ("POLVO", "POLVILLO", "POLVO PARA RECONSTITUIR"),
    "Supositorio": ("SUPOSITORIO", "INSERTO RECTAL", "TORPEDO"),
    "Ovulo": ("ÓVULO", "INSERTO VAGINAL", "SUPOSITORIO VAGINAL"),
    "Implante": ("IMPLANTE", "DISPOSITIVO SUBDÉRMICO", "SISTEMA IMPLANTABLE"),
    "Pomada": ("POMADA", "UNGUENTO", "CREMA DENSA"),
    "Gel": ("GEL", "GEL TÓPICO", "GELATINA MEDICINAL"),
    "Crema": ("CREMA", "EMULSIÓN TÓPICA", "POMADA LIGERA"),
    "Ampolleta": ("AMPOLLETA", "AMPOLLA", "FRASCO ÁMPULA"),
    "Jarabe": ("JARABE", "SOLUCIÓN ORAL", "LÍQUIDO AZUCARADO"),
    "Soluciones": ("SOLUCIONES", "SOLUCIÓN LÍQUIDA", "MEZCLA LÍQUIDA"),
    "Emulsiones": ("EMULSIONES", "SUSPENSIÓN OLEOSA", "MEZCLA ACEITE-AGUA"),
    "Nebulizador": ("NEBULIZADOR", "AEROSOL", "SOLUCIÓN PARA NEBULIZAR"),
    "Paquete": ("PAQUETE", "KIT", "CONJUNTO", "SET"),
    "Bulto": ("BULTO", "FARDO", "PAQUETE GRANDE"),
    "Caja": ("CAJA", "ESTUCHE", "CONTENEDOR"),
    "Pieza": ("PIEZA", "UNIDAD", "ARTÍCULO INDIVIDUAL"),
}


def strip_accents(text: str) -> str:
    """Supprime les diacritiques et passe en majuscules."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn").upper()


# synonymes normalisés une fois pour toutes (même normalisation que l'entrée)
_NORMALIZED_TABLE: tuple[tuple[str, tuple[str, ...]], ...] = tuple(
    (category, tuple(strip_accents(s) for s in synonyms))
    for category, synonyms in PRESENTATION_SYNONYMS.items()
)


def classify_presentation(description: str | None) -> str:
    if not description:
        return FALLBACK_PRESENTATION

    clean = strip_accents(description)
    for category, synonyms in _NORMALIZED_TABLE:
        for synonym in synonyms:
            if synonym in clean:
                return category

    return FALLBACK_PRESENTATION


def presentation_categories() -> list[str]:
    return [*PRESENTATION_SYNONYMS, FALLBACK_PRESENTATION]
