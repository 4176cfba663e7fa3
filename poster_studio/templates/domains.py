"""Domain catalogue: keyword lists used to classify a poster brief."""
from __future__ import annotations

from typing import Dict, Tuple

# Declaration order is the tie-break order when two domains score the same.
DOMAIN_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "youtube": (
        "miniature", "thumbnail", "youtube", "vignette", "chaîne", "chaine", "youtuber",
        "youtubeur", "abonnés", "abonnes", "vues", "viral", "buzz", "tutoriel", "tuto",
        "vlog", "podcast", "unboxing", "subscribe",
    ),
    "church": (
        "église", "eglise", "culte", "pasteur", "évêque", "eveque", "prophète", "prophete",
        "prière", "priere", "jeûne", "veillée", "veillee", "chrétien", "chretien",
        "louange", "adoration", "gospel", "worship", "crusade", "croisade", "revival",
        "saint-esprit", "saint esprit", "dieu", "seigneur", "biblique", "temple",
        "tabernacle", "dimanche", "intercession", "onction", "ministère", "ministere",
        "church",
    ),
    "restaurant": (
        "restaurant", "menu", "plat", "cuisine", "chef", "manger", "repas", "déjeuner",
        "dejeuner", "dîner", "diner", "buffet", "traiteur", "food", "gastronomie",
        "recette", "saveur", "délice", "delice", "gourmand", "culinaire", "maquis",
    ),
    "formation": (
        "formation", "séminaire", "seminaire", "atelier", "workshop", "coaching",
        "masterclass", "webinaire", "conférence", "conference", "certification",
        "apprentissage", "compétence", "competence", "carrière", "carriere",
        "entrepreneuriat", "management", "leadership", "training",
    ),
    "event": (
        "événement", "evenement", "concert", "soirée", "soiree", "fête", "fete",
        "célébration", "celebration", "show", "spectacle", "gala", "festival",
        "cérémonie", "ceremonie", "inauguration", "anniversaire", "mariage",
        "fiançailles", "fiancailles", "party",
    ),
    "music": (
        "musique", "music", "album", "single", "artiste", "chanteur", "chanteuse", "rap",
        "afrobeat", "hip-hop", "hip hop", "rnb", "jazz", "reggae", "coupé-décalé",
        "coupe decale", "afropop", "ndombolo", "rumba", "makossa",
    ),
    "sport": (
        "sport", "football", "basket", "basketball", "match", "tournoi", "compétition",
        "competition", "athlète", "athlete", "équipe", "equipe", "marathon", "natation",
        "tennis", "boxe", "arts martiaux", "musculation",
    ),
    "ecommerce": (
        "promo", "promotion", "solde", "soldes", "réduction", "reduction", "vente",
        "boutique", "shop", "produit", "article", "offre", "livraison", "commande",
        "panier", "magasin", "nouveauté", "nouveaute",
    ),
    "fashion": (
        "mode", "fashion", "collection", "vêtement", "vetement", "couture", "défilé",
        "defile", "prêt-à-porter", "pret a porter", "accessoire", "bijou", "tendance",
        "élégance", "elegance", "chic", "glamour",
    ),
    "technology": (
        "technologie", "tech", "digital", "numérique", "numerique", "application",
        "startup", "innovation", "hackathon", "développement", "developpement", "code",
        "programmation", "intelligence artificielle", "data", "cloud",
    ),
    "health": (
        "santé", "sante", "health", "médical", "medical", "hôpital", "hopital",
        "clinique", "consultation", "bien-être", "bien etre", "fitness", "pharmacie",
        "docteur", "médecin", "medecin", "soins", "traitement", "thérapie", "therapie",
    ),
    "realestate": (
        "immobilier", "appartement", "maison", "terrain", "location", "agence",
        "propriété", "propriete", "logement", "résidence", "residence", "villa",
        "duplex", "studio", "loyer", "investissement",
    ),
    "education": (
        "éducation", "education", "école", "ecole", "université", "universite",
        "étudiant", "etudiant", "enseignement", "professeur", "examen", "diplôme",
        "diplome", "baccalauréat", "baccalaureat", "licence", "rentrée", "rentree",
    ),
}

KNOWN_DOMAINS = tuple(DOMAIN_KEYWORDS) + ("other",)

# Domains whose templates adapt well to any brief, consulted in order.
FALLBACK_DOMAINS: Tuple[str, ...] = ("other", "event", "formation")

PRIMARY_CANDIDATE_LIMIT = 20
FALLBACK_CANDIDATE_LIMIT = 15
TOP_N = 5

SPECIFIC_KEYWORD_WEIGHT = 3
GENERIC_KEYWORD_WEIGHT = 2
SPECIFIC_KEYWORD_MIN_LENGTH = 6
