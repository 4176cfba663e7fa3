"""Static styling vocabulary used when a poster is designed from scratch."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class ExpertProfile:
    id: str
    name: str
    composition: Tuple[str, ...]
    typography: Tuple[str, ...]
    colors: Tuple[str, ...]
    effects: Tuple[str, ...]
    avoid: Tuple[str, ...]


CORPORATE_MODERN = ExpertProfile(
    id="corporate_modern",
    name="Corporate Modern",
    composition=(
        "Asymmetric 60/40 or 70/30 split, never dead-centred",
        "Invisible 12-column grid for alignment, margins of at least 5%",
        "Layering: textured background (10-20% opacity), then coloured shapes, then subject and text",
        "Keep 30-40% of the surface as breathing space",
    ),
    typography=(
        "Ultra-bold sans-serif title (Montserrat Black, Poppins ExtraBold)",
        "Subtitle at 40-50% of the title size, body in a highly legible regular weight",
    ),
    colors=(
        "60-30-10 ratio: dominant, accent, highlight",
        "Professional palette: corporate blue, deep green, greys; subtle two-colour gradients",
    ),
    effects=(
        "Soft drop shadows (20-30% opacity), uniform 15-25px rounded corners",
        "Light vignette and subtle photographic grain",
    ),
    avoid=("More than four colours", "Playful or casual typography", "Neon effects"),
)

SURREALIST_PHOTOREALISTIC = ExpertProfile(
    id="surrealist_photorealistic",
    name="Surrealist / Photorealistic",
    composition=(
        "Three to five depth planes with progressive blur",
        "Dynamic 15-45 degree perspective, hero zone covering 50-70% of the surface",
        "Subject in the foreground with floating 3D elements around it",
    ),
    typography=(
        "Massive title with pronounced 3D extrusion and contrasting glowing stroke",
        "Text integrated into the scene, in front of or behind the subject",
    ),
    colors=(
        "High saturation with a unified cinematic colour grade",
        "Deep blacks against vibrant colours, pure white highlights",
    ),
    effects=(
        "Lens flares, neon glow around key elements, volumetric light",
        "Pronounced bokeh in the background, reflections on glossy surfaces",
    ),
    avoid=("Flat scenes without depth", "Inconsistent lighting", "Floating objects without shadows"),
)

SPIRITUAL_RELIGIOUS = ExpertProfile(
    id="spiritual_religious",
    name="Spiritual / Religious",
    composition=(
        "Title zone in the top 40-50%, speaker portrait on the right third, practical details at the bottom",
        "Blurred silhouettes of worshippers with raised hands in the background",
        "Dark overlay (40-60%) for text contrast, main light source coming from above",
    ),
    typography=(
        "Mix script lettering for spiritual keywords with ultra-bold sans-serif for key information",
        "Golden glow on the main title, elegant italic serif for scripture verses",
    ),
    colors=(
        "Royal blue with gold and white, or fiery red-orange-yellow, or deep green with gold",
        "Vertical gradients from luminous top to darker bottom",
    ),
    effects=(
        "Divine light rays at 15-30 degrees, golden particles and halos",
        "Rim light around the portrait, satin-textured 3D banners for dates and times",
    ),
    avoid=("Busy backgrounds hiding the message", "Hard-to-read date, time or venue"),
)

RESTAURANT_FOOD = ExpertProfile(
    id="restaurant_food",
    name="Restaurant / Food",
    composition=(
        "Hero dish covering 40-60% of the surface, perfectly sharp, slightly off-centre",
        "Odd number of visible elements (1, 3 or 5), 30-40% negative space",
        "Depth: sharp dish, softly blurred ingredients, blurred ambience",
    ),
    typography=(
        "Appetising bold display title, prices highlighted in rounded badges",
    ),
    colors=(
        "Warm appetising tones: reds, oranges, golden yellows balanced with fresh greens",
    ),
    effects=(
        "Steam, glistening sauces and natural highlights on the food",
        "Soft warm lighting from the side",
    ),
    avoid=("Dull or cold food colours", "Blurry hero dish", "Cluttered tables"),
)

YOUTUBE_THUMBNAIL = ExpertProfile(
    id="youtube_thumbnail",
    name="Viral YouTube Thumbnail",
    composition=(
        "Expressive human face covering 30-50% of the surface",
        "Simplified background, one to three oversized symbolic props",
        "Text zone of 25-35%, never over the face",
    ),
    typography=(
        "Ultra-heavy sans-serif only, five to seven words at most",
        "Thick 3-6px contrasting stroke around every word, numbers emphasised",
    ),
    colors=(
        "Hyper-saturated, extreme contrast: pure yellow, red, blue accents",
    ),
    effects=(
        "Dramatic lighting on the face, arrows and circles pointing at key elements",
    ),
    avoid=("Too much text", "Neutral expressions", "Thin or decorative fonts"),
)

EXPERT_PROFILES: Dict[str, ExpertProfile] = {
    profile.id: profile
    for profile in (
        CORPORATE_MODERN,
        SURREALIST_PHOTOREALISTIC,
        SPIRITUAL_RELIGIOUS,
        RESTAURANT_FOOD,
        YOUTUBE_THUMBNAIL,
    )
}

DOMAIN_TO_PROFILE: Dict[str, str] = {
    "youtube": "youtube_thumbnail",
    "church": "spiritual_religious",
    "restaurant": "restaurant_food",
    "formation": "corporate_modern",
    "technology": "corporate_modern",
    "education": "corporate_modern",
    "realestate": "corporate_modern",
    "health": "corporate_modern",
    "other": "corporate_modern",
    "event": "surrealist_photorealistic",
    "music": "surrealist_photorealistic",
    "sport": "surrealist_photorealistic",
    "ecommerce": "surrealist_photorealistic",
    "fashion": "surrealist_photorealistic",
}

TYPOGRAPHY_STYLES: Tuple[str, ...] = (
    "Bold 3D extruded title with a soft drop shadow and a thin contrasting outline",
    "Elegant high-contrast serif title paired with a clean geometric sans-serif",
    "Condensed ultra-bold sans-serif title with a metallic gradient fill",
    "Hand-lettered script accent words combined with a heavy sans-serif headline",
    "Neon glow lettering with a subtle inner light and dark backdrop panel",
    "Stacked block capitals with alternating colour words and tight tracking",
)

PROFESSIONAL_STANDARDS: Tuple[str, ...] = (
    "HIERARCHY: title at least twice the subtitle size, clear 5:2:1 size ratio between levels",
    "CONTRAST: dramatic, never subtle; bold against light weights",
    "ALIGNMENT: invisible 12-column grid, nothing floating",
    "WHITE SPACE: keep 30-50% of the composition empty, margins of at least 5%",
    "TYPOGRAPHY: two or three typefaces at most, no flat or basic text; titles are designed graphic elements",
    "LAYOUT: curves, waves, oblique ribbons and layered depth to structure the poster",
    "COLOUR: 60-30-10 rule, three to five colours, WCAG 4.5:1 text contrast",
    "NEVER stretch images, never display colour codes or technical text",
)

COMPOSITION_RULES: Tuple[str, ...] = (
    "Build the poster in layers: background, colour shapes, main visual, then text",
    "Dominant colour about 60%, secondary about 30%, accent about 10%",
    "Guide the eye along a Z or F path: hook, title, subtitle, details, call to action, contact",
)

LOGO_POSITION_PHRASES: Dict[str, str] = {
    "top-left": "in the top-left corner",
    "top-right": "in the top-right corner",
    "center": "centred near the top of the poster",
    "bottom-left": "in the bottom-left corner",
    "bottom-right": "in the bottom-right corner",
}


def profile_for_domain(domain: str | None) -> ExpertProfile:
    profile_id = DOMAIN_TO_PROFILE.get(domain or "other", "corporate_modern")
    return EXPERT_PROFILES.get(profile_id, CORPORATE_MODERN)
