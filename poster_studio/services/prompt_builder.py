"""Assemble the provider instruction text from typed directive sections.

Sections are collected in order and only serialised at the end, so the size
ceiling can be enforced by shortening the user's brief first, then dropping
optional styling sections, and only as a last resort cutting the tail.
"""
from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from poster_studio.schemas import GenerationRequest
from poster_studio.services.template_selector import detect_primary_domain
from poster_studio.templates.styles import (
    COMPOSITION_RULES,
    LOGO_POSITION_PHRASES,
    PROFESSIONAL_STANDARDS,
    TYPOGRAPHY_STYLES,
    profile_for_domain,
)

logger = logging.getLogger(__name__)

DEFAULT_CHAR_CEILING = 4500
EXPERT_STYLING_TITLE = "EXPERT STYLING"
CLONE_MODE_TITLE = "CLONE MODE"


class SectionKind(str, enum.Enum):
    HEADER = "header"
    MODE = "mode"
    STYLE = "style"
    ASSETS = "assets"
    OUTPUT = "output"
    BRIEF = "brief"


@dataclass
class PromptSection:
    kind: SectionKind
    lines: List[str]
    title: Optional[str] = None
    droppable: bool = False

    def render(self) -> str:
        body = [f"{self.title}:"] if self.title else []
        body.extend(self.lines)
        return "\n".join(body)


@dataclass
class PromptBuilder:
    ceiling: int = DEFAULT_CHAR_CEILING
    sections: List[PromptSection] = field(default_factory=list)

    def add(
        self,
        kind: SectionKind,
        lines: Sequence[str],
        *,
        title: Optional[str] = None,
        droppable: bool = False,
    ) -> "PromptBuilder":
        cleaned = [line for line in lines if line]
        if cleaned:
            self.sections.append(PromptSection(kind, cleaned, title, droppable))
        return self

    def _render(self, sections: Sequence[PromptSection]) -> str:
        return "\n\n".join(section.render() for section in sections if section.lines)

    def build(self) -> str:
        sections = [
            PromptSection(s.kind, list(s.lines), s.title, s.droppable) for s in self.sections
        ]
        text = self._render(sections)
        if len(text) <= self.ceiling:
            return text

        overflow = len(text) - self.ceiling
        for section in reversed(sections):
            if section.kind is not SectionKind.BRIEF or overflow <= 0:
                continue
            while section.lines and overflow > 0:
                last = section.lines[-1]
                keep = len(last) - overflow
                if keep > 0:
                    section.lines[-1] = last[:keep].rstrip()
                    overflow = 0
                else:
                    section.lines.pop()
                    overflow -= len(last) + 1
            text = self._render(sections)
            overflow = len(text) - self.ceiling

        while overflow > 0:
            droppable = [s for s in sections if s.droppable]
            if not droppable:
                break
            sections.remove(droppable[-1])
            text = self._render(sections)
            overflow = len(text) - self.ceiling

        if len(text) > self.ceiling:
            logger.warning(
                "prompt still above ceiling after trimming; cutting tail",
                extra={"length": len(text), "ceiling": self.ceiling},
            )
            text = text[: self.ceiling]
        return text


@dataclass
class AssetFlags:
    """Which staged images the provider will receive, by 1-based input position."""

    reference_index: Optional[int] = None
    template_selected: bool = False
    logo_indices: List[int] = field(default_factory=list)
    logo_positions: List[str] = field(default_factory=list)
    content_index: Optional[int] = None
    secondary: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def has_reference(self) -> bool:
        return self.reference_index is not None


def is_clone_mode(request: GenerationRequest, flags: AssetFlags) -> bool:
    return bool(request.is_clone_mode or flags.has_reference or flags.template_selected)


def _clone_directives(flags: AssetFlags) -> List[str]:
    source = f"image {flags.reference_index}" if flags.reference_index else "the reference design"
    return [
        f"- Reproduce the design of {source} EXACTLY: same background, shapes, colours, layout and typography style",
        "- Replace ONLY the textual content with the user's content given in the brief",
        "- Swap photo and logo regions with the user-supplied images listed below",
        "- Cleanly REMOVE every reference element (text, logo, photo, contact, price) that has no user replacement",
        "- Leave no placeholder, lorem ipsum, residual text or empty frame behind",
        "- Do not add new decorative elements and do not restyle the design",
    ]


def _asset_lines(flags: AssetFlags) -> List[str]:
    lines: List[str] = []
    for number, index in enumerate(flags.logo_indices):
        position = flags.logo_positions[number] if number < len(flags.logo_positions) else ""
        if position in LOGO_POSITION_PHRASES:
            where = LOGO_POSITION_PHRASES[position]
        elif number == 0:
            where = LOGO_POSITION_PHRASES["top-left"]
        else:
            where = "placed harmoniously alongside the other logos"
        lines.append(
            f"- LOGO {number + 1} (image {index}): {where}; reproduce it exactly, never redraw or recolour it"
        )
    if flags.content_index is not None:
        lines.append(
            f"- CONTENT IMAGE (image {flags.content_index}): integrate it prominently as the main visual; "
            "use it as provided, do not generate a different picture"
        )
    for index, instructions in flags.secondary:
        placement = instructions.strip() or "place it harmoniously within the layout"
        lines.append(f"- SECONDARY IMAGE (image {index}): {placement}")
    return lines


def build_prompt(
    request: GenerationRequest,
    flags: AssetFlags,
    *,
    ceiling: int = DEFAULT_CHAR_CEILING,
    language: str = "French",
    rng: Optional[random.Random] = None,
) -> str:
    """Return the final provider prompt for ``request``."""

    chooser = rng or random
    builder = PromptBuilder(ceiling=ceiling)
    builder.add(
        SectionKind.HEADER,
        [
            "Create a professional advertising poster, high-quality graphic design suitable for print.",
            f"Format: {request.aspect_ratio} aspect ratio. All visible text in {language}.",
        ],
    )

    clone = is_clone_mode(request, flags)
    if clone:
        builder.add(SectionKind.MODE, _clone_directives(flags), title=CLONE_MODE_TITLE)
    else:
        domain = detect_primary_domain(request.prompt) or request.domain or "other"
        profile = profile_for_domain(domain)
        builder.add(
            SectionKind.MODE,
            ["- Invent an original, polished design for the brief below"],
            title="FREE DESIGN MODE",
        )
        builder.add(
            SectionKind.STYLE,
            [f"- {rule}" for rule in PROFESSIONAL_STANDARDS],
            title="PROFESSIONAL STANDARDS",
            droppable=True,
        )
        builder.add(
            SectionKind.STYLE,
            [f"- Composition: {rule}" for rule in profile.composition]
            + [f"- Typography: {rule}" for rule in profile.typography]
            + [f"- Colour: {rule}" for rule in profile.colors]
            + [f"- Effects: {rule}" for rule in profile.effects]
            + [f"- Avoid: {rule}" for rule in profile.avoid],
            title=f"{EXPERT_STYLING_TITLE} ({profile.name})",
            droppable=True,
        )
        builder.add(
            SectionKind.STYLE,
            [f"- {chooser.choice(TYPOGRAPHY_STYLES)}"],
            title="TYPOGRAPHY STYLE",
        )
        builder.add(
            SectionKind.STYLE,
            [f"- {rule}" for rule in COMPOSITION_RULES],
            title="COMPOSITION RULES",
        )

    if request.scene_preference:
        builder.add(
            SectionKind.STYLE,
            [f"- When people or scenes are shown: {request.scene_preference}"],
            title="SCENE PREFERENCE",
        )

    builder.add(SectionKind.ASSETS, _asset_lines(flags), title="PROVIDED IMAGES")
    builder.add(
        SectionKind.OUTPUT,
        [
            f"- {request.aspect_ratio} aspect ratio, {request.resolution} resolution, {request.output_format} output",
            f"- Every word on the poster must be in {language} and come from the user's brief",
            "- Never display colour codes, hex values or technical annotations",
        ],
        title="OUTPUT REQUIREMENTS",
    )
    builder.add(SectionKind.BRIEF, [request.prompt], title="USER BRIEF")

    prompt = builder.build()
    logger.info(
        "prompt assembled",
        extra={"mode": "clone" if clone else "free", "length": len(prompt), "ceiling": ceiling},
    )
    return prompt


__all__ = [
    "AssetFlags",
    "CLONE_MODE_TITLE",
    "EXPERT_STYLING_TITLE",
    "PromptBuilder",
    "PromptSection",
    "SectionKind",
    "build_prompt",
    "is_clone_mode",
]
